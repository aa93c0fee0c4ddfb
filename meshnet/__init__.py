"""Neural network building blocks: layers, updaters, data iterators, config reading and binary streams."""

__version__ = "0.1.0"

__all__ = [
    "errors",
    "streams",
    "config",
    "layer_param",
    "layer_base",
    "layers",
    "updaters",
    "data",
    "augment",
]