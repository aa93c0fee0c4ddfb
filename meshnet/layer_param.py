"""Parameters shared by most layers, settable from configuration strings."""

from __future__ import annotations

import math
import re
import struct
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from .errors import check, error

_INT_RE = re.compile(r"\s*([+-]?\d+)")
_FLOAT_RE = re.compile(r"\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")

_RESERVED = 64
_FORMAT = struct.Struct("<ififf13i%di" % _RESERVED)

_RANDOM_TYPES = {"gaussian": 0, "uniform": 1, "xavier": 1, "kaiming": 2}

_INT_KEYS = {
    "init_sparse": "init_sparse",
    "nhidden": "num_hidden",
    "nchannel": "num_channel",
    "ngroup": "num_group",
    "kernel_height": "kernel_height",
    "kernel_width": "kernel_width",
    "stride": "stride",
    "pad_y": "pad_y",
    "pad_x": "pad_x",
    "no_bias": "no_bias",
    "silent": "silent",
}
_FLOAT_KEYS = {
    "init_sigma": "init_sigma",
    "init_uniform": "init_uniform",
    "init_bias": "init_bias",
}


def _atoi(val: str) -> int:
    """Parse a leading integer the lenient way; 0 when there is none."""
    m = _INT_RE.match(val)
    return int(m.group(1)) if m else 0


def _atof(val: str) -> float:
    """Parse a leading float the lenient way; 0.0 when there is none."""
    m = _FLOAT_RE.match(val)
    return float(m.group(1)) if m else 0.0


def _f32(value: float) -> float:
    """Round a value to single precision."""
    return float(np.float32(value))


@dataclass
class LayerParam:
    """Common layer parameters with a fixed binary layout."""

    num_hidden: int = 0
    init_sigma: float = 0.01
    init_sparse: int = 10
    init_uniform: float = -1.0
    init_bias: float = 0.0
    num_channel: int = 0
    random_type: int = 0
    num_group: int = 1
    kernel_height: int = 0
    kernel_width: int = 0
    stride: int = 1
    pad_y: int = 0
    pad_x: int = 0
    no_bias: int = 0
    temp_col_max: int = 64 << 18
    silent: int = 0
    num_input_channel: int = 0
    num_input_node: int = 0
    reserved: list[int] = field(default_factory=lambda: [0] * _RESERVED)

    SIZE = _FORMAT.size

    def __post_init__(self) -> None:
        self.init_sigma = _f32(self.init_sigma)
        self.init_uniform = _f32(self.init_uniform)
        self.init_bias = _f32(self.init_bias)

    def set_param(self, name: str, val: str) -> None:
        """Set a parameter from its configuration name and string value."""
        if name in _FLOAT_KEYS:
            setattr(self, _FLOAT_KEYS[name], _f32(_atof(val)))
        elif name in _INT_KEYS:
            setattr(self, _INT_KEYS[name], _atoi(val))
        elif name == "random_type":
            if val not in _RANDOM_TYPES:
                error("invalid random_type %s", val)
            self.random_type = _RANDOM_TYPES[val]
        elif name == "kernel_size":
            self.kernel_width = self.kernel_height = _atoi(val)
        elif name == "pad":
            self.pad_y = self.pad_x = _atoi(val)
        elif name == "temp_col_max":
            self.temp_col_max = _atoi(val) << 18

    def rand_init_weight(
        self,
        rng: np.random.Generator,
        shape: Sequence[int],
        in_num: int,
        out_num: int,
    ) -> np.ndarray:
        """Sample an initial weight array of ``shape`` for the chosen scheme.

        Gaussian, uniform (Xavier) and Kaiming schemes are sampled; any other
        random type yields zeros.
        """
        shape = tuple(shape)
        if self.random_type == 0:
            weight = rng.normal(0.0, self.init_sigma, size=shape)
        elif self.random_type == 1:
            bound = math.sqrt(3.0 / (in_num + out_num))
            if self.init_uniform > 0:
                bound = self.init_uniform
            weight = rng.uniform(-bound, bound, size=shape)
        elif self.random_type == 2:
            if self.num_hidden > 0:
                sigma = math.sqrt(2.0 / self.num_hidden)
            else:
                fan = self.num_channel * self.kernel_width * self.kernel_height
                sigma = math.sqrt(2.0 / fan)
            weight = rng.normal(0.0, sigma, size=shape)
        else:
            weight = np.zeros(shape)
        return weight.astype(np.float32)

    def to_bytes(self) -> bytes:
        """Serialise to the fixed little-endian binary layout."""
        return _FORMAT.pack(
            self.num_hidden,
            self.init_sigma,
            self.init_sparse,
            self.init_uniform,
            self.init_bias,
            self.num_channel,
            self.random_type,
            self.num_group,
            self.kernel_height,
            self.kernel_width,
            self.stride,
            self.pad_y,
            self.pad_x,
            self.no_bias,
            self.temp_col_max,
            self.silent,
            self.num_input_channel,
            self.num_input_node,
            *self.reserved,
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> LayerParam:
        """Deserialise from the layout written by :meth:`to_bytes`."""
        check(len(data) >= _FORMAT.size, "LayerParam: not enough data to load")
        values = _FORMAT.unpack(bytes(data[: _FORMAT.size]))
        (
            num_hidden, init_sigma, init_sparse, init_uniform, init_bias,
            num_channel, random_type, num_group, kernel_height, kernel_width,
            stride, pad_y, pad_x, no_bias, temp_col_max, silent,
            num_input_channel, num_input_node,
        ) = values[:18]
        return cls(
            num_hidden=num_hidden,
            init_sigma=init_sigma,
            init_sparse=init_sparse,
            init_uniform=init_uniform,
            init_bias=init_bias,
            num_channel=num_channel,
            random_type=random_type,
            num_group=num_group,
            kernel_height=kernel_height,
            kernel_width=kernel_width,
            stride=stride,
            pad_y=pad_y,
            pad_x=pad_x,
            no_bias=no_bias,
            temp_col_max=temp_col_max,
            silent=silent,
            num_input_channel=num_input_channel,
            num_input_node=num_input_node,
            reserved=list(values[18:]),
        )