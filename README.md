# meshnet

Building blocks for neural networks configured from plain `name = value`
settings, with NumPy `float32` arrays as tensors.

## Installation

```
pip install .
```

To run the tests, install the test extra and run pytest:

```
pip install ".[test]"
pytest
```

## What is inside

- `meshnet.errors`: `NetError` with its subclasses `CheckError` (bad input or
  configuration) and `InternalError` (failed consistency assertion), and the
  helpers `check`, `assert_that`, `error` and `fopen_check`.
- `meshnet.streams`: binary streams. `MemoryBufferStream`, `FileStream`,
  `StdFile` and `GzFile` share one interface (`read`, `write`, `seek`, `tell`)
  plus helpers for length-prefixed strings (`write_string`, `read_string`),
  length-prefixed arrays (`write_array`, `read_array`) and reading packed
  records (`read_struct`). `StdFile` and `GzFile` are context managers.
  `BinaryPage` packs many small binary objects into a fixed-size 64 MiB page
  (`push`, `__getitem__`, `len()`, `load`, `save`, `clear`).
- `meshnet.config`: `ConfigReader` iterates over `(name, value)` pairs of a
  configuration text, with `#` comments, double-quoted strings and
  single-quoted multi-line strings. Use `parse_config(text)` or
  `load_config(fname)`.
- `meshnet.layer_param`: `LayerParam`, the settings shared by layers, with
  `set_param`, weight initialisation (`rand_init_weight`: Gaussian,
  uniform/Xavier, Kaiming) and a fixed binary layout (`to_bytes`,
  `from_bytes`).
- `meshnet.layer_base`: `LayerType` and `get_layer_type`, together with `Node`,
  `LabelRecord`, `LabelInfo`, `ConnectState`, `Connection` and the abstract
  `Layer` base class.
- `meshnet.layers`: `BiasLayer`, `ConcatLayer`, `FlattenLayer`,
  `DropoutLayer` and `PReluLayer`.
- `meshnet.updaters`: `UpdaterParam` with learning-rate schedules
  (`constant`, `expdecay`, `polydecay`, `factor`), plus `AdamUpdater` and
  `NAGUpdater`, which update a weight array in place.
- `meshnet.data`: `DataBatch`, `DataInst`, `SparseEntry`, `SparseInst`, the
  `DataIterator` interface and `DenseBufferIterator`, which keeps up to
  `max_nbatch` batches of another iterator in memory.
- `meshnet.augment`: `AugmentIterator`, which crops, mirrors, scales,
  perturbs contrast and illumination, and subtracts a mean value or a mean
  image (created and saved to the `image_mean` file when it does not exist).

## Example

```python
from meshnet.config import parse_config
from meshnet.streams import MemoryBufferStream

pairs = parse_config('eta = 0.01\nname = "first layer"  # comment\n')
# [("eta", "0.01"), ("name", "first layer")]

buf = MemoryBufferStream(bytearray())
buf.write_string("hello")
buf.seek(0)
assert buf.read_string() == b"hello"
```

Settings are applied with `set_param(name, val)` on layers, updaters and
iterators, in the order they appear in the configuration.

## What it does not do

- There is no command-line program and no network trainer: nothing builds a
  whole network from a configuration, runs training rounds or evaluates
  metrics. The pieces above are meant to be combined by your own code.
- `get_layer_type` knows the names of many layer types (fully connected,
  convolution, pooling, softmax and others), but only the five layers in
  `meshnet.layers` are implemented.
- There are no data sources of its own: no MNIST reader and no image-file
  decoding. `AugmentIterator` and `DenseBufferIterator` wrap an iterator you
  provide.