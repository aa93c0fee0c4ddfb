"""Concrete layers: bias, concatenation, flattening, dropout and PReLU."""

from __future__ import annotations

import struct

import numpy as np

from .errors import check, error
from .layer_base import ConnectState, Layer, Node, Visitor
from .layer_param import LayerParam, _atof, _atoi, _f32
from .streams import Stream


def _save_tensor(stream: Stream, arr: np.ndarray) -> None:
    """Write an array as its shape (uint32 per axis) followed by float32 data."""
    stream.write(struct.pack("<%dI" % arr.ndim, *arr.shape))
    stream.write(np.ascontiguousarray(arr, dtype="<f4").tobytes())


def _load_tensor(stream: Stream, ndim: int) -> np.ndarray:
    """Read an array written by :func:`_save_tensor`."""
    shape = stream.read_struct("<%dI" % ndim)
    count = int(np.prod(shape)) if shape else 1
    data = stream.read(count * 4)
    check(len(data) == count * 4, "LoadBinary: invalid model file")
    return np.frombuffer(data, dtype="<f4").astype(np.float32).reshape(shape)


def _assign(node: Node, value: np.ndarray) -> None:
    """Store ``value`` in the node, in place when the storage already fits."""
    if node.data is not None and node.data.shape == value.shape:
        node.data[...] = value
    else:
        node.data = np.array(value, dtype=np.float32)
        node.inited = True


def _set_state(cstate: ConnectState, value: np.ndarray) -> np.ndarray:
    """Store ``value`` as the first connection state and return it."""
    if cstate.states and cstate.states[0].shape == value.shape:
        cstate.states[0][...] = value
    elif cstate.states:
        cstate.states[0] = np.array(value, dtype=np.float32)
    else:
        cstate.states.append(np.array(value, dtype=np.float32))
    return cstate.states[0]


class BiasLayer(Layer):
    """Self-loop layer adding a learned bias to every node of a flat batch."""

    def __init__(self) -> None:
        self.param = LayerParam()
        self.bias = np.zeros(0, dtype=np.float32)
        self.gbias = np.zeros(0, dtype=np.float32)

    def apply_visitor(self, visitor: Visitor) -> None:
        visitor("bias", self.bias, self.gbias)

    def set_param(self, name: str, val: str) -> None:
        self.param.set_param(name, val)

    def init_model(self) -> None:
        self.bias = np.full(
            self.param.num_input_node, self.param.init_bias, dtype=np.float32
        )
        self.gbias = np.zeros_like(self.bias)

    def save_model(self, stream: Stream) -> None:
        stream.write(self.param.to_bytes())
        _save_tensor(stream, self.bias)

    def load_model(self, stream: Stream) -> None:
        data = stream.read(LayerParam.SIZE)
        check(len(data) != 0, "BiasLayer: LoadModel invalid model file")
        self.param = LayerParam.from_bytes(data)
        self.bias = _load_tensor(stream, 1)
        self.gbias = np.zeros_like(self.bias)

    def init_connection(
        self, nodes_in: list[Node], nodes_out: list[Node], cstate: ConnectState
    ) -> None:
        check(
            len(nodes_in) == 1 and len(nodes_out) == 1,
            "BiasLayer Layer only support 1-1 connection",
        )
        check(nodes_in[0] is nodes_out[0], "BiasLayer is an self-loop Layer")
        check(nodes_in[0].is_mat(), "BiasLayer only works for flatten node so far")
        width = int(nodes_in[0].shape[3])
        if self.param.num_input_node == 0:
            self.param.num_input_node = width
        else:
            check(
                self.param.num_input_node == width,
                "BiasLayer: input hidden nodes is not consistent",
            )

    def forward(
        self,
        is_train: bool,
        nodes_in: list[Node],
        nodes_out: list[Node],
        cstate: ConnectState,
    ) -> None:
        nodes_in[0].data += self.bias

    def backprop(
        self,
        prop_grad: bool,
        nodes_in: list[Node],
        nodes_out: list[Node],
        cstate: ConnectState,
    ) -> None:
        self.gbias += nodes_in[0].mat().sum(axis=0)


class ConcatLayer(Layer):
    """Concatenate two to four input nodes along one axis."""

    def __init__(self, dim: int) -> None:
        check(0 <= dim < 4, "ConcatLayer: dim must be within 0-3")
        self.dim = dim

    def init_connection(
        self, nodes_in: list[Node], nodes_out: list[Node], cstate: ConnectState
    ) -> None:
        check(
            len(nodes_in) > 1 and len(nodes_out) == 1,
            "Concat layer only support n-1 connection",
        )
        check(len(nodes_in) <= 4, "More than 4 input node is unspported")
        oshape = list(nodes_in[0].shape)
        out_ch = 0
        for node in nodes_in:
            out_ch += node.shape[self.dim]
            for j in range(4):
                if j != self.dim:
                    check(node.shape[j] == oshape[j], "Concat shape doesn't match")
        oshape[self.dim] = out_ch
        nodes_out[0].shape = tuple(oshape)

    def forward(
        self,
        is_train: bool,
        nodes_in: list[Node],
        nodes_out: list[Node],
        cstate: ConnectState,
    ) -> None:
        if not 2 <= len(nodes_in) <= 4:
            error("Too many node to concat")
        joined = np.concatenate([n.data for n in nodes_in], axis=self.dim)
        _assign(nodes_out[0], joined)

    def backprop(
        self,
        prop_grad: bool,
        nodes_in: list[Node],
        nodes_out: list[Node],
        cstate: ConnectState,
    ) -> None:
        if not prop_grad:
            return
        if not 2 <= len(nodes_in) <= 4:
            error("Too many nodes to concat")
        sizes = [n.shape[self.dim] for n in nodes_in]
        parts = np.split(nodes_out[0].data, np.cumsum(sizes)[:-1], axis=self.dim)
        for node, part in zip(nodes_in, parts):
            _assign(node, part)


class FlattenLayer(Layer):
    """Reshape (batch, c, h, w) input into (batch, 1, 1, c*h*w)."""

    def init_connection(
        self, nodes_in: list[Node], nodes_out: list[Node], cstate: ConnectState
    ) -> None:
        check(
            len(nodes_in) == 1 and len(nodes_out) == 1,
            "FlattenLayer: only support 1-1 connection",
        )
        b, c, h, w = nodes_in[0].shape
        nodes_out[0].shape = (b, 1, 1, c * h * w)

    def forward(
        self,
        is_train: bool,
        nodes_in: list[Node],
        nodes_out: list[Node],
        cstate: ConnectState,
    ) -> None:
        _assign(nodes_out[0], nodes_in[0].data.reshape(nodes_out[0].shape))

    def backprop(
        self,
        prop_grad: bool,
        nodes_in: list[Node],
        nodes_out: list[Node],
        cstate: ConnectState,
    ) -> None:
        if prop_grad:
            _assign(nodes_in[0], nodes_out[0].data.reshape(nodes_in[0].shape))


class DropoutLayer(Layer):
    """Self-loop layer zeroing activations at random during training."""

    def __init__(self, rng: np.random.Generator) -> None:
        self.rng = rng
        self.dropout_threshold = 0.0

    def set_param(self, name: str, val: str) -> None:
        if name == "threshold":
            self.dropout_threshold = _f32(_atof(val))

    def init_connection(
        self, nodes_in: list[Node], nodes_out: list[Node], cstate: ConnectState
    ) -> None:
        check(
            len(nodes_in) == 1 and len(nodes_out) == 1,
            "DropoutLayer: only support 1-1 connection",
        )
        check(nodes_in[0] is nodes_out[0], "DropoutLayer is an self-loop Layer")
        check(
            0.0 <= self.dropout_threshold < 1.0,
            "DropoutLayer: invalid dropout_threshold\n",
        )
        cstate.states = [np.zeros(nodes_in[0].shape, dtype=np.float32)]

    def on_batch_size_changed(
        self, nodes_in: list[Node], nodes_out: list[Node], cstate: ConnectState
    ) -> None:
        cstate.states[0] = np.zeros(nodes_in[0].shape, dtype=np.float32)

    def forward(
        self,
        is_train: bool,
        nodes_in: list[Node],
        nodes_out: list[Node],
        cstate: ConnectState,
    ) -> None:
        if not is_train:
            return
        pkeep = 1.0 - self.dropout_threshold
        shape = cstate.states[0].shape
        mask = (self.rng.random(shape) < pkeep).astype(np.float32) * np.float32(
            1.0 / pkeep
        )
        mask = _set_state(cstate, mask)
        _assign(nodes_out[0], nodes_out[0].data * mask)

    def backprop(
        self,
        prop_grad: bool,
        nodes_in: list[Node],
        nodes_out: list[Node],
        cstate: ConnectState,
    ) -> None:
        if prop_grad:
            nodes_out[0].data *= cstate.states[0]


class PReluLayer(Layer):
    """Parametric rectifier with one learned slope per channel."""

    def __init__(self, rng: np.random.Generator) -> None:
        self.rng = rng
        self.init_slope = 0.25
        self.init_random = 0
        self.random = 0.0
        self.channel = 0
        self.slope = np.zeros(0, dtype=np.float32)
        self.gslope = np.zeros(0, dtype=np.float32)

    def set_param(self, name: str, val: str) -> None:
        if name == "init_slope":
            self.init_slope = _f32(_atof(val))
        if name == "random_slope":
            self.init_random = _atoi(val)
        if name == "random":
            self.random = _f32(_atof(val))

    def apply_visitor(self, visitor: Visitor) -> None:
        visitor("bias", self.slope, self.gslope)

    def init_connection(
        self, nodes_in: list[Node], nodes_out: list[Node], cstate: ConnectState
    ) -> None:
        check(
            len(nodes_in) == 1 and len(nodes_out) == 1,
            "PReluLayer: only support 1-1 connection",
        )
        shape = tuple(nodes_in[0].shape)
        nodes_out[0].shape = shape
        # Flat input has one slope per hidden node, images one per channel.
        self.channel = int(shape[3] if shape[1] == 1 else shape[1])
        cstate.states = [np.zeros(shape, dtype=np.float32)]

    def init_model(self) -> None:
        if self.init_random == 0:
            self.slope = np.full(self.channel, self.init_slope, dtype=np.float32)
        else:
            self.slope = (self.rng.random(self.channel) * self.init_slope).astype(
                np.float32
            )
        self.gslope = np.zeros(self.channel, dtype=np.float32)

    def save_model(self, stream: Stream) -> None:
        _save_tensor(stream, self.slope)

    def load_model(self, stream: Stream) -> None:
        self.slope = _load_tensor(stream, 1)
        self.gslope = np.zeros_like(self.slope)

    def _axis(self, data: np.ndarray) -> int:
        return 1 if data.shape[1] != 1 else 3

    def forward(
        self,
        is_train: bool,
        nodes_in: list[Node],
        nodes_out: list[Node],
        cstate: ConnectState,
    ) -> None:
        data = nodes_in[0].data
        axis = self._axis(data)
        view = [1, 1, 1, 1]
        view[axis] = -1
        mask = np.broadcast_to(self.slope.reshape(view), data.shape).astype(np.float32)
        if is_train:
            noise = self.rng.random(data.shape).astype(np.float32)
            mask = mask * (1 + noise * self.random * 2.0 - self.random)
        mask = _set_state(cstate, np.clip(mask, 0.0, 1.0).astype(np.float32))
        _assign(nodes_out[0], np.where(data > 0.0, data, data * mask))

    def backprop(
        self,
        prop_grad: bool,
        nodes_in: list[Node],
        nodes_out: list[Node],
        cstate: ConnectState,
    ) -> None:
        data = nodes_in[0].data
        grad = nodes_out[0].data
        axis = self._axis(data)
        others = tuple(a for a in range(4) if a != axis)
        self.gslope += (np.where(data > 0.0, 0.0, data) * grad).sum(axis=others).astype(
            np.float32
        )
        if prop_grad:
            mask = cstate.states[0]
            _assign(nodes_in[0], np.where(data > 0.0, 1.0, mask) * grad)