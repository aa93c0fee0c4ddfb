"""Layer interface, network nodes, label information and layer type names."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Callable, Optional

import numpy as np

from .errors import assert_that, error
from .streams import Stream

PAIR_TEST_GAP = 1024
"""Multiplier used to encode pair-test layer types."""

Visitor = Callable[[str, np.ndarray, np.ndarray], None]


class LayerType(IntEnum):
    """Numeric codes of the known layer types."""

    SHARED_LAYER = 0
    FULL_CONNECT = 1
    SOFTMAX = 2
    RECTIFIED_LINEAR = 3
    SIGMOID = 4
    TANH = 5
    SOFTPLUS = 6
    FLATTEN = 7
    DROPOUT = 8
    CONV = 10
    MAX_POOLING = 11
    SUM_POOLING = 12
    AVG_POOLING = 13
    LRN = 15
    BIAS = 17
    CONCAT = 18
    XELU = 19
    CAFFE = 20
    RELU_MAX_POOLING = 21
    MAXOUT = 22
    SPLIT = 23
    INSANITY = 24
    INSANITY_POOLING = 25
    L2_LOSS = 26
    MULTI_LOGISTIC = 27
    CH_CONCAT = 28
    PRELU = 29
    BATCH_NORM = 30
    FIX_CONNECT = 31


_TYPE_NAMES = {
    "fullc": LayerType.FULL_CONNECT,
    "fixconn": LayerType.FIX_CONNECT,
    "bias": LayerType.BIAS,
    "softmax": LayerType.SOFTMAX,
    "relu": LayerType.RECTIFIED_LINEAR,
    "sigmoid": LayerType.SIGMOID,
    "tanh": LayerType.TANH,
    "softplus": LayerType.SOFTPLUS,
    "flatten": LayerType.FLATTEN,
    "dropout": LayerType.DROPOUT,
    "conv": LayerType.CONV,
    "relu_max_pooling": LayerType.RELU_MAX_POOLING,
    "max_pooling": LayerType.MAX_POOLING,
    "sum_pooling": LayerType.SUM_POOLING,
    "avg_pooling": LayerType.AVG_POOLING,
    "lrn": LayerType.LRN,
    "concat": LayerType.CONCAT,
    "xelu": LayerType.XELU,
    "maxout": LayerType.MAXOUT,
    "split": LayerType.SPLIT,
    "insanity": LayerType.INSANITY,
    "insanity_max_pooling": LayerType.INSANITY_POOLING,
    "l2_loss": LayerType.L2_LOSS,
    "multi_logistic": LayerType.MULTI_LOGISTIC,
    "ch_concat": LayerType.CH_CONCAT,
    "prelu": LayerType.PRELU,
    "batch_norm": LayerType.BATCH_NORM,
}

_PAIR_RE = re.compile(r"([^-]+)-([^:]+)")


def get_layer_type(type_name: str) -> int:
    """Map a layer type name to its numeric code.

    Names starting with ``share`` denote a shared layer; ``pairtest-A-B``
    encodes two types as ``PAIR_TEST_GAP * A + B``.
    """
    if type_name.startswith("share"):
        return LayerType.SHARED_LAYER
    if type_name in _TYPE_NAMES:
        return _TYPE_NAMES[type_name]
    if type_name.startswith("pairtest-"):
        m = _PAIR_RE.match(type_name[9:])
        if m is None:
            error('unknown layer type: "%s"', type_name)
        master, slave = m.groups()
        return PAIR_TEST_GAP * get_layer_type(master) + get_layer_type(slave)
    error('unknown layer type: "%s"', type_name)
    return LayerType.CONV


@dataclass(eq=False)
class Node:
    """Activation or gradient storage of shape (batch, channel, height, width).

    A matrix node has shape (batch, 1, 1, length).
    """

    shape: tuple[int, int, int, int] = (0, 0, 0, 0)
    data: Optional[np.ndarray] = None
    must_contiguous: bool = False
    inited: bool = False

    def mat(self) -> np.ndarray:
        """Two-dimensional view of the data, flattening all but the last axis."""
        assert_that(self.data is not None, "Node: data is not allocated")
        return self.data.reshape(-1, self.data.shape[3])

    def is_mat(self) -> bool:
        """Whether the node holds matrix data."""
        return self.shape[1] == 1 and self.shape[2] == 1

    def alloc_space(self) -> None:
        """Allocate zeroed storage matching ``shape``."""
        self.data = np.zeros(tuple(self.shape), dtype=np.float32)
        self.inited = True

    def free_space(self) -> None:
        """Release the storage, if any."""
        if self.inited:
            self.data = None
            self.inited = False


@dataclass
class LabelRecord:
    """One label field: a (batch, width) array."""

    label: np.ndarray

    def slice(self, begin: int, end: int) -> LabelRecord:
        """Rows ``[begin, end)`` of the label field."""
        return LabelRecord(self.label[begin:end])


@dataclass
class LabelInfo:
    """Label fields of a batch, with an optional map from field name to index."""

    fields: list[LabelRecord] = field(default_factory=list)
    name2findex: Optional[dict[str, int]] = None

    def slice(self, begin: int, end: int) -> LabelInfo:
        """Rows ``[begin, end)`` of every field."""
        return LabelInfo(
            [rec.slice(begin, end) for rec in self.fields], self.name2findex
        )


@dataclass
class ConnectState:
    """Per-connection scratch arrays shared between forward and backprop."""

    states: list[np.ndarray] = field(default_factory=list)


class Layer(ABC):
    """Interface of a layer.

    A layer computes outputs from inputs and propagates gradients back.
    Connection-specific state lives in a :class:`ConnectState`, so one layer
    can serve several connections. Weights are exposed through
    :meth:`apply_visitor`, which calls ``visitor(name, weight, grad)``.
    """

    @abstractmethod
    def init_connection(
        self, nodes_in: list[Node], nodes_out: list[Node], cstate: ConnectState
    ) -> None:
        """Set output node shapes and allocate connection state."""

    def on_batch_size_changed(
        self, nodes_in: list[Node], nodes_out: list[Node], cstate: ConnectState
    ) -> None:
        """Update connection state after the batch size changed."""

    @abstractmethod
    def forward(
        self,
        is_train: bool,
        nodes_in: list[Node],
        nodes_out: list[Node],
        cstate: ConnectState,
    ) -> None:
        """Propagate from input nodes to output nodes."""

    @abstractmethod
    def backprop(
        self,
        prop_grad: bool,
        nodes_in: list[Node],
        nodes_out: list[Node],
        cstate: ConnectState,
    ) -> None:
        """Propagate gradients from output nodes back to input nodes."""

    def allow_sharing(self) -> bool:
        """Whether the layer may back several connections."""
        return True

    def apply_visitor(self, visitor: Visitor) -> None:
        """Call ``visitor(name, weight, grad)`` for each weight of the layer."""

    def set_param(self, name: str, val: str) -> None:
        """Set a parameter from configuration strings."""

    def init_model(self) -> None:
        """Initialise model parameters."""

    def save_model(self, stream: Stream) -> None:
        """Write model parameters to ``stream``."""

    def load_model(self, stream: Stream) -> None:
        """Read model parameters from ``stream``."""


@dataclass
class Connection:
    """A layer bound to specific input and output nodes."""

    layer: Layer
    type: int
    state: ConnectState = field(default_factory=ConnectState)
    nodes_in: list[Node] = field(default_factory=list)
    nodes_out: list[Node] = field(default_factory=list)