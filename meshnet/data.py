"""Data instances, batches and the iterator interface over them."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Generic, Iterator, Optional, Sequence, TypeVar

import numpy as np

from .errors import assert_that, check
from .layer_param import _atoi

T = TypeVar("T")


@dataclass(eq=False)
class DataInst:
    """A single dense instance: an id, a label vector and a (c, h, w) image."""

    index: int = 0
    label: np.ndarray = field(default_factory=lambda: np.zeros(0, np.float32))
    data: np.ndarray = field(
        default_factory=lambda: np.zeros((0, 0, 0), np.float32)
    )


@dataclass(frozen=True)
class SparseEntry:
    """One entry of a sparse vector."""

    findex: int
    fvalue: float


@dataclass(eq=False)
class SparseInst:
    """A sparse instance: label, id and its non-zero entries."""

    label: np.ndarray
    index: int
    entries: tuple[SparseEntry, ...]

    def __getitem__(self, i: int) -> SparseEntry:
        return self.entries[i]

    def __len__(self) -> int:
        return len(self.entries)


@dataclass(eq=False)
class DataBatch:
    """A batch of data, dense (``data``) or sparse in CSR form.

    The last ``num_batch_padd`` instances only pad the batch and should be
    discarded.
    """

    inst_index: Optional[np.ndarray] = None
    batch_size: int = 0
    num_batch_padd: int = 0
    label: Optional[np.ndarray] = None
    data: Optional[np.ndarray] = None
    extra_data: list[np.ndarray] = field(default_factory=list)
    sparse_row_ptr: Optional[Sequence[int]] = None
    sparse_data: Optional[Sequence[SparseEntry]] = None

    def alloc_space_dense(
        self,
        shape: Sequence[int],
        batch_size: int,
        label_width: int,
        extra_shapes: Sequence[Sequence[int]] = (),
    ) -> None:
        """Allocate zeroed dense storage for data, labels and extra data."""
        self.data = np.zeros(tuple(shape), dtype=np.float32)
        self.label = np.zeros((batch_size, label_width), dtype=np.float32)
        self.inst_index = np.zeros(batch_size, dtype=np.uint32)
        self.batch_size = batch_size
        self.extra_data.extend(
            np.zeros(tuple(s), dtype=np.float32) for s in extra_shapes
        )

    def free_space_dense(self) -> None:
        """Release dense storage."""
        if self.label is not None:
            self.inst_index = None
            self.label = None
            self.data = None
        self.extra_data.clear()

    def copy_from_dense(self, src: DataBatch) -> None:
        """Copy dense content of ``src`` into the already allocated storage."""
        assert_that(
            self.batch_size == src.batch_size,
            "DataBatch: the batch size is not set correctly",
        )
        self.num_batch_padd = src.num_batch_padd
        check(
            src.inst_index is not None,
            "CopyFromDense need to copy instance index",
        )
        self.inst_index[...] = np.asarray(src.inst_index)[: self.batch_size]
        assert_that(
            self.data.shape == src.data.shape, "DataBatch: data shape mismatch"
        )
        assert_that(
            self.label.shape == src.label.shape, "DataBatch: label shape mismatch"
        )
        self.label[...] = src.label
        self.data[...] = src.data
        assert_that(
            len(self.extra_data) == len(src.extra_data),
            "DataBatch: extra data number mismatch",
        )
        for i, (dst, extra) in enumerate(zip(self.extra_data, src.extra_data)):
            assert_that(
                dst.shape == extra.shape,
                "DataBatch: extra data %d shape mismatch",
                i,
            )
            dst[...] = extra

    def is_sparse(self) -> bool:
        """Whether the batch holds sparse rows."""
        return self.sparse_row_ptr is not None

    def get_row_sparse(self, rid: int) -> SparseInst:
        """The ``rid``-th row of a sparse batch."""
        begin = self.sparse_row_ptr[rid]
        end = self.sparse_row_ptr[rid + 1]
        index = int(self.inst_index[rid]) if self.inst_index is not None else 0
        return SparseInst(
            label=self.label[rid],
            index=index,
            entries=tuple(self.sparse_data[begin:end]),
        )


class DataIterator(ABC, Generic[T]):
    """Resettable iterator over data items, configured by string parameters."""

    @abstractmethod
    def set_param(self, name: str, val: str) -> None:
        """Set a parameter from configuration strings."""

    @abstractmethod
    def init(self) -> None:
        """Prepare the iterator for use."""

    @abstractmethod
    def before_first(self) -> None:
        """Move back to before the first item."""

    @abstractmethod
    def next(self) -> bool:
        """Advance to the next item; return False at the end."""

    @abstractmethod
    def value(self) -> T:
        """The current item."""

    def __iter__(self) -> Iterator[T]:
        self.before_first()
        while self.next():
            yield self.value()


class DenseBufferIterator(DataIterator[DataBatch]):
    """Keep a limited number of batches from another iterator in memory."""

    def __init__(self, base: DataIterator[DataBatch]) -> None:
        self.base = base
        self.max_nbatch = 100
        self.silent = 0
        self._index = 0
        self._buffer: list[DataBatch] = []

    def set_param(self, name: str, val: str) -> None:
        self.base.set_param(name, val)
        if name == "max_nbatch":
            self.max_nbatch = _atoi(val)
        if name == "silent":
            self.silent = _atoi(val)

    def init(self) -> None:
        self.base.init()
        while self.base.next():
            batch = self.base.value()
            assert_that(batch.label is not None, "need dense")
            copy = DataBatch()
            copy.alloc_space_dense(
                batch.data.shape, batch.batch_size, batch.label.shape[1]
            )
            copy.copy_from_dense(batch)
            self._buffer.append(copy)
            if len(self._buffer) >= self.max_nbatch:
                break
        if self.silent == 0:
            print("DenseBufferIterator: load %d batches" % len(self._buffer))

    def before_first(self) -> None:
        self._index = 0

    def next(self) -> bool:
        if self._index < len(self._buffer):
            self._index += 1
            return True
        return False

    def value(self) -> DataBatch:
        assert_that(self._index > 0, "Iterator.Value: at beginning of iterator")
        return self._buffer[self._index - 1]