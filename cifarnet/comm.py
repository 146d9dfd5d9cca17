"""Collective operations between the processes that train one model.

Every participant computes on its own slice of the data; gradients, costs and
accuracy counts are then combined with an all-reduce so that all participants
hold the same values.
"""

from __future__ import annotations

import functools
import operator
import threading
from abc import ABC, abstractmethod
from typing import Any

import numpy as np

from cifarnet.nn import Gradients


class Communicator(ABC):
    """A participant in a group that can sum values across all members."""

    rank: int
    size: int

    @abstractmethod
    def allreduce_sum(self, value: Any) -> Any:
        """Return the sum of ``value`` over every member of the group."""

    @abstractmethod
    def barrier(self) -> None:
        """Block until every member of the group has reached this call."""


def _private_copy(value: Any) -> Any:
    if isinstance(value, np.ndarray):
        return value.copy()
    return value


class SingleProcessCommunicator(Communicator):
    """A group with one member: reductions return the value unchanged."""

    def __init__(self) -> None:
        self.rank = 0
        self.size = 1

    def allreduce_sum(self, value: Any) -> Any:
        return _private_copy(value)

    def barrier(self) -> None:
        return None


class _SharedGroup:
    def __init__(self, size: int) -> None:
        self.size = size
        self.barrier = threading.Barrier(size)
        self.slots: list[Any] = [None] * size


class LocalCommunicator(Communicator):
    """One member of a group whose members run as threads of one process."""

    def __init__(self, group: _SharedGroup, rank: int) -> None:
        if not 0 <= rank < group.size:
            raise ValueError(f"rank {rank} outside a group of {group.size}")
        self._group = group
        self.rank = rank
        self.size = group.size

    def allreduce_sum(self, value: Any) -> Any:
        group = self._group
        group.slots[self.rank] = _private_copy(value)
        group.barrier.wait()
        # Every member adds in rank order, so all of them get identical results.
        total = functools.reduce(operator.add, group.slots)
        group.barrier.wait()
        return total

    def barrier(self) -> None:
        self._group.barrier.wait()


def create_local_group(size: int) -> list[LocalCommunicator]:
    """Communicators for ``size`` threads, indexed by rank."""
    if size <= 0:
        raise ValueError(f"a group needs at least one member, got {size}")
    group = _SharedGroup(size)
    return [LocalCommunicator(group, rank) for rank in range(size)]


def allreduce_matrix(comm: Communicator, a: np.ndarray) -> np.ndarray:
    """Replace ``a`` in place by its average over the group and return it."""
    total = comm.allreduce_sum(a)
    a[...] = total * (1.0 / comm.size)
    return a


def allreduce_gradients(comm: Communicator, grads: Gradients) -> Gradients:
    """Average every layer's gradients over the group, in place."""
    for dw, db in zip(grads.dw, grads.db):
        allreduce_matrix(comm, dw)
        allreduce_matrix(comm, db)
    return grads


def allreduce_cost(comm: Communicator, local_cost: float) -> float:
    """Mean of the members' costs."""
    return float(comm.allreduce_sum(float(local_cost))) / comm.size


def allreduce_accuracy(comm: Communicator, local_correct: int, local_total: int) -> float:
    """Percentage of correct predictions over the whole group."""
    correct = comm.allreduce_sum(int(local_correct))
    total = comm.allreduce_sum(int(local_total))
    if total == 0:
        raise ValueError("accuracy needs at least one sample")
    return correct / total * 100.0