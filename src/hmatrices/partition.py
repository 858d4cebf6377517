"""
Partitioning of a sequence of work items into contiguous groups with balanced
costs. This is the classic "linear partition" problem: given the costs of the
items and a number of workers, find contiguous groups that minimize the
largest total cost of a group. The optimal maximum cost is found by bisection
on top of a greedy feasibility test.
"""

from __future__ import annotations

__all__ = [
    "has_partition",
    "build_sequence_partition",
    "find_optimal_cost",
    "find_optimal_partition",
]

from collections.abc import Sequence
from typing import Any, Callable, TypeVar

from hmatrices.errors import ConfigurationError

T = TypeVar("T")


def _unit_cost(item: Any) -> float:
    del item
    return 1


def _identity(item: Any) -> float:
    return item


def _check_workers(np: int) -> None:
    if np < 1:
        raise ConfigurationError(f"The number of groups must be positive; got {np}")


def has_partition(
    seq: Sequence[T], np: int, cmax: float, cost: Callable[[T], float] = _identity
) -> bool:
    """Check whether ``seq`` can be split in ``np`` groups of cost ``<= cmax``

    The items are packed greedily from left to right, which is optimal for
    contiguous groups.
    """
    _check_workers(np)
    acc = 0.0
    k = 1
    for item in seq:
        c = cost(item)
        if c > cmax:
            return False
        acc += c
        if acc > cmax:
            k += 1
            acc = c
            if k > np:
                return False
    return True


def build_sequence_partition(
    seq: Sequence[T],
    np: int,
    cost: Callable[[T], float],
    cmax: float,
) -> list[list[T]]:
    """Split ``seq`` greedily into at most ``np`` groups of cost ``<= cmax``

    Only the non-empty groups are returned, so concatenating the result gives
    back ``seq``.

    Raises:
        ValueError: If ``cmax`` is too small for ``np`` groups; see
            :func:`has_partition`.
    """
    _check_workers(np)
    groups: list[list[T]] = []
    acc = 0.0
    for item in seq:
        c = cost(item)
        if c > cmax:
            raise ValueError(
                f"An item of cost {c} can't fit in a group of maximum cost {cmax}"
            )
        acc += c
        if not groups or acc > cmax:
            if len(groups) == np:
                raise ValueError(
                    f"Unable to split the sequence in {np} groups of maximum cost "
                    f"{cmax}; the value of cmax is too small"
                )
            groups.append([])
            acc = c
        groups[-1].append(item)
    return groups


def find_optimal_cost(
    seq: Sequence[T],
    np: int,
    cost: Callable[[T], float] = _identity,
    tol: float = 1,
) -> float:
    """The smallest maximum group cost over the partitions of ``seq``

    The optimum is bracketed between the largest item cost and the total cost
    and found by bisection, up to ``tol``. For integer costs, ``tol=1`` gives
    the exact optimum.
    """
    _check_workers(np)
    if not tol > 0:
        raise ConfigurationError(f"tol must be positive; got {tol}")
    if len(seq) == 0:
        return 0.0
    costs = [cost(item) for item in seq]
    lbound = float(max(costs))
    ubound = float(sum(costs))
    while ubound - lbound >= tol:
        guess = 0.5 * (lbound + ubound)
        if has_partition(seq, np, guess, cost):
            ubound = guess
        else:
            lbound = guess
    return ubound


def find_optimal_partition(
    seq: Sequence[T],
    np: int,
    cost: Callable[[T], float] = _unit_cost,
    tol: float = 1,
) -> list[list[T]]:
    """A partition of ``seq`` in at most ``np`` contiguous groups, balanced
    with respect to ``cost`` up to ``tol``

    For example:

    .. code-block:: python

        >>> from hmatrices.partition import find_optimal_partition
        >>> find_optimal_partition(list(range(1, 10)), 3, cost=lambda x: x)
        [[1, 2, 3, 4, 5], [6, 7], [8, 9]]
    """
    cmax = find_optimal_cost(seq, np, cost, tol)
    if len(seq) == 0:
        return []
    return build_sequence_partition(seq, np, cost, cmax)
