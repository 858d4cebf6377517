"""
Dispatch of independent work units to a pool of threads. The tasks are split
in contiguous groups of balanced cost with
:func:`hmatrices.partition.find_optimal_partition` and each group runs on its
own worker, so the order of the tasks (for example along a Hilbert curve)
decides which work units share a worker.

jax releases the GIL while it runs its kernels, so threads are enough to keep
several cores busy.
"""

from __future__ import annotations

__all__ = ["run_partitioned"]

import logging
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable

from hmatrices.errors import ConfigurationError
from hmatrices.partition import find_optimal_partition

logger = logging.getLogger(__name__)


def run_partitioned(
    tasks: Sequence[Callable[[], Any]],
    cost: Callable[[int], float] | None = None,
    threads: int = 1,
) -> list[Any]:
    """Run a list of thunks on ``threads`` workers

    Args:
        tasks: The work units, as functions without arguments.
        cost: The estimated cost of the task at a given index. Defaults to a
            unit cost per task.
        threads: The number of workers; ``1`` runs everything on the calling
            thread.

    Returns:
        The results of the tasks, in the order of ``tasks``. If a task raises,
        the first exception is re-raised here.
    """
    if threads < 1:
        raise ConfigurationError(f"threads must be positive; got {threads}")
    if threads == 1 or len(tasks) <= 1:
        return [task() for task in tasks]

    if cost is None:
        groups = find_optimal_partition(range(len(tasks)), threads)
    else:
        groups = find_optimal_partition(range(len(tasks)), threads, cost)
    logger.debug(
        "running %d tasks on %d workers with group sizes %s",
        len(tasks),
        len(groups),
        [len(g) for g in groups],
    )

    def run_group(group: list[int]) -> list[Any]:
        return [tasks[k]() for k in group]

    results: list[Any] = [None] * len(tasks)
    with ThreadPoolExecutor(max_workers=len(groups)) as executor:
        futures = [executor.submit(run_group, group) for group in groups]
        for group, future in zip(groups, futures):
            for k, value in zip(group, future.result()):
                results[k] = value
    return results
