"""
Conversions between 2-D grid coordinates and positions along the Hilbert
space filling curve. The curve visits every cell of an ``n x n`` grid (``n`` a
power of two) so that consecutive cells are always neighbours, which makes it
a good way to order 2-D work items (like the blocks of a matrix) so that
contiguous chunks of the ordering are spatially compact.

See `the Wikipedia article <https://en.wikipedia.org/wiki/Hilbert_curve>`_
for the algorithm.
"""

from __future__ import annotations

__all__ = [
    "hilbert_cartesian_to_linear",
    "hilbert_linear_to_cartesian",
    "hilbert_points",
    "hilbert_sort",
]

import numpy as np


def _check_order(n: int) -> None:
    if n < 1 or n & (n - 1):
        raise ValueError(f"The order of a Hilbert curve must be a power of 2; got {n}")


def _rot(n: int, x: int, y: int, rx: int, ry: int) -> tuple[int, int]:
    if ry == 0:
        if rx == 1:
            x = n - 1 - x
            y = n - 1 - y
        x, y = y, x
    return x, y


def hilbert_cartesian_to_linear(n: int, x: int, y: int) -> int:
    """The position of the cell ``(x, y)`` along the Hilbert curve of order ``n``

    Args:
        n: The order of the curve; a power of two.
        x: The first coordinate, ``0 <= x <= n - 1``.
        y: The second coordinate, ``0 <= y <= n - 1``.

    Returns:
        The linear index ``0 <= d <= n**2 - 1``.
    """
    _check_order(n)
    if not (0 <= x < n and 0 <= y < n):
        raise ValueError(f"Coordinates ({x}, {y}) are outside of a {n}x{n} grid")
    d = 0
    s = n >> 1
    while s > 0:
        rx = int((x & s) > 0)
        ry = int((y & s) > 0)
        d += s * s * ((3 * rx) ^ ry)
        x, y = _rot(n, x, y, rx, ry)
        s >>= 1
    return d


def hilbert_linear_to_cartesian(n: int, d: int) -> tuple[int, int]:
    """The cell at position ``d`` along the Hilbert curve of order ``n``

    This is the inverse of :func:`hilbert_cartesian_to_linear`.
    """
    _check_order(n)
    if not 0 <= d < n * n:
        raise ValueError(f"Linear index {d} is outside of [0, {n * n - 1}]")
    x = y = 0
    s = 1
    while s < n:
        rx = 1 & (d >> 1)
        ry = 1 & (d ^ rx)
        x, y = _rot(s, x, y, rx, ry)
        x += s * rx
        y += s * ry
        d >>= 2
        s <<= 1
    return x, y


def hilbert_points(n: int) -> tuple[np.ndarray, np.ndarray]:
    """The coordinates of the cells in the order visited by the curve"""
    _check_order(n)
    xy = np.array([hilbert_linear_to_cartesian(n, d) for d in range(n * n)])
    return xy[:, 0], xy[:, 1]


def hilbert_sort(coords: np.ndarray, order: int | None = None) -> np.ndarray:
    """The permutation that sorts 2-D coordinates along a Hilbert curve

    The coordinates are mapped onto an ``order x order`` grid covering their
    bounding box; items falling in the same cell keep their relative order.

    Args:
        coords (n, 2): The coordinates.
        order: The order of the curve. Defaults to the smallest power of two
            with at least one cell per item in each direction (capped at
            ``2**16``).
    """
    coords = np.asarray(coords, dtype=float)
    if coords.ndim != 2 or coords.shape[1] != 2:
        raise ValueError(f"Expected coordinates with shape (n, 2); got {coords.shape}")
    if len(coords) == 0:
        return np.zeros(0, dtype=int)
    if order is None:
        order = 1 << min(16, max(1, int(np.ceil(np.log2(max(len(coords), 2))))))
    _check_order(order)
    low = np.min(coords, axis=0)
    width = np.max(coords, axis=0) - low
    width = np.where(width > 0, width, 1.0)
    cells = np.floor((coords - low) / width * order).astype(int)
    cells = np.clip(cells, 0, order - 1)
    keys = [hilbert_cartesian_to_linear(order, int(x), int(y)) for x, y in cells]
    return np.argsort(np.asarray(keys), kind="stable")
