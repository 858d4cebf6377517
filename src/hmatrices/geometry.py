"""
Axis-aligned bounding boxes used by the cluster trees and the admissibility
conditions. These are host-side objects: all of the arithmetic here is done
with ``numpy`` since it only ever touches a handful of coordinates.
"""

from __future__ import annotations

__all__ = ["HyperRectangle"]

import equinox as eqx
import numpy as np


class HyperRectangle(eqx.Module):
    """An axis-aligned box in ``d`` dimensions

    Args:
        low_corner (d,): The coordinates of the lower corner.
        high_corner (d,): The coordinates of the upper corner. Each entry must
            be at least as large as the matching entry of ``low_corner``.
    """

    low_corner: np.ndarray
    high_corner: np.ndarray

    def __init__(self, low_corner: np.ndarray, high_corner: np.ndarray):
        self.low_corner = np.atleast_1d(np.asarray(low_corner, dtype=float))
        self.high_corner = np.atleast_1d(np.asarray(high_corner, dtype=float))

    def __check_init__(self) -> None:
        if self.low_corner.shape != self.high_corner.shape:
            raise ValueError(
                "The corners of a HyperRectangle must have the same shape; "
                f"got {self.low_corner.shape} and {self.high_corner.shape}"
            )
        if np.any(self.low_corner > self.high_corner):
            raise ValueError(
                "Invalid HyperRectangle: low_corner must be <= high_corner "
                "in every dimension"
            )

    @classmethod
    def from_points(cls, points: np.ndarray) -> HyperRectangle:
        """The smallest box containing all of ``points``

        Args:
            points (n, d): The coordinates. An empty set of points gives a
                degenerate box at the origin.
        """
        points = np.asarray(points, dtype=float)
        if points.ndim == 1:
            points = points[:, None]
        if len(points) == 0:
            zero = np.zeros(points.shape[1])
            return cls(zero, zero)
        return cls(np.min(points, axis=0), np.max(points, axis=0))

    @property
    def ndim(self) -> int:
        return self.low_corner.shape[0]

    @property
    def widths(self) -> np.ndarray:
        return self.high_corner - self.low_corner

    @property
    def center(self) -> np.ndarray:
        return 0.5 * (self.low_corner + self.high_corner)

    @property
    def diameter(self) -> float:
        """The Euclidean length of the diagonal"""
        return float(np.linalg.norm(self.widths))

    @property
    def volume(self) -> float:
        return float(np.prod(self.widths))

    def distance(self, other: HyperRectangle) -> float:
        """The Euclidean distance between two boxes; zero if they intersect"""
        gap = np.maximum(
            0.0,
            np.maximum(
                self.low_corner - other.high_corner,
                other.low_corner - self.high_corner,
            ),
        )
        return float(np.linalg.norm(gap))

    def split(self, axis: int, value: float) -> tuple[HyperRectangle, HyperRectangle]:
        """Cut the box in two with the plane ``x[axis] == value``"""
        value = float(np.clip(value, self.low_corner[axis], self.high_corner[axis]))
        high = self.high_corner.copy()
        high[axis] = value
        low = self.low_corner.copy()
        low[axis] = value
        return (
            HyperRectangle(self.low_corner, high),
            HyperRectangle(low, self.high_corner),
        )

    def contains(self, points: np.ndarray) -> np.ndarray:
        """A boolean mask selecting the ``points`` that lie inside the box"""
        points = np.asarray(points, dtype=float)
        if points.ndim == 1:
            points = points[:, None]
        return np.all(
            (points >= self.low_corner) & (points <= self.high_corner), axis=1
        )
