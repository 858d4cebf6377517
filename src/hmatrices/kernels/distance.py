"""
Metrics for the :class:`hmatrices.kernels.Stationary` kernels. They are
evaluated on a single pair of points, like the kernels themselves. Singular
kernels such as :class:`hmatrices.kernels.Laplace` compare the result to zero
to detect coincident points, so a metric must return an exact zero for
identical points.
"""

from __future__ import annotations

__all__ = ["Distance", "L1Distance", "L2Distance"]

from abc import abstractmethod

import equinox as eqx
import jax.numpy as jnp

from hmatrices.helpers import JAXArray


class Distance(eqx.Module):
    """The base class for metrics between two points of the same dimension"""

    @abstractmethod
    def distance(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        raise NotImplementedError

    def squared_distance(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        return jnp.square(self.distance(X1, X2))


class L1Distance(Distance):
    """The sum of the absolute coordinate differences"""

    def distance(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        return jnp.sum(jnp.abs(jnp.subtract(X1, X2)))


class L2Distance(Distance):
    """The Euclidean distance

    This is the metric of the cluster tree bounding boxes, so it is the one
    under which the admissibility conditions are meaningful.
    """

    def distance(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        return jnp.sqrt(self.squared_distance(X1, X2))

    def squared_distance(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        diff = jnp.subtract(X1, X2)
        return jnp.real(jnp.vdot(diff, diff))
