"""
Kernels that only depend on the distance between two points. Each of them has
(at least) the two parameters:

- ``scale``: A scalar length scale applied to the distance, and
- ``distance``: A :class:`hmatrices.kernels.distance.Distance` metric; the
  Euclidean :class:`hmatrices.kernels.distance.L2Distance` by default.

:class:`Laplace` and :class:`Helmholtz` are the free-space Green's functions
of the corresponding equations (without the ``1 / 4 pi`` factor) and are
singular when the two points coincide, so they take the value ``diagonal``
there instead.
"""

from __future__ import annotations

__all__ = [
    "Stationary",
    "Exp",
    "ExpSquared",
    "Matern32",
    "Laplace",
    "Helmholtz",
]

import equinox as eqx
import jax.numpy as jnp
import numpy as np

from hmatrices.helpers import JAXArray
from hmatrices.kernels.base import Kernel
from hmatrices.kernels.distance import Distance, L2Distance


class Stationary(Kernel):
    """A kernel defined with respect to a distance metric

    Args:
        scale: The length scale, in the same units as ``distance``. This must
            be a scalar.
        distance: The metric; defaults to :class:`L2Distance`.
    """

    scale: JAXArray | float = eqx.field(default_factory=lambda: jnp.ones(()))
    distance: Distance = eqx.field(default_factory=L2Distance)

    def __check_init__(self) -> None:
        if jnp.ndim(self.scale):
            raise ValueError(
                "Only scalar scales are permitted for stationary kernels"
            )


class Exp(Stationary):
    r"""The exponential kernel :math:`k(r) = \exp(-r / \ell)`"""

    def evaluate(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        return jnp.exp(-self.distance.distance(X1, X2) / self.scale)


class ExpSquared(Stationary):
    r"""The squared exponential kernel :math:`k(r) = \exp(-r^2 / 2\,\ell^2)`"""

    def evaluate(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        r2 = self.distance.squared_distance(X1, X2) / jnp.square(self.scale)
        return jnp.exp(-0.5 * r2)


class Matern32(Stationary):
    r"""The Matern-3/2 kernel

    .. math::

        k(r) = (1 + \sqrt{3}\,r / \ell)\,\exp(-\sqrt{3}\,r / \ell)
    """

    def evaluate(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        arg = np.sqrt(3) * self.distance.distance(X1, X2) / self.scale
        return (1 + arg) * jnp.exp(-arg)


class Laplace(Stationary):
    r"""The single layer kernel of the Laplace equation

    .. math::

        k(r) = \ell / r

    Args:
        diagonal: The value used when the two points coincide.
    """

    diagonal: JAXArray | float = eqx.field(default_factory=lambda: jnp.zeros(()))

    def evaluate(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        r = self.distance.distance(X1, X2) / self.scale
        zeros = jnp.equal(r, 0)
        safe_r = jnp.where(zeros, jnp.ones_like(r), r)
        return jnp.where(zeros, self.diagonal, 1 / safe_r)


class Helmholtz(Stationary):
    r"""The single layer kernel of the Helmholtz equation

    .. math::

        k(r) = \exp(i\,\kappa\,r) / r

    where ``r`` is measured in units of ``scale``.

    Args:
        wavenumber: The parameter :math:`\kappa`.
        diagonal: The value used when the two points coincide.
    """

    wavenumber: JAXArray | float = eqx.field(default_factory=lambda: jnp.ones(()))
    diagonal: JAXArray | complex = eqx.field(default_factory=lambda: jnp.zeros(()))

    def evaluate(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        r = self.distance.distance(X1, X2) / self.scale
        zeros = jnp.equal(r, 0)
        safe_r = jnp.where(zeros, jnp.ones_like(r), r)
        value = jnp.exp(1j * self.wavenumber * safe_r) / safe_r
        return jnp.where(zeros, jnp.asarray(self.diagonal, dtype=value.dtype), value)
