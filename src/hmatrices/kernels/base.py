from __future__ import annotations

__all__ = ["Kernel", "Custom", "Sum", "Product", "Constant"]

from abc import abstractmethod
from typing import Any, Callable

import equinox as eqx
import jax
import jax.numpy as jnp

from hmatrices.helpers import JAXArray


class Kernel(eqx.Module):
    """The base class for all kernel functions

    A kernel maps a pair of points to a scalar matrix entry. Subclasses
    implement :func:`Kernel.evaluate` for a *single* pair of points and the
    vectorization over sets of points is handled by ``jax.vmap`` when the
    kernel is called. Kernels must be pure functions: they are evaluated many
    times on overlapping sets of points, in no particular order, and
    possibly from several threads at once.
    """

    @abstractmethod
    def evaluate(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        """Evaluate the kernel at a pair of input coordinates

        Args:
            X1 (d,): The target point.
            X2 (d,): The source point.
        """
        del X1, X2
        raise NotImplementedError

    def __call__(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        """The matrix of kernel values between two sets of points

        Args:
            X1 (m, d): The target points.
            X2 (n, d): The source points.

        Returns:
            An ``(m, n)`` array.
        """
        X1 = jnp.asarray(X1)
        X2 = jnp.asarray(X2)
        if X1.shape[0] == 0 or X2.shape[0] == 0:
            # vmap can't map over empty axes, but we still need the dtype
            out = jax.eval_shape(
                self.evaluate,
                jax.ShapeDtypeStruct(X1.shape[1:], X1.dtype),
                jax.ShapeDtypeStruct(X2.shape[1:], X2.dtype),
            )
            return jnp.zeros((X1.shape[0], X2.shape[0]), dtype=out.dtype)
        k = jax.vmap(jax.vmap(self.evaluate, in_axes=(None, 0)), in_axes=(0, None))(
            X1, X2
        )
        if k.ndim != 2:
            raise ValueError(
                "Invalid kernel shape: "
                f"expected ndim = 2, got ndim={k.ndim} "
                "check the dimensions of parameters and custom kernels"
            )
        return k

    def __add__(self, other: Kernel | JAXArray) -> Kernel:
        if isinstance(other, Kernel):
            return Sum(self, other)
        return Sum(self, Constant(other))

    def __radd__(self, other: Any) -> Kernel:
        if isinstance(other, Kernel):
            return Sum(other, self)
        return Sum(Constant(other), self)

    def __mul__(self, other: Kernel | JAXArray) -> Kernel:
        if isinstance(other, Kernel):
            return Product(self, other)
        return Product(self, Constant(other))

    def __rmul__(self, other: Any) -> Kernel:
        if isinstance(other, Kernel):
            return Product(other, self)
        return Product(Constant(other), self)


class Custom(Kernel):
    """A kernel defined by a plain function of two points

    Args:
        function: A callable with the signature of :func:`Kernel.evaluate`.
    """

    function: Callable[[Any, Any], Any] = eqx.field(static=True)

    def evaluate(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        return self.function(X1, X2)


class Sum(Kernel):
    """A helper to represent the sum of two kernels"""

    kernel1: Kernel
    kernel2: Kernel

    def evaluate(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        return self.kernel1.evaluate(X1, X2) + self.kernel2.evaluate(X1, X2)


class Product(Kernel):
    """A helper to represent the product of two kernels"""

    kernel1: Kernel
    kernel2: Kernel

    def evaluate(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        return self.kernel1.evaluate(X1, X2) * self.kernel2.evaluate(X1, X2)


class Constant(Kernel):
    """A kernel with the same value for every pair of points

    Args:
        value: The constant; must be a scalar.
    """

    value: JAXArray | float

    def __check_init__(self) -> None:
        if jnp.ndim(self.value) != 0:
            raise ValueError("The value of a constant kernel must be a scalar")

    def evaluate(self, X1: JAXArray, X2: JAXArray) -> JAXArray:
        del X1, X2
        return jnp.asarray(self.value)
