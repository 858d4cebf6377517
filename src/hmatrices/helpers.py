from __future__ import annotations

__all__ = ["JAXArray", "default_rtol", "frobenius_norm", "handle_matvec_shapes"]

from functools import wraps
from typing import Any, Callable

import jax
import jax.numpy as jnp
import numpy as np

JAXArray = jax.Array


def default_rtol(dtype: Any) -> float:
    """The relative tolerance used when a compressor is given no tolerance

    This is the square root of the machine precision for ``dtype``; complex
    dtypes use the precision of their real component.
    """
    return float(np.sqrt(jnp.finfo(dtype).eps))


def frobenius_norm(x: JAXArray) -> JAXArray:
    if x.size == 0:
        return jnp.zeros((), dtype=jnp.real(x).dtype)
    return jnp.linalg.norm(x)


def handle_matvec_shapes(
    func: Callable[[Any, JAXArray], JAXArray]
) -> Callable[[Any, JAXArray], JAXArray]:
    """Let a matrix-matrix product also accept vectors

    The wrapped method always receives a 2-D array and the result is
    reshaped to ``(nrows,) + x.shape[1:]``.
    """

    @wraps(func)
    def wrapped(self: Any, x: JAXArray) -> JAXArray:
        x = jnp.asarray(x)
        ncols = int(np.prod(x.shape[1:], dtype=int))
        result = func(self, jnp.reshape(x, (x.shape[0], ncols)))
        return jnp.reshape(result, (result.shape[0],) + x.shape[1:])

    return wrapped
