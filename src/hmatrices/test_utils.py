from typing import Any

import jax
import jax.numpy as jnp
from jax._src.public_test_util import check_close

from hmatrices.helpers import JAXArray


def assert_allclose(
    calculated: JAXArray, expected: JAXArray, *args: Any, **kwargs: Any
):
    kwargs["atol"] = kwargs.get(
        "atol",
        {
            "float32": 5e-4,
            "float64": 5e-7,
            "complex64": 5e-4,
            "complex128": 5e-7,
        },
    )
    kwargs["rtol"] = kwargs.get(
        "rtol",
        {
            "float32": 5e-4,
            "float64": 5e-7,
            "complex64": 5e-4,
            "complex128": 5e-7,
        },
    )
    check_close(calculated, expected, *args, **kwargs)


def relative_error(calculated: JAXArray, expected: JAXArray) -> float:
    """The relative error in Frobenius norm"""
    calculated = jnp.asarray(calculated)
    expected = jnp.asarray(expected)
    norm = float(jnp.linalg.norm(expected))
    diff = float(jnp.linalg.norm(calculated - expected))
    return diff / norm if norm > 0 else diff


def assert_relative_error(
    calculated: JAXArray, expected: JAXArray, tol: float
) -> None:
    assert calculated.shape == expected.shape
    err = relative_error(calculated, expected)
    assert err <= tol, f"relative error {err:.3e} is above {tol:.3e}"


def assert_pytrees_allclose(calculated: Any, expected: Any, *args: Any, **kwargs: Any):
    jax.tree_util.tree_map(
        lambda a, b: assert_allclose(a, b, *args, **kwargs), calculated, expected
    )
