# mypy: ignore-errors

import jax.numpy as jnp
import pytest

from hmatrices.rkmatrix import RkMatrix
from hmatrices.test_utils import assert_allclose


@pytest.fixture
def factors(random):
    return random.normal(size=(10, 3)), random.normal(size=(7, 3))


def test_dense(factors):
    A, B = factors
    R = RkMatrix(A=jnp.asarray(A), B=jnp.asarray(B))
    assert R.shape == (10, 7)
    assert R.rank == 3
    assert R.storage() == 51
    assert_allclose(R.to_dense(), A @ B.T)
    assert_allclose(R.T.to_dense(), B @ A.T)


def test_matmul(factors, random):
    A, B = factors
    R = RkMatrix(A=jnp.asarray(A), B=jnp.asarray(B))
    x = random.normal(size=7)
    assert_allclose(R @ x, A @ B.T @ x)
    x = random.normal(size=(7, 4))
    assert_allclose(R @ x, A @ B.T @ x)
    y = jnp.asarray(random.normal(size=(2, 10)))
    assert_allclose(y @ R, y @ A @ B.T)


def test_arithmetic(factors, random):
    A, B = factors
    R = RkMatrix(A=jnp.asarray(A), B=jnp.asarray(B))
    S = RkMatrix(A=jnp.asarray(random.normal(size=(10, 2))), B=jnp.asarray(random.normal(size=(7, 2))))
    assert (R + S).rank == 5
    assert_allclose((R + S).to_dense(), R.to_dense() + S.to_dense())
    assert_allclose((R - S).to_dense(), R.to_dense() - S.to_dense())
    assert_allclose((-R).to_dense(), -R.to_dense())
    assert_allclose((2.5 * R).to_dense(), 2.5 * R.to_dense())
    assert_allclose((R * 2.5).to_dense(), 2.5 * R.to_dense())
    assert_allclose(R + jnp.ones((10, 7)), R.to_dense() + 1)


def test_product(factors, random):
    A, B = factors
    R = RkMatrix(A=jnp.asarray(A), B=jnp.asarray(B))
    S = RkMatrix(A=jnp.asarray(random.normal(size=(7, 2))), B=jnp.asarray(random.normal(size=(5, 2))))
    P = R @ S
    assert isinstance(P, RkMatrix)
    assert P.shape == (10, 5)
    assert P.rank == 2
    assert_allclose(P.to_dense(), R.to_dense() @ S.to_dense())


def test_zeros():
    Z = RkMatrix.zeros(4, 6)
    assert Z.rank == 0
    assert_allclose(Z.to_dense(), jnp.zeros((4, 6)))


def test_invalid(factors):
    A, B = factors
    with pytest.raises(ValueError):
        RkMatrix(A=jnp.asarray(A), B=jnp.asarray(B[:, :2]))
    with pytest.raises(ValueError):
        RkMatrix(A=jnp.asarray(A[:, 0]), B=jnp.asarray(B))
    R = RkMatrix(A=jnp.asarray(A), B=jnp.asarray(B))
    with pytest.raises(ValueError):
        R.self_add(RkMatrix.zeros(3, 3))
