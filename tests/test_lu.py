# mypy: ignore-errors

import jax.numpy as jnp
import numpy as np
import pytest

from hmatrices import (
    ClusterTree,
    HMatrix,
    KernelMatrix,
    LowRankBlock,
    RkMatrix,
    kernels,
    lu,
)
from hmatrices.errors import IllConditioningWarning, ShapeMismatchError
from hmatrices.lu import dense_lu
from hmatrices.test_utils import assert_allclose, assert_relative_error


@pytest.fixture
def factors(hmatrix):
    return hmatrix.lu()


def test_dense_lu(random):
    a = random.normal(size=(6, 6)) + 10 * np.eye(6)
    packed = dense_lu(jnp.asarray(a))
    L = jnp.tril(packed, -1) + jnp.eye(6)
    U = jnp.triu(packed)
    assert_allclose(L @ U, a)


def test_reconstruction(hmatrix, factors):
    L = factors.L.to_dense(permuted=True)
    U = factors.U.to_dense(permuted=True)
    assert_allclose(jnp.triu(L, 1), jnp.zeros_like(L))
    assert_allclose(jnp.diag(L), jnp.ones(64))
    assert_allclose(jnp.tril(U, -1), jnp.zeros_like(U))
    assert_relative_error(L @ U, hmatrix.to_dense(permuted=True), 1e-6)


def test_reconstruction_natural_order(hmatrix, factors):
    product = factors.L.to_dense() @ factors.U.to_dense()
    assert_relative_error(product, hmatrix.to_dense(), 1e-6)


def test_structure(hmatrix, factors):
    assert [type(leaf) for leaf in factors.factors.leaves()] == [
        type(leaf) for leaf in hmatrix.leaves()
    ]


def test_solve(hmatrix, factors, random):
    dense = hmatrix.to_dense()
    b = random.normal(size=64)
    x = factors.solve(b)
    assert_relative_error(dense @ x, jnp.asarray(b), 1e-6)
    assert_relative_error(hmatrix.solve(b), x, 1e-10)
    b = random.normal(size=(64, 4))
    assert_relative_error(dense @ factors.solve(b), jnp.asarray(b), 1e-6)


def test_no_warnings(factors):
    assert factors.warnings == ()


def test_function_form(hmatrix, factors):
    assert_allclose(lu(hmatrix).factors.to_dense(), factors.factors.to_dense())


def test_singular(random):
    points = random.uniform(size=(8, 2))
    H = HMatrix.assemble(
        KernelMatrix(kernels.Constant(1.0), points), ClusterTree(points)
    )
    with pytest.warns(IllConditioningWarning):
        F = H.lu()
    assert len(F.warnings) == 1


def test_low_rank_diagonal(random):
    tree = ClusterTree(random.uniform(size=(8, 2)))
    H = HMatrix(root=LowRankBlock(target=tree, source=tree, data=RkMatrix.zeros(8, 8)))
    with pytest.raises(ShapeMismatchError):
        H.lu()


def test_not_square(random):
    X = random.uniform(size=(8, 2))
    Y = random.uniform(size=(6, 2))
    H = HMatrix.assemble(
        KernelMatrix(kernels.Exp(), X, Y), ClusterTree(X), ClusterTree(Y)
    )
    with pytest.raises(ShapeMismatchError):
        H.lu()
