# mypy: ignore-errors

import numpy as np
import pytest

from hmatrices import KernelMatrix, PermutedMatrix, kernels
from hmatrices.test_utils import assert_allclose


@pytest.fixture
def matrix(random):
    X = random.uniform(size=(15, 2))
    Y = random.uniform(size=(9, 2))
    return KernelMatrix(kernels.Exp(scale=0.4), X, Y)


def test_access(matrix):
    M = matrix.to_dense()
    assert matrix.shape == (15, 9)
    assert M.shape == (15, 9)
    rows = np.array([3, 0, 7])
    cols = np.array([8, 1])
    assert_allclose(matrix.get_block(rows, cols), M[rows][:, cols])
    assert_allclose(matrix.get_row(4, cols), M[4, cols])
    assert_allclose(matrix.get_col(rows, 2), M[rows, 2])
    assert_allclose(matrix[5, 6], M[5, 6])


def test_square_default(random):
    X = random.uniform(size=20)
    K = KernelMatrix(kernels.Exp(), X)
    assert K.shape == (20, 20)
    assert_allclose(K.to_dense(), K.to_dense().T)


def test_permuted(matrix, random):
    rowperm = random.permutation(15)
    colperm = random.permutation(9)
    P = PermutedMatrix(matrix, rowperm, colperm)
    M = matrix.to_dense()
    expected = M[rowperm][:, colperm]
    assert P.shape == matrix.shape
    assert_allclose(P.to_dense(), expected)
    rows = np.array([1, 2, 10])
    cols = np.array([0, 5])
    assert_allclose(P.get_block(rows, cols), expected[rows][:, cols])
    assert_allclose(P.get_row(3, cols), expected[3, cols])
    assert_allclose(P.get_col(rows, 4), expected[rows, 4])
    assert_allclose(P[7, 8], expected[7, 8])


def test_permuted_invalid(matrix):
    with pytest.raises(ValueError):
        PermutedMatrix(matrix, np.arange(3), np.arange(9))
