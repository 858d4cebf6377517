# mypy: ignore-errors

import jax
import numpy as np
import pytest

from hmatrices import (
    CardinalitySplitter,
    ClusterTree,
    HMatrix,
    KernelMatrix,
    PartialACA,
    kernels,
)

jax.config.update("jax_enable_x64", True)


@pytest.fixture
def random():
    return np.random.default_rng(8675)


@pytest.fixture
def points():
    return np.random.default_rng(1234).uniform(size=(64, 2))


@pytest.fixture
def tree(points):
    return ClusterTree(points, CardinalitySplitter(nmax=4))


@pytest.fixture
def kernel_matrix(points):
    # 1 / |x - y| with a large diagonal so that the matrix is well conditioned
    return KernelMatrix(kernels.Laplace(diagonal=1000.0), points)


@pytest.fixture
def hmatrix(kernel_matrix, tree):
    return HMatrix.assemble(kernel_matrix, tree, comp=PartialACA(rtol=1e-8))


@pytest.fixture
def other_kernel_matrix(points):
    return KernelMatrix(kernels.Exp(scale=0.5), points)


@pytest.fixture
def other_hmatrix(other_kernel_matrix, tree):
    return HMatrix.assemble(other_kernel_matrix, tree, comp=PartialACA(rtol=1e-8))
