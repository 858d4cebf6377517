# mypy: ignore-errors

import numpy as np
import pytest

from hmatrices.clustertree import (
    CardinalitySplitter,
    ClusterTree,
    DyadicSplitter,
    GeometricMinimalSplitter,
    GeometricSplitter,
    build_cluster_tree,
)
from hmatrices.errors import ConfigurationError


@pytest.fixture(
    params=[
        CardinalitySplitter(nmax=5),
        DyadicSplitter(nmax=5),
        GeometricSplitter(nmax=5),
        GeometricMinimalSplitter(nmax=5),
    ]
)
def splitter(request):
    return request.param


@pytest.fixture(params=[1, 2, 3])
def ndim(request):
    return request.param


def test_permutation(random, splitter, ndim):
    points = random.uniform(size=(200, ndim))
    tree = ClusterTree(points, splitter)
    assert len(tree) == 200
    np.testing.assert_array_equal(np.sort(tree.loc2glob), np.arange(200))
    np.testing.assert_array_equal(tree.glob2loc[tree.loc2glob], np.arange(200))
    np.testing.assert_allclose(tree.elements, points[tree.loc2glob])


def test_leaves_partition_range(random, splitter, ndim):
    points = random.uniform(size=(200, ndim))
    tree = ClusterTree(points, splitter)
    leaves = list(tree.leaves())
    assert leaves[0].lo == 0
    assert leaves[-1].hi == 200
    for a, b in zip(leaves[:-1], leaves[1:]):
        assert a.hi == b.lo
    for leaf in leaves:
        assert 0 < len(leaf) <= splitter.nmax


def test_children_partition_parent(random, splitter):
    points = random.uniform(size=(150, 2))
    tree = ClusterTree(points, splitter)
    for node in tree.nodes():
        if node.isleaf:
            continue
        left, right = node.children
        assert left.lo == node.lo
        assert left.hi == right.lo
        assert right.hi == node.hi
        assert left.parent is node
        assert right.depth == node.depth + 1
        assert np.all(node.container.contains(left.elements))
        assert np.all(left.container.contains(left.elements))
        assert np.all(right.container.contains(right.elements))


def test_navigation(random):
    tree = ClusterTree(random.uniform(size=(100, 2)), CardinalitySplitter(nmax=10))
    assert tree.isroot
    assert tree.parent is None
    leaf = next(iter(tree.leaves()))
    assert leaf.isleaf
    assert not leaf.isroot
    assert leaf.root is tree
    assert leaf.loc_indices == range(leaf.lo, leaf.hi)
    assert leaf.index_range == (leaf.lo, leaf.hi)
    assert next(iter(tree.nodes())) is tree


def test_cardinality_halves(random):
    tree = ClusterTree(random.uniform(size=(64, 2)), CardinalitySplitter(nmax=8))
    assert all(len(leaf) == 8 for leaf in tree.leaves())


def test_dyadic_splits_longest_axis():
    points = np.stack((np.linspace(0, 10, 20), np.linspace(0, 1, 20)), axis=1)
    tree = ClusterTree(points, DyadicSplitter(nmax=10))
    left, right = tree.children
    assert np.all(left.elements[:, 0] < 5.0)
    assert np.all(right.elements[:, 0] >= 5.0)


def test_one_dimensional_points(random):
    x = random.uniform(size=50)
    tree, perm = build_cluster_tree(x, GeometricSplitter(nmax=4))
    assert tree.ndim == 1
    assert np.max(x[perm][: len(tree.children[0])]) <= np.min(
        x[perm][len(tree.children[0]) :]
    )


def test_empty_points():
    tree = ClusterTree(np.zeros((0, 2)))
    assert len(tree) == 0
    assert tree.isleaf
    assert len(tree.loc2glob) == 0


def test_coincident_points():
    tree = ClusterTree(np.ones((20, 2)), GeometricSplitter(nmax=2))
    assert tree.isleaf
    assert len(tree) == 20


def test_max_depth(random):
    tree = ClusterTree(
        random.uniform(size=(100, 2)), CardinalitySplitter(nmax=1, max_depth=2)
    )
    assert max(node.depth for node in tree.nodes()) == 2


def test_permutation_is_read_only(random):
    tree = ClusterTree(random.uniform(size=(10, 2)))
    with pytest.raises(ValueError):
        tree.loc2glob[0] = 3


def test_invalid_parameters():
    with pytest.raises(ConfigurationError):
        CardinalitySplitter(nmax=0)
    with pytest.raises(ConfigurationError):
        DyadicSplitter(max_depth=-1)
    with pytest.raises(ConfigurationError):
        ClusterTree(np.zeros((2, 2, 2)))
