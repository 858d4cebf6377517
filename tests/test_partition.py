# mypy: ignore-errors

import pytest

from hmatrices.errors import ConfigurationError
from hmatrices.partition import (
    build_sequence_partition,
    find_optimal_cost,
    find_optimal_partition,
    has_partition,
)


def identity(x):
    return x


@pytest.mark.parametrize("np_", [1, 2, 3, 5, 8])
def test_partition_properties(random, np_):
    seq = random.integers(1, 20, size=40).tolist()
    cmax = find_optimal_cost(seq, np_, identity)
    assert has_partition(seq, np_, cmax, identity)
    groups = find_optimal_partition(seq, np_, identity)
    assert 0 < len(groups) <= np_
    assert all(len(group) > 0 for group in groups)
    assert [x for group in groups for x in group] == seq
    assert max(sum(group) for group in groups) <= cmax


def test_optimal_cost():
    seq = [1, 2, 3, 4, 5]
    cmax = find_optimal_cost(seq, 2, identity)
    assert 9 <= cmax < 10
    assert build_sequence_partition(seq, 2, identity, cmax) == [[1, 2, 3], [4, 5]]


def test_unit_cost():
    groups = find_optimal_partition(list(range(10)), 3)
    assert len(groups) == 3
    assert max(len(group) for group in groups) == 4


def test_infeasible():
    seq = [1, 2, 3, 4, 5]
    assert not has_partition(seq, 2, 5, identity)
    with pytest.raises(ValueError):
        build_sequence_partition(seq, 2, identity, 5)


def test_empty():
    assert find_optimal_partition([], 3) == []


def test_invalid_parameters():
    with pytest.raises(ConfigurationError):
        find_optimal_partition([1, 2], 0)
    with pytest.raises(ConfigurationError):
        find_optimal_cost([1, 2], 2, identity, tol=0)
