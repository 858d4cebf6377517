# mypy: ignore-errors

import numpy as np
import pytest

from hmatrices.hilbertcurve import (
    hilbert_cartesian_to_linear,
    hilbert_linear_to_cartesian,
    hilbert_points,
    hilbert_sort,
)


@pytest.fixture(params=[1, 2, 4, 8, 16, 32])
def order(request):
    return request.param


def test_conversions_are_inverses(order):
    for d in range(order * order):
        x, y = hilbert_linear_to_cartesian(order, d)
        assert 0 <= x < order and 0 <= y < order
        assert hilbert_cartesian_to_linear(order, x, y) == d


def test_curve_is_continuous(order):
    xs, ys = hilbert_points(order)
    assert len(set(zip(xs.tolist(), ys.tolist()))) == order * order
    steps = np.abs(np.diff(xs)) + np.abs(np.diff(ys))
    assert np.all(steps == 1)


def test_invalid_arguments():
    with pytest.raises(ValueError):
        hilbert_linear_to_cartesian(3, 0)
    with pytest.raises(ValueError):
        hilbert_linear_to_cartesian(4, 16)
    with pytest.raises(ValueError):
        hilbert_cartesian_to_linear(4, 4, 0)


def test_sort(random):
    xs, ys = hilbert_points(8)
    coords = np.stack((xs, ys), axis=1).astype(float)
    shuffle = random.permutation(len(coords))
    perm = hilbert_sort(coords[shuffle], order=8)
    np.testing.assert_array_equal(coords[shuffle][perm], coords)


def test_sort_empty():
    assert len(hilbert_sort(np.zeros((0, 2)))) == 0
