import numpy as np
import numpy.testing as npt
import pytest

from kspace_binning import (TrajectoryElement, bin_weight_rows, cell_index, center_cell,
                            effective_ky_count, k0_rows, raised_cosine_split, trajectory_from_array)


def single_samples(coordinates):
    return [[TrajectoryElement(ky, kz)] for ky, kz in coordinates]


@pytest.mark.parametrize("k", [-2.0, -1.3, -0.5, 0.0, 0.25, 0.7, 1.999, 3.5])
def test_raised_cosine_split_preserves_energy(k):
    (k_low, w_low), (k_high, w_high) = raised_cosine_split(k)
    assert k_high == k_low + 1
    assert k_low <= k < k_high
    npt.assert_allclose(w_low ** 2 + w_high ** 2, 1.0, rtol = 1e-12)


def test_raised_cosine_split_integer_goes_to_one_point():
    (k_low, w_low), (_, w_high) = raised_cosine_split(2.0)
    assert k_low == 2
    assert w_low == 1.0
    assert w_high == 0.0


def test_effective_ky_count_and_center():
    assert effective_ky_count(8, False) == 8
    assert effective_ky_count(8, True) == 4
    assert center_cell(8, 4, False) == (4, 2)
    assert center_cell(8, 4, True) == (0, 2)
    assert cell_index(4, 0, 8, 1, False) is None
    assert cell_index(-1, 0, 8, 1, True) is None


def test_integer_samples_fill_one_cell_each():
    trajectory = single_samples([(-2, -2), (-1, 0), (0, 1), (1, -1)])
    weights = np.arange(1, 13, dtype = complex).reshape(4, 3)

    bins = bin_weight_rows(trajectory, weights, 4, 4, 1, False)

    expected_occupancy = np.zeros((4, 4), dtype = int)
    for ky, kz in [(0, 0), (1, 2), (2, 3), (3, 1)]:
        expected_occupancy[ky, kz] = 1
    npt.assert_array_equal(bins.occupancy, expected_occupancy)
    npt.assert_array_equal(bins.rows[1, 2, 0], weights[1])
    npt.assert_array_equal(bins.rows[3, 1, 0], weights[3])
    assert not bins.duplicate.any()


def test_fractional_sample_is_split_over_neighbours():
    trajectory = single_samples([(0.5, 0.0)])
    weights = np.array([[2.0, 1j, -1.0]])

    bins = bin_weight_rows(trajectory, weights, 4, 1, 2, False)

    npt.assert_array_equal(bins.occupancy[:, 0], [0, 0, 1, 1])
    npt.assert_allclose(bins.rows[2, 0, 0], weights[0] * np.cos(np.pi / 4))
    npt.assert_allclose(bins.rows[3, 0, 0], weights[0] * np.sin(np.pi / 4))
    energy = np.sum(np.abs(bins.rows[..., 0]) ** 2)
    npt.assert_allclose(energy, 4.0)


def test_symmetry_enters_center_sample_twice():
    trajectory = single_samples([(0, 0)])
    weights = np.array([[1 + 2j, 3j, -1.0]])

    bins = bin_weight_rows(trajectory, weights, 4, 1, 4, True)

    assert bins.rows.shape == (2, 1, 4, 3)
    assert bins.occupancy[0, 0] == 2
    assert bins.occupancy.sum() == 2
    npt.assert_array_equal(bins.rows[0, 0, 0], weights[0])
    npt.assert_array_equal(bins.rows[0, 0, 1], np.conj(weights[0]))
    npt.assert_array_equal(bins.duplicate[0, 0, :2], [False, True])


def test_symmetry_folds_negative_ky_with_conjugate_row():
    trajectory = single_samples([(-1, -1)])
    weights = np.array([[1 + 1j, 2j, 0.5]])

    bins = bin_weight_rows(trajectory, weights, 4, 4, 2, True)

    assert bins.occupancy.sum() == 1
    assert bins.occupancy[1, 3] == 1
    npt.assert_array_equal(bins.rows[1, 3, 0], np.conj(weights[0]))


def test_full_cell_keeps_first_rows():
    trajectory = single_samples([(1, 0), (1, 0), (1, 0)])
    weights = np.array([[1.0, 0, 0], [2.0, 0, 0], [3.0, 0, 0]], dtype = complex)

    bins = bin_weight_rows(trajectory, weights, 4, 1, 2, False)

    assert bins.occupancy[3, 0] == 2
    npt.assert_array_equal(bins.rows[3, 0, :, 0], [1.0, 2.0])


def test_samples_outside_grid_are_ignored():
    trajectory = single_samples([(5, 0), (0, 3)])
    weights = np.ones((2, 3), dtype = complex)

    bins = bin_weight_rows(trajectory, weights, 4, 2, 2, False)

    assert bins.occupancy.sum() == 0


def test_mismatched_weights_raise():
    with pytest.raises(ValueError):
        bin_weight_rows(single_samples([(0, 0)]), np.ones((2, 3)), 4, 1, 2, False)


def test_k0_rows_takes_first_center_samples_unscaled():
    trajectory = single_samples([(0.5, 0.0), (1.0, 0.0), (0.0, 0.25), (-0.5, 0.0), (0.0, 0.0)])
    weights = np.arange(15, dtype = complex).reshape(5, 3)

    rows = k0_rows(trajectory, weights, 4)

    npt.assert_array_equal(rows[:3], weights[[0, 2, 4]])
    npt.assert_array_equal(rows[3], 0)

    npt.assert_array_equal(k0_rows(trajectory, weights, 2), weights[[0, 2]])


def test_trajectory_from_array_shapes():
    single = trajectory_from_array([[0, 1], [2, -1]])
    assert len(single) == 2
    assert single[1] == [TrajectoryElement(2.0, -1.0)]

    multiple = trajectory_from_array(np.zeros((3, 4, 2)))
    assert len(multiple) == 3
    assert len(multiple[0]) == 4

    with pytest.raises(ValueError):
        trajectory_from_array(np.zeros((3, 3)))
