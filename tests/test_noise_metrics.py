import numpy as np
import numpy.testing as npt
import pytest

from fisher_config import ConfigurationError
from noise_metrics import (information_content, information_map, noise_levels,
                           normalized_expected_signal2, signal_power_model)


def test_normalized_expected_signal2():
    nes2 = normalized_expected_signal2(100, 0.01, 0.67, 0.076, 4, 2)
    npt.assert_allclose(nes2, 2.0 * 4.0 * (1.0 + 0.67) * 0.076 / (8 * 0.746 ** 2))


def test_noise_levels_from_total_fisher():
    total = np.diag([4.0, 9.0, 16.0, 1e6]).astype(complex)
    noises = noise_levels(total, 2, 2, 0.25)
    npt.assert_allclose(noises, [0.5, 0.75, 1.0])


def test_signal_power_model_2d():
    ps = signal_power_model(4, 1, False)
    assert ps.shape == (4, 1)
    # peval = (k^2 + 1) / 5
    npt.assert_allclose(ps[:, 0], [1.0, 2.5, 5.0, 2.5])

    ps = signal_power_model(4, 1, True)
    npt.assert_allclose(ps[:, 0], [5.0, 2.5])


def test_signal_power_model_3d_peaks_at_center():
    ps = signal_power_model(4, 4, False)
    assert ps.shape == (4, 4)
    npt.assert_allclose(ps[2, 2], (0.2 + 0.2) ** -1.5)
    assert np.unravel_index(np.argmax(ps), ps.shape) == (2, 2)


def test_information_map_formula():
    diagonals = np.full((2, 1, 3), 2.0)
    ps = np.array([[1.0], [3.0]])
    info = information_map(diagonals, ps, 0.5, 2.0)
    # pn = 0.5 * 4 * 2 = 4
    npt.assert_allclose(info[:, 0, 0], np.log([1.0 / 4 + 1, 3.0 / 4 + 1]))


def test_information_focus_modes_differ():
    info = np.zeros((2, 1, 3))
    info[0, 0] = [1.0, 2.0, 6.0]
    info[1, 0] = [1.0, 0.0, 2.0]

    assert information_content(info, "rho") == 2.0
    assert information_content(info, "T1") == 2.0
    assert information_content(info, "T2") == 8.0
    assert information_content(info, "total") == 12.0
    assert information_content(info, "mean") == 4.0
    assert information_content(info, "max") == 8.0
    assert information_content(info, "weighted", [1.0, 0.0, 0.5]) == 6.0


def test_unknown_information_focus():
    with pytest.raises(ConfigurationError):
        information_content(np.ones((1, 1, 3)), "entropy")
