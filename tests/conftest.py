import matplotlib
matplotlib.use("Agg")

import numpy as np
import pytest

from fisher_config import AnalysisConfig


class TableSignalModel:
    """Signal model returning fixed magnetization and derivative rows for every tissue point."""

    def __init__(self, m, dT1 = None, dT2 = None, dB1 = None):
        self.m = np.asarray(m, dtype = np.complex128)
        zeros = np.zeros_like(self.m)
        self.derivatives = {
            "T1": zeros if dT1 is None else np.asarray(dT1, dtype = np.complex128),
            "T2": zeros if dT2 is None else np.asarray(dT2, dtype = np.complex128),
            "B1": zeros if dB1 is None else np.asarray(dB1, dtype = np.complex128),
        }

    def simulate_magnetization(self, tissues):
        tissues = np.atleast_2d(tissues)
        return np.tile(self.m, (tissues.shape[0], 1))

    def simulate_derivatives(self, tissues, fit_parameters = ("T1", "T2")):
        tissues = np.atleast_2d(tissues)
        return {name: np.tile(self.derivatives[name], (tissues.shape[0], 1)) for name in fit_parameters}


class LinearB1SignalModel(TableSignalModel):
    """Magnetization proportional to B1: m(B1) = B1 * m0, so dm/dB1 = m0."""

    def __init__(self, m0):
        super().__init__(m0, dB1 = m0)

    def simulate_magnetization(self, tissues):
        tissues = np.atleast_2d(tissues)
        return tissues[:, 2:3] * self.m[None, :]


def make_config(**overrides):
    settings = dict(
        TR = 0.01,
        T1_ref = 0.67,
        T2_ref = 0.076,
        max_state = 10,
        probe_set = [[0.8, 0.05]],
        inv_reg = [1e-4, 1e-4, 1e-4],
        nky = 4,
        nkz = 1,
        max_meas = 4,
        sigma_ref = 0.2,
        info_focus = "T2",
    )
    settings.update(overrides)
    return AnalysisConfig(**settings)


@pytest.fixture
def config_factory():
    return make_config
