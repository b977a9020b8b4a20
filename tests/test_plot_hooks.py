import os

import numpy as np

from conftest import TableSignalModel, make_config
from fisher_config import PLOT_TYPES
from kspace_binning import TrajectoryElement
from noise_analysis import analyze_sequence
from plot_hooks import MatplotlibPlotHooks


def test_all_plot_types_are_saved(tmp_path):
    config = make_config(nky = 4, nkz = 2, plot_types = list(PLOT_TYPES))
    trajectory = [[TrajectoryElement(float(i % 4 - 2), float(i // 4 - 1))] for i in range(8)]
    model = TableSignalModel(np.linspace(0.2, 1.0, 8) * 1j, dT1 = np.linspace(0.1, 0.3, 8),
                             dT2 = np.linspace(-0.2, 0.2, 8))
    hooks = MatplotlibPlotHooks(str(tmp_path / "plots"))

    analyze_sequence(np.full(8, 20.0), trajectory, config, signal_model = model, hooks = hooks)

    names = sorted(os.path.basename(path) for path in hooks.saved)
    assert len(names) == 7
    assert "first.png" in names
    assert "noise_bars.png" in names
    assert any(name.startswith("info_content") for name in names)
    for path in hooks.saved:
        assert os.path.getsize(path) > 0


def test_repetition_without_samples(tmp_path):
    config = make_config(plot_types = ["first", "trajectories", "weights"])
    trajectory = [[TrajectoryElement(-2.0, 0.0)], [], [TrajectoryElement(0.0, 0.0)], [TrajectoryElement(1.0, 0.0)]]
    model = TableSignalModel([1.0, 1j, 0.5, -1.0], dT1 = [0.1, 0.2, 0.3, 0.4])
    hooks = MatplotlibPlotHooks(str(tmp_path / "plots"))

    result = analyze_sequence(np.full(4, 20.0), trajectory, config, signal_model = model, hooks = hooks)

    assert len(hooks.saved) == 3
    assert np.all(np.isfinite(result.noises))
