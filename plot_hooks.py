import os
import re

import matplotlib.cm as cm
import matplotlib.pyplot as plt
import numpy as np


class PlotHooks:
    """
    Visualization events raised during an analysis. Every method is a no-op here;
    subclasses override the events they render.
    """

    def close(self):
        pass

    def first(self, rf_deg, trajectory, config):
        pass

    def trajectories(self, trajectory):
        pass

    def noise_bars(self, rf_rad, trajectory, noises):
        pass

    def weighting(self, m, dT1, dT2, hue, note):
        pass

    def original_jacobian(self, m, dT1, dT2, note, config):
        pass

    def noise_spectrum(self, fisher, nes2, note, config):
        pass

    def info_content(self, info_map, note):
        pass


class MatplotlibPlotHooks(PlotHooks):
    """Renders the analysis events with matplotlib and saves each figure as a png in `output_dir`."""

    def __init__(self, output_dir, dpi = 150):
        self.output_dir = output_dir
        self.dpi = dpi
        self.saved = []
        os.makedirs(output_dir, exist_ok = True)

    def _save(self, fig, name):
        path = os.path.join(self.output_dir, re.sub(r"[^A-Za-z0-9.]+", "_", name).strip("_") + ".png")
        fig.tight_layout()
        fig.savefig(path, dpi = self.dpi)
        plt.close(fig)
        self.saved.append(path)
        return path

    def close(self):
        plt.close("all")

    def first(self, rf_deg, trajectory, config):
        ky = [samples[0][0] if len(samples) > 0 else np.nan for samples in trajectory]
        kz = [samples[0][1] if len(samples) > 0 else np.nan for samples in trajectory]
        fig, ax = plt.subplots(figsize = (10, 4))
        ax.plot(np.abs(rf_deg), label = "RF (deg)")
        ax.plot(ky, label = "ky")
        ax.plot(kz, label = "kz")
        ax.set_xlabel("TR index")
        ax.legend(loc = "best")
        ax.grid(True)
        self._save(fig, "first")

    def trajectories(self, trajectory):
        fig, ax = plt.subplots(figsize = (6, 6))
        for samples in trajectory[:10]:
            ax.plot([s[0] for s in samples], [s[1] for s in samples], "o-")
        ax.set_xlabel("ky")
        ax.set_ylabel("kz")
        ax.set_title("First trajectories")
        self._save(fig, "trajectories")

    def noise_bars(self, rf_rad, trajectory, noises):
        fig, ax = plt.subplots(figsize = (5, 4))
        ax.bar(["rho", "T1", "T2"], noises, color = ["gray", "red", "blue"])
        ax.set_ylabel("Noise level")
        ax.set_title(f"Noise levels, {len(rf_rad)} repetitions")
        self._save(fig, "noise_bars")

    def weighting(self, m, dT1, dT2, hue, note):
        fig, ax = plt.subplots(figsize = (10, 4))
        ax.scatter(np.real(dT1), np.real(dT2), c = hue, cmap = cm.rainbow, s = 8)
        ax.set_xlabel("T1 sensitivity")
        ax.set_ylabel("T2 sensitivity")
        ax.set_title(f"Sensitivities {note}")
        self._save(fig, f"weighting {note}")

    def original_jacobian(self, m, dT1, dT2, note, config):
        fig, ax = plt.subplots(figsize = (10, 4))
        ax.plot(np.abs(m), label = "|m|")
        ax.plot(np.real(dT1), label = "T1 dm/dT1")
        ax.plot(np.real(dT2), label = "T2 dm/dT2")
        ax.set_xlabel("TR index")
        ax.set_title(f"Jacobian {note}")
        ax.legend(loc = "best")
        ax.grid(True)
        self._save(fig, f"original_jacobian {note}")

    def noise_spectrum(self, fisher, nes2, note, config):
        fisher = np.asarray(fisher)
        kz0 = fisher.shape[1] // 2
        fig, ax = plt.subplots(figsize = (10, 4))
        for p, label in ((1, "T1"), (2, "T2")):
            ax.plot(np.sqrt(np.abs(fisher[:, kz0, p, p]) * nes2), label = label)
        ax.set_xlabel("ky index")
        ax.set_ylabel("Noise spectral density")
        ax.set_title(f"Noise spectrum {note}")
        ax.legend(loc = "best")
        ax.grid(True)
        self._save(fig, f"noise_spectrum {note}")

    def info_content(self, info_map, note):
        info_map = np.asarray(info_map)
        fig, axes = plt.subplots(1, info_map.shape[-1], figsize = (12, 4))
        for p, (ax, label) in enumerate(zip(np.atleast_1d(axes), ["rho", "T1", "T2"])):
            image = ax.imshow(info_map[:, :, p].T, origin = "lower", cmap = "magma", aspect = "auto")
            fig.colorbar(image, ax = ax)
            ax.set_title(label)
            ax.set_xlabel("ky index")
            ax.set_ylabel("kz index")
        fig.suptitle(f"Information content {note}")
        self._save(fig, f"info_content {note}")
