import dataclasses
import logging
import os
from dataclasses import dataclass, field
from typing import List

from omegaconf import MISSING, OmegaConf
from omegaconf.errors import OmegaConfBaseException


logger = logging.getLogger(__name__)

HANDLE_B1_MODES = ("no", "co-reconstruct", "sensitivity")
B1_METRICS = ("derivative_at_1", "multi_point", "multi_point_values")
INFO_FOCUS_KEYS = ("rho", "T1", "T2", "total", "mean", "max", "weighted")
PLOT_TYPES = ("first", "trajectories", "noise_bars", "weights", "original_jacobian", "noise_spectrum", "info_content")


class ConfigurationError(ValueError):
    """Raised for any malformed, missing or out-of-range analysis setting."""


@dataclass
class AnalysisConfig:
    """
    Settings of a noise/information analysis.

    Times are in seconds. Fields without a default must be supplied.

    Attributes
    ----------
    TR : float
        Repetition time.
    inversion : bool
        If True, an inversion prepulse precedes the RF train.
    T1_ref, T2_ref : float
        Reference relaxation times used for the noise normalization.
    max_state : int
        Number of EPG orders tracked by the signal model.
    use_surrogate : bool
        Request the polynomial surrogate signal model (not supported).
    probe_set : list of [T1, T2]
        Tissue points around which the analysis is evaluated and averaged.
    consider_cyclic : bool
        Assume the magnetization at the start of the train equals that at its end.
    handle_b1 : str
        "no", "co-reconstruct" (B1 is a reconstructed parameter) or "sensitivity"
        (B1 is a nuisance whose coupling into rho, T1, T2 is reported).
    inv_reg : list of float
        Diagonal regularization for (rho, T1, T2); 0 means no regularization.
    nky, nkz : int
        Phase-encoding grid size.
    use_symmetry : bool
        Assume Hermitian symmetry of k-space and track only ky >= 0.
    max_meas : int
        Maximum number of rows kept per k-space cell.
    emphasize_low_freq : bool
        Up-weight the central k-space cells in the aggregated Fisher matrix.
    sigma_ref : float
        Reference noise level of the information-content metric.
    info_focus : str
        Reduction of the information map returned as the information scalar.
    info_weights : list of float
        Per-parameter weights of the "weighted" information focus.
    lambda_csf : float
        If positive, the CSF contrast penalty is computed.
    b1_metric : str
        B1 sensitivity algorithm, used when handle_b1 == "sensitivity".
    rf_tag : str
        Label under which per-probe Fisher matrices are stored.
    plot_types : list of str
        Plots to produce through the injected plot hooks.
    """
    TR: float = MISSING
    T1_ref: float = MISSING
    T2_ref: float = MISSING
    max_state: int = MISSING
    probe_set: List[List[float]] = MISSING
    inv_reg: List[float] = MISSING
    nky: int = MISSING
    nkz: int = MISSING
    max_meas: int = MISSING
    sigma_ref: float = MISSING
    info_focus: str = MISSING
    inversion: bool = False
    use_surrogate: bool = False
    consider_cyclic: bool = False
    handle_b1: str = "no"
    use_symmetry: bool = False
    emphasize_low_freq: bool = False
    info_weights: List[float] = field(default_factory = lambda: [1.0, 1.0, 1.0])
    lambda_csf: float = 0.0
    b1_metric: str = "multi_point"
    rf_tag: str = ""
    plot_types: List[str] = field(default_factory = list)

    def __post_init__(self):
        missing = [f.name for f in dataclasses.fields(self)
                   if isinstance(getattr(self, f.name), str) and getattr(self, f.name) == MISSING]
        if missing:
            raise ConfigurationError(f"Missing required settings: {', '.join(missing)}")

        for name in ("TR", "T1_ref", "T2_ref", "sigma_ref"):
            if not getattr(self, name) > 0:
                raise ConfigurationError(f"{name} must be positive, got {getattr(self, name)}")
        for name in ("nky", "nkz", "max_meas", "max_state"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be a positive integer, got {getattr(self, name)}")
        if self.nky % 2 != 0:
            raise ConfigurationError(f"nky must be even, got {self.nky}")

        self.probe_set = [[float(v) for v in probe] for probe in self.probe_set]
        if len(self.probe_set) == 0:
            raise ConfigurationError("probe_set must contain at least one (T1, T2) pair")
        for probe in self.probe_set:
            if len(probe) != 2 or min(probe) <= 0:
                raise ConfigurationError(f"probe_set entries must be positive (T1, T2) pairs, got {probe}")

        self.inv_reg = [float(v) for v in self.inv_reg]
        if len(self.inv_reg) != 3 or min(self.inv_reg) < 0:
            raise ConfigurationError(f"inv_reg must hold three nonnegative values, got {self.inv_reg}")
        self.info_weights = [float(v) for v in self.info_weights]
        if len(self.info_weights) != 3 or min(self.info_weights) < 0:
            raise ConfigurationError(f"info_weights must hold three nonnegative values, got {self.info_weights}")
        if self.lambda_csf < 0:
            raise ConfigurationError(f"lambda_csf must be nonnegative, got {self.lambda_csf}")

        if self.handle_b1 not in HANDLE_B1_MODES:
            raise ConfigurationError(f"Unknown handle_b1 mode '{self.handle_b1}', expected one of {HANDLE_B1_MODES}")
        if self.b1_metric not in B1_METRICS:
            raise ConfigurationError(f"Unknown B1 metric '{self.b1_metric}', expected one of {B1_METRICS}")
        if self.info_focus not in INFO_FOCUS_KEYS:
            raise ConfigurationError(f"Unknown info_focus '{self.info_focus}', expected one of {INFO_FOCUS_KEYS}")
        unknown_plots = [p for p in self.plot_types if p not in PLOT_TYPES]
        if unknown_plots:
            raise ConfigurationError(f"Unknown plot types {unknown_plots}, expected a subset of {PLOT_TYPES}")

    @property
    def probe_points(self):
        return [tuple(probe) for probe in self.probe_set]

    @property
    def models_b1(self):
        return self.handle_b1 in ("co-reconstruct", "sensitivity")


def load_config(source = None, dotlist = None, **overrides):
    """
    Builds a validated AnalysisConfig.

    Parameters
    ----------
    source : str, os.PathLike, mapping or None
        Path to a YAML file, or a mapping of settings.
    dotlist : list of str, optional
        "key=value" strings applied last, as given on a command line.
    **overrides
        Settings applied on top of `source`.

    Returns
    -------
    AnalysisConfig

    Raises
    ------
    ConfigurationError
        For unknown keys, values of the wrong type, missing required settings and
        out-of-range values.
    """
    try:
        schema = OmegaConf.structured(AnalysisConfig)
        layers = [schema]
        if isinstance(source, (str, os.PathLike)):
            logger.info(f"loading analysis settings from {source}")
            layers.append(OmegaConf.load(source))
        elif source is not None:
            layers.append(OmegaConf.create(dict(source)))
        if overrides:
            layers.append(OmegaConf.create(overrides))
        if dotlist:
            layers.append(OmegaConf.from_dotlist(list(dotlist)))
        merged = OmegaConf.merge(*layers)
        return OmegaConf.to_object(merged)
    except OmegaConfBaseException as err:
        raise ConfigurationError(f"Invalid analysis settings: {err}") from err
