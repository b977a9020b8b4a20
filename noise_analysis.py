"""
Noise and information-content prediction of a quantitative MRI acquisition.

Given an RF train and a phase-encoding trajectory, predicts the noise levels of the rho, T1 and
T2 maps, an information-content metric and the coupling of an unmodelled B1 error into these
maps, averaged over a set of probe (T1, T2) points.
"""
import logging
from collections import namedtuple

import jax
import numpy as np
jax.config.update("jax_enable_x64", True)

from EPG_fisp_jaxcode import FISPSequence, FISPSignalModel
from b1_sensitivity import b1_factors as estimate_b1_factors
from fisher_assembly import (aggregate_fisher, cell_fisher_matrices, fisher_diagonals,
                             low_frequency_emphasis, regularization_matrix, weight_rows)
from kspace_binning import bin_weight_rows, center_cell, effective_ky_count
from noise_metrics import (information_content, information_map, noise_levels,
                           normalized_expected_signal2, signal_power_model)
from plot_hooks import PlotHooks


logger = logging.getLogger(__name__)

N_PARS = 3
CSF_T1T2 = (4.0, 2.0)

AnalysisResult = namedtuple("AnalysisResult", ["noises", "information", "b1_factors", "csf_penalty"])
ProbeResult = namedtuple("ProbeResult", ["T1", "T2", "fisher", "noises", "information", "b1_factors", "info_map"])


def build_signal_model(rf_deg, config):
    """FISP EPG signal model for the RF train `rf_deg` (degrees) and the timing in `config`."""
    sequence = FISPSequence(rf_deg, config.TR, config.TR / 2.01, config.max_state,
                            TI = 0.01 if config.inversion else 20.0,
                            T_wait = 0.0,
                            n_repeat = 5 if config.consider_cyclic else 1,
                            inversion = config.inversion)
    return FISPSignalModel(sequence)


def analyze_single_probe(T1, T2, trajectory, config, signal_model, hooks = None, B1 = 1.0):
    """
    Fisher matrices, noise levels, information content and B1 factors around one probe point.

    Returns
    -------
    ProbeResult
    """
    hooks = hooks or PlotHooks()
    n_tr = len(trajectory)
    nky, nkz = config.nky, config.nkz
    use_sym = config.use_symmetry
    nky_eff = effective_ky_count(nky, use_sym)
    note = f"for (T1,T2)=({1000 * T1:6.1f},{1000 * T2:6.1f})"

    co_reconstruct = config.handle_b1 == "co-reconstruct"
    n_nuisances = 1 if config.models_b1 else 0
    n_pars_x = N_PARS + 1 if co_reconstruct else N_PARS

    wlocal = weight_rows(signal_model, T1, T2, B1, n_nuisances)
    if wlocal.shape[0] != n_tr:
        raise ValueError(f"Signal model returned {wlocal.shape[0]} repetitions for a trajectory of {n_tr}")

    if "weights" in config.plot_types:
        hue = [samples[0][0] if len(samples) > 0 else np.nan for samples in trajectory]
        hooks.weighting(wlocal[:, 0], wlocal[:, 1], wlocal[:, 2], hue, note)
    if "original_jacobian" in config.plot_types:
        hooks.original_jacobian(wlocal[:, 0], wlocal[:, 1], wlocal[:, 2], note, config)

    regularization = regularization_matrix(config.inv_reg, n_nuisances, co_reconstruct)
    bins = bin_weight_rows(trajectory, wlocal, nky, nkz, config.max_meas, use_sym)

    fisher = cell_fisher_matrices(bins.rows[..., :n_pars_x], regularization[:n_pars_x, :n_pars_x])
    emphasis = low_frequency_emphasis(nky, nkz, use_sym) if config.emphasize_low_freq else None
    total_fisher = aggregate_fisher(fisher, emphasis)

    b1factors = np.zeros(N_PARS)
    if config.handle_b1 == "sensitivity":
        b1factors = estimate_b1_factors(config.b1_metric, bins, center_cell(nky, nkz, use_sym), signal_model,
                                        trajectory, T1, T2, regularization, config.max_meas)

    nes2 = normalized_expected_signal2(n_tr, config.TR, config.T1_ref, config.T2_ref, nky, nkz)
    if "noise_spectrum" in config.plot_types:
        hooks.noise_spectrum(fisher, nes2, note, config)
    noises = noise_levels(total_fisher, nky_eff, nkz, nes2)

    info_map = information_map(fisher_diagonals(fisher, N_PARS), signal_power_model(nky, nkz, use_sym),
                               nes2, config.sigma_ref)
    if "info_content" in config.plot_types:
        hooks.info_content(info_map, note)
    information = information_content(info_map, config.info_focus, config.info_weights)

    logger.debug(f"{note}: noises {noises}, information {information:.4g}, B1 factors {b1factors}")
    return ProbeResult(T1, T2, np.asarray(fisher), noises, information, np.asarray(b1factors), info_map)


def csf_penalty(signal_model, probe_points):
    """Norm of the CSF signal relative to the norm of the mean signal over the probe points."""
    echos_csf = np.asarray(signal_model.simulate_magnetization(np.array([[CSF_T1T2[0], CSF_T1T2[1], 1.0]])))[0]
    tissues = np.array([[T1, T2, 1.0] for T1, T2 in probe_points])
    echos_tissue = np.sum(np.asarray(signal_model.simulate_magnetization(tissues)), axis = 0)
    return float(np.linalg.norm(echos_csf) / (np.linalg.norm(echos_tissue) / len(probe_points)))


def evaluate_probe_set(rf_deg, trajectory, config, signal_model = None, hooks = None, fisher_sink = None):
    """
    Runs the analysis for every probe point of `config` and averages the results.

    Parameters
    ----------
    rf_deg : array_like, shape (nTR,)
        RF train in degrees; complex values carry the RF phase.
    trajectory : sequence of sequences of TrajectoryElement
        k-space samples of each repetition.
    config : AnalysisConfig
    signal_model : object, optional
        Provides simulate_magnetization and simulate_derivatives; by default the FISP EPG model
        of `rf_deg`.
    hooks : PlotHooks, optional
        Receives the plot events listed in config.plot_types.
    fisher_sink : FisherSink, optional
        Receives the Fisher matrix array of every probe.

    Returns
    -------
    (AnalysisResult, list of ProbeResult)

    Raises
    ------
    NotImplementedError
        If the surrogate signal model is requested.
    """
    if config.use_surrogate:
        raise NotImplementedError("Surrogate model not supported at the moment")

    rf_deg = np.asarray(rf_deg, dtype = np.complex128)
    if len(rf_deg) != len(trajectory):
        raise ValueError(f"RF train has {len(rf_deg)} pulses but the trajectory has {len(trajectory)} repetitions")
    hooks = hooks or PlotHooks()
    signal_model = signal_model or build_signal_model(rf_deg, config)
    probe_points = config.probe_points

    if len(config.plot_types) > 0:
        hooks.close()
    if "first" in config.plot_types:
        hooks.first(rf_deg, trajectory, config)
    if "trajectories" in config.plot_types:
        hooks.trajectories(trajectory)

    logger.info(f"analysing {len(trajectory)} repetitions on a {config.nky}x{config.nkz} grid "
                f"over {len(probe_points)} probe points")

    b1factors2_all = np.zeros(N_PARS)
    noises_all = np.zeros(N_PARS)
    information_all = 0.0
    probes = []
    for index, (T1test, T2test) in enumerate(probe_points):
        probe = analyze_single_probe(T1test, T2test, trajectory, config, signal_model, hooks)
        b1factors2_all += probe.b1_factors ** 2
        noises_all += probe.noises
        information_all += probe.information
        probes.append(probe)
        if fisher_sink is not None:
            fisher_sink.store(index, config.rf_tag, probe.fisher, T1 = T1test, T2 = T2test)

    penalty = csf_penalty(signal_model, probe_points) if config.lambda_csf > 0.0 else 0.0

    n_probes = len(probe_points)
    if n_probes == 1:
        b1factors_rms = probes[-1].b1_factors
    else:
        b1factors_rms = np.sqrt(b1factors2_all / n_probes)
    noises_all /= n_probes
    information_all /= n_probes

    if "noise_bars" in config.plot_types:
        hooks.noise_bars(rf_deg * (np.pi / 180), trajectory, noises_all)

    logger.info(f"noises (rho, T1, T2) = {noises_all}, information = {information_all:.4g}")
    return AnalysisResult(noises_all, information_all, b1factors_rms, penalty), probes


def analyze_sequence(rf_deg, trajectory, config, signal_model = None, hooks = None, fisher_sink = None):
    """
    Predicted noise levels and information content of an RF train and trajectory.

    Returns
    -------
    AnalysisResult
        (noises, information, b1_factors, csf_penalty), probe-set averages.
    """
    result, _ = evaluate_probe_set(rf_deg, trajectory, config, signal_model, hooks, fisher_sink)
    return result
