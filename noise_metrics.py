import jax
import jax.numpy as jnp
import numpy as np
jax.config.update("jax_enable_x64", True)

from fisher_config import ConfigurationError
from kspace_binning import effective_ky_count


PRIMARY_PARAMETERS = ("rho", "T1", "T2")


def normalized_expected_signal2(n_tr, TR, T1_ref, T2_ref, nky, nkz):
    """
    Normalized expected signal squared ("nes2").

    Scales the Fisher diagonals such that a rho-only reconstruction has a noise level of about 1.
    """
    return 2.0 * 4.0 * (n_tr * TR + T1_ref) * T2_ref / (nky * nkz * (T1_ref + T2_ref) ** 2)


def noise_levels(total_fisher, nky_eff, nkz, nes2):
    """RMS noise of rho, T1 and T2 from the cell-summed Fisher matrix."""
    diagonal = jnp.abs(jnp.diagonal(total_fisher)[:len(PRIMARY_PARAMETERS)])
    return np.asarray(jnp.sqrt(diagonal / nky_eff / nkz) * jnp.sqrt(nes2))


def signal_power_model(nky, nkz, use_symmetry):
    """
    Modelled signal power of every cell, decaying with the distance from the k-space centre.

    Returns
    -------
    numpy.ndarray, shape (nky_eff, nkz)
    """
    nky_eff = effective_ky_count(nky, use_symmetry)
    ky0 = 0 if use_symmetry else nky // 2
    kz0 = nkz // 2
    peval_y = ((np.arange(nky_eff) - ky0) ** 2 + 1.0) / ((nky // 2) ** 2 + 1.0)
    peval_z = ((np.arange(nkz) - kz0) ** 2 + 1.0) / ((nkz // 2) ** 2 + 1.0)
    if nkz > 1:
        return (peval_y[:, None] + peval_z[None, :]) ** (-1.5)
    return (peval_y ** (-1.0))[:, None]


def information_map(diagonals, ps, nes2, sigma_ref):
    """
    Information content log(ps / pn + 1) per cell and parameter, with pn = nes2 * sigma_ref^2 * |H_pp|.
    """
    pn = nes2 * sigma_ref ** 2 * jnp.abs(diagonals)
    return np.asarray(jnp.log(jnp.asarray(ps)[:, :, None] / pn + 1.0))


def information_content(info_map, focus, weights = (1.0, 1.0, 1.0)):
    """
    Reduces an information map to the scalar selected by `focus`.

    Parameters
    ----------
    info_map : array_like, shape (nky_eff, nkz, 3)
    focus : str
        "rho", "T1" or "T2" for that parameter's total; "total" for the sum over all cells and
        parameters; "mean" and "max" for the mean and maximum of the three totals; "weighted"
        for the totals weighted by `weights`.
    weights : sequence of float

    Returns
    -------
    float
    """
    totals = np.sum(np.asarray(info_map), axis = (0, 1))
    if focus in PRIMARY_PARAMETERS:
        return float(totals[PRIMARY_PARAMETERS.index(focus)])
    if focus == "total":
        return float(np.sum(totals))
    if focus == "mean":
        return float(np.mean(totals))
    if focus == "max":
        return float(np.max(totals))
    if focus == "weighted":
        return float(np.dot(np.asarray(weights, dtype = np.float64), totals))
    raise ConfigurationError(f"Unknown information focus '{focus}'")
