import jax
import jax.numpy as jnp
import numpy as np
jax.config.update("jax_enable_x64", True)

from kspace_binning import effective_ky_count


# Regularization that removes a parameter from the reconstruction while keeping the matrix invertible
UNRECONSTRUCTED_REGULARIZATION = np.sqrt(np.finfo(np.float64).max)


def weight_rows(signal_model, T1, T2, B1 = 1.0, n_nuisances = 0):
    """
    Per-repetition weight rows of one tissue point.

    Parameters
    ----------
    signal_model : object
        Provides simulate_magnetization(tissues) and simulate_derivatives(tissues, fit_parameters).
    T1, T2, B1 : float
        Tissue point.
    n_nuisances : int
        1 to append the B1 derivative column, else 0.

    Returns
    -------
    numpy.ndarray, shape (nTR, 3 + n_nuisances), complex
        Columns m, T1 * dm/dT1, T2 * dm/dT2[, dm/dB1].
    """
    tissue = np.array([[T1, T2, B1]], dtype = np.float64)
    fit_parameters = ("T1", "T2", "B1") if n_nuisances > 0 else ("T1", "T2")
    m = np.asarray(signal_model.simulate_magnetization(tissue))[0]
    dm = signal_model.simulate_derivatives(tissue, fit_parameters)

    wlocal = np.zeros((m.shape[0], 3 + n_nuisances), dtype = np.complex128)
    wlocal[:, 0] = m
    wlocal[:, 1] = np.asarray(dm["T1"])[0] * T1
    wlocal[:, 2] = np.asarray(dm["T2"])[0] * T2
    if n_nuisances > 0:
        wlocal[:, 3] = np.asarray(dm["B1"])[0]
    return wlocal


def regularization_matrix(inv_reg, n_nuisances = 0, co_reconstruct = False):
    """
    Diagonal regularization matrix for (rho, T1, T2[, B1]).

    A co-reconstructed B1 is not regularized; a B1 nuisance that is only sensitivity-analysed
    must not influence the rho/T1/T2 noise and gets an effectively infinite entry.
    """
    diagonal = list(inv_reg)
    if n_nuisances > 0:
        diagonal.append(0.0 if co_reconstruct else UNRECONSTRUCTED_REGULARIZATION)
    return jnp.diag(jnp.asarray(diagonal, dtype = jnp.complex128))


@jax.jit
def cell_fisher_matrices(rows, regularization):
    """
    Computes the regularized inverse Gram matrix of every k-space cell.

    Parameters
    ----------
    rows : array_like, shape (nky_eff, nkz, max_meas, n_pars), complex
        Weight rows per cell; unused slots are zero and contribute nothing.
    regularization : array_like, shape (n_pars, n_pars)

    Returns
    -------
    jax.Array, shape (nky_eff, nkz, n_pars, n_pars), complex
        H = inv(W^H W + R) per cell.

    Notes
    -----
    Cells are independent; the inversion is batched over the leading two axes.
    """
    W = jnp.asarray(rows, dtype = jnp.complex128)
    JhJ = jnp.einsum('yzmi,yzmj->yzij', jnp.conj(W), W)
    return jnp.linalg.inv(JhJ + regularization)


def low_frequency_emphasis(nky, nkz, use_symmetry, a = 3.0, b = 3.0):
    """
    Weight 1 + b / ((ky/a)^2 + (kz/a)^2 + 1) of every cell.

    Noise at low k multiplies a variety of imperfections, so central cells count more.
    `a` is of the order of FOV/object size; `b` is the relative importance of artefacts at k=0.
    """
    nky_eff = effective_ky_count(nky, use_symmetry)
    ky = np.arange(nky_eff, dtype = np.float64)
    if not use_symmetry:
        ky -= nky // 2
    kz = np.arange(nkz, dtype = np.float64) - nkz // 2
    return 1 + b / ((ky[:, None] / a) ** 2 + (kz[None, :] / a) ** 2 + 1.0 ** 2)


def aggregate_fisher(fisher, emphasis = None):
    """Sum of the (optionally emphasized) Fisher matrices over all cells."""
    if emphasis is not None:
        fisher = fisher * jnp.asarray(emphasis)[:, :, None, None]
    return jnp.sum(fisher, axis = (0, 1))


def fisher_diagonals(fisher, n_pars = 3):
    """Per-cell diagonal entries of the first `n_pars` parameters, shape (nky_eff, nkz, n_pars)."""
    return jnp.diagonal(fisher, axis1 = -2, axis2 = -1)[..., :n_pars]
