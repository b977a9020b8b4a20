import logging

import jax
import jax.numpy as jnp
import numpy as np
jax.config.update("jax_enable_x64", True)

from fisher_assembly import weight_rows
from fisher_config import ConfigurationError
from kspace_binning import k0_rows


logger = logging.getLogger(__name__)

N_PARS = 3
B1_CONTROL_POINTS = np.round(np.linspace(0.80, 1.20, 21), 2)


def coupling_factors(W, Wb1, regularization):
    """
    Coupling H0 W^H w_b1 between a B1 column and the (rho, T1, T2) estimates.

    Parameters
    ----------
    W : array_like, shape (n_rows, 3), complex
    Wb1 : array_like, shape (n_rows,), complex
    regularization : array_like, shape (>=3, >=3)

    Returns
    -------
    jax.Array, shape (3,), complex
    """
    W = jnp.asarray(W, dtype = jnp.complex128)
    Wb1 = jnp.asarray(Wb1, dtype = jnp.complex128)
    JhJ = jnp.conj(W).T @ W
    H0 = jnp.linalg.inv(JhJ + jnp.asarray(regularization)[:N_PARS, :N_PARS])
    return H0 @ (jnp.conj(W).T @ Wb1)


def derivative_at_1(bins, regularization, center):
    """
    B1 sensitivity from the B1 derivative column at the central k-space cell.

    Conjugate rows inserted at k=0 for the symmetry assumption are removed first; they only
    serve the noise-variance computation and would bias the sensitivity.
    """
    keep = ~bins.duplicate[center]
    W = bins.rows[center][keep, :N_PARS]
    Wb1 = bins.rows[center][keep, N_PARS]
    return np.real(np.asarray(coupling_factors(W, Wb1, regularization)))


def multi_point(signal_model, trajectory, T1, T2, regularization, max_meas, values = False):
    """
    RMS B1 sensitivity over the B1 control points 0.80, 0.82, ..., 1.20.

    Parameters
    ----------
    signal_model : object
    trajectory : sequence of sequences of TrajectoryElement
    T1, T2 : float
        Probe point.
    regularization : array_like
    max_meas : int
        Maximum number of k=0 rows used.
    values : bool
        If False the B1 column is dm/dB1 at the control point. If True it is the discrepancy
        m(B1) - m(1.0); the rho/T1/T2 Jacobian is then taken halfway between 1.0 and the
        control point, assuming it is rather constant over that range.

    Returns
    -------
    numpy.ndarray, shape (3,)
    """
    b1factors2 = np.zeros(N_PARS)
    if values:
        m_ideal = np.asarray(signal_model.simulate_magnetization(np.array([[T1, T2, 1.0]])))[0]

    for b1 in B1_CONTROL_POINTS:
        b1midway = (1.0 + b1) / 2.0 if values else b1
        wlocal = weight_rows(signal_model, T1, T2, b1midway, n_nuisances = 1)
        if values:
            m_b1 = np.asarray(signal_model.simulate_magnetization(np.array([[T1, T2, b1]])))[0]
            wlocal[:, N_PARS] = m_b1 - m_ideal

        wmatK0 = k0_rows(trajectory, wlocal, max_meas)
        b1fcpx = coupling_factors(wmatK0[:, :N_PARS], wmatK0[:, N_PARS], regularization)
        b1factors2 += np.abs(np.asarray(b1fcpx)) ** 2

    b1factors = np.sqrt(b1factors2 / len(B1_CONTROL_POINTS))
    logger.debug(f"B1 factors for (T1,T2)=({T1:.3f},{T2:.3f}) over {len(B1_CONTROL_POINTS)} control points: {b1factors}")
    return b1factors


def b1_factors(metric, bins, center, signal_model, trajectory, T1, T2, regularization, max_meas):
    """Dispatches to the B1 sensitivity algorithm named by `metric`."""
    if metric == "derivative_at_1":
        return derivative_at_1(bins, regularization, center)
    elif metric in ("multi_point", "multi_point_values"):
        return multi_point(signal_model, trajectory, T1, T2, regularization, max_meas,
                           values = (metric == "multi_point_values"))
    raise ConfigurationError(f"Unknown B1 metric '{metric}', expected 'derivative_at_1', 'multi_point' or 'multi_point_values'")
