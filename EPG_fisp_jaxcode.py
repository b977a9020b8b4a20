import jax.numpy as jnp
import numpy as np
from jax import lax
import jax
from functools import partial
jax.config.update("jax_enable_x64", True)


FINITE_DIFFERENCE_STEP = 1e-4
FIT_PARAMETER_INDEX = {"T1": 0, "T2": 1, "B1": 2}


@partial(jax.jit, static_argnums = (1,))
def epg_grad(states, shift = 1):
    """
    Dephasing by a spoiler gradient of `shift` dephasing orders.

    Parameters
    ----------
    states : jax.Array, shape (3, n_states)
        Rows F+, F- and Z of the configuration states.
    shift : int
        Dephasing orders added by the gradient.

    Returns
    -------
    jax.Array, shape (3, n_states)
        F+ moved to higher orders, F- to lower orders, Z untouched. Orders pushed past the last
        tracked state are lost, and F+0 is refilled from the conjugate of the new F-0.
    """
    n_states = states.shape[1]
    f_plus = jnp.roll(states[0], shift)
    f_minus = jnp.roll(states[1], -shift)
    f_minus = lax.dynamic_update_slice(f_minus, jnp.zeros(shift, dtype = states.dtype), (n_states - shift,))
    f_plus = f_plus.at[0].set(jnp.conj(f_minus[0]))
    return jnp.stack([f_plus, f_minus, states[2]])


@partial(jax.jit, static_argnums = (4, 5))
def epg_relax(states, T1, T2, T, shift = 1, spoil = 1.):
    """
    Free precession over `T` seconds: T2 decay of F+/F-, T1 recovery of Z0 and, if `spoil` is 1,
    a gradient of `shift` orders at the end.
    """
    decay = jnp.exp(-T / T2)
    recovery = jnp.exp(-T / T1)
    scale = jnp.array([decay, decay, recovery], dtype = jnp.complex128)

    states = states * scale[:, None]
    states = states.at[2, 0].add(1.0 - recovery)
    if spoil == 1.0:
        states = epg_grad(states, shift)

    return states


@jax.jit
def epg_rf(states, alpha, phi = (-jnp.pi / 2)):
    """
    Rotates the configuration states by an RF pulse of flip angle `alpha` about the transverse
    axis at phase `phi` (radians).
    """
    cos_half2 = jnp.cos(alpha / 2) ** 2
    sin_half2 = jnp.sin(alpha / 2) ** 2
    sin_alpha = jnp.sin(alpha)
    phase = jnp.exp(1j * phi)

    rotation = jnp.array([
        [cos_half2, phase ** 2 * sin_half2, -1j * phase * sin_alpha],
        [jnp.conj(phase) ** 2 * sin_half2, cos_half2, 1j * jnp.conj(phase) * sin_alpha],
        [-0.5j * jnp.conj(phase) * sin_alpha, 0.5j * phase * sin_alpha, jnp.cos(alpha)],
    ])
    return rotation @ states


@partial(jax.jit, static_argnames = ("n_states", "n_repeat", "inversion"))
def fisp_echoes(alpha, phi, T1, T2, B1, TR, TE, TI, T_wait, n_states = 20, n_repeat = 1, inversion = False):
    """
    Simulates a gradient-spoiled (FISP) train and returns the F0+ echo of every repetition.

    Parameters
    ----------
    alpha : array_like, shape (nTR,)
        Nominal flip angles (radians).
    phi : array_like, shape (nTR,)
        RF phases (radians).
    T1, T2 : float
        Relaxation times (s).
    B1 : float
        Relative transmit scale; multiplies every flip angle of the train.
    TR, TE : float
        Repetition and echo time (s).
    TI : float
        Delay between the inversion pulse and the train (s), only used if `inversion`.
    T_wait : float
        Free relaxation after each pass of the train (s).
    n_states : int
        Number of EPG orders tracked.
    n_repeat : int
        Number of passes of the train; echoes of the last pass are returned.
    inversion : bool
        Apply an ideal inversion before each pass.

    Returns
    -------
    jax.Array, shape (nTR,), complex
        Transverse magnetization at the echo time of each repetition.
    """
    states = jnp.zeros((3, n_states), dtype = jnp.complex128).at[2, 0].set(1.0)

    def scan_fn(states, inputs):
        a, p = inputs
        states = epg_rf(states, B1 * a, p)
        states = epg_relax(states, T1, T2, TE, 1, 0.)
        echo = states[0, 0]
        states = epg_relax(states, T1, T2, TR - TE, 1, 1.)
        return states, echo

    echoes = jnp.zeros(alpha.shape, dtype = jnp.complex128)
    for _ in range(n_repeat):
        if inversion:
            states = epg_rf(states, jnp.pi, 0.0)
            states = epg_relax(states, T1, T2, TI, 1, 1.)
        states, echoes = lax.scan(scan_fn, states, (alpha, phi))
        states = epg_relax(states, T1, T2, T_wait, 1, 0.)

    return echoes


class FISPSequence:
    """
    RF train and timing of a FISP acquisition.

    `RFdeg` is complex: its magnitude is the flip angle in degrees and its argument the RF phase.
    """

    def __init__(self, RFdeg, TR, TE, max_state, TI = 20.0, T_wait = 0.0, n_repeat = 1, inversion = False):
        RFdeg = np.asarray(RFdeg, dtype = np.complex128)
        self.RFdeg = RFdeg
        self.alpha = jnp.asarray(np.deg2rad(np.abs(RFdeg)))
        self.phi = jnp.asarray(np.angle(RFdeg))
        self.TR = float(TR)
        self.TE = float(TE)
        self.TI = float(TI)
        self.T_wait = float(T_wait)
        self.n_states = int(max_state)
        self.n_repeat = int(n_repeat)
        self.inversion = bool(inversion)

    def __len__(self):
        return len(self.RFdeg)

    def echoes(self, T1, T2, B1):
        return fisp_echoes(self.alpha, self.phi, T1, T2, B1, self.TR, self.TE, self.TI, self.T_wait,
                           n_states = self.n_states, n_repeat = self.n_repeat, inversion = self.inversion)


def as_tissues(tissues):
    """Returns tissue parameters as a float64 (P, 3) array of (T1, T2, B1); B1 defaults to 1."""
    tissues = np.atleast_2d(np.asarray(tissues, dtype = np.float64))
    if tissues.shape[1] == 2:
        tissues = np.concatenate([tissues, np.ones((tissues.shape[0], 1))], axis = 1)
    if tissues.shape[1] != 3:
        raise ValueError(f"Tissue parameters must be (T1, T2) or (T1, T2, B1) rows, got shape {tissues.shape}")
    return tissues


def simulate_magnetization(sequence, tissues):
    """
    Simulates the echo train of `sequence` for every row of `tissues`.

    Returns
    -------
    numpy.ndarray, shape (P, nTR), complex
    """
    tissues = jnp.asarray(as_tissues(tissues))
    batch = jax.vmap(lambda p: sequence.echoes(p[0], p[1], p[2]))
    return np.asarray(batch(tissues))


def simulate_derivatives_finite_difference(fit_parameters, m, sequence, tissues, step = FINITE_DIFFERENCE_STEP):
    """
    Forward finite-difference derivatives of the magnetization with respect to `fit_parameters`.

    All perturbed tissues are simulated in a single vmapped call.

    Parameters
    ----------
    fit_parameters : sequence of str
        Any of "T1", "T2", "B1".
    m : numpy.ndarray, shape (P, nTR)
        Magnetization at the unperturbed tissues.
    sequence : FISPSequence
    tissues : array_like, shape (P, 2) or (P, 3)
    step : float
        Absolute perturbation applied to each parameter.

    Returns
    -------
    dict
        Maps each fit parameter to a complex (P, nTR) derivative array.
    """
    tissues = as_tissues(tissues)
    perturbed = []
    for name in fit_parameters:
        shifted = tissues.copy()
        shifted[:, FIT_PARAMETER_INDEX[name]] += step
        perturbed.append(shifted)
    m_shifted = simulate_magnetization(sequence, np.concatenate(perturbed, axis = 0))
    m_shifted = m_shifted.reshape(len(fit_parameters), tissues.shape[0], -1)
    return {name: (m_shifted[i] - m) / step for i, name in enumerate(fit_parameters)}


class FISPSignalModel:
    """Signal model backed by the EPG simulation of a FISPSequence."""

    def __init__(self, sequence):
        self.sequence = sequence

    def simulate_magnetization(self, tissues):
        return simulate_magnetization(self.sequence, tissues)

    def simulate_derivatives(self, tissues, fit_parameters = ("T1", "T2")):
        m = self.simulate_magnetization(tissues)
        return simulate_derivatives_finite_difference(fit_parameters, m, self.sequence, tissues)
