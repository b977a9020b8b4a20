import logging
from collections import namedtuple

import numpy as np


logger = logging.getLogger(__name__)

TrajectoryElement = namedtuple("TrajectoryElement", ["ky", "kz"])

KSpaceBins = namedtuple("KSpaceBins", ["rows", "occupancy", "duplicate"])
KSpaceBins.__doc__ = """
Weight rows gathered per (ky, kz) cell.

rows : numpy.ndarray, shape (nky_eff, nkz, max_meas, n_cols), complex
    Stored weight rows; unused slots are zero.
occupancy : numpy.ndarray, shape (nky_eff, nkz), int
    Number of filled slots per cell.
duplicate : numpy.ndarray, shape (nky_eff, nkz, max_meas), bool
    True for the conjugate copies inserted at the k=0 symmetry point.
"""


def effective_ky_count(nky, use_symmetry):
    """Number of ky cells tracked; only ky >= 0 is kept under Hermitian symmetry."""
    return max(1, nky // 2) if use_symmetry else nky


def raised_cosine_split(k):
    """
    Splits a continuous k coordinate over its two neighbouring integer positions.

    Returns [(floor(k), cos(f*pi/2)), (floor(k) + 1, sin(f*pi/2))] with f the fractional part,
    so the squared weights always add up to one.
    """
    floor_k = int(np.floor(k))
    frac = k - floor_k
    return [(floor_k, np.cos(frac * np.pi / 2)), (floor_k + 1, np.sin(frac * np.pi / 2))]


def cell_index(ky, kz, nky, nkz, use_symmetry):
    """Grid index of the integer coordinate (ky, kz), or None if it lies outside the grid."""
    index_ky = ky if use_symmetry else ky + nky // 2
    index_kz = kz + nkz // 2
    if 0 <= index_ky < effective_ky_count(nky, use_symmetry) and 0 <= index_kz < nkz:
        return index_ky, index_kz
    return None


def center_cell(nky, nkz, use_symmetry):
    return cell_index(0, 0, nky, nkz, use_symmetry)


def bin_weight_rows(trajectory, weights, nky, nkz, max_meas, use_symmetry):
    """
    Distributes the weight row of every repetition over the k-space cells its samples touch.

    Parameters
    ----------
    trajectory : sequence of sequences of TrajectoryElement
        Samples acquired in each repetition.
    weights : array_like, shape (nTR, n_cols), complex
        Weight row (m, T1*dm/dT1, T2*dm/dT2[, dm/dB1]) of each repetition.
    nky, nkz : int
        Grid size.
    max_meas : int
        Capacity of a cell; rows arriving at a full cell are dropped.
    use_symmetry : bool
        Fold samples with ky < 0 onto (-ky, -kz) with conjugated rows, and enter the
        (0, 0) sample a second time as its conjugate.

    Returns
    -------
    KSpaceBins
    """
    weights = np.asarray(weights, dtype = np.complex128)
    if len(trajectory) != weights.shape[0]:
        raise ValueError(f"Trajectory has {len(trajectory)} repetitions but {weights.shape[0]} weight rows were given")

    nky_eff = effective_ky_count(nky, use_symmetry)
    rows = np.zeros((nky_eff, nkz, max_meas, weights.shape[1]), dtype = np.complex128)
    occupancy = np.zeros((nky_eff, nkz), dtype = int)
    duplicate = np.zeros((nky_eff, nkz, max_meas), dtype = bool)
    dropped = 0

    def deposit(cell, row, is_duplicate = False):
        nonlocal dropped
        slot = occupancy[cell]
        if slot >= max_meas:
            dropped += 1
            return
        rows[cell + (slot,)] = row
        duplicate[cell + (slot,)] = is_duplicate
        occupancy[cell] = slot + 1

    for i, samples in enumerate(trajectory):
        for sample in samples:
            ky, kz = sample
            adjoin = use_symmetry and ky < 0
            row = np.conj(weights[i]) if adjoin else weights[i]
            if adjoin:
                ky, kz = -ky, -kz

            for this_ky, w_ky in raised_cosine_split(ky):
                for this_kz, w_kz in raised_cosine_split(kz):
                    cell = cell_index(this_ky, this_kz, nky, nkz, use_symmetry)
                    if cell is None or w_ky * w_kz == 0:
                        continue
                    deposit(cell, row * (w_ky * w_kz))

            # k=0 is entered twice so that only the real part of its noise counts
            if use_symmetry and sample[0] == 0 and sample[1] == 0:
                deposit(center_cell(nky, nkz, use_symmetry), np.conj(weights[i]), is_duplicate = True)

    if dropped:
        logger.debug(f"{dropped} weight rows dropped at cells holding {max_meas} rows")
    return KSpaceBins(rows, occupancy, duplicate)


def k0_rows(trajectory, weights, max_meas):
    """
    Unscaled weight rows of the samples in the unit cell 0 <= ky < 1, 0 <= kz < 1.

    Returns
    -------
    numpy.ndarray, shape (max_meas, n_cols)
        The first `max_meas` such rows in trajectory order, zero padded.
    """
    weights = np.asarray(weights, dtype = np.complex128)
    rows = np.zeros((max_meas, weights.shape[1]), dtype = np.complex128)
    count = 0
    for i, samples in enumerate(trajectory):
        for ky, kz in samples:
            if 0 <= ky < 1 and 0 <= kz < 1:
                if count < max_meas:
                    rows[count] = weights[i]
                count += 1
    return rows


def trajectory_from_array(array):
    """
    Builds a trajectory from an array of (ky, kz) coordinates.

    Parameters
    ----------
    array : array_like, shape (nTR, 2) or (nTR, n_samples, 2)

    Returns
    -------
    list of list of TrajectoryElement
    """
    array = np.asarray(array, dtype = np.float64)
    if array.ndim == 2:
        array = array[:, None, :]
    if array.ndim != 3 or array.shape[-1] != 2:
        raise ValueError(f"Expected (nTR, 2) or (nTR, n_samples, 2) coordinates, got shape {array.shape}")
    return [[TrajectoryElement(float(ky), float(kz)) for ky, kz in samples] for samples in array]
