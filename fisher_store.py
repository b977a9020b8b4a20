import logging

import h5py
import numpy as np


logger = logging.getLogger(__name__)


class FisherSink:
    """Write-only destination for the per-probe Fisher matrix arrays of an analysis."""

    def store(self, probe_index, tag, fisher, T1 = None, T2 = None):
        raise NotImplementedError


class MemoryFisherSink(FisherSink):
    """Keeps the stored arrays in `self.matrices`, keyed by (probe_index, tag)."""

    def __init__(self):
        self.matrices = {}

    def store(self, probe_index, tag, fisher, T1 = None, T2 = None):
        self.matrices[(probe_index, tag)] = np.asarray(fisher)


class HDF5FisherSink(FisherSink):
    """
    Writes every stored array to the HDF5 file `path` as dataset "<tag>/<probe_index>",
    with the probe's T1 and T2 as attributes. An existing dataset of the same name is replaced.
    """

    def __init__(self, path):
        self.path = path

    def store(self, probe_index, tag, fisher, T1 = None, T2 = None):
        name = f"{tag or 'untagged'}/{probe_index}"
        with h5py.File(self.path, "a") as f:
            if name in f:
                del f[name]
            dataset = f.create_dataset(name, data = np.asarray(fisher))
            if T1 is not None:
                dataset.attrs["T1"] = T1
            if T2 is not None:
                dataset.attrs["T2"] = T2
        logger.debug(f"stored Fisher matrices {name} in {self.path}")


def list_datasets(path):
    """Paths of all datasets in the HDF5 file `path`."""
    with h5py.File(path, "r") as hdf:
        def walk(hdf_group, prefix = ""):
            datasets = []
            for key in hdf_group.keys():
                item = hdf_group[key]
                if isinstance(item, h5py.Dataset):
                    datasets.append(prefix + "/" + key)
                elif isinstance(item, h5py.Group):
                    datasets.extend(walk(item, prefix + "/" + key))
            return datasets
        return walk(hdf)


def read_fisher(path, tag, probe_index):
    with h5py.File(path, "r") as hdf:
        return hdf[f"{tag or 'untagged'}/{probe_index}"][()]
