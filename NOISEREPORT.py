import argparse
import logging
from time import time

import numpy as np
import pandas as pd

from fisher_config import ConfigurationError, load_config
from fisher_store import HDF5FisherSink
from kspace_binning import trajectory_from_array
from noise_analysis import evaluate_probe_set
from plot_hooks import MatplotlibPlotHooks, PlotHooks


def probe_table(probes):
    """One row per probe point: noises, information and B1 factors."""
    rows = []
    for probe in probes:
        rows.append({
            "T1 [ms]": 1000 * probe.T1,
            "T2 [ms]": 1000 * probe.T2,
            "noise rho": probe.noises[0],
            "noise T1": probe.noises[1],
            "noise T2": probe.noises[2],
            "information": probe.information,
            "B1 rho": probe.b1_factors[0],
            "B1 T1": probe.b1_factors[1],
            "B1 T2": probe.b1_factors[2],
        })
    return pd.DataFrame(rows)


def main(argv = None):

    parser = argparse.ArgumentParser(description = "Predict noise levels and information content of an RF train and k-space trajectory")
    parser.add_argument("--rf", type = str, required = True, help = "path to .npy file with the RF train in degrees (complex for RF phase)")
    parser.add_argument("--trajectory", type = str, required = True, help = "path to .npy file with (ky, kz) per repetition, shape (nTR, 2) or (nTR, n_samples, 2)")
    parser.add_argument("--config", type = str, help = "path to config yml file")
    parser.add_argument("--set", dest = "overrides", action = "append", default = [], metavar = "KEY=VALUE",
                        help = "override a config setting, may be repeated")
    parser.add_argument("--save-fisher", type = str, help = "HDF5 file receiving the per-probe Fisher matrices")
    parser.add_argument("--plots", type = str, help = "directory receiving the requested plots")
    parser.add_argument("--verbose", action = "store_true", help = "log progress messages")

    args = parser.parse_args(argv)
    logging.basicConfig(level = logging.INFO if args.verbose else logging.WARNING)

    try:
        config = load_config(args.config, dotlist = args.overrides)
    except ConfigurationError as err:
        parser.error(str(err))

    rf_deg = np.load(args.rf)
    trajectory = trajectory_from_array(np.load(args.trajectory))
    hooks = MatplotlibPlotHooks(args.plots) if args.plots else PlotHooks()
    sink = HDF5FisherSink(args.save_fisher) if args.save_fisher else None

    start_time = time()
    result, probes = evaluate_probe_set(rf_deg, trajectory, config, hooks = hooks, fisher_sink = sink)

    with pd.option_context("display.float_format", "{:.4g}".format, "display.width", 160):
        print(probe_table(probes).to_string(index = False))
    print()
    print(f"Noises (rho, T1, T2): {np.round(result.noises, 4)}")
    print(f"Information content ({config.info_focus}): {result.information:.4g}")
    if config.handle_b1 == "sensitivity":
        print(f"B1 factors (rho, T1, T2): {np.round(result.b1_factors, 4)}")
    if config.lambda_csf > 0:
        print(f"CSF penalty: {result.csf_penalty:.4g}")
    print("Analysis finished (running time: {0:.1f}s)".format(time() - start_time))
    return result


if __name__ == "__main__":
    main()
