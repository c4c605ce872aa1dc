#!/usr/bin/env python3
# src/cases_from_deaths/runner.py — command line runner

import argparse
import logging
import re
import sys
import time
from typing import List, Optional

import pandas as pd

from .errors import CasesFromDeathsError
from .simulate import simulate_paths as sim


# Parser for lists like 1,2,3
def parse_int_list(s: Optional[str]) -> List[int]:
    if not s:
        return []
    return [int(x) for x in re.split(r"[,\s;]+", s.strip()) if x]


def parse_float_list(s: Optional[str]) -> List[float]:
    if not s:
        return []
    return [float(x) for x in re.split(r"[,\s;]+", s.strip()) if x]


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Estimate circulating cases from recent deaths")
    p.add_argument("-v", "--verbose", action="store_true", help="Log sweep progress")
    sub = p.add_subparsers(dest="cmd", required=True)

    # ---------- estimate ----------
    est_p = sub.add_parser("estimate", help="Simulate case counts for a grid of (R, CFR) values")
    est_p.add_argument("--config", default=None, metavar="PATH",
                    help="JSON configuration file; command line options override it")
    est_p.add_argument("--today", default=None, metavar="DATE",
                    help="Evaluation date, YYYY-MM-DD (default: today)")
    est_p.add_argument("--deaths", type=str, default=None, metavar="LIST",
                    help="Daily death counts ending today, comma separated (default: '1')")
    est_p.add_argument("--R", dest="R_values", type=str, default=None, metavar="LIST",
                    help="Reproduction numbers to sweep (default: '1.5,2,3')")
    est_p.add_argument("--cfr", dest="cfr_values", type=str, default=None, metavar="LIST",
                    help="Case fatality ratios to sweep (default: '0.01,0.02,0.03')")
    est_p.add_argument("-N", "--n-sim", dest="n_sim", type=int, default=None, metavar="N",
                    help="Simulations per combination (default: 200)")
    est_p.add_argument("--seed", type=int, default=None, metavar="SEED",
                    help="RNG seed for reproducibility")
    est_p.add_argument("--workers", dest="n_workers", type=int, default=None, metavar="N",
                    help="Worker processes for the sweep (default: 1)")
    return p


def config_from_args(args) -> sim.SimConfig:
    overrides = {
        "eval_date": args.today,
        "death_counts": parse_int_list(args.deaths) or None,
        "R_values": parse_float_list(args.R_values) or None,
        "cfr_values": parse_float_list(args.cfr_values) or None,
        "n_sim": args.n_sim,
        "seed": args.seed,
        "n_workers": args.n_workers,
    }
    if args.config:
        return sim.load_config(args.config, **overrides)
    return sim.SimConfig.from_dict({k: v for k, v in overrides.items() if v is not None})


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    t0 = time.perf_counter()

    if args.cmd == "estimate":
        try:
            cfg = config_from_args(args)
            table = sim.run_sweep(cfg)
        except (CasesFromDeathsError, FileNotFoundError) as exc:
            print(f"error: {exc}", file=sys.stderr)
            return 2
        print(f"Estimated cumulative cases on {cfg.eval_date} "
              f"({sum(cfg.death_counts)} death(s), n_sim={cfg.n_sim})")
        with pd.option_context("display.width", 120):
            print(table.to_string(index=False))

    print(f"Done in {time.perf_counter() - t0:.2f}s")
    return 0


if __name__ == "__main__":
    sys.exit(main())
