# src/cases_from_deaths/simulate/simulate_paths.py
"""
Configuration and parameter sweep: one ensemble per (R, CFR) combination,
summarised at the evaluation date.
"""

import datetime as dt
import json
import logging
import math
import pathlib
from dataclasses import dataclass, field, fields
from itertools import product
from multiprocessing import Pool
from typing import List, Optional, Tuple

import pandas as pd
from numpy.random import SeedSequence

# Import API
from ..errors import CasesFromDeathsError, DateAlignmentError, InvalidParameter
from ..summary.summary_statistics import SummaryRow, summarise, summary_table
from .batch_processing import Ensemble, generate_ensemble
from .delay_distribution import (
    ONSET_TO_DEATH_MAX,
    ONSET_TO_DEATH_MIN,
    ONSET_TO_DEATH_RATE,
    ONSET_TO_DEATH_SHAPE,
    SERIAL_INTERVAL_MEAN,
    SERIAL_INTERVAL_SD,
    onset_to_death,
    serial_interval,
)
from .impute_onsets import DeathEvent, as_date, death_events_from_counts

# Start logger
logger = logging.getLogger(__name__)


@dataclass
class SimConfig:
    """Everything one sweep needs. Validated on construction.

    If ``death_dates`` is empty, ``death_counts`` are taken to be the daily
    counts of the last ``len(death_counts)`` days, ending on ``eval_date``.
    """

    eval_date: dt.date = field(default_factory=dt.date.today)
    death_counts: Tuple[int, ...] = (1,)
    death_dates: Tuple[dt.date, ...] = ()
    R_values: Tuple[float, ...] = (1.5, 2.0, 3.0)
    cfr_values: Tuple[float, ...] = (0.01, 0.02, 0.03)
    n_sim: int = 200
    mean_serial: float = SERIAL_INTERVAL_MEAN
    std_serial: float = SERIAL_INTERVAL_SD
    onset_death_shape: float = ONSET_TO_DEATH_SHAPE
    onset_death_rate: float = ONSET_TO_DEATH_RATE
    min_delay: int = ONSET_TO_DEATH_MIN
    max_delay: int = ONSET_TO_DEATH_MAX
    seed: Optional[int] = None
    n_workers: int = 1

    def __post_init__(self):
        self.eval_date = as_date(self.eval_date)
        self.death_counts = tuple(int(n) for n in self.death_counts)
        if self.death_dates:
            self.death_dates = tuple(as_date(d) for d in self.death_dates)
        else:
            n = len(self.death_counts)
            self.death_dates = tuple(
                self.eval_date - dt.timedelta(days=n - 1 - i) for i in range(n)
            )
        self.R_values = tuple(float(r) for r in self.R_values)
        self.cfr_values = tuple(float(c) for c in self.cfr_values)
        self.validate()

    def validate(self) -> None:
        """Raise InvalidParameter / DateAlignmentError on a bad configuration."""
        if not self.R_values or any(not math.isfinite(r) or r < 0 for r in self.R_values):
            raise InvalidParameter(f"R values must be finite, >= 0 and non-empty: {self.R_values}")
        if not self.cfr_values or any(not 0.0 < c <= 1.0 for c in self.cfr_values):
            raise InvalidParameter(f"CFR values must lie in (0, 1]: {self.cfr_values}")
        if int(self.n_sim) != self.n_sim or self.n_sim < 1:
            raise InvalidParameter(f"n_sim must be a positive integer, got {self.n_sim}")
        if self.n_workers < 1:
            raise InvalidParameter("n_workers must be >= 1")
        if self.min_delay < 0 or self.min_delay > self.max_delay:
            raise InvalidParameter(f"Invalid delay bounds [{self.min_delay}, {self.max_delay}]")
        if len(self.death_dates) != len(self.death_counts):
            raise InvalidParameter("death_dates and death_counts must have the same length")
        if sum(self.death_counts) < 1:
            raise InvalidParameter("At least one death is required")
        if any(d > self.eval_date for d in self.death_dates):
            raise DateAlignmentError(f"Deaths reported after the evaluation date {self.eval_date}")
        # Constructing the distributions checks their parameters
        self.serial_interval()
        self.onset_to_death()

    # ---------- derived objects ----------

    def serial_interval(self):
        return serial_interval(self.mean_serial, self.std_serial)

    def onset_to_death(self):
        return onset_to_death(self.onset_death_shape, self.onset_death_rate)

    def death_events(self) -> List[DeathEvent]:
        return death_events_from_counts(self.death_dates, self.death_counts)

    # ---------- loading ----------

    @classmethod
    def from_dict(cls, data: dict) -> "SimConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise InvalidParameter(f"Unknown configuration key(s): {unknown}")
        kwargs = dict(data)
        for key in ("death_counts", "death_dates", "R_values", "cfr_values"):
            if key in kwargs:
                kwargs[key] = tuple(kwargs[key])
        return cls(**kwargs)


def load_config(path, **overrides) -> SimConfig:
    """Read a JSON configuration; keyword overrides win over the file."""
    path = pathlib.Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with path.open("r") as fh:
        data = json.load(fh)
    if not isinstance(data, dict):
        raise InvalidParameter(f"Config file must hold a JSON object: {path}")
    data.update({k: v for k, v in overrides.items() if v is not None})
    return SimConfig.from_dict(data)


def parameter_grid(cfg: SimConfig) -> List[Tuple[float, float]]:
    """All (R, cfr) combinations, R varying slowest."""
    return list(product(cfg.R_values, cfg.cfr_values))


def simulate_combination(cfg: SimConfig, R: float, cfr: float, seed=None) -> Ensemble:
    """Ensemble of daily incidence for one (R, CFR) combination."""
    return generate_ensemble(
        death_events=cfg.death_events(),
        onset_delay=cfg.onset_to_death(),
        serial_interval=cfg.serial_interval(),
        R=R,
        cfr=cfr,
        n_sim=cfg.n_sim,
        eval_date=cfg.eval_date,
        seed=seed,
        min_delay=cfg.min_delay,
        max_delay=cfg.max_delay,
    )


def _run_combination(task) -> Optional[SummaryRow]:
    """Worker: one combination -> SummaryRow, or None if it failed."""
    cfg, R, cfr, seed = task
    try:
        ensemble = simulate_combination(cfg, R, cfr, seed=seed)
    except CasesFromDeathsError as exc:
        logger.warning("Skipping R=%g cfr=%g: %s", R, cfr, exc)
        return None
    row = summarise(ensemble, cfg.eval_date, R=R, cfr=cfr)
    logger.info("R=%g cfr=%g -> average %d [%d, %d]", R, cfr, row.average, row.lower_95, row.upper_95)
    return row


def sweep_rows(cfg: SimConfig) -> Tuple[SummaryRow, ...]:
    """Run every combination and return the successful rows in grid order.

    Each combination gets its own child SeedSequence, so its result depends
    only on (seed, position in the grid) and not on the worker count.
    """
    combos = parameter_grid(cfg)
    children = SeedSequence(cfg.seed).spawn(len(combos))
    tasks = [(cfg, R, cfr, child) for (R, cfr), child in zip(combos, children)]
    logger.info("Sweeping %d combination(s), n_sim=%d, workers=%d", len(tasks), cfg.n_sim, cfg.n_workers)

    if cfg.n_workers > 1 and len(tasks) > 1:
        with Pool(min(cfg.n_workers, len(tasks))) as pool:
            results = pool.map(_run_combination, tasks)
    else:
        results = [_run_combination(task) for task in tasks]

    rows = tuple(r for r in results if r is not None)
    if len(rows) < len(tasks):
        logger.warning("%d of %d combination(s) failed", len(tasks) - len(rows), len(tasks))
    return rows


def run_sweep(cfg: SimConfig) -> pd.DataFrame:
    """Summary table (R, cfr, average, lower_95, lower_50, upper_50, upper_95)."""
    return summary_table(sweep_rows(cfg))
