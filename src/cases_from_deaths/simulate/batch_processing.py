#
# **batch_processing.py**

# Purpose: this file calls `impute_onsets` and `simulate_trajectory` as many
# times as needed to build an ensemble of n_sim realizations. One
# realization = fresh onset imputation + one trajectory per onset cohort,
# summed on a shared date axis.

# Functions:
# - generate_ensemble()
#   - Input: death events, delay distributions, R, CFR, n_sim, evaluation date.
#   - Output: Ensemble, a (n_sim, n_dates) array of daily incidence.
#
from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from typing import Iterable, Union

import numpy as np
import pandas as pd
from numpy.random import SeedSequence, default_rng

from ..errors import DateAlignmentError, InvalidParameter
from .delay_distribution import ONSET_TO_DEATH_MAX, ONSET_TO_DEATH_MIN, DelayDistribution
from .generate_single_trajectory import Trajectory, check_R, simulate_trajectory
from .impute_onsets import DeathEvent, as_date, check_cfr, impute_onsets

logger = logging.getLogger(__name__)

SeedLike = Union[None, int, SeedSequence]


@dataclass(frozen=True, eq=False)
class Ensemble:
    """``n_sim`` realizations aligned on one daily date axis.

    values[i, j] is the case count of realization i on dates[j]. The array is
    made read-only on construction.
    """

    dates: pd.DatetimeIndex
    values: np.ndarray

    def __post_init__(self):
        values = np.array(self.values, dtype=float)
        if values.ndim != 2:
            raise ValueError("values must be a 2D array (n_sim, n_dates)")
        if values.shape[1] != len(self.dates):
            raise ValueError(
                f"values has {values.shape[1]} columns but there are {len(self.dates)} dates"
            )
        values.setflags(write=False)
        object.__setattr__(self, "values", values)
        object.__setattr__(self, "dates", pd.DatetimeIndex(self.dates))

    @property
    def n_sim(self) -> int:
        return self.values.shape[0]

    def realization(self, i: int) -> pd.Series:
        return pd.Series(self.values[i], index=self.dates, name=f"sim_{i + 1}")

    def date_index(self, date) -> int:
        """Column index of ``date``; DateAlignmentError if it is not on the axis."""
        ts = pd.Timestamp(as_date(date))
        if ts not in self.dates:
            raise DateAlignmentError(
                f"{ts.date()} is outside the ensemble range "
                f"{self.dates[0].date()}..{self.dates[-1].date()}"
            )
        return int(self.dates.get_loc(ts))

    def at(self, date) -> np.ndarray:
        """Values of every realization on ``date``."""
        return self.values[:, self.date_index(date)]

    def to_frame(self) -> pd.DataFrame:
        """Long format (sim, date, cases), for plotting/reporting code."""
        n_sim, n_dates = self.values.shape
        return pd.DataFrame({
            "sim": np.repeat(np.arange(1, n_sim + 1), n_dates),
            "date": np.tile(self.dates.values, n_sim),
            "cases": self.values.ravel(),
        })


def _add_trajectory(realization: np.ndarray, axis_start: dt.date, traj: Trajectory) -> None:
    offset = (traj.start_date - axis_start).days
    realization[offset : offset + len(traj.counts)] += traj.counts


def generate_ensemble(
    death_events: Iterable[DeathEvent],
    onset_delay: DelayDistribution,
    serial_interval: DelayDistribution,
    R: float,
    cfr: float,
    n_sim: int,
    eval_date,
    seed: SeedLike = None,
    min_delay: int = ONSET_TO_DEATH_MIN,
    max_delay: int = ONSET_TO_DEATH_MAX,
) -> Ensemble:
    """Simulate n_sim possible epidemic histories consistent with the deaths.

    Each iteration re-samples the onset dates and gets its own generator
    spawned from ``seed``, so iterations share no random state.

    Raises:
        InvalidParameter, DateAlignmentError, SamplingExhaustion
    """
    # Fail fast, before any simulation
    R = check_R(R)
    cfr = check_cfr(cfr)
    if int(n_sim) != n_sim or n_sim < 1:
        raise InvalidParameter(f"n_sim must be a positive integer, got {n_sim}")
    if min_delay < 0 or min_delay > max_delay:
        raise InvalidParameter(f"Invalid delay bounds [{min_delay}, {max_delay}]")
    events = list(death_events)
    if not events:
        raise InvalidParameter("At least one death event is required")
    eval_date = as_date(eval_date)
    last_death = max(e.date for e in events)
    if eval_date < last_death:
        raise DateAlignmentError(
            f"Evaluation date {eval_date} is before the last reported death ({last_death})"
        )

    # Every onset date falls on [first death - max_delay, eval_date]
    axis_start = min(e.date for e in events) - dt.timedelta(days=max_delay)
    dates = pd.date_range(axis_start, eval_date, freq="D")

    seq = seed if isinstance(seed, SeedSequence) else SeedSequence(seed)
    values = np.zeros((int(n_sim), len(dates)), dtype=float)

    for i, child in enumerate(seq.spawn(int(n_sim))):
        rng = default_rng(child)
        cohorts = impute_onsets(events, onset_delay, cfr, rng=rng, min_delay=min_delay, max_delay=max_delay)
        for cohort in cohorts:
            traj = simulate_trajectory(
                onset_date=cohort.onset_date,
                seed_cases=cohort.case_count,
                R=R,
                serial_interval=serial_interval,
                end_date=eval_date,
                rng=rng,
            )
            _add_trajectory(values[i], axis_start, traj)

    logger.debug(
        "Ensemble R=%.3g cfr=%.3g: %d realization(s) over %d day(s)", R, cfr, n_sim, len(dates)
    )
    return Ensemble(dates=dates, values=values)
