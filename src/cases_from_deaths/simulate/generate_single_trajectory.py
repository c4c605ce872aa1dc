# ###
# **generate_single_trajectory.py**

# Purpose: this file produces a sequence of daily incident counts I_t for one
# onset cohort, from its onset date through the evaluation date. Day 0 holds
# the cohort's seed cases (deaths / CFR); every later day is a single Poisson
# draw with mean R * sum_s I_{t-s} w_s.

# Functions:
# - serial_interval_kernel()
#   - Input: discretised serial interval, number of lags.
#   - Output: w_1..w_n, the serial interval conditioned on lag >= 1.
# - simulate_trajectory()
#   - Input: onset date, seed cases, R, serial interval, end date, rng.
#   - Output: Trajectory (start date + daily counts).
# ###
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass

import numpy as np
import pandas as pd
from numpy.random import Generator, default_rng

from ..errors import DateAlignmentError, InvalidParameter
from .delay_distribution import DelayDistribution
from .impute_onsets import as_date


@dataclass(frozen=True, eq=False)
class Trajectory:
    """Daily incidence of one cohort-seeded simulation, starting at ``start_date``."""

    start_date: dt.date
    counts: np.ndarray

    @property
    def end_date(self) -> dt.date:
        return self.start_date + dt.timedelta(days=len(self.counts) - 1)

    @property
    def dates(self) -> pd.DatetimeIndex:
        return pd.date_range(self.start_date, periods=len(self.counts), freq="D")

    @property
    def cumulative(self) -> float:
        return float(self.counts.sum())

    def to_series(self) -> pd.Series:
        return pd.Series(self.counts, index=self.dates, name="cases")


def check_R(R: float) -> float:
    R = float(R)
    if not np.isfinite(R) or R < 0:
        raise InvalidParameter(f"R must be a finite number >= 0, got {R}")
    return R


def serial_interval_kernel(si: DelayDistribution, length: int) -> np.ndarray:
    """Weights w_1..w_length of the serial interval, conditioned on lag >= 1.

    Same-day transmission cannot be drawn in a daily process, so the mass at
    lag 0 is removed and the rest renormalised.
    """
    if length < 0:
        raise InvalidParameter("length must be >= 0")
    remaining = 1.0 - si.density(0)
    if remaining <= 0:
        raise InvalidParameter("Serial interval has no mass beyond lag 0")
    lags = np.arange(1, length + 1)
    return np.asarray(si.density(lags), dtype=float) / remaining


def simulate_trajectory(
    onset_date,
    seed_cases: float,
    R: float,
    serial_interval: DelayDistribution,
    end_date,
    rng: Generator = None,
) -> Trajectory:
    """Simulate a single trajectory with the renewal method

    Args:
        onset_date: date of the seed cohort (day 0)
        seed_cases: number of cases on day 0; may be fractional
        R: reproduction number
        serial_interval: discretised serial interval
        end_date: last simulated day (inclusive)
        rng: numpy Generator owned by the caller
    Returns:
        Trajectory with len = (end_date - onset_date).days + 1
    Raises:
        InvalidParameter, DateAlignmentError
    """
    onset_date = as_date(onset_date)
    end_date = as_date(end_date)
    R = check_R(R)
    if seed_cases < 0:
        raise InvalidParameter(f"seed_cases must be >= 0, got {seed_cases}")
    if end_date < onset_date:
        raise DateAlignmentError(f"end_date {end_date} is before onset_date {onset_date}")

    # Select rng from np.random
    if rng is None:
        rng = default_rng()

    n_days = (end_date - onset_date).days + 1
    w = serial_interval_kernel(serial_interval, n_days - 1)

    trajectory = np.zeros(n_days, dtype=float)
    trajectory[0] = float(seed_cases)

    # Simulate from day 1 to end_date
    for t in range(1, n_days):
        past = trajectory[:t]          # I_0..I_{t-1}
        ws = w[:t]                     # w_1..w_t
        lam_base = float(np.dot(ws, past[::-1]))  # align w_s with I_{t-s}

        lam = max(R * lam_base, 0.0)
        trajectory[t] = rng.poisson(lam) if lam > 0.0 else 0

    return Trajectory(start_date=onset_date, counts=trajectory)
