# src/cases_from_deaths/simulate/impute_onsets.py
# Back-imputes onset dates from reported deaths: each death gets one
# onset-to-death delay, and the deaths sharing an onset date form a cohort
# of deaths / CFR cases.
from __future__ import annotations

import datetime as dt
import logging
from collections import Counter
from dataclasses import dataclass
from typing import Iterable, List, Sequence

import numpy as np
import pandas as pd
from numpy.random import Generator, default_rng

from ..errors import InvalidParameter
from .delay_distribution import ONSET_TO_DEATH_MAX, ONSET_TO_DEATH_MIN, DelayDistribution

logger = logging.getLogger(__name__)


def as_date(value) -> dt.date:
    """Coerce a date-like value (date, datetime, Timestamp, ISO string) to a date."""
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    return pd.Timestamp(value).date()


@dataclass(frozen=True)
class DeathEvent:
    """``count`` deaths reported on ``date``."""

    date: dt.date
    count: int = 1

    def __post_init__(self):
        object.__setattr__(self, "date", as_date(self.date))
        if int(self.count) != self.count or self.count < 1:
            raise InvalidParameter(f"Death count must be a positive integer, got {self.count}")
        object.__setattr__(self, "count", int(self.count))


@dataclass(frozen=True)
class OnsetCohort:
    onset_date: dt.date
    case_count: float


def check_cfr(cfr: float) -> float:
    cfr = float(cfr)
    if not 0.0 < cfr <= 1.0:
        raise InvalidParameter(f"CFR must lie in (0, 1], got {cfr}")
    return cfr


def death_events_from_counts(dates: Sequence, counts: Sequence[int]) -> List[DeathEvent]:
    """Turn a series of daily death counts into DeathEvents, dropping zero days."""
    if len(dates) != len(counts):
        raise InvalidParameter("dates and counts must have the same length")
    events = []
    for day, n in zip(dates, counts):
        if n < 0:
            raise InvalidParameter(f"Negative death count on {day}: {n}")
        if n > 0:
            events.append(DeathEvent(as_date(day), int(n)))
    return events


def impute_onsets(
    death_events: Iterable[DeathEvent],
    delay: DelayDistribution,
    cfr: float,
    rng: Generator = None,
    min_delay: int = ONSET_TO_DEATH_MIN,
    max_delay: int = ONSET_TO_DEATH_MAX,
) -> List[OnsetCohort]:
    """Sample one onset date per death and group deaths into onset cohorts.

    Args:
        death_events: reported deaths (each event may hold several deaths)
        delay: onset-to-death delay distribution
        cfr: case fatality ratio in (0, 1]
        rng: random generator; draws must be repeated for every Monte Carlo
            iteration, so pass a fresh/independent stream per iteration
        min_delay, max_delay: bounds of the onset-to-death delay (days)
    Returns:
        cohorts sorted by onset date, case_count = deaths / cfr (unrounded)
    Raises:
        InvalidParameter
    """
    cfr = check_cfr(cfr)
    events = list(death_events)
    if not events:
        raise InvalidParameter("At least one death event is required")
    if rng is None:
        rng = default_rng()

    # One delay per individual death
    death_dates = np.repeat(
        np.array([np.datetime64(e.date, "D") for e in events]),
        [e.count for e in events],
    )
    delays = delay.sample_bounded(death_dates.size, min_delay, max_delay, rng=rng)
    onset_dates = death_dates - delays.astype("timedelta64[D]")

    deaths_per_onset = Counter(onset_dates.tolist())
    cohorts = [
        OnsetCohort(onset_date=day, case_count=n / cfr)
        for day, n in sorted(deaths_per_onset.items())
    ]
    logger.debug("Imputed %d onset cohort(s) from %d death(s)", len(cohorts), death_dates.size)
    return cohorts
