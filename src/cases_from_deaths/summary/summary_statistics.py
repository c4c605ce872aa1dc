# src/cases_from_deaths/summary/summary_statistics.py
"""
Summaries of a simulated ensemble: cumulative incidence, mean and
quantile intervals at a target date.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import asdict, dataclass
from typing import Iterable, Optional, Sequence

import numpy as np
import pandas as pd

from ..simulate.batch_processing import Ensemble
from ..simulate.impute_onsets import as_date

# (field, probability) pairs reported in a SummaryRow
QUANTILES = (
    ("lower_95", 0.025),
    ("lower_50", 0.25),
    ("upper_50", 0.75),
    ("upper_95", 0.975),
)

TABLE_COLUMNS = ["R", "cfr", "average", "lower_95", "lower_50", "upper_50", "upper_95"]


@dataclass(frozen=True)
class SummaryRow:
    R: Optional[float]
    cfr: Optional[float]
    date: dt.date
    average: int
    lower_95: int
    lower_50: int
    upper_50: int
    upper_95: int

    def as_dict(self) -> dict:
        return asdict(self)


def cumulative(ensemble: Ensemble) -> Ensemble:
    """Running totals of every realization along the date axis."""
    return Ensemble(dates=ensemble.dates, values=np.cumsum(ensemble.values, axis=1))


def extract(ensemble: Ensemble, date, R: float = None, cfr: float = None) -> SummaryRow:
    """Mean and type-7 quantiles across realizations on ``date``.

    Statistics are rounded to the nearest integer here, and only here.

    Raises:
        DateAlignmentError: date is not on the ensemble's date axis
    """
    values = ensemble.at(date)
    probs = [p for _, p in QUANTILES]
    # numpy's default "linear" method is the type-7 estimator
    qs = np.quantile(values, probs, method="linear")
    stats = {name: int(np.rint(q)) for (name, _), q in zip(QUANTILES, qs)}
    return SummaryRow(
        R=R,
        cfr=cfr,
        date=as_date(date),
        average=int(np.rint(values.mean())),
        **stats,
    )


def summarise(ensemble: Ensemble, date, R: float = None, cfr: float = None) -> SummaryRow:
    """Cumulative incidence summary at ``date``, the quantity reported per (R, CFR)."""
    return extract(cumulative(ensemble), date, R=R, cfr=cfr)


def summary_table(rows: Iterable[SummaryRow]) -> pd.DataFrame:
    """One row per parameter combination, in the order given."""
    records = [{col: row.as_dict()[col] for col in TABLE_COLUMNS} for row in rows]
    return pd.DataFrame.from_records(records, columns=TABLE_COLUMNS)


def daily_quantiles(
    ensemble: Ensemble,
    probs: Sequence[float] = (0.025, 0.25, 0.5, 0.75, 0.975),
) -> pd.DataFrame:
    """Per-date mean and quantiles across realizations (e.g. for a fan chart)."""
    qs = np.quantile(ensemble.values, list(probs), axis=0, method="linear")
    df = pd.DataFrame(qs.T, index=ensemble.dates, columns=[f"q{p:g}" for p in probs])
    df.insert(0, "mean", ensemble.values.mean(axis=0))
    df.index.name = "date"
    return df
