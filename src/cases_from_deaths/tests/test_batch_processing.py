import datetime as dt

import numpy as np
import pytest

from cases_from_deaths.errors import DateAlignmentError, InvalidParameter
from cases_from_deaths.simulate.batch_processing import Ensemble, generate_ensemble
from cases_from_deaths.simulate.delay_distribution import onset_to_death, serial_interval
from cases_from_deaths.simulate.impute_onsets import DeathEvent

TODAY = dt.date(2020, 3, 1)


def _ensemble(events=None, R=2.0, cfr=0.02, n_sim=10, eval_date=TODAY, seed=1):
    return generate_ensemble(
        death_events=events or [DeathEvent(TODAY)],
        onset_delay=onset_to_death(),
        serial_interval=serial_interval(),
        R=R,
        cfr=cfr,
        n_sim=n_sim,
        eval_date=eval_date,
        seed=seed,
    )


def test_shape_and_date_axis():
    ens = _ensemble(n_sim=7)
    assert isinstance(ens, Ensemble)
    assert ens.n_sim == 7
    # Axis runs from the earliest possible onset (death - 40 days) to today
    assert ens.dates[0].date() == TODAY - dt.timedelta(days=40)
    assert ens.dates[-1].date() == TODAY
    assert ens.values.shape == (7, 41)
    assert np.all(ens.values >= 0)


@pytest.mark.parametrize("cfr", [0.02, 0.03])
def test_single_death_single_sim_seeds_unrounded_cohort(cfr):
    """
    n_sim=1 and one death: the first non-zero day is the onset date and holds
    exactly 1/cfr cases (the seed is not rounded).
    """
    ens = _ensemble(n_sim=1, cfr=cfr, seed=11)
    row = ens.values[0]
    first = np.flatnonzero(row)[0]
    assert row[first] == pytest.approx(1 / cfr)
    assert np.all(row[:first] == 0)


def test_R_zero_keeps_only_seeded_cases():
    events = [DeathEvent(TODAY, 2), DeathEvent(TODAY - dt.timedelta(days=3), 1)]
    ens = _ensemble(events=events, R=0.0, cfr=0.05, n_sim=20)
    assert np.allclose(ens.values.sum(axis=1), 3 / 0.05)


def test_axis_covers_earliest_death():
    events = [DeathEvent(TODAY - dt.timedelta(days=5)), DeathEvent(TODAY)]
    ens = _ensemble(events=events, n_sim=3)
    assert ens.dates[0].date() == TODAY - dt.timedelta(days=45)


def test_same_seed_reproduces_ensemble():
    a = _ensemble(seed=42)
    b = _ensemble(seed=42)
    c = _ensemble(seed=43)
    assert np.array_equal(a.values, b.values)
    assert not np.array_equal(a.values, c.values)


def test_realizations_are_independent_draws():
    ens = _ensemble(n_sim=30)
    # Onset dates are re-imputed each iteration, so rows differ
    assert len({tuple(r) for r in ens.values}) > 1


def test_ensemble_is_read_only():
    ens = _ensemble(n_sim=2)
    with pytest.raises(ValueError):
        ens.values[0, 0] = 1.0


def test_to_frame_long_format():
    ens = _ensemble(n_sim=3)
    df = ens.to_frame()
    assert list(df.columns) == ["sim", "date", "cases"]
    assert len(df) == 3 * len(ens.dates)
    assert df.groupby("sim")["cases"].sum().to_numpy() == pytest.approx(ens.values.sum(axis=1))


def test_realization_series():
    ens = _ensemble(n_sim=3)
    s = ens.realization(1)
    assert s.name == "sim_2"
    assert s.index.equals(ens.dates)
    assert np.array_equal(s.to_numpy(), ens.values[1])
    df = ens.to_frame()
    assert np.array_equal(df.loc[df["sim"] == 2, "cases"].to_numpy(), s.to_numpy())


def test_eval_date_later_than_deaths_extends_axis():
    ens = _ensemble(n_sim=2, eval_date=TODAY + dt.timedelta(days=7))
    assert ens.dates[-1].date() == TODAY + dt.timedelta(days=7)


def test_eval_date_before_death_raises():
    with pytest.raises(DateAlignmentError):
        _ensemble(eval_date=TODAY - dt.timedelta(days=1))


@pytest.mark.parametrize(
    "kwargs",
    [{"n_sim": 0}, {"n_sim": 2.5}, {"cfr": 0.0}, {"cfr": 1.2}, {"R": -0.5}],
)
def test_invalid_parameters_fail_fast(kwargs):
    with pytest.raises(InvalidParameter):
        _ensemble(**kwargs)


def test_date_not_on_axis():
    ens = _ensemble(n_sim=2)
    with pytest.raises(DateAlignmentError):
        ens.at(TODAY + dt.timedelta(days=1))
