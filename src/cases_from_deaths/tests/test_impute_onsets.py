import datetime as dt

import numpy as np
import pytest

from cases_from_deaths.errors import InvalidParameter
from cases_from_deaths.simulate.delay_distribution import onset_to_death
from cases_from_deaths.simulate.impute_onsets import (
    DeathEvent,
    death_events_from_counts,
    impute_onsets,
)

TODAY = dt.date(2020, 3, 1)


def test_single_death_gives_one_cohort():
    cohorts = impute_onsets([DeathEvent(TODAY)], onset_to_death(), cfr=0.02, rng=np.random.default_rng(1))
    assert len(cohorts) == 1
    cohort = cohorts[0]
    assert cohort.case_count == pytest.approx(50.0)
    # Onset is between 1 and 40 days before the death
    assert TODAY - dt.timedelta(days=40) <= cohort.onset_date <= TODAY - dt.timedelta(days=1)


def test_cohort_sizes_are_unrounded():
    cohorts = impute_onsets([DeathEvent(TODAY)], onset_to_death(), cfr=0.03, rng=np.random.default_rng(1))
    assert cohorts[0].case_count == pytest.approx(1 / 0.03)


def test_multiple_deaths_grouped_by_onset_date():
    events = [DeathEvent(TODAY, 5), DeathEvent(TODAY - dt.timedelta(days=2), 3)]
    cohorts = impute_onsets(events, onset_to_death(), cfr=0.1, rng=np.random.default_rng(2))

    onset_dates = [c.onset_date for c in cohorts]
    assert onset_dates == sorted(onset_dates)
    assert len(set(onset_dates)) == len(onset_dates)
    # 8 deaths in total -> 80 cases in total
    assert sum(c.case_count for c in cohorts) == pytest.approx(80.0)
    for c in cohorts:
        deaths = c.case_count * 0.1
        assert deaths == pytest.approx(round(deaths))


def test_same_seed_same_cohorts():
    events = [DeathEvent(TODAY, 4)]
    a = impute_onsets(events, onset_to_death(), 0.02, rng=np.random.default_rng(7))
    b = impute_onsets(events, onset_to_death(), 0.02, rng=np.random.default_rng(7))
    assert a == b


def test_onsets_are_resampled_between_calls():
    """Onset dates are random: repeated draws do not all land on one date."""
    rng = np.random.default_rng(3)
    onsets = {
        impute_onsets([DeathEvent(TODAY)], onset_to_death(), 0.02, rng=rng)[0].onset_date
        for _ in range(50)
    }
    assert len(onsets) > 1


@pytest.mark.parametrize("cfr", [0.0, -0.1, 1.5])
def test_invalid_cfr(cfr):
    with pytest.raises(InvalidParameter):
        impute_onsets([DeathEvent(TODAY)], onset_to_death(), cfr=cfr)


def test_cfr_of_one_is_allowed():
    cohorts = impute_onsets([DeathEvent(TODAY)], onset_to_death(), cfr=1.0, rng=np.random.default_rng(1))
    assert cohorts[0].case_count == pytest.approx(1.0)


def test_no_deaths_raises():
    with pytest.raises(InvalidParameter):
        impute_onsets([], onset_to_death(), cfr=0.02)


def test_death_events_from_counts_drops_zero_days():
    dates = ["2020-02-28", "2020-02-29", "2020-03-01"]
    events = death_events_from_counts(dates, [1, 0, 2])
    assert events == [
        DeathEvent(dt.date(2020, 2, 28), 1),
        DeathEvent(dt.date(2020, 3, 1), 2),
    ]


def test_death_events_from_counts_rejects_bad_input():
    with pytest.raises(InvalidParameter):
        death_events_from_counts(["2020-03-01"], [-1])
    with pytest.raises(InvalidParameter):
        death_events_from_counts(["2020-03-01"], [1, 2])


def test_death_event_needs_positive_count():
    with pytest.raises(InvalidParameter):
        DeathEvent(TODAY, 0)
