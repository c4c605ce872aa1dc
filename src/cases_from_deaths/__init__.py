"""Estimate circulating infections from a few recently reported deaths."""

from .version_info import VERSION as __version__
from .errors import (
    CasesFromDeathsError,
    DateAlignmentError,
    InvalidParameter,
    SamplingExhaustion,
)
from .simulate.delay_distribution import DelayDistribution, onset_to_death, serial_interval
from .simulate.impute_onsets import DeathEvent, OnsetCohort, death_events_from_counts, impute_onsets
from .simulate.generate_single_trajectory import Trajectory, simulate_trajectory
from .simulate.batch_processing import Ensemble, generate_ensemble
from .simulate.simulate_paths import SimConfig, load_config, run_sweep, sweep_rows
from .summary.summary_statistics import SummaryRow, cumulative, extract, summarise, summary_table
