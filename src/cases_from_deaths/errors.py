# src/cases_from_deaths/errors.py
"""Exceptions raised by the simulation engine.

All of them are precondition failures: they are raised before (or instead
of) producing a result and are never recovered from inside the pipeline.
"""


class CasesFromDeathsError(Exception):
    """Base class for every error raised by this package."""


class InvalidParameter(CasesFromDeathsError, ValueError):
    """A model parameter is out of range (CFR, R, n_sim, delay parameters...)."""


class SamplingExhaustion(CasesFromDeathsError, RuntimeError):
    """Bounded rejection sampling did not terminate within its retry cap."""


class DateAlignmentError(CasesFromDeathsError, ValueError):
    """Dates are inconsistent, e.g. evaluation date before a reported death."""
