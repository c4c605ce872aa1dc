# src/cases_from_deaths/simulate/delay_distribution.py
# Discretised delay distributions (serial interval, onset-to-death)
# built on top of continuous scipy distributions.
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Tuple

import numpy as np
from numpy.random import Generator, default_rng
from scipy.stats import gamma, lognorm

from ..errors import InvalidParameter, SamplingExhaustion

logger = logging.getLogger(__name__)

FAMILIES = ("lognormal", "gamma")

# Serial interval: log-normal, mean 4.7 days, sd 2.9 days
SERIAL_INTERVAL_MEAN = 4.7
SERIAL_INTERVAL_SD = 2.9

# Onset-to-death: gamma, shape 4.726, rate 0.3151 (mean ~15 days)
ONSET_TO_DEATH_SHAPE = 4.726
ONSET_TO_DEATH_RATE = 0.3151
ONSET_TO_DEATH_MIN = 1
ONSET_TO_DEATH_MAX = 40

DEFAULT_MAX_ROUNDS = 1000


@lru_cache(maxsize=64)
def _continuous(family: str, params: Tuple[float, float]):
    """Frozen scipy distribution for a (family, params) pair."""
    if family == "lognormal":
        meanlog, sdlog = params
        return lognorm(s=sdlog, scale=math.exp(meanlog))
    if family == "gamma":
        shape, rate = params
        return gamma(a=shape, scale=1.0 / rate)
    raise InvalidParameter(f"Unknown distribution family: {family!r}")


@dataclass(frozen=True)
class DelayDistribution:
    """A continuous delay distribution discretised onto whole days.

    Bin ``k`` collects the continuous mass on
    ``[k - w * interval, k + (1 - w) * interval)``, so with ``w = 0`` a delay of
    3.7 days falls into bin 3. Only non-negative multiples of ``interval``
    carry mass.

    Args:
        family: "lognormal" (params = meanlog, sdlog) or "gamma"
            (params = shape, rate)
        params: the two parameters of the family
        interval: width of a bin in days
        w: continuity correction in [0, 1]
    """

    family: str
    params: Tuple[float, float]
    interval: int = 1
    w: float = 0.0

    def __post_init__(self):
        # Raise some errors
        if self.family not in FAMILIES:
            raise InvalidParameter(f"family must be one of {FAMILIES}, got {self.family!r}")
        if len(self.params) != 2:
            raise InvalidParameter("params must hold exactly two values")
        a, b = (float(p) for p in self.params)
        if not (math.isfinite(a) and math.isfinite(b)):
            raise InvalidParameter("Distribution parameters must be finite")
        if b <= 0 or (self.family == "gamma" and a <= 0):
            raise InvalidParameter(f"Invalid {self.family} parameters: {self.params}")
        if int(self.interval) != self.interval or self.interval < 1:
            raise InvalidParameter("interval must be a positive integer")
        if not 0.0 <= self.w <= 1.0:
            raise InvalidParameter("w must lie in [0, 1]")
        object.__setattr__(self, "params", (a, b))
        object.__setattr__(self, "interval", int(self.interval))

    # ---------- constructors ----------

    @classmethod
    def lognormal(cls, mean: float, sd: float, interval: int = 1, w: float = 0.0) -> "DelayDistribution":
        """Log-normal from its mean and sd on the natural (days) scale."""
        if mean <= 0 or sd <= 0:
            raise InvalidParameter("Log-normal mean and sd must be > 0")
        sdlog = math.sqrt(math.log(1.0 + (sd / mean) ** 2))
        meanlog = math.log(mean) - 0.5 * sdlog ** 2
        return cls("lognormal", (meanlog, sdlog), interval=interval, w=w)

    @classmethod
    def gamma(
        cls,
        shape: float,
        rate: Optional[float] = None,
        interval: int = 1,
        w: float = 0.0,
        scale: Optional[float] = None,
    ) -> "DelayDistribution":
        """Gamma from ``shape`` and either ``rate`` or ``scale`` (= 1 / rate)."""
        if (rate is None) == (scale is None):
            raise InvalidParameter("Give exactly one of rate or scale")
        if scale is not None:
            if not scale > 0:
                raise InvalidParameter(f"Gamma scale must be > 0, got {scale}")
            rate = 1.0 / scale
        return cls("gamma", (shape, rate), interval=interval, w=w)

    # ---------- probabilities ----------

    @property
    def continuous(self):
        return _continuous(self.family, self.params)

    def density(self, k):
        """Probability mass at integer delay(s) ``k``; zero for k < 0."""
        k_arr = np.asarray(k, dtype=float)
        g = self.continuous
        upper = g.cdf(k_arr + (1.0 - self.w) * self.interval)
        lower = g.cdf(k_arr - self.w * self.interval)
        on_grid = (k_arr >= 0) & (np.mod(k_arr, self.interval) == 0)
        p = np.where(on_grid, np.clip(upper - lower, 0.0, None), 0.0)
        return float(p) if p.ndim == 0 else p

    def cdf(self, k):
        """P(delay <= k) for integer k."""
        k_arr = np.asarray(k, dtype=float)
        # Last grid point not above k
        top = np.floor(k_arr / self.interval) * self.interval
        p = np.where(k_arr >= 0, self.continuous.cdf(top + (1.0 - self.w) * self.interval), 0.0)
        return float(p) if p.ndim == 0 else p

    def mass_between(self, min_delay: int, max_delay: int) -> float:
        """Total probability mass on the closed interval [min_delay, max_delay]."""
        if min_delay > max_delay:
            return 0.0
        return float(self.cdf(max_delay) - self.cdf(min_delay - 1))

    def conditional_density(self, k, min_delay: int, max_delay: int):
        """Density renormalised over [min_delay, max_delay]; zero outside."""
        mass = self.mass_between(min_delay, max_delay)
        if mass <= 0:
            raise InvalidParameter(f"No probability mass on [{min_delay}, {max_delay}]")
        k_arr = np.asarray(k, dtype=float)
        inside = (k_arr >= min_delay) & (k_arr <= max_delay)
        p = np.where(inside, np.asarray(self.density(k_arr)) / mass, 0.0)
        return float(p) if p.ndim == 0 else p

    # ---------- sampling ----------

    def sample(self, n: int, rng: Generator = None) -> np.ndarray:
        """Draw ``n`` independent delays (integer days)."""
        if n < 0:
            raise InvalidParameter("n must be >= 0")
        if rng is None:
            rng = default_rng()
        if n == 0:
            return np.zeros(0, dtype=int)
        x = self.continuous.rvs(size=n, random_state=rng)
        # Map each continuous draw to the bin it falls in
        bins = np.floor(x / self.interval + self.w) * self.interval
        return bins.astype(int)

    def sample_bounded(
        self,
        n: int,
        min_delay: int,
        max_delay: int,
        rng: Generator = None,
        max_rounds: int = DEFAULT_MAX_ROUNDS,
    ) -> np.ndarray:
        """Draw ``n`` delays restricted to [min_delay, max_delay] by rejection.

        Draws outside the interval are thrown away and redrawn, both bounds
        being checked again after every redraw, so the result follows the
        density conditioned on the interval rather than a clipped one.

        Raises:
            InvalidParameter: bounds are reversed or carry no mass
            SamplingExhaustion: values are still out of bounds after
                ``max_rounds`` redraw rounds
        """
        if min_delay > max_delay:
            raise InvalidParameter(f"min_delay ({min_delay}) > max_delay ({max_delay})")
        if self.mass_between(min_delay, max_delay) <= 0:
            raise InvalidParameter(f"No probability mass on [{min_delay}, {max_delay}]")
        if rng is None:
            rng = default_rng()

        draws = self.sample(n, rng)
        outside = (draws < min_delay) | (draws > max_delay)
        rounds = 0
        while outside.any():
            if rounds >= max_rounds:
                raise SamplingExhaustion(
                    f"{int(outside.sum())} of {n} draws still outside "
                    f"[{min_delay}, {max_delay}] after {max_rounds} rounds"
                )
            draws[outside] = self.sample(int(outside.sum()), rng)
            outside = (draws < min_delay) | (draws > max_delay)
            rounds += 1

        if rounds:
            logger.debug("Bounded sampling needed %d redraw round(s)", rounds)
        return draws


def serial_interval(mean: float = SERIAL_INTERVAL_MEAN, sd: float = SERIAL_INTERVAL_SD) -> DelayDistribution:
    """Default serial interval: log-normal, daily bins, w = 0."""
    return DelayDistribution.lognormal(mean, sd, interval=1, w=0.0)


def onset_to_death(shape: float = ONSET_TO_DEATH_SHAPE, rate: float = ONSET_TO_DEATH_RATE) -> DelayDistribution:
    """Default onset-to-death delay: gamma, daily bins."""
    return DelayDistribution.gamma(shape, rate, interval=1, w=0.0)
