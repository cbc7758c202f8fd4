"""
Intraday bars for backtests.

SyntheticBarGenerator rebuilds a plausible 15-minute path from a session's
open/high/low/close: a random walk drifting toward the close, pinned to the
session high and low at pseudo-random bars and landing exactly on the close.
All randomness comes from a seeded numpy Generator, derived per session from
(seed, date), so a run is reproducible and independent of day order.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Dict, Iterable, List, Protocol

import numpy as np

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


@dataclass(frozen=True)
class IntradayBar:
    timestamp: datetime
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: int


@dataclass(frozen=True)
class DailyOHLC:
    date: date
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volatility: float

    def __post_init__(self):
        if self.low > self.high:
            raise ValueError(f"{self.date}: low above high")
        if self.volatility <= 0:
            raise ValueError(f"{self.date}: volatility must be positive")


class BarSource(Protocol):
    def bars_for(self, day: date) -> List[IntradayBar]:
        ...


def _cents(value: float) -> Decimal:
    return Decimal(f"{value:.2f}")


class SyntheticBarGenerator:
    """Seedable synthetic intraday bars"""

    def __init__(
        self,
        seed: int,
        interval_minutes: int = 15,
        session_open: time = time(9, 30),
        session_close: time = time(16, 0),
    ):
        self.seed = seed
        self.interval = timedelta(minutes=interval_minutes)
        self.session_open = session_open
        session_minutes = (
            datetime.combine(date.min, session_close) - datetime.combine(date.min, session_open)
        ).total_seconds() / 60
        self.bar_count = int(session_minutes // interval_minutes)
        if self.bar_count < 3:
            raise ValueError("Session too short for synthetic bars")

    def _rng(self, day: date) -> np.random.Generator:
        return np.random.default_rng([self.seed, day.toordinal()])

    def _pin_indices(self, rng: np.random.Generator) -> tuple:
        n = self.bar_count
        last_free = n - 2  # the final step is overwritten by the close
        high_bar = min(int(rng.integers(0, max(1, int(n * 0.7)))) + int(n * 0.1), last_free)
        low_bar = min(int(rng.integers(0, max(1, int(n * 0.7)))) + int(n * 0.2), last_free)
        if low_bar == high_bar:
            low_bar = low_bar - 1 if low_bar == last_free else low_bar + 1
        return high_bar, low_bar

    def price_path(self, day: DailyOHLC, rng: np.random.Generator) -> List[float]:
        """n + 1 points: the open followed by each bar's close"""
        n = self.bar_count
        open_, high, low, close = float(day.open), float(day.high), float(day.low), float(day.close)
        ceiling = max(high, open_, close)
        floor = min(low, open_, close)
        high_bar, low_bar = self._pin_indices(rng)

        path = [open_]
        current = open_
        for i in range(n):
            drift = (close - current) / (n - i) * 0.5
            noise = (rng.random() - 0.5) * day.volatility * current
            current = current + drift + noise
            if i == high_bar:
                current = ceiling
            if i == low_bar:
                current = floor
            current = max(floor, min(ceiling, current))
            path.append(current)

        path[-1] = close
        return path

    def generate(self, day: DailyOHLC) -> List[IntradayBar]:
        rng = self._rng(day.date)
        path = self.price_path(day, rng)
        ceiling = max(day.high, day.open, day.close)
        floor = min(day.low, day.open, day.close)
        start = datetime.combine(day.date, self.session_open)

        bars = []
        for i in range(self.bar_count):
            bar_open = _cents(path[i])
            bar_close = _cents(path[i + 1])
            wick_up = 1 + rng.random() * 0.003
            wick_down = 1 - rng.random() * 0.003
            bar_high = min(_cents(float(max(bar_open, bar_close)) * wick_up), ceiling)
            bar_low = max(_cents(float(min(bar_open, bar_close)) * wick_down), floor)
            bars.append(
                IntradayBar(
                    timestamp=start + self.interval * i,
                    open=bar_open,
                    high=max(bar_high, bar_open, bar_close),
                    low=min(bar_low, bar_open, bar_close),
                    close=bar_close,
                    volume=int(rng.integers(500_000, 2_000_000)),
                )
            )
        return bars


class SyntheticBarSource:
    """Synthetic bars for every session in a historical window"""

    def __init__(self, sessions: Iterable[DailyOHLC], generator: SyntheticBarGenerator):
        self.sessions: Dict[date, DailyOHLC] = {s.date: s for s in sessions}
        self.generator = generator

    @property
    def seed(self) -> int:
        return self.generator.seed

    def bars_for(self, day: date) -> List[IntradayBar]:
        session = self.sessions.get(day)
        if session is None:
            logger.warning(f"No session data for {day}; skipping")
            return []
        return self.generator.generate(session)


class StaticBarSource:
    """Pre-recorded bars keyed by session date"""

    def __init__(self, bars: Dict[date, List[IntradayBar]]):
        self.bars = {day: sorted(items, key=lambda b: b.timestamp) for day, items in bars.items()}

    def bars_for(self, day: date) -> List[IntradayBar]:
        return list(self.bars.get(day, []))
