"""
Strategy policy - the single parameter set for entry/exit rules.

Live trading and the backtest harness run the same rules; they differ only by
which named, versioned profile they load from config/strategy.yml.
"""

from dataclasses import dataclass, field
from datetime import time
from decimal import Decimal
from typing import Dict, FrozenSet, Optional

from paper_trader.domain.errors import ConfigError
from paper_trader.domain.models import Mode


@dataclass(frozen=True)
class StrategyPolicy:
    """Named, versioned strategy thresholds - Immutable"""
    name: str
    version: str

    # Sizing
    mode_allocation: Dict[Mode, Decimal]
    tier_multiplier: Dict[int, Decimal]
    leveraged_allocation_ratio: Decimal

    # Session limits
    max_trades_per_day: int
    entry_cutoff: time
    late_exit_after: time
    late_exit_min_gain_pct: Decimal

    # Level proximity (fractions of the level price)
    support_tolerance_pct: Decimal
    support_band_above_ratio: Decimal
    resistance_tolerance_pct: Decimal
    target_tolerance_pct: Decimal

    # Trade construction
    min_reward_risk: Decimal
    default_target_pct: Decimal
    default_stop_pct: Decimal
    use_tier_multiplier: bool = True

    # Flow gating (percentiles 0-100)
    flow_heavy_selling_pct: float = 25.0
    flow_exit_pct: Optional[float] = None
    flow_override_modes: FrozenSet[Mode] = field(default_factory=frozenset)

    # Defensive mode carve-out
    defensive_nibble_enabled: bool = False
    defensive_nibble_tolerance_pct: Decimal = Decimal("0.02")

    hold_near_resistance: bool = True

    def __post_init__(self):
        missing = [m.value for m in Mode if m not in self.mode_allocation]
        if missing:
            raise ConfigError(f"[{self.name}] mode_allocation missing modes: {missing}")
        ordered = [self.mode_allocation[m] for m in Mode]
        if any(a < b for a, b in zip(ordered, ordered[1:])):
            raise ConfigError(f"[{self.name}] mode_allocation must not grow with mode severity")
        if any(a <= 0 or a > 1 for a in ordered):
            raise ConfigError(f"[{self.name}] mode_allocation values must be in (0, 1]")

        if sorted(self.tier_multiplier) != [1, 2, 3, 4]:
            raise ConfigError(f"[{self.name}] tier_multiplier must define tiers 1-4")
        tiers = [self.tier_multiplier[t] for t in (1, 2, 3, 4)]
        if any(a < b for a, b in zip(tiers, tiers[1:])):
            raise ConfigError(f"[{self.name}] tier_multiplier must not grow with tier")
        if any(t <= 0 or t > 1 for t in tiers):
            raise ConfigError(f"[{self.name}] tier_multiplier values must be in (0, 1]")

        if not (Decimal("0") < self.leveraged_allocation_ratio <= Decimal("1")):
            raise ConfigError(f"[{self.name}] leveraged_allocation_ratio must be in (0, 1]")
        if self.max_trades_per_day < 1:
            raise ConfigError(f"[{self.name}] max_trades_per_day must be at least 1")
        if self.min_reward_risk <= 0:
            raise ConfigError(f"[{self.name}] min_reward_risk must be positive")
        if self.flow_exit_pct is not None and self.flow_exit_pct >= self.flow_heavy_selling_pct:
            raise ConfigError(f"[{self.name}] flow_exit_pct must sit below flow_heavy_selling_pct")

    @property
    def label(self) -> str:
        return f"{self.name}@{self.version}"
