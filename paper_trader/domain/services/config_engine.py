"""
STRATEGY CONFIG ENGINE
Load, validate, and expose strategy configuration

RESPONSIBILITIES:
- Load config/strategy.yml
- Build one StrategyPolicy per named profile
- Expose backtest execution settings

RULES:
❌ No defaults if config missing
❌ No hardcoded thresholds
✅ Fail fast on invalid config
✅ Deterministic output
"""

from dataclasses import dataclass
from datetime import time
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from paper_trader.domain.errors import ConfigError
from paper_trader.domain.models import Mode
from paper_trader.domain.strategy.policy import StrategyPolicy


@dataclass(frozen=True)
class ExecutionSettings:
    """Simulated execution costs and session shape for backtests"""
    starting_capital: Decimal
    transaction_cost_pct: Decimal
    slippage_pct: Decimal
    bar_interval_minutes: int
    session_open: time
    session_close: time
    default_seed: int

    def __post_init__(self):
        if self.starting_capital <= 0:
            raise ConfigError("starting_capital must be positive")
        if self.transaction_cost_pct < 0 or self.slippage_pct < 0:
            raise ConfigError("costs cannot be negative")
        if self.bar_interval_minutes < 1:
            raise ConfigError("bar_interval_minutes must be at least 1")
        if self.session_open >= self.session_close:
            raise ConfigError("session_open must be before session_close")


def _decimal(value: Any, key: str) -> Decimal:
    if value is None or isinstance(value, bool):
        raise ConfigError(f"{key} must be a number")
    try:
        return Decimal(str(value))
    except ArithmeticError as exc:
        raise ConfigError(f"{key} must be a number, got {value!r}") from exc


def _time(value: Any, key: str) -> time:
    try:
        hour, minute = str(value).split(":")
        return time(int(hour), int(minute))
    except ValueError as exc:
        raise ConfigError(f"{key} must be HH:MM, got {value!r}") from exc


def _section(data: Dict, key: str, where: str) -> Dict:
    if key not in data or not isinstance(data[key], dict):
        raise ConfigError(f"{where}: missing section '{key}'")
    return data[key]


def _require(data: Dict, key: str, where: str) -> Any:
    if key not in data:
        raise ConfigError(f"{where}: missing key '{key}'")
    return data[key]


class StrategyConfigEngine:
    """
    Configuration Engine
    Single source of truth for strategy thresholds
    """

    FILE_NAME = "strategy.yml"

    def __init__(self, config_dir: Path):
        self.config_dir = Path(config_dir)
        self._policies: Dict[str, StrategyPolicy] = {}
        self._execution: Optional[ExecutionSettings] = None

    def load_all(self) -> None:
        """Load and validate every profile"""
        path = self.config_dir / self.FILE_NAME
        if not path.exists():
            raise FileNotFoundError(f"Strategy config not found: {path}")

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        profiles = _section(data, "profiles", self.FILE_NAME)
        if not profiles:
            raise ConfigError("strategy.yml defines no profiles")
        self._policies = {
            name: self._build_policy(name, body) for name, body in profiles.items()
        }
        self._execution = self._build_execution(_section(data, "backtest_execution", self.FILE_NAME))

    def _build_policy(self, name: str, body: Dict) -> StrategyPolicy:
        where = f"profiles.{name}"
        sizing = _section(body, "sizing", where)
        session = _section(body, "session", where)
        levels = _section(body, "levels", where)
        trade = _section(body, "trade", where)
        flow = _section(body, "flow", where)
        nibble = body.get("defensive_nibble") or {}

        allocation = {
            Mode.parse(mode): _decimal(value, f"{where}.mode_allocation.{mode}")
            for mode, value in _require(sizing, "mode_allocation", where).items()
        }
        tiers = {
            int(tier): _decimal(value, f"{where}.tier_multiplier.{tier}")
            for tier, value in _require(sizing, "tier_multiplier", where).items()
        }
        exit_pct = flow.get("exit_pct")

        return StrategyPolicy(
            name=name,
            version=str(_require(body, "version", where)),
            mode_allocation=allocation,
            tier_multiplier=tiers,
            leveraged_allocation_ratio=_decimal(
                _require(sizing, "leveraged_allocation_ratio", where), "leveraged_allocation_ratio"
            ),
            use_tier_multiplier=bool(sizing.get("use_tier_multiplier", True)),
            max_trades_per_day=int(_require(session, "max_trades_per_day", where)),
            entry_cutoff=_time(_require(session, "entry_cutoff", where), "entry_cutoff"),
            late_exit_after=_time(_require(session, "late_exit_after", where), "late_exit_after"),
            late_exit_min_gain_pct=_decimal(
                _require(session, "late_exit_min_gain_pct", where), "late_exit_min_gain_pct"
            ),
            support_tolerance_pct=_decimal(_require(levels, "support_tolerance_pct", where), "support_tolerance_pct"),
            support_band_above_ratio=_decimal(
                _require(levels, "support_band_above_ratio", where), "support_band_above_ratio"
            ),
            resistance_tolerance_pct=_decimal(
                _require(levels, "resistance_tolerance_pct", where), "resistance_tolerance_pct"
            ),
            target_tolerance_pct=_decimal(_require(levels, "target_tolerance_pct", where), "target_tolerance_pct"),
            hold_near_resistance=bool(levels.get("hold_near_resistance", True)),
            min_reward_risk=_decimal(_require(trade, "min_reward_risk", where), "min_reward_risk"),
            default_target_pct=_decimal(_require(trade, "default_target_pct", where), "default_target_pct"),
            default_stop_pct=_decimal(_require(trade, "default_stop_pct", where), "default_stop_pct"),
            flow_heavy_selling_pct=float(_require(flow, "heavy_selling_pct", where)),
            flow_exit_pct=float(exit_pct) if exit_pct is not None else None,
            flow_override_modes=frozenset(Mode.parse(m) for m in flow.get("override_modes") or []),
            defensive_nibble_enabled=bool(nibble.get("enabled", False)),
            defensive_nibble_tolerance_pct=_decimal(nibble.get("tolerance_pct", "0.02"), "tolerance_pct"),
        )

    def _build_execution(self, body: Dict) -> ExecutionSettings:
        where = "backtest_execution"
        return ExecutionSettings(
            starting_capital=_decimal(_require(body, "starting_capital", where), "starting_capital"),
            transaction_cost_pct=_decimal(_require(body, "transaction_cost_pct", where), "transaction_cost_pct"),
            slippage_pct=_decimal(_require(body, "slippage_pct", where), "slippage_pct"),
            bar_interval_minutes=int(_require(body, "bar_interval_minutes", where)),
            session_open=_time(_require(body, "session_open", where), "session_open"),
            session_close=_time(_require(body, "session_close", where), "session_close"),
            default_seed=int(_require(body, "default_seed", where)),
        )

    # Public API

    def get_policy(self, name: str) -> StrategyPolicy:
        if not self._policies:
            raise ConfigError("Strategy config not loaded; call load_all() first")
        try:
            return self._policies[name]
        except KeyError:
            raise ConfigError(
                f"Unknown strategy profile '{name}'. Available: {sorted(self._policies)}"
            ) from None

    @property
    def profiles(self) -> Dict[str, StrategyPolicy]:
        return dict(self._policies)

    @property
    def execution(self) -> ExecutionSettings:
        if self._execution is None:
            raise ConfigError("Strategy config not loaded; call load_all() first")
        return self._execution
