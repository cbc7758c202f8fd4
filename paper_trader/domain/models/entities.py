"""
Domain Models - Entities
Pure domain objects with no infrastructure dependencies
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Tuple


class Mode(str, Enum):
    """Daily regime mode, ordered most to least permissive"""
    FAVORABLE = "favorable"
    CAUTION = "caution"
    ELEVATED_CAUTION = "elevated-caution"
    DEFENSIVE = "defensive"

    @property
    def severity(self) -> int:
        """0 = most permissive, 3 = most defensive"""
        return list(Mode).index(self)

    @property
    def is_defensive(self) -> bool:
        return self is Mode.DEFENSIVE

    @property
    def color(self) -> str:
        return _MODE_COLORS[self]

    @classmethod
    def parse(cls, value) -> "Mode":
        """Accept enum values, names and the upstream colour codes"""
        if isinstance(value, Mode):
            return value
        key = str(value).strip().lower().replace("_", "-")
        if key in _MODE_ALIASES:
            return _MODE_ALIASES[key]
        return cls(key)


_MODE_ALIASES = {
    "green": Mode.FAVORABLE,
    "yellow": Mode.CAUTION,
    "orange": Mode.ELEVATED_CAUTION,
    "red": Mode.DEFENSIVE,
}
_MODE_COLORS = {mode: color.upper() for color, mode in _MODE_ALIASES.items()}


class LevelType(str, Enum):
    """Type of a named price level in a regime report"""
    SUPPORT = "support"
    RESISTANCE = "resistance"
    ADD = "add"
    TRIM = "trim"
    WATCH = "watch"
    PAUSE = "pause"
    EJECT = "eject"
    CURRENT = "current"


class CompositeZone(str, Enum):
    """Aggregate setup zone, ordered most favorable to most defensive"""
    FULL_RISK_ON = "full-risk-on"
    NEUTRAL = "neutral"
    CAUTION = "caution"
    DEFENSIVE = "defensive"

    @property
    def severity(self) -> int:
        return list(CompositeZone).index(self)

    @property
    def allows_entry(self) -> bool:
        return self in (CompositeZone.FULL_RISK_ON, CompositeZone.NEUTRAL)

    @classmethod
    def parse(cls, value) -> "CompositeZone":
        if isinstance(value, CompositeZone):
            return value
        key = str(value).strip().lower().replace("_", "-")
        if key == "full-send":
            return cls.FULL_RISK_ON
        return cls(key)


class TradeAction(str, Enum):
    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class PriceLevel:
    """Named price level from a regime report"""
    price: Decimal
    label: str
    type: LevelType

    def __post_init__(self):
        if self.price <= 0:
            raise ValueError(f"Level price must be positive: {self.label}")


@dataclass(frozen=True)
class FlowReading:
    """Dealer hedging flow reading with its trailing 30-day range"""
    reading: float
    low_30d: float
    high_30d: float
    character: str = ""
    timestamp: Optional[datetime] = None
    reported_percentile: Optional[float] = None

    @property
    def percentile(self) -> float:
        """Position of the reading inside its 30-day range, 0-100"""
        if self.reported_percentile is not None:
            return max(0.0, min(100.0, float(self.reported_percentile)))
        span = self.high_30d - self.low_30d
        if span == 0:
            return 50.0
        pct = (self.reading - self.low_30d) / span * 100
        return max(0.0, min(100.0, pct))


@dataclass(frozen=True)
class RegimeReport:
    """Daily regime report - Immutable once ingested"""
    date: date
    mode: Mode
    tier: int
    master_eject: Decimal
    levels: Tuple[PriceLevel, ...] = ()
    key_gamma_strike: Optional[Decimal] = None
    put_wall: Optional[Decimal] = None
    hedge_wall: Optional[Decimal] = None
    call_wall: Optional[Decimal] = None
    daily_9ema: Optional[Decimal] = None
    daily_21ema: Optional[Decimal] = None
    weekly_13ema: Optional[Decimal] = None
    weekly_21ema: Optional[Decimal] = None
    flow: Optional[FlowReading] = None
    summary: str = ""

    def __post_init__(self):
        if self.tier not in (1, 2, 3, 4):
            raise ValueError(f"Tier must be 1-4, got {self.tier}")
        if self.master_eject < 0:
            raise ValueError("Master eject cannot be negative")

    def levels_of(self, *types: LevelType) -> List[PriceLevel]:
        return [level for level in self.levels if level.type in types]


@dataclass(frozen=True)
class Quote:
    """Market quote - ephemeral, refreshed every poll"""
    symbol: str
    price: Decimal
    change_pct: Decimal = Decimal("0")
    volume: int = 0
    day_high: Optional[Decimal] = None
    day_low: Optional[Decimal] = None
    open: Optional[Decimal] = None
    previous_close: Optional[Decimal] = None
    timestamp: Optional[datetime] = None

    def __post_init__(self):
        if self.price <= 0:
            raise ValueError(f"Quote price must be positive for {self.symbol}")


@dataclass(frozen=True)
class ActiveSetup:
    setup_id: str
    status: str = "active"

    @property
    def is_active(self) -> bool:
        return self.status == "active"


@dataclass(frozen=True)
class CompositeReading:
    """Composite zone classification over the tracked setups"""
    zone: CompositeZone
    score: float = 0.0
    setups: Tuple[ActiveSetup, ...] = ()

    @property
    def active_setup_ids(self) -> Tuple[str, ...]:
        return tuple(s.setup_id for s in self.setups if s.is_active)


@dataclass(frozen=True)
class Position:
    """Open position in one instrument. Exists only while shares > 0."""
    instrument: str
    shares: int
    avg_cost: Decimal
    entry_price: Decimal
    entry_time: Optional[datetime] = None
    entry_mode: Optional[Mode] = None

    def __post_init__(self):
        if self.shares <= 0:
            raise ValueError("Position must hold at least one share")
        if self.avg_cost <= 0:
            raise ValueError("Average cost must be positive")

    @property
    def cost_basis(self) -> Decimal:
        return self.avg_cost * self.shares

    def market_value(self, price: Decimal) -> Decimal:
        return price * self.shares

    def unrealized_pnl(self, price: Decimal) -> Decimal:
        return (price - self.avg_cost) * self.shares

    def unrealized_pnl_pct(self, price: Decimal) -> Decimal:
        return (price / self.avg_cost - 1) * 100


@dataclass(frozen=True)
class Portfolio:
    """
    Cash plus per-instrument positions.
    Immutable: accounting functions return a new Portfolio. Totals are never stored.
    """
    cash: Decimal
    starting_capital: Decimal
    positions: Dict[str, Position] = field(default_factory=dict)
    realized_pnl: Decimal = Decimal("0")

    def __post_init__(self):
        if self.cash < 0:
            raise ValueError("Cash cannot be negative")

    @classmethod
    def fresh(cls, starting_capital: Decimal) -> "Portfolio":
        return cls(cash=starting_capital, starting_capital=starting_capital)

    def position(self, instrument: str) -> Optional[Position]:
        return self.positions.get(instrument)

    def shares_of(self, instrument: str) -> int:
        held = self.positions.get(instrument)
        return held.shares if held else 0

    @property
    def is_flat(self) -> bool:
        return not self.positions


@dataclass(frozen=True)
class PortfolioValuation:
    """Derived portfolio values for one price set"""
    cash: Decimal
    total_value: Decimal
    total_return: Decimal
    total_return_pct: Decimal
    unrealized_pnl: Decimal
    realized_pnl: Decimal
    market_values: Dict[str, Decimal] = field(default_factory=dict)


@dataclass(frozen=True)
class TradeSignal:
    """Decision engine output. Reasoning is the ordered audit trail."""
    action: TradeAction
    price: Decimal
    reasoning: Tuple[str, ...]
    confidence: Confidence = Confidence.HIGH
    instrument: Optional[str] = None
    shares: Optional[int] = None
    target: Optional[Decimal] = None
    stop: Optional[Decimal] = None
    is_override: bool = False
    override_setups: Tuple[str, ...] = ()

    def __post_init__(self):
        if self.action != TradeAction.HOLD:
            if not self.instrument:
                raise ValueError(f"{self.action.value} signal needs an instrument")
            if not self.shares or self.shares < 1:
                raise ValueError(f"{self.action.value} signal needs at least one share")
        if not self.reasoning:
            raise ValueError("Every signal must carry reasoning")


@dataclass(frozen=True)
class Trade:
    """Executed trade - append-only record, never mutated"""
    timestamp: datetime
    action: TradeAction
    instrument: str
    shares: int
    price: Decimal
    reasoning: Tuple[str, ...]
    portfolio_value_after: Decimal
    cash_after: Decimal
    mode: Optional[Mode] = None
    tier: Optional[int] = None
    realized_pnl: Optional[Decimal] = None
    cost: Decimal = Decimal("0")
    flow_percentile: Optional[float] = None
    composite_zone: Optional[CompositeZone] = None

    def __post_init__(self):
        if self.action == TradeAction.HOLD:
            raise ValueError("A hold is not a trade")
        if self.shares < 1:
            raise ValueError("Trade must move at least one share")

    @property
    def notional(self) -> Decimal:
        return self.price * self.shares

    @property
    def is_closing(self) -> bool:
        return self.action == TradeAction.SELL
