from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from paper_trader.domain.models import (
    ActiveSetup,
    CompositeReading,
    CompositeZone,
    FlowReading,
    LevelType,
    Mode,
    PriceLevel,
    RegimeReport,
)


class PriceLevelSchema(BaseModel):
    price: Decimal = Field(gt=0)
    label: str
    type: LevelType

    def to_domain(self) -> PriceLevel:
        return PriceLevel(price=self.price, label=self.label, type=self.type)


class FlowSchema(BaseModel):
    model_config = ConfigDict(extra="ignore")

    reading: float
    low_30d: float
    high_30d: float
    character: str = ""
    percentile: Optional[float] = None
    timestamp: Optional[datetime] = None

    def to_domain(self) -> FlowReading:
        return FlowReading(
            reading=self.reading,
            low_30d=self.low_30d,
            high_30d=self.high_30d,
            character=self.character,
            timestamp=self.timestamp,
            reported_percentile=self.percentile,
        )


class RegimeReportSchema(BaseModel):
    """Structured daily report as delivered by the upstream parser"""
    model_config = ConfigDict(extra="ignore")

    date: date
    mode: Mode
    tier: int = Field(ge=1, le=4)
    master_eject: Decimal = Field(ge=0)
    levels: List[PriceLevelSchema] = Field(default_factory=list)
    key_gamma_strike: Optional[Decimal] = None
    put_wall: Optional[Decimal] = None
    hedge_wall: Optional[Decimal] = None
    call_wall: Optional[Decimal] = None
    daily_9ema: Optional[Decimal] = None
    daily_21ema: Optional[Decimal] = None
    weekly_13ema: Optional[Decimal] = None
    weekly_21ema: Optional[Decimal] = None
    flow: Optional[FlowSchema] = None
    summary: str = ""

    @field_validator("mode", mode="before")
    @classmethod
    def _parse_mode(cls, value):
        return Mode.parse(value)

    def to_domain(self) -> RegimeReport:
        return RegimeReport(
            date=self.date,
            mode=self.mode,
            tier=self.tier,
            master_eject=self.master_eject,
            levels=tuple(level.to_domain() for level in self.levels),
            key_gamma_strike=self.key_gamma_strike,
            put_wall=self.put_wall,
            hedge_wall=self.hedge_wall,
            call_wall=self.call_wall,
            daily_9ema=self.daily_9ema,
            daily_21ema=self.daily_21ema,
            weekly_13ema=self.weekly_13ema,
            weekly_21ema=self.weekly_21ema,
            flow=self.flow.to_domain() if self.flow else None,
            summary=self.summary,
        )


class SetupSchema(BaseModel):
    setup_id: str
    status: str = "active"


class CompositeSchema(BaseModel):
    model_config = ConfigDict(extra="ignore")

    zone: CompositeZone
    score: float = 0.0
    setups: List[SetupSchema] = Field(default_factory=list)

    @field_validator("zone", mode="before")
    @classmethod
    def _parse_zone(cls, value):
        return CompositeZone.parse(value)

    def to_domain(self) -> CompositeReading:
        return CompositeReading(
            zone=self.zone,
            score=self.score,
            setups=tuple(ActiveSetup(setup_id=s.setup_id, status=s.status) for s in self.setups),
        )


class DailyOHLCSchema(BaseModel):
    date: date
    open: Decimal = Field(gt=0)
    high: Decimal = Field(gt=0)
    low: Decimal = Field(gt=0)
    close: Decimal = Field(gt=0)
    volatility: float = Field(gt=0)

    @model_validator(mode="after")
    def _check_range(self):
        if self.low > self.high:
            raise ValueError(f"{self.date}: low above high")
        if not (self.low <= self.close <= self.high):
            raise ValueError(f"{self.date}: close outside the session range")
        return self


class BacktestWindowSchema(BaseModel):
    """Historical window: one report and one daily bar per session"""
    model_config = ConfigDict(extra="ignore")

    name: str
    symbol: str
    sessions: List[DailyOHLCSchema]
    reports: List[RegimeReportSchema]

    @model_validator(mode="after")
    def _check_alignment(self):
        bar_dates = {s.date for s in self.sessions}
        missing = [r.date.isoformat() for r in self.reports if r.date not in bar_dates]
        if missing:
            raise ValueError(f"reports without session data: {missing}")
        return self
