"""Builders for domain objects shared across test modules."""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from paper_trader.domain.models import FlowReading, Mode, Quote, RegimeReport

MORNING = datetime(2026, 1, 27, 10, 0)


def make_flow(percentile: float = 80.0, reading: float = 120.0, character: str = "steady buying") -> FlowReading:
    return FlowReading(
        reading=reading,
        low_30d=-400.0,
        high_30d=600.0,
        character=character,
        reported_percentile=percentile,
    )


def make_report(
    mode: Mode = Mode.FAVORABLE,
    tier: int = 1,
    day: date = date(2026, 1, 27),
    master_eject: str = "245",
    put_wall: Optional[str] = "250",
    call_wall: Optional[str] = "260",
    flow: Optional[FlowReading] = None,
    **levels: str,
) -> RegimeReport:
    return RegimeReport(
        date=day,
        mode=mode,
        tier=tier,
        master_eject=Decimal(master_eject),
        put_wall=Decimal(put_wall) if put_wall else None,
        call_wall=Decimal(call_wall) if call_wall else None,
        flow=flow,
        **{k: Decimal(v) for k, v in levels.items()},
    )


def make_quote(price: str = "250", symbol: str = "TSLA", change_pct: str = "0") -> Quote:
    return Quote(symbol=symbol, price=Decimal(price), change_pct=Decimal(change_pct))
