"""Template one-to-two sentence market read for status posts."""

from decimal import Decimal
from typing import Optional

from paper_trader.domain.models import FlowReading, Position, Quote, RegimeReport


def market_read(
    quote: Quote,
    report: Optional[RegimeReport],
    flow: Optional[FlowReading],
    position: Optional[Position],
    position_price: Optional[Decimal] = None,
) -> str:
    takes = []

    change = quote.change_pct
    if change > 2:
        takes.append("strong move higher. momentum building.")
    elif change < -2:
        takes.append("selling pressure. defending support levels.")
    elif abs(change) < Decimal("0.5"):
        takes.append("chop zone. waiting for direction.")
    else:
        takes.append("grinding higher." if change > 0 else "drifting lower.")

    if flow is not None:
        if flow.percentile > 75:
            takes.append("dealers buying aggressively.")
        elif flow.percentile < 25:
            takes.append("flow negative. dealers selling.")

    if report is not None and report.key_gamma_strike:
        gap = abs(quote.price - report.key_gamma_strike) / report.key_gamma_strike
        if gap < Decimal("0.01"):
            takes.append(f"gamma strike (${report.key_gamma_strike:.0f}) in play.")

    if position is not None:
        pnl = position.unrealized_pnl_pct(position_price or quote.price)
        if pnl > 1:
            takes.append(f"sitting on +{pnl:.1f}%. letting it ride.")
        elif pnl < Decimal("-0.5"):
            takes.append(f"underwater {pnl:.1f}%. watching stop.")

    return " ".join(takes) or "scanning for setups."
