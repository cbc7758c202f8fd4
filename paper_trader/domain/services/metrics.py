"""Performance metrics over a closed-trade ledger and a portfolio value series."""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence

from paper_trader.domain.models import Trade, TradeAction

ZERO = Decimal("0")


@dataclass(frozen=True)
class Drawdown:
    amount: Decimal
    pct: Decimal
    peak: Decimal
    trough: Decimal


@dataclass(frozen=True)
class PerformanceSummary:
    closed_trades: int
    winners: int
    losers: int
    win_rate: float
    avg_winner: Decimal
    avg_loser: Decimal
    profit_factor: Optional[Decimal]
    realized_pnl: Decimal
    max_drawdown: Drawdown
    best_trade: Optional[Decimal]
    worst_trade: Optional[Decimal]

    @property
    def profit_factor_label(self) -> str:
        return "n/a (no losers)" if self.profit_factor is None else f"{self.profit_factor:.2f}"


def closed_pnls(trades: Iterable[Trade]) -> List[Decimal]:
    """Realized P&L of every sell, in ledger order"""
    return [
        t.realized_pnl
        for t in trades
        if t.action == TradeAction.SELL and t.realized_pnl is not None
    ]


def win_rate(pnls: Sequence[Decimal]) -> float:
    """wins / closed trades; 0.0 when nothing has closed"""
    if not pnls:
        return 0.0
    return sum(1 for p in pnls if p > 0) / len(pnls)


def _mean(values: List[Decimal]) -> Decimal:
    return sum(values, ZERO) / len(values) if values else ZERO


def avg_winner(pnls: Sequence[Decimal]) -> Decimal:
    return _mean([p for p in pnls if p > 0])


def avg_loser(pnls: Sequence[Decimal]) -> Decimal:
    return _mean([p for p in pnls if p < 0])


def profit_factor(pnls: Sequence[Decimal]) -> Optional[Decimal]:
    """
    |gross profit| / |gross loss|.
    None when there are no losing trades: the ratio is undefined, not infinite.
    """
    gross_loss = sum((p for p in pnls if p < 0), ZERO)
    if gross_loss == 0:
        return None
    gross_profit = sum((p for p in pnls if p > 0), ZERO)
    return abs(gross_profit) / abs(gross_loss)


def best_trade(pnls: Sequence[Decimal]) -> Optional[Decimal]:
    return max(pnls) if pnls else None


def worst_trade(pnls: Sequence[Decimal]) -> Optional[Decimal]:
    return min(pnls) if pnls else None


def max_drawdown(values: Sequence[Decimal], initial_peak: Optional[Decimal] = None) -> Drawdown:
    """
    Largest peak-to-current gap over the series, tracked against a running peak.
    `initial_peak` seeds the peak (e.g. starting capital) but is overtaken as soon as value exceeds it.
    """
    peak = initial_peak if initial_peak is not None else (values[0] if values else ZERO)
    worst = Drawdown(amount=ZERO, pct=ZERO, peak=peak, trough=peak)
    for value in values:
        if value > peak:
            peak = value
        gap = peak - value
        if gap > worst.amount:
            pct = gap / peak * 100 if peak > 0 else ZERO
            worst = Drawdown(amount=gap, pct=pct, peak=peak, trough=value)
    return worst


def summarize(
    trades: Sequence[Trade],
    values: Sequence[Decimal],
    initial_peak: Optional[Decimal] = None,
) -> PerformanceSummary:
    pnls = closed_pnls(trades)
    return PerformanceSummary(
        closed_trades=len(pnls),
        winners=sum(1 for p in pnls if p > 0),
        losers=sum(1 for p in pnls if p < 0),
        win_rate=win_rate(pnls),
        avg_winner=avg_winner(pnls),
        avg_loser=avg_loser(pnls),
        profit_factor=profit_factor(pnls),
        realized_pnl=sum(pnls, ZERO),
        max_drawdown=max_drawdown(values, initial_peak),
        best_trade=best_trade(pnls),
        worst_trade=worst_trade(pnls),
    )
