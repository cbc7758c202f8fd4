from datetime import datetime
from decimal import Decimal

import pytest

from paper_trader.domain.models import Trade, TradeAction
from paper_trader.domain.services.metrics import (
    max_drawdown,
    profit_factor,
    summarize,
    win_rate,
)


def _trade(action: TradeAction, pnl=None) -> Trade:
    return Trade(
        timestamp=datetime(2026, 1, 27, 10, 0),
        action=action,
        instrument="TSLA",
        shares=10,
        price=Decimal("250"),
        reasoning=("test",),
        portfolio_value_after=Decimal("100000"),
        cash_after=Decimal("97500"),
        realized_pnl=None if pnl is None else Decimal(pnl),
    )


@pytest.mark.unit
def test_empty_ledger_summary():
    summary = summarize([], [])

    assert summary.closed_trades == 0
    assert summary.win_rate == 0.0
    assert summary.avg_winner == Decimal("0")
    assert summary.profit_factor is None
    assert summary.best_trade is None
    assert summary.max_drawdown.amount == Decimal("0")


@pytest.mark.unit
def test_profit_factor_undefined_without_losers():
    assert profit_factor([Decimal("100"), Decimal("50")]) is None
    assert profit_factor([Decimal("300"), Decimal("-100"), Decimal("-50")]) == Decimal("2")


@pytest.mark.unit
def test_win_rate_counts_only_positive_results():
    assert win_rate([Decimal("10"), Decimal("0"), Decimal("-5"), Decimal("7")]) == 0.5


@pytest.mark.unit
def test_drawdown_tracks_running_peak():
    values = [Decimal(v) for v in ("100", "120", "90", "130", "110", "125")]

    dd = max_drawdown(values)

    assert dd.peak == Decimal("120")
    assert dd.trough == Decimal("90")
    assert dd.amount == Decimal("30")
    assert dd.pct == Decimal("25")


@pytest.mark.unit
def test_initial_peak_is_overtaken():
    dd = max_drawdown([Decimal("105"), Decimal("110"), Decimal("99")], initial_peak=Decimal("100"))

    assert dd.peak == Decimal("110")
    assert dd.amount == Decimal("11")


@pytest.mark.unit
def test_recovery_above_overtaken_peak_keeps_worst_drawdown():
    values = [Decimal("110"), Decimal("99"), Decimal("120"), Decimal("114")]

    dd = max_drawdown(values, initial_peak=Decimal("100"))

    assert dd.amount == Decimal("11")
    assert dd.pct == Decimal("10")
    assert (dd.peak, dd.trough) == (Decimal("110"), Decimal("99"))


@pytest.mark.unit
def test_summary_uses_only_closed_trades():
    trades = [
        _trade(TradeAction.BUY),
        _trade(TradeAction.SELL, "150"),
        _trade(TradeAction.BUY),
        _trade(TradeAction.SELL, "-50"),
    ]

    summary = summarize(trades, [Decimal("100000"), Decimal("100150"), Decimal("100100")])

    assert summary.closed_trades == 2
    assert summary.winners == 1
    assert summary.losers == 1
    assert summary.win_rate == 0.5
    assert summary.profit_factor == Decimal("3")
    assert summary.realized_pnl == Decimal("100")
    assert summary.best_trade == Decimal("150")
    assert summary.worst_trade == Decimal("-50")
    assert summary.profit_factor_label == "3.00"
