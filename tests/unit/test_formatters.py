from datetime import date, datetime
from decimal import Decimal

import pytest

from paper_trader.domain.models import (
    ActiveSetup,
    CompositeReading,
    CompositeZone,
    Mode,
    Portfolio,
    Trade,
    TradeAction,
)
from paper_trader.domain.services.accounting import apply_buy, value_portfolio
from paper_trader.domain.services.market_read import market_read
from paper_trader.domain.services.metrics import summarize
from paper_trader.telegram import formatters
from tests.factories import make_flow, make_quote, make_report

CAPITAL = Decimal("100000")


def _buy_trade(instrument="TSLA", shares=100, price="250", reasoning=("near support: put wall ($250.00)",)):
    return Trade(
        timestamp=datetime(2026, 1, 27, 10, 15),
        action=TradeAction.BUY,
        instrument=instrument,
        shares=shares,
        price=Decimal(price),
        reasoning=reasoning,
        portfolio_value_after=CAPITAL,
        cash_after=CAPITAL - Decimal(price) * shares,
        mode=Mode.FAVORABLE,
        tier=1,
    )


def _book():
    portfolio = apply_buy(Portfolio.fresh(CAPITAL), "TSLA", 100, Decimal("250"))
    return portfolio, value_portfolio(portfolio, {"TSLA": Decimal("250")})


@pytest.mark.unit
def test_entry_post_with_override():
    portfolio, valuation = _book()
    composite = CompositeReading(zone=CompositeZone.NEUTRAL, score=0.1, setups=(ActiveSetup("deep-value"),))

    text = formatters.format_entry(
        _buy_trade(), make_report(), composite, make_flow(80), portfolio, valuation,
        "price is sitting on support.", ("deep-value",),
    )

    assert text.startswith("🟢 BUY ⚡ OVERRIDE - 10:15 am CT")
    assert "⚡ override: deep value active" in text
    assert "bought 100 shares TSLA @ $250.00" in text
    assert "size: $25,000.00 (25.0% of cash) | favorable mode, tier 1" in text
    assert "TSLA: 100 shares (25% of port)" in text


@pytest.mark.unit
def test_exit_post_shows_result():
    portfolio = Portfolio.fresh(CAPITAL)
    trade = Trade(
        timestamp=datetime(2026, 1, 27, 14, 5),
        action=TradeAction.SELL,
        instrument="TSLA",
        shares=100,
        price=Decimal("260"),
        reasoning=("target hit: call wall ($260.00)",),
        portfolio_value_after=Decimal("101000"),
        cash_after=Decimal("101000"),
        realized_pnl=Decimal("1000"),
    )

    text = formatters.format_exit(trade, portfolio, value_portfolio(portfolio, {}), formatters.exit_commentary(trade))

    assert text.startswith("🔴 SELL - 2:05 pm CT")
    assert "result: +$1,000.00 (+4.0%)" in text
    assert "hit the target" in text
    assert "flat: 0 shares" in text


@pytest.mark.unit
def test_exit_commentary_falls_back_to_reasoning():
    trade = _buy_trade(reasoning=("manual close", "end of test"))

    assert formatters.exit_commentary(trade) == "manual close. end of test"


@pytest.mark.unit
def test_zone_change_post_lists_forced_exit():
    forced = Trade(
        timestamp=datetime(2026, 1, 27, 11, 0),
        action=TradeAction.SELL,
        instrument="TSLL",
        shares=800,
        price=Decimal("14.20"),
        reasoning=("composite zone change: neutral -> defensive",),
        portfolio_value_after=CAPITAL,
        cash_after=CAPITAL,
        realized_pnl=Decimal("-640"),
    )
    composite = CompositeReading(
        zone=CompositeZone.DEFENSIVE,
        score=-0.7,
        setups=(ActiveSetup("breakdown"), ActiveSetup("capitulation", status="watching")),
    )

    text = formatters.format_zone_change(CompositeZone.NEUTRAL, composite, "TSLL", forced)

    assert text.startswith("🔀 COMPOSITE ZONE CHANGE")
    assert "defensive conditions. leveraged positions exit immediately." in text
    assert "sold 800 shares TSLL @ $14.20" in text
    assert "p&l: -$640.00" in text
    assert "active: breakdown" in text
    assert "watching: capitulation" in text


@pytest.mark.unit
def test_market_open_without_report():
    text = formatters.format_market_open(make_quote("250"), None, None, None, "TSLA")

    assert text.startswith("🔔 MARKET OPEN")
    assert "⚪ composite: n/a (primary only)" in text
    assert text.endswith("no report yet. sitting on hands until guidance arrives.")


@pytest.mark.unit
def test_market_open_plan():
    text = formatters.format_market_open(
        make_quote("252"), make_report(), None, make_flow(80), "TSLA", Decimal("25"),
    )

    assert "buys: TSLA near put wall ($250.00), up to 25% of cash" in text
    assert "sells: call wall ($260.00)" in text
    assert "master eject: $245.00 (2.8% away), full exit below" in text


@pytest.mark.unit
def test_market_open_in_defensive_zone_stays_in_cash():
    composite = CompositeReading(zone=CompositeZone.DEFENSIVE, score=-0.6)

    text = formatters.format_market_open(make_quote("252"), make_report(), composite, None, "TSLA")

    assert "buys: none. defensive zone, sitting in cash." in text


@pytest.mark.unit
def test_market_close_and_status():
    portfolio, valuation = _book()

    close = formatters.format_market_close(portfolio, valuation, 1, Decimal("-125.50"))
    status = formatters.format_status(
        make_quote("250"), make_report(), None, "chop zone.", portfolio, valuation, datetime(2026, 1, 27, 9, 0)
    )

    assert close.startswith("🔕 MARKET CLOSE")
    assert "• TSLA: 100 shares, +$0.00" in close
    assert "day's p&l: -$125.50 (-0.1%)" in close
    assert close.endswith("back at it tomorrow.")
    assert status.startswith("📊 STATUS UPDATE - 9:00 am CT")
    assert "take: chop zone." in status


@pytest.mark.unit
def test_weekly_report_without_closed_trades():
    summary = summarize([], [CAPITAL, Decimal("100500")], initial_peak=CAPITAL)

    text = formatters.format_weekly_report(summary, CAPITAL, Decimal("100500"), date(2026, 1, 26), date(2026, 2, 1))

    assert "capital: $100,000.00 -> $100,500.00 (+0.5%)" in text
    assert "profit factor: n/a (no losers)" in text
    assert "best: n/a | worst: n/a" in text


@pytest.mark.unit
def test_error_post():
    assert formatters.format_error("boom") == "⚠️ SYSTEM ALERT\n\nerror: boom\n\ninvestigating..."


@pytest.mark.unit
def test_market_read_combines_takes():
    report = make_report(key_gamma_strike="251")
    portfolio = apply_buy(Portfolio.fresh(CAPITAL), "TSLA", 100, Decimal("245"))

    take = market_read(
        make_quote("250", change_pct="2.5"), report, make_flow(90), portfolio.position("TSLA")
    )

    assert take == (
        "strong move higher. momentum building. dealers buying aggressively. "
        "gamma strike ($251) in play. sitting on +2.0%. letting it ride."
    )


@pytest.mark.unit
def test_market_read_default():
    assert market_read(make_quote("250", change_pct="0.1"), None, None, None) == "chop zone. waiting for direction."
