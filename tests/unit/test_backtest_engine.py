import json
from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal

import pandas as pd
import pytest

from paper_trader.backtest.bars import IntradayBar, StaticBarSource, SyntheticBarGenerator, SyntheticBarSource
from paper_trader.backtest.engine import BacktestEngine
from paper_trader.backtest.loader import load_window
from paper_trader.domain.models import Portfolio, TradeAction
from paper_trader.domain.services.decision_engine import DecisionEngine
from paper_trader.utils.time import EXCHANGE_TZ, MARKET_TZ
from tests.factories import make_flow, make_quote, make_report

DAY = date(2026, 1, 27)


def _bar(hour: int, minute: int, close: str) -> IntradayBar:
    price = Decimal(close)
    return IntradayBar(
        timestamp=datetime(2026, 1, 27, hour, minute),
        open=price,
        high=price,
        low=price,
        close=price,
        volume=1_000_000,
    )


@pytest.fixture()
def round_trip_bars():
    # support entry, target exit, back at support after the cap is used up
    return StaticBarSource({DAY: [_bar(9, 30, "250"), _bar(10, 0, "259"), _bar(10, 30, "250")]})


@pytest.mark.unit
def test_round_trip_with_costs(backtest_policy, config_engine, round_trip_bars):
    engine = BacktestEngine(backtest_policy, config_engine.execution, round_trip_bars, "TSLA", seed=1)

    result = engine.run([make_report(flow=make_flow(80))])

    assert [t.action for t in result.trades] == [TradeAction.BUY, TradeAction.SELL]
    buy, sell = result.trades
    assert buy.shares == 100
    assert buy.price == Decimal("250") * Decimal("1.0005")
    assert sell.price == Decimal("259") * Decimal("0.9995")
    assert sell.realized_pnl == (sell.price - buy.price) * 100
    assert sell.reasoning[0] == "target hit: call wall ($260.00)"
    assert result.transaction_costs == buy.cost + sell.cost
    assert result.ending_capital == Decimal("100000") - buy.notional - buy.cost + sell.notional - sell.cost


@pytest.mark.unit
def test_trade_cap_counts_buys_and_sells(backtest_policy, config_engine, round_trip_bars):
    result = BacktestEngine(backtest_policy, config_engine.execution, round_trip_bars, "TSLA").run(
        [make_report(flow=make_flow(80))]
    )

    # third bar sits on support again but two trades already happened
    assert result.total_trades == 2
    assert result.daily_results[0].shares_held == 0
    assert result.daily_results[0].position_value == 0


@pytest.mark.unit
def test_value_sampled_every_bar(backtest_policy, config_engine, round_trip_bars):
    result = BacktestEngine(backtest_policy, config_engine.execution, round_trip_bars, "TSLA").run(
        [make_report(flow=make_flow(80))]
    )

    assert len(result.value_series) == 3
    assert result.value_series[-1][1] == result.ending_capital
    assert result.summary.closed_trades == 1
    assert result.summary.profit_factor is None


@pytest.mark.unit
def test_hard_stop_in_replay(backtest_policy, config_engine):
    bars = StaticBarSource({DAY: [_bar(9, 30, "250"), _bar(10, 0, "244")]})

    result = BacktestEngine(backtest_policy, config_engine.execution, bars, "TSLA").run(
        [make_report(flow=make_flow(80))]
    )

    sell = result.trades[-1]
    assert sell.action == TradeAction.SELL
    assert sell.reasoning[0].startswith("hard stop")
    assert sell.realized_pnl < 0
    assert result.summary.losers == 1


@pytest.mark.unit
def test_days_without_bars_are_skipped(backtest_policy, config_engine, round_trip_bars):
    reports = [make_report(flow=make_flow(80)), make_report(day=date(2026, 1, 28))]

    result = BacktestEngine(backtest_policy, config_engine.execution, round_trip_bars, "TSLA").run(reports)

    assert result.end_date == DAY
    assert len(result.daily_results) == 1


@pytest.mark.unit
def test_empty_report_list_rejected(backtest_policy, config_engine, round_trip_bars):
    with pytest.raises(ValueError):
        BacktestEngine(backtest_policy, config_engine.execution, round_trip_bars, "TSLA").run([])


def _sample_run(config_engine, policy, seed):
    window = load_window(config_engine.config_dir / "backtest_window.yml")
    execution = config_engine.execution
    source = SyntheticBarSource(
        window.sessions,
        SyntheticBarGenerator(
            seed,
            interval_minutes=execution.bar_interval_minutes,
            session_open=execution.session_open,
            session_close=execution.session_close,
        ),
    )
    return BacktestEngine(policy, execution, source, window.symbol).run(window.reports)


@pytest.mark.unit
def test_sample_window_is_deterministic(backtest_policy, config_engine):
    first = _sample_run(config_engine, backtest_policy, seed=20260127)
    second = _sample_run(config_engine, backtest_policy, seed=20260127)

    assert first.trades == second.trades
    assert first.ending_capital == second.ending_capital
    assert first.value_series == second.value_series
    assert first.seed == 20260127
    assert len(first.daily_results) == 9


@pytest.mark.unit
def test_sample_window_respects_daily_cap(backtest_policy, config_engine):
    result = _sample_run(config_engine, backtest_policy, seed=11)

    for day in result.daily_results:
        assert len(day.trades) <= backtest_policy.max_trades_per_day
    assert result.ending_capital > 0


@pytest.mark.unit
def test_export_writes_summary_and_ledgers(backtest_policy, config_engine, round_trip_bars, tmp_path):
    result = BacktestEngine(backtest_policy, config_engine.execution, round_trip_bars, "TSLA", seed=5).run(
        [make_report(flow=make_flow(80))]
    )

    paths = result.export(tmp_path)

    summary = json.loads(paths["summary"].read_text())
    assert summary["total_trades"] == 2
    assert summary["seed"] == 5
    assert summary["profit_factor"] is None
    trades = pd.read_csv(paths["trades"])
    assert list(trades["action"]) == ["buy", "sell"]
    assert len(pd.read_csv(paths["values"])) == 3


@pytest.mark.unit
def test_fill_value_marked_at_bar_close(backtest_policy, config_engine, round_trip_bars):
    result = BacktestEngine(backtest_policy, config_engine.execution, round_trip_bars, "TSLA").run(
        [make_report(flow=make_flow(80))]
    )

    buy = result.trades[0]
    # marked at the bar close, not the slipped fill price
    assert buy.portfolio_value_after == buy.cash_after + 100 * Decimal("250")
    assert result.value_series[0][1] == buy.portfolio_value_after


@pytest.mark.unit
@pytest.mark.parametrize("hour, minute, buys", [(14, 15, True), (14, 45, False)])
def test_entry_cutoff_matches_live_engine(live_policy, config_engine, hour, minute, buys):
    instant = datetime(2026, 1, 27, hour, minute, tzinfo=MARKET_TZ)
    live = DecisionEngine(live_policy, "TSLA", "TSLL").decide(
        make_quote("250"), make_flow(80), make_report(), Portfolio.fresh(Decimal("100000")), 0, now=instant
    )
    # recorded and synthetic bars carry exchange wall-clock time
    bar = replace(_bar(9, 30, "250"), timestamp=instant.astimezone(EXCHANGE_TZ).replace(tzinfo=None))
    replay = BacktestEngine(live_policy, config_engine.execution, StaticBarSource({DAY: [bar]}), "TSLA").run(
        [make_report(flow=make_flow(80))]
    )

    assert (live.action == TradeAction.BUY) is buys
    assert (replay.total_trades == 1) is buys
