"""
BACKTEST ENGINE
Deterministic replay of the strategy over historical regime reports

RESPONSIBILITIES:
- Walk each session's bars in order
- Apply the shared entry/exit rules with the backtest policy
- Simulate fills with slippage and costs
- Sample portfolio value at every bar
- Aggregate performance against a buy-and-hold benchmark

RULES:
❌ No I/O besides logging
❌ No unseeded randomness (bars come from an injected BarSource)
✅ Same reports + same bars -> same ledger
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from paper_trader.backtest.bars import BarSource, IntradayBar
from paper_trader.backtest.execution import ExecutionSimulator
from paper_trader.backtest.result import BacktestResult, DailyResult
from paper_trader.domain.models import Portfolio, RegimeReport, Trade, TradeAction
from paper_trader.domain.services.config_engine import ExecutionSettings
from paper_trader.domain.services.metrics import summarize
from paper_trader.domain.strategy.policy import StrategyPolicy
from paper_trader.domain.strategy.rules import RuleContext, evaluate_entry, evaluate_exit
from paper_trader.utils.time import EXCHANGE_TZ, to_market

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class BacktestEngine:
    """
    Single-instrument replay. Days run sequentially because drawdown
    tracking depends on value-series order.
    """

    def __init__(
        self,
        policy: StrategyPolicy,
        execution: ExecutionSettings,
        bar_source: BarSource,
        symbol: str,
        seed: Optional[int] = None,
    ):
        self.policy = policy
        self.execution = execution
        self.bar_source = bar_source
        self.symbol = symbol
        self.seed = seed if seed is not None else getattr(bar_source, "seed", None)
        self.simulator = ExecutionSimulator(execution.transaction_cost_pct, execution.slippage_pct)

    def run(self, reports: Sequence[RegimeReport]) -> BacktestResult:
        if not reports:
            raise ValueError("Backtest needs at least one regime report")

        ordered = sorted(reports, key=lambda r: r.date)
        capital = self.execution.starting_capital
        portfolio = Portfolio.fresh(capital)
        trades: List[Trade] = []
        daily: List[DailyResult] = []
        values: List[Tuple[datetime, Decimal]] = []
        costs = ZERO

        logger.info(
            f"Backtest start: {ordered[0].date} -> {ordered[-1].date}, "
            f"policy={self.policy.label}, seed={self.seed}, capital={capital}"
        )

        for report in ordered:
            bars = self.bar_source.bars_for(report.date)
            if not bars:
                logger.warning(f"No intraday data for {report.date}; session skipped")
                continue
            portfolio, day_result, day_costs = self._run_session(portfolio, report, bars, values)
            trades.extend(day_result.trades)
            daily.append(day_result)
            costs += day_costs

        if not daily:
            raise ValueError("No session produced bars; nothing to backtest")

        first_open = daily[0].open_price
        last_close = daily[-1].close_price
        summary = summarize(trades, [v for _, v in values], initial_peak=capital)

        result = BacktestResult(
            policy=self.policy.label,
            seed=self.seed,
            symbol=self.symbol,
            start_date=daily[0].date,
            end_date=daily[-1].date,
            starting_capital=capital,
            ending_capital=daily[-1].total_value,
            buy_and_hold_return_pct=(last_close - first_open) / first_open * 100,
            trades=tuple(trades),
            daily_results=tuple(daily),
            value_series=tuple(values),
            summary=summary,
            transaction_costs=costs,
        )
        logger.info(
            f"Backtest done: {result.total_trades} trades, ending {result.ending_capital:.2f} "
            f"({result.total_return_pct:+.2f}%), buy&hold {result.buy_and_hold_return_pct:+.2f}%"
        )
        return result

    def _run_session(
        self,
        portfolio: Portfolio,
        report: RegimeReport,
        bars: List[IntradayBar],
        values: List[Tuple[datetime, Decimal]],
    ) -> Tuple[Portfolio, DailyResult, Decimal]:
        starting_cash = portfolio.cash
        flow = report.flow
        flow_pct = flow.percentile if flow else None
        session_trades: List[Trade] = []
        costs = ZERO
        realized = ZERO

        for bar in bars:
            ctx = RuleContext(
                price=bar.close,
                report=report,
                now=to_market(bar.timestamp, naive_assumed_tz=EXCHANGE_TZ),
                trades_today=len(session_trades),
                flow_percentile=flow_pct,
                flow_character=flow.character if flow else "",
            )
            position = portfolio.position(self.symbol)

            if position is not None:
                verdict = evaluate_exit(ctx, position, bar.close, self.policy)
                if verdict.action == TradeAction.SELL:
                    fill = self.simulator.sell(portfolio, self.symbol, position.shares, bar.close)
                    if fill is not None:
                        portfolio = fill.portfolio
                        costs += fill.cost
                        realized += fill.realized_pnl
                        session_trades.append(
                            self._record(TradeAction.SELL, bar, fill, portfolio, report, verdict.reasoning, flow_pct)
                        )
            else:
                verdict = evaluate_entry(ctx, self.policy, portfolio.cash, bar.close)
                if verdict.action == TradeAction.BUY:
                    fill = self.simulator.buy(
                        portfolio, self.symbol, verdict.shares, bar.close,
                        timestamp=bar.timestamp, mode=report.mode,
                    )
                    if fill is not None:
                        portfolio = fill.portfolio
                        costs += fill.cost
                        session_trades.append(
                            self._record(TradeAction.BUY, bar, fill, portfolio, report, verdict.reasoning, flow_pct)
                        )

            values.append((bar.timestamp, self._mark(portfolio, bar.close)))

        last = bars[-1]
        held = portfolio.position(self.symbol)
        total_value = self._mark(portfolio, last.close)
        result = DailyResult(
            date=report.date,
            mode=report.mode,
            open_price=bars[0].open,
            close_price=last.close,
            trades=tuple(session_trades),
            starting_cash=starting_cash,
            ending_cash=portfolio.cash,
            shares_held=held.shares if held else 0,
            avg_cost=held.avg_cost if held else ZERO,
            realized_pnl=realized,
            unrealized_pnl=held.unrealized_pnl(last.close) if held else ZERO,
            total_value=total_value,
            total_return=total_value - self.execution.starting_capital,
        )
        logger.info(
            f"{report.date} [{report.mode.value}] close {last.close} | trades {len(session_trades)} | "
            f"cash {portfolio.cash:.2f} | value {total_value:.2f}"
        )
        return portfolio, result, costs

    def _mark(self, portfolio: Portfolio, price: Decimal) -> Decimal:
        return portfolio.cash + portfolio.shares_of(self.symbol) * price

    def _record(self, action, bar, fill, portfolio, report, reasoning, flow_pct) -> Trade:
        return Trade(
            timestamp=bar.timestamp,
            action=action,
            instrument=self.symbol,
            shares=fill.shares,
            price=fill.price,
            reasoning=reasoning,
            portfolio_value_after=self._mark(portfolio, bar.close),
            cash_after=portfolio.cash,
            mode=report.mode,
            tier=report.tier,
            realized_pnl=fill.realized_pnl,
            cost=fill.cost,
            flow_percentile=flow_pct,
        )
