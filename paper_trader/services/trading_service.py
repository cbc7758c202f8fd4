"""
TRADING SERVICE - LIVE LOOP

RESPONSIBILITIES:
- Own the live SessionState (one instance per process)
- Roll the daily counter on date change
- Post market open / close / weekly report once per day
- Trade only inside regular market hours
- Execute signals through the accounting functions, record the ledger
- Persist state after every mutation
- Hand notifications and commentary to the side-effect queue

RULES:
❌ No decision logic (DecisionEngine decides)
❌ No inline notifications
✅ Invariant violations rejected before state changes
✅ Persistence failures are logged, in-memory state is kept
"""

import logging
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Callable, Dict, Optional

from paper_trader.domain.errors import DataUnavailableError, MissingPriceError, PersistenceError
from paper_trader.domain.models import (
    CompositeReading,
    CompositeZone,
    FlowReading,
    Portfolio,
    PortfolioValuation,
    Quote,
    RegimeReport,
    SessionState,
    Trade,
    TradeAction,
    TradeSignal,
)
from paper_trader.domain.services.accounting import apply_buy, apply_sell, value_portfolio
from paper_trader.domain.services.decision_engine import OVERRIDE_SETUPS, DecisionEngine
from paper_trader.domain.services.market_read import market_read
from paper_trader.domain.services.metrics import summarize
from paper_trader.infrastructure.db.database import session_scope
from paper_trader.infrastructure.db.repositories.log_repository import BotLogRepository
from paper_trader.infrastructure.db.repositories.snapshot_repository import PortfolioSnapshotRepository
from paper_trader.infrastructure.db.repositories.state_repository import BotStateRepository
from paper_trader.infrastructure.db.repositories.trade_repository import PaperTradeRepository
from paper_trader.realtime.side_effects import SideEffect, SideEffectQueue
from paper_trader.services.commentary_service import generate_commentary
from paper_trader.services.notification_service import send_telegram_message
from paper_trader.telegram import formatters
from paper_trader.utils.time import is_market_hours, market_close_time, now_market

logger = logging.getLogger(__name__)


class TradingService:
    def __init__(
        self,
        engine: DecisionEngine,
        quotes,
        flow_service,
        reports,
        composites,
        side_effects: SideEffectQueue,
        starting_capital: Decimal,
        session_factory: Callable = session_scope,
        clock: Callable[[], datetime] = now_market,
        weekly_report_hour: int = 18,
        notify=send_telegram_message,
        commentary=generate_commentary,
    ):
        self.engine = engine
        self.quotes = quotes
        self.flow_service = flow_service
        self.reports = reports
        self.composites = composites
        self.side_effects = side_effects
        self.starting_capital = Decimal(str(starting_capital))
        self._session_factory = session_factory
        self._clock = clock
        self.weekly_report_hour = weekly_report_hour
        self._notify = notify
        self._commentary = commentary
        self.state: Optional[SessionState] = None

    @property
    def primary(self) -> str:
        return self.engine.primary_symbol

    @property
    def leveraged(self) -> str:
        return self.engine.leveraged_symbol

    # ------------------------------------------------------------------
    # LIFECYCLE
    # ------------------------------------------------------------------

    async def start(self) -> SessionState:
        """Load persisted state (or start fresh) and reset the daily counter on a new day"""
        async with self._session_factory() as session:
            state = await BotStateRepository(session).load()

        if state is None:
            state = SessionState(portfolio=Portfolio.fresh(self.starting_capital))
            logger.info(f"No saved state; starting fresh with {state.portfolio.cash:,.2f} cash")

        today = self._clock().date()
        if state.roll_to(today):
            logger.info(f"New session {today}: daily trade counter reset")

        self.state = state
        await self._persist()
        await self._bot_log("info", "bot_started", "paper trader initialized", {
            "cash": str(state.portfolio.cash),
            "positions": {k: p.shares for k, p in state.portfolio.positions.items()},
            "realized_pnl": str(state.portfolio.realized_pnl),
        })
        logger.info(
            f"Paper trader ready: cash {state.portfolio.cash:,.2f}, "
            f"positions {sorted(state.portfolio.positions) or 'none'}, trades today {state.trades_today}"
        )
        return state

    async def run_cycle(self) -> Optional[TradeSignal]:
        """One trading cycle. Errors are logged and reported, never raised to the scheduler."""
        if self.state is None:
            await self.start()

        now = self._clock()
        today = now.date()
        try:
            if self.state.roll_to(today):
                logger.info(f"New session {today}: daily trade counter reset")
                await self._persist()

            market_open = is_market_hours(now)

            if market_open and self.state.posted_open != today:
                await self._market_open(now)

            if (
                not market_open
                and self.state.posted_open == today
                and self.state.posted_close != today
                and now.time() >= market_close_time()
            ):
                await self._market_close(now)

            if now.weekday() == 6 and now.hour >= self.weekly_report_hour and self.state.posted_weekly != today:
                await self._weekly_report(today)

            if not market_open:
                logger.debug(f"Market closed at {now:%Y-%m-%d %H:%M}; no trading")
                return None

            return await self._trade(now)
        except DataUnavailableError as exc:
            logger.warning(f"Cycle skipped, data unavailable: {exc}")
            await self._bot_log("warning", "data_unavailable", str(exc))
            return None
        except Exception as exc:
            # Job boundary: keep the scheduler alive, surface the failure
            logger.exception(f"Trading cycle failed: {exc}")
            await self._bot_log("error", "cycle_error", str(exc))
            text = formatters.format_error(str(exc))
            self._publish("error", lambda text=text: self._notify(text))
            return None

    async def stop(self) -> None:
        await self._bot_log("info", "bot_stopped", "paper trader stopped")
        logger.info("Paper trader stopped")

    async def flow_cycle(self) -> Optional[FlowReading]:
        now = self._clock()
        if not is_market_hours(now):
            return None
        return await self.flow_service.refresh()

    # ------------------------------------------------------------------
    # TRADING
    # ------------------------------------------------------------------

    async def _trade(self, now: datetime) -> Optional[TradeSignal]:
        quote = await self.quotes.get_quote(self.primary)

        leveraged_quote = await self._optional_quote(self.leveraged)
        report = await self.reports.get_report(now.date())
        composite = await self.composites.get_composite()
        flow = await self.flow_service.current()

        state = self.state
        previous_zone = state.composite_zone
        signal = self.engine.decide(
            quote,
            flow,
            report,
            state.portfolio,
            state.trades_today,
            previous_zone,
            composite=composite,
            leveraged_quote=leveraged_quote,
            now=now,
        )
        logger.info(f"Signal {signal.action.value.upper()} {signal.instrument or ''}: {' | '.join(signal.reasoning)}")

        prices = {self.primary: quote.price}
        if leveraged_quote is not None:
            prices[self.leveraged] = leveraged_quote.price

        trade = None
        if signal.action == TradeAction.BUY:
            trade = await self._execute_buy(signal, now, prices, report, composite, flow)
        elif signal.action == TradeAction.SELL:
            trade = await self._execute_sell(signal, now, prices, report, composite, flow)

        zone_changed = composite is not None and previous_zone is not None and composite.zone != previous_zone
        if composite is not None:
            state.composite_zone = composite.zone
        state.last_action = signal.action
        await self._persist()

        if zone_changed:
            forced = trade if trade is not None and trade.instrument == self.leveraged and trade.is_closing else None
            text = formatters.format_zone_change(previous_zone, composite, self.leveraged, forced)
            self._publish("zone_change", lambda text=text: self._notify(text))

        valuation = self._valuation(prices)
        if valuation is not None:
            take = market_read(
                quote, report, flow,
                state.portfolio.position(self.primary) or state.portfolio.position(self.leveraged),
                prices.get(self.leveraged) if state.portfolio.position(self.leveraged) else None,
            )
            text = formatters.format_status(quote, report, composite, take, state.portfolio, valuation, now)
            self._publish("status", lambda text=text: self._notify(text))
        return signal

    async def _optional_quote(self, symbol: str) -> Optional[Quote]:
        try:
            return await self.quotes.get_quote(symbol)
        except DataUnavailableError as exc:
            logger.warning(f"{symbol} quote unavailable: {exc}")
            return None

    async def _execute_buy(
        self,
        signal: TradeSignal,
        now: datetime,
        prices: Dict[str, Decimal],
        report: Optional[RegimeReport],
        composite: Optional[CompositeReading],
        flow: Optional[FlowReading],
    ) -> Trade:
        state = self.state
        # Raises AccountingError before anything is mutated
        portfolio = apply_buy(
            state.portfolio,
            signal.instrument,
            signal.shares,
            signal.price,
            timestamp=now,
            mode=report.mode if report else None,
        )
        state.portfolio = portfolio
        state.trades_today += 1

        valuation = self._valuation({**prices, signal.instrument: signal.price})
        trade = self._trade_record(signal, now, portfolio, valuation, report, composite, flow, None)
        await self._record(trade)
        logger.info(f"🟢 bought {trade.shares} {trade.instrument} @ {trade.price:.2f}")

        override = signal.override_setups

        async def post():
            commentary = await self._commentary("entry", {
                "instrument": trade.instrument,
                "shares": trade.shares,
                "price": trade.price,
                "reasoning": trade.reasoning,
            }) or formatters.entry_commentary(trade, report, composite, self.leveraged)
            await self._notify(formatters.format_entry(
                trade, report, composite, flow, portfolio, valuation, commentary, override
            ))

        self._publish("entry", post)
        return trade

    async def _execute_sell(
        self,
        signal: TradeSignal,
        now: datetime,
        prices: Dict[str, Decimal],
        report: Optional[RegimeReport],
        composite: Optional[CompositeReading],
        flow: Optional[FlowReading],
    ) -> Trade:
        state = self.state
        result = apply_sell(state.portfolio, signal.instrument, signal.shares, signal.price)
        state.portfolio = result.portfolio
        state.trades_today += 1

        valuation = self._valuation({**prices, signal.instrument: signal.price})
        trade = self._trade_record(
            signal, now, result.portfolio, valuation, report, composite, flow, result.realized_pnl
        )
        await self._record(trade)
        logger.info(f"🔴 sold {trade.shares} {trade.instrument} @ {trade.price:.2f} (pnl {result.realized_pnl:+.2f})")

        portfolio = result.portfolio

        async def post():
            commentary = await self._commentary("exit", {
                "instrument": trade.instrument,
                "shares": trade.shares,
                "price": trade.price,
                "realized_pnl": trade.realized_pnl,
                "reasoning": trade.reasoning,
            }) or formatters.exit_commentary(trade)
            await self._notify(formatters.format_exit(trade, portfolio, valuation, commentary))

        self._publish("exit", post)
        return trade

    def _trade_record(
        self,
        signal: TradeSignal,
        now: datetime,
        portfolio: Portfolio,
        valuation: Optional[PortfolioValuation],
        report: Optional[RegimeReport],
        composite: Optional[CompositeReading],
        flow: Optional[FlowReading],
        realized_pnl: Optional[Decimal],
    ) -> Trade:
        return Trade(
            timestamp=now,
            action=signal.action,
            instrument=signal.instrument,
            shares=signal.shares,
            price=signal.price,
            reasoning=signal.reasoning,
            portfolio_value_after=valuation.total_value if valuation else portfolio.cash,
            cash_after=portfolio.cash,
            mode=report.mode if report else None,
            tier=report.tier if report else None,
            realized_pnl=realized_pnl,
            flow_percentile=flow.percentile if flow else None,
            composite_zone=composite.zone if composite else None,
        )

    def _valuation(self, prices: Dict[str, Decimal]) -> Optional[PortfolioValuation]:
        try:
            return value_portfolio(self.state.portfolio, prices)
        except MissingPriceError as exc:
            logger.warning(f"Cannot value portfolio: no price for {exc.instrument}")
            return None

    # ------------------------------------------------------------------
    # SESSION POSTS
    # ------------------------------------------------------------------

    async def _market_open(self, now: datetime) -> None:
        quote = await self.quotes.get_quote(self.primary)
        report = await self.reports.get_report(now.date())
        composite = await self.composites.get_composite()
        flow = await self.flow_service.current()

        instrument = self.primary
        if composite is not None:
            if composite.zone == CompositeZone.FULL_RISK_ON or any(
                s in OVERRIDE_SETUPS for s in composite.active_setup_ids
            ):
                instrument = self.leveraged
        cap = None
        if report is not None:
            cap = self.engine.policy.mode_allocation[report.mode] * 100

        text = formatters.format_market_open(quote, report, composite, flow, instrument, cap)
        self._publish("market_open", lambda text=text: self._notify(text))
        self.state.posted_open = now.date()
        await self._persist()
        await self._bot_log("info", "market_open", "market open posted")

    async def _market_close(self, now: datetime) -> None:
        today = now.date()
        prices = {self.primary: (await self.quotes.get_quote(self.primary)).price}
        if self.state.portfolio.position(self.leveraged) is not None:
            prices[self.leveraged] = (await self.quotes.get_quote(self.leveraged)).price
        valuation = value_portfolio(self.state.portfolio, prices)

        async with self._session_factory() as session:
            todays = await PaperTradeRepository(session).get_for_date(today)
        closed = [t.realized_pnl for t in todays if t.is_closing and t.realized_pnl is not None]
        day_pnl = await self._day_pnl(today, valuation)
        wins = sum(1 for p in closed if p > 0)
        losses = sum(1 for p in closed if p < 0)

        try:
            async with self._session_factory() as session:
                await PortfolioSnapshotRepository(session).upsert(today, valuation, len(todays), wins, losses)
        except PersistenceError as exc:
            logger.error(f"Snapshot for {today} not saved: {exc}")

        text = formatters.format_market_close(self.state.portfolio, valuation, len(todays), day_pnl)
        self._publish("market_close", lambda text=text: self._notify(text))
        self.state.posted_close = today
        await self._persist()
        await self._bot_log("info", "market_close", "market close posted", {"day_pnl": str(day_pnl)})

    async def _day_pnl(self, today: date, valuation: PortfolioValuation) -> Decimal:
        """Total value change against the previous snapshot (starting capital when none)"""
        async with self._session_factory() as session:
            previous = await PortfolioSnapshotRepository(session).get_range(today - timedelta(days=10), today - timedelta(days=1))
        baseline = Decimal(str(previous[-1].total_value)) if previous else self.state.portfolio.starting_capital
        return valuation.total_value - baseline

    async def _weekly_report(self, today: date) -> None:
        week_start = today - timedelta(days=6)
        async with self._session_factory() as session:
            snapshots = await PortfolioSnapshotRepository(session).get_range(week_start - timedelta(days=7), today)
            trades = await PaperTradeRepository(session).get_between(
                datetime.combine(week_start, datetime.min.time()),
                datetime.combine(today + timedelta(days=1), datetime.min.time()),
            )

        in_week = [s for s in snapshots if s.snapshot_date >= week_start]
        if not in_week:
            logger.info("Weekly report skipped: no snapshots this week")
            self.state.posted_weekly = today
            await self._persist()
            return

        before = [s for s in snapshots if s.snapshot_date < week_start]
        start_value = (
            Decimal(str(before[-1].total_value)) if before else self.state.portfolio.starting_capital
        )
        values = [Decimal(str(s.total_value)) for s in in_week]
        summary = summarize(trades, values, initial_peak=start_value)

        text = formatters.format_weekly_report(summary, start_value, values[-1], week_start, today)
        self._publish("weekly_report", lambda text=text: self._notify(text))
        self.state.posted_weekly = today
        await self._persist()
        await self._bot_log("info", "weekly_report", "weekly report posted")

    # ------------------------------------------------------------------
    # PERSISTENCE / SIDE EFFECTS
    # ------------------------------------------------------------------

    async def _persist(self) -> bool:
        try:
            async with self._session_factory() as session:
                await BotStateRepository(session).save(self.state)
            return True
        except PersistenceError as exc:
            # No rollback of the in-memory book; next successful save catches up
            logger.error(f"Bot state not persisted: {exc}")
            await self._bot_log("error", "persistence_failed", str(exc))
            return False

    async def _record(self, trade: Trade) -> None:
        try:
            async with self._session_factory() as session:
                await PaperTradeRepository(session).create(trade)
                await BotStateRepository(session).save(self.state)
        except PersistenceError as exc:
            logger.error(f"Trade not recorded ({trade.action.value} {trade.shares} {trade.instrument}): {exc}")
            await self._bot_log("error", "persistence_failed", str(exc), {
                "action": trade.action.value,
                "instrument": trade.instrument,
                "shares": trade.shares,
                "price": str(trade.price),
            })
            return
        await self._bot_log("trade", f"{trade.action.value}", (
            f"{trade.action.value} {trade.shares} {trade.instrument} @ {trade.price:.2f}"
        ), {"realized_pnl": str(trade.realized_pnl) if trade.realized_pnl is not None else None})

    async def _bot_log(self, level: str, event: str, message: str, details: Optional[dict] = None) -> None:
        try:
            async with self._session_factory() as session:
                await BotLogRepository(session).log(level, event, message, details)
        except PersistenceError as exc:
            logger.error(f"Bot log entry '{event}' not written: {exc}")

    def _publish(self, kind: str, action) -> None:
        self.side_effects.publish(SideEffect(kind=kind, action=action))
