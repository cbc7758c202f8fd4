from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from paper_trader.domain.errors import DataUnavailableError, ExternalServiceError, PersistenceError
from paper_trader.domain.models import (
    CompositeReading,
    CompositeZone,
    Mode,
    Portfolio,
    SessionState,
    TradeAction,
)
from paper_trader.domain.services.accounting import apply_buy, value_portfolio
from paper_trader.domain.services.decision_engine import DecisionEngine
from paper_trader.infrastructure.db.repositories.log_repository import BotLogRepository
from paper_trader.infrastructure.db.repositories.snapshot_repository import PortfolioSnapshotRepository
from paper_trader.infrastructure.db.repositories.state_repository import BotStateRepository
from paper_trader.infrastructure.db.repositories.trade_repository import PaperTradeRepository
from paper_trader.realtime.side_effects import SideEffectQueue, SideEffectWorker
from paper_trader.services.flow_service import CachedFlowService
from paper_trader.services.trading_service import TradingService
from paper_trader.utils.time import MARKET_TZ, now_market
from tests.factories import make_flow, make_quote, make_report

TODAY = date(2026, 1, 27)


def market_time(day: date, hour: int, minute: int = 0) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=MARKET_TZ)


class StubQuotes:
    def __init__(self, **prices):
        self.prices = {symbol: Decimal(price) for symbol, price in prices.items()}

    async def get_quote(self, symbol):
        if symbol not in self.prices:
            raise DataUnavailableError(f"no quote for {symbol}")
        return make_quote(str(self.prices[symbol]), symbol)


class StubReports:
    def __init__(self, report=None):
        self.report = report

    async def get_report(self, day):
        return self.report


class StubComposites:
    def __init__(self, composite=None):
        self.composite = composite

    async def get_composite(self):
        return self.composite


class StubFlowService:
    def __init__(self, flow=None):
        self.flow = flow

    async def current(self):
        return self.flow

    async def refresh(self):
        return self.flow


class Clock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture()
def notifications():
    return []


@pytest.fixture()
def build_service(live_policy, session_factory, notifications):
    def build(quotes=None, report=None, composite=None, now=None):
        async def notify(text):
            notifications.append(text)
            return True

        async def no_commentary(kind, context):
            return None

        return TradingService(
            engine=DecisionEngine(live_policy, "TSLA", "TSLL"),
            quotes=quotes or StubQuotes(TSLA="250", TSLL="15"),
            flow_service=StubFlowService(make_flow(80)),
            reports=StubReports(report if report is not None else make_report()),
            composites=StubComposites(composite),
            side_effects=SideEffectQueue(),
            starting_capital=Decimal("100000"),
            session_factory=session_factory,
            clock=Clock(now or market_time(TODAY, 10)),
            notify=notify,
            commentary=no_commentary,
        )

    return build


async def _drain(queue: SideEffectQueue):
    kinds = []
    while queue.size():
        kinds.append((await queue.get()).kind)
        queue.task_done()
    return kinds


@pytest.mark.asyncio
@pytest.mark.integration
async def test_start_fresh_persists_state(build_service, session_factory):
    service = build_service()

    state = await service.start()

    assert state.portfolio.cash == Decimal("100000")
    assert state.session_date == TODAY
    async with session_factory() as session:
        stored = await BotStateRepository(session).load()
        started = await BotLogRepository(session).get_recent(event="bot_started")
    assert stored.portfolio.cash == Decimal("100000")
    assert len(started) == 1


@pytest.mark.asyncio
@pytest.mark.integration
async def test_start_resets_daily_counter_on_new_day(build_service, session_factory):
    async with session_factory() as session:
        await BotStateRepository(session).save(SessionState(
            portfolio=Portfolio.fresh(Decimal("90000")),
            session_date=date(2026, 1, 26),
            trades_today=2,
        ))

    state = await build_service().start()

    assert state.trades_today == 0
    assert state.session_date == TODAY
    assert state.portfolio.cash == Decimal("90000")


@pytest.mark.asyncio
@pytest.mark.integration
async def test_cycle_buys_records_and_posts(build_service, session_factory, notifications):
    service = build_service()
    worker = SideEffectWorker(service.side_effects)
    worker.start()

    signal = await service.run_cycle()
    await service.side_effects.join()
    await worker.stop()

    assert signal.action == TradeAction.BUY
    assert service.state.portfolio.shares_of("TSLA") == 100
    assert service.state.trades_today == 1
    assert service.state.posted_open == TODAY
    async with session_factory() as session:
        trades = await PaperTradeRepository(session).get_for_date(TODAY)
        stored = await BotStateRepository(session).load()
    assert [t.shares for t in trades] == [100]
    assert trades[0].portfolio_value_after == Decimal("100000")
    assert stored.portfolio.cash == Decimal("75000")
    assert stored.last_action == TradeAction.BUY
    assert [n.split("\n")[0] for n in notifications] == [
        "🔔 MARKET OPEN",
        "🟢 BUY - 10:00 am CT",
        "📊 STATUS UPDATE - 10:00 am CT",
    ]
    assert "price is sitting on support" in notifications[1]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_no_pyramiding_across_cycles(build_service):
    service = build_service()
    await service.run_cycle()

    signal = await service.run_cycle()

    assert signal.action == TradeAction.HOLD
    assert service.state.trades_today == 1
    assert service.state.portfolio.shares_of("TSLA") == 100


@pytest.mark.asyncio
@pytest.mark.integration
async def test_market_closed_does_nothing(build_service):
    service = build_service(now=market_time(TODAY, 7, 45))

    assert await service.run_cycle() is None
    assert service.state.posted_open is None
    assert service.state.portfolio.is_flat
    assert service.side_effects.size() == 0


@pytest.mark.asyncio
@pytest.mark.integration
async def test_missing_quote_skips_cycle(build_service, session_factory):
    service = build_service(quotes=StubQuotes())

    assert await service.run_cycle() is None
    assert service.state.portfolio.is_flat
    async with session_factory() as session:
        logged = await BotLogRepository(session).get_recent(event="data_unavailable")
    assert len(logged) == 1


@pytest.mark.asyncio
@pytest.mark.integration
async def test_market_close_snapshot(build_service, session_factory):
    service = build_service()
    await service.run_cycle()
    await _drain(service.side_effects)

    service._clock.now = market_time(TODAY, 15, 30)
    assert await service.run_cycle() is None

    assert service.state.posted_close == TODAY
    assert await _drain(service.side_effects) == ["market_close"]
    async with session_factory() as session:
        snapshot = await PortfolioSnapshotRepository(session).get_for_date(TODAY)
    assert Decimal(str(snapshot.total_value)) == Decimal("100000")
    assert snapshot.trades_count == 1


@pytest.mark.asyncio
@pytest.mark.integration
async def test_zone_deterioration_forces_leveraged_exit(build_service, session_factory):
    composite = CompositeReading(zone=CompositeZone.DEFENSIVE, score=-0.7)
    service = build_service(quotes=StubQuotes(TSLA="250", TSLL="14"), composite=composite)
    await service.start()
    service.state.portfolio = apply_buy(
        service.state.portfolio, "TSLL", 800, Decimal("15"), mode=Mode.FAVORABLE
    )
    service.state.composite_zone = CompositeZone.NEUTRAL
    service.state.posted_open = TODAY

    signal = await service.run_cycle()

    assert signal.action == TradeAction.SELL
    assert signal.instrument == "TSLL"
    assert service.state.portfolio.is_flat
    assert service.state.portfolio.realized_pnl == Decimal("-800")
    assert service.state.composite_zone == CompositeZone.DEFENSIVE
    assert await _drain(service.side_effects) == ["exit", "zone_change", "status"]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_deferred_forced_exit_runs_on_next_cycle(build_service):
    composite = CompositeReading(zone=CompositeZone.DEFENSIVE, score=-0.7)
    quotes = StubQuotes(TSLA="250")
    service = build_service(quotes=quotes, composite=composite)
    await service.start()
    service.state.portfolio = apply_buy(
        service.state.portfolio, "TSLL", 800, Decimal("15"), mode=Mode.FAVORABLE
    )
    service.state.composite_zone = CompositeZone.NEUTRAL
    service.state.posted_open = TODAY

    first = await service.run_cycle()
    assert first.action == TradeAction.HOLD
    assert service.state.portfolio.shares_of("TSLL") == 800

    quotes.prices["TSLL"] = Decimal("15.10")
    second = await service.run_cycle()

    assert second.action == TradeAction.SELL
    assert second.instrument == "TSLL"
    assert service.state.portfolio.is_flat
    assert service.state.portfolio.realized_pnl == Decimal("80")
    assert service.state.trades_today == 1


@pytest.mark.asyncio
@pytest.mark.integration
async def test_weekly_report_posted_on_sunday(build_service, session_factory):
    portfolio = Portfolio.fresh(Decimal("100000"))
    async with session_factory() as session:
        repo = PortfolioSnapshotRepository(session)
        await repo.upsert(date(2026, 1, 27), value_portfolio(portfolio, {}), 0, 0, 0)
        await repo.upsert(date(2026, 1, 30), value_portfolio(portfolio, {}), 0, 0, 0)

    service = build_service(now=market_time(date(2026, 2, 1), 18, 30))

    assert await service.run_cycle() is None
    assert service.state.posted_weekly == date(2026, 2, 1)
    assert await _drain(service.side_effects) == ["weekly_report"]


# ------------------------------------------------------------------
# Flow service
# ------------------------------------------------------------------

class StubFlowProvider:
    def __init__(self, flow=None):
        self.flow = flow

    async def get_flow(self, symbol):
        if self.flow is None:
            raise ExternalServiceError("flow api down")
        return self.flow


@pytest.mark.asyncio
@pytest.mark.integration
async def test_flow_refresh_caches_reading(session_factory):
    fresh = CachedFlowService(StubFlowProvider(make_flow(70)), "TSLA", session_factory=session_factory)
    await fresh.refresh()

    restarted = CachedFlowService(StubFlowProvider(), "TSLA", session_factory=session_factory)
    served = await restarted.refresh()

    assert served.percentile == 70
    assert restarted.last is served


@pytest.mark.asyncio
@pytest.mark.integration
async def test_flow_failure_without_cache_is_none(session_factory):
    service = CachedFlowService(StubFlowProvider(), "TSLA", session_factory=session_factory)

    assert await service.refresh() is None
    assert await service.current() is None


@asynccontextmanager
async def broken_session():
    raise PersistenceError("database is locked")
    yield


@pytest.mark.asyncio
@pytest.mark.integration
async def test_stale_reading_is_not_served_after_failure(session_factory):
    old = replace(make_flow(70), timestamp=now_market() - timedelta(days=5))
    provider = StubFlowProvider(old)
    service = CachedFlowService(provider, "TSLA", session_factory=session_factory)
    assert await service.refresh() is old

    provider.flow = None

    assert await service.refresh() is None
    assert service.last is None


@pytest.mark.asyncio
@pytest.mark.integration
async def test_unreadable_cache_after_stale_reading_is_none():
    clock = Clock(market_time(TODAY, 10))
    provider = StubFlowProvider(make_flow(70))
    service = CachedFlowService(provider, "TSLA", session_factory=broken_session, clock=clock)
    assert (await service.refresh()).percentile == 70

    provider.flow = None
    clock.now = market_time(TODAY, 11)
    assert (await service.refresh()).percentile == 70

    clock.now = market_time(TODAY + timedelta(days=2), 10)
    assert await service.refresh() is None
