"""
SCHEDULER BOOTSTRAP

Wires the live paper trader and drives it with APScheduler.
Orchestration only; all trading logic lives in TradingService.
"""

import asyncio
import logging
import signal
from datetime import timedelta
from decimal import Decimal
from pathlib import Path
from typing import Optional

import pytz
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from paper_trader.config import settings
from paper_trader.core.logging import setup_logging
from paper_trader.domain.services.config_engine import StrategyConfigEngine
from paper_trader.domain.services.decision_engine import DecisionEngine
from paper_trader.infrastructure.db.database import close_db, init_db
from paper_trader.infrastructure.market_data.file_providers import FileCompositeProvider, FileReportProvider
from paper_trader.infrastructure.market_data.flow_provider import HttpFlowProvider
from paper_trader.infrastructure.market_data.yfinance_provider import YFinanceQuoteProvider
from paper_trader.realtime.side_effects import SideEffectQueue, SideEffectWorker
from paper_trader.services.flow_service import CachedFlowService
from paper_trader.services.trading_service import TradingService
from paper_trader.utils.time import now_market

logger = logging.getLogger(__name__)


def build_trading_service(side_effects: SideEffectQueue, profile: Optional[str] = None) -> TradingService:
    config_engine = StrategyConfigEngine(Path(settings.STRATEGY_CONFIG_DIR))
    config_engine.load_all()
    policy = config_engine.get_policy(profile or settings.STRATEGY_PROFILE)
    logger.info(f"Strategy policy: {policy.label}")

    flow_service = CachedFlowService(
        HttpFlowProvider(settings.FLOW_API_URL, settings.FLOW_API_KEY),
        symbol=settings.PRIMARY_SYMBOL,
        max_age=timedelta(hours=settings.FLOW_CACHE_MAX_AGE_HOURS),
    )
    return TradingService(
        engine=DecisionEngine(policy, settings.PRIMARY_SYMBOL, settings.LEVERAGED_SYMBOL),
        quotes=YFinanceQuoteProvider(),
        flow_service=flow_service,
        reports=FileReportProvider(Path(settings.REPORTS_DIR)),
        composites=FileCompositeProvider(Path(settings.COMPOSITE_FILE)),
        side_effects=side_effects,
        starting_capital=Decimal(str(settings.STARTING_CAPITAL)),
        weekly_report_hour=settings.WEEKLY_REPORT_HOUR,
    )


class PaperTraderScheduler:
    """Two interval jobs; max_instances=1 + coalesce keeps cycles from overlapping"""

    def __init__(self, service: TradingService):
        self.service = service
        self.scheduler = AsyncIOScheduler(timezone=pytz.timezone(settings.TIMEZONE))

    def start(self) -> None:
        now = now_market()
        self.scheduler.add_job(
            self.service.run_cycle,
            trigger=IntervalTrigger(minutes=settings.UPDATE_INTERVAL_MINUTES),
            id="trading_cycle",
            name="Trading Cycle",
            max_instances=1,
            coalesce=True,
            next_run_time=now,
            replace_existing=True,
        )
        self.scheduler.add_job(
            self.service.flow_cycle,
            trigger=IntervalTrigger(minutes=settings.FLOW_INTERVAL_MINUTES),
            id="flow_refresh",
            name="Flow Refresh",
            max_instances=1,
            coalesce=True,
            next_run_time=now,
            replace_existing=True,
        )
        self.scheduler.start()
        for job in self.scheduler.get_jobs():
            logger.info(f"  • {job.name} - next run: {job.next_run_time}")

    def stop(self) -> None:
        # In-flight cycles are not awaited
        self.scheduler.remove_all_jobs()
        self.scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")


async def main(profile: Optional[str] = None) -> None:
    setup_logging(settings.LOG_LEVEL)
    await init_db()

    queue = SideEffectQueue()
    worker = SideEffectWorker(queue)
    worker.start()

    service = build_trading_service(queue, profile)
    await service.start()

    if not settings.SCHEDULER_ENABLED:
        logger.info("SCHEDULER_ENABLED=false; running a single cycle")
        await service.run_cycle()
        await queue.join()
        await worker.stop()
        await close_db()
        return

    scheduler = PaperTraderScheduler(service)
    scheduler.start()
    logger.info(f"Paper trader running. Updates every {settings.UPDATE_INTERVAL_MINUTES} min")

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows: fall back to KeyboardInterrupt
            pass

    try:
        await stop_event.wait()
    finally:
        logger.info("Shutting down gracefully...")
        scheduler.stop()
        await worker.stop()
        await service.stop()
        await close_db()


if __name__ == "__main__":
    asyncio.run(main())
