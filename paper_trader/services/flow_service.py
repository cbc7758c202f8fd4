"""
FLOW SERVICE

Keeps the latest flow reading available to the trading cycle.
Provider failures fall back to the last good value (memory, then DB cache),
never to a reading older than max_age.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from paper_trader.domain.errors import ExternalServiceError, PersistenceError
from paper_trader.domain.models import FlowReading
from paper_trader.infrastructure.db.database import session_scope
from paper_trader.infrastructure.db.repositories.flow_cache_repository import FlowCacheRepository
from paper_trader.utils.time import MARKET_TZ, now_market, to_market

logger = logging.getLogger(__name__)


class CachedFlowService:
    def __init__(
        self,
        provider,
        symbol: str,
        max_age: timedelta = timedelta(hours=24),
        session_factory: Callable = session_scope,
        clock: Callable[[], datetime] = now_market,
    ):
        self.provider = provider
        self.symbol = symbol
        self.max_age = max_age
        self._session_factory = session_factory
        self._clock = clock
        self._last: Optional[FlowReading] = None
        self._last_at: Optional[datetime] = None

    @property
    def last(self) -> Optional[FlowReading]:
        return self._last

    async def refresh(self) -> Optional[FlowReading]:
        """Fetch a fresh reading; on failure serve the cached one (may be None)"""
        try:
            flow = await self.provider.get_flow(self.symbol)
        except ExternalServiceError as exc:
            logger.warning(f"Flow refresh failed, serving cached value: {exc}")
            return await self.current()

        self._remember(flow)
        try:
            async with self._session_factory() as session:
                await FlowCacheRepository(session).save(self.symbol, flow)
        except PersistenceError as exc:
            logger.error(f"Flow reading not cached: {exc}")
        logger.info(f"Flow {self.symbol}: {flow.reading} ({flow.percentile:.0f}th pctl, {flow.character or 'n/a'})")
        return flow

    async def current(self) -> Optional[FlowReading]:
        if self._last is not None:
            if self._is_fresh(self._last):
                return self._last
            logger.warning(f"Flow reading for {self.symbol} is older than {self.max_age}; dropping it")
            self._last = None

        try:
            async with self._session_factory() as session:
                cached = await FlowCacheRepository(session).latest(self.symbol, self.max_age)
        except PersistenceError as exc:
            logger.error(f"Flow cache unreadable, trading without flow: {exc}")
            return None
        if cached is not None:
            self._remember(cached)
        return cached

    def _remember(self, flow: FlowReading) -> None:
        self._last = flow
        self._last_at = self._clock()

    def _is_fresh(self, flow: FlowReading) -> bool:
        # provider readings without a timestamp age from when they were received
        stamp = flow.timestamp or self._last_at
        if stamp is None:
            return False
        return self._clock() - to_market(stamp, naive_assumed_tz=MARKET_TZ) <= self.max_age
