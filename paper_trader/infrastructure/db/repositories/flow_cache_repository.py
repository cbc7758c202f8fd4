"""
Flow Cache Repository
Stores every good flow reading; the newest one is the fallback when the provider fails
"""

from datetime import timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from paper_trader.domain.models import FlowReading
from paper_trader.infrastructure.db.models import PaperFlowCacheModel
from paper_trader.utils.time import now_market_naive, to_market


class FlowCacheRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def save(self, symbol: str, flow: FlowReading) -> int:
        model = PaperFlowCacheModel(
            symbol=symbol,
            reading=flow.reading,
            low_30d=flow.low_30d,
            high_30d=flow.high_30d,
            percentile=flow.percentile,
            character=flow.character,
            fetched_at=(to_market(flow.timestamp).replace(tzinfo=None) if flow.timestamp else now_market_naive()),
        )
        self.session.add(model)
        await self.session.flush()
        return model.id

    async def latest(self, symbol: str, max_age: Optional[timedelta] = None) -> Optional[FlowReading]:
        query = select(PaperFlowCacheModel).where(PaperFlowCacheModel.symbol == symbol)
        if max_age is not None:
            query = query.where(PaperFlowCacheModel.fetched_at >= now_market_naive() - max_age)
        result = await self.session.execute(
            query.order_by(PaperFlowCacheModel.fetched_at.desc(), PaperFlowCacheModel.id.desc()).limit(1)
        )
        model = result.scalar_one_or_none()
        if model is None:
            return None
        return FlowReading(
            reading=model.reading,
            low_30d=model.low_30d,
            high_30d=model.high_30d,
            character=model.character or "",
            timestamp=model.fetched_at,
            reported_percentile=model.percentile,
        )
