"""
Portfolio Snapshot Repository
One end-of-day snapshot per date (upsert)
"""

from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from paper_trader.domain.models import PortfolioValuation
from paper_trader.infrastructure.db.models import PaperPortfolioSnapshotModel


class PortfolioSnapshotRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def upsert(
        self,
        snapshot_date: date,
        valuation: PortfolioValuation,
        trades_count: int,
        wins: int,
        losses: int,
    ) -> int:
        model = await self.get_for_date(snapshot_date)
        if model is None:
            model = PaperPortfolioSnapshotModel(snapshot_date=snapshot_date)
            self.session.add(model)
        model.cash = valuation.cash
        model.positions_value = sum(valuation.market_values.values(), Decimal("0"))
        model.total_value = valuation.total_value
        model.realized_pnl = valuation.realized_pnl
        model.unrealized_pnl = valuation.unrealized_pnl
        model.total_return_pct = valuation.total_return_pct
        model.trades_count = trades_count
        model.wins = wins
        model.losses = losses
        await self.session.flush()
        return model.id

    async def get_for_date(self, snapshot_date: date) -> Optional[PaperPortfolioSnapshotModel]:
        result = await self.session.execute(
            select(PaperPortfolioSnapshotModel)
            .where(PaperPortfolioSnapshotModel.snapshot_date == snapshot_date)
        )
        return result.scalar_one_or_none()

    async def get_range(self, start: date, end: date) -> List[PaperPortfolioSnapshotModel]:
        result = await self.session.execute(
            select(PaperPortfolioSnapshotModel)
            .where(PaperPortfolioSnapshotModel.snapshot_date >= start)
            .where(PaperPortfolioSnapshotModel.snapshot_date <= end)
            .order_by(PaperPortfolioSnapshotModel.snapshot_date)
        )
        return list(result.scalars().all())
