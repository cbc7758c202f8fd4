"""
Paper Trade Repository
Append-only trade ledger
"""

from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from paper_trader.domain.models import CompositeZone, Mode, Trade, TradeAction
from paper_trader.infrastructure.db.models import PaperTradeModel


class PaperTradeRepository:
    """Repository for executed paper trades"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, trade: Trade) -> int:
        model = PaperTradeModel(
            executed_at=trade.timestamp.replace(tzinfo=None),
            action=trade.action.value,
            instrument=trade.instrument,
            shares=trade.shares,
            price=trade.price,
            notional=trade.notional,
            cost=trade.cost,
            realized_pnl=trade.realized_pnl,
            portfolio_value=trade.portfolio_value_after,
            cash_remaining=trade.cash_after,
            mode=trade.mode.value if trade.mode else None,
            tier=trade.tier,
            flow_percentile=trade.flow_percentile,
            composite_zone=trade.composite_zone.value if trade.composite_zone else None,
            reasoning=list(trade.reasoning),
        )
        self.session.add(model)
        await self.session.flush()
        return model.id

    async def get_between(self, start: datetime, end: datetime) -> List[Trade]:
        result = await self.session.execute(
            select(PaperTradeModel)
            .where(PaperTradeModel.executed_at >= start)
            .where(PaperTradeModel.executed_at < end)
            .order_by(PaperTradeModel.executed_at, PaperTradeModel.id)
        )
        return [self._to_domain(m) for m in result.scalars().all()]

    async def get_for_date(self, day: date) -> List[Trade]:
        start = datetime.combine(day, time.min)
        return await self.get_between(start, start + timedelta(days=1))

    async def count_for_date(self, day: date) -> int:
        start = datetime.combine(day, time.min)
        result = await self.session.execute(
            select(func.count(PaperTradeModel.id))
            .where(PaperTradeModel.executed_at >= start)
            .where(PaperTradeModel.executed_at < start + timedelta(days=1))
        )
        return int(result.scalar() or 0)

    async def get_recent(self, limit: int = 20) -> List[Trade]:
        result = await self.session.execute(
            select(PaperTradeModel)
            .order_by(PaperTradeModel.executed_at.desc(), PaperTradeModel.id.desc())
            .limit(limit)
        )
        return [self._to_domain(m) for m in result.scalars().all()]

    async def get_total_realized_pnl(self) -> Decimal:
        result = await self.session.execute(
            select(func.coalesce(func.sum(PaperTradeModel.realized_pnl), 0))
        )
        total = result.scalar()
        return Decimal(str(total)) if total else Decimal("0")

    @staticmethod
    def _to_domain(model: PaperTradeModel) -> Trade:
        return Trade(
            timestamp=model.executed_at,
            action=TradeAction(model.action),
            instrument=model.instrument,
            shares=model.shares,
            price=Decimal(str(model.price)),
            reasoning=tuple(model.reasoning or ()),
            portfolio_value_after=Decimal(str(model.portfolio_value)),
            cash_after=Decimal(str(model.cash_remaining)),
            mode=Mode(model.mode) if model.mode else None,
            tier=model.tier,
            realized_pnl=_optional_decimal(model.realized_pnl),
            cost=Decimal(str(model.cost or 0)),
            flow_percentile=model.flow_percentile,
            composite_zone=CompositeZone(model.composite_zone) if model.composite_zone else None,
        )


def _optional_decimal(value) -> Optional[Decimal]:
    return None if value is None else Decimal(str(value))
