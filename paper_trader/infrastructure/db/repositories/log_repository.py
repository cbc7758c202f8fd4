"""
Bot Log Repository
Operational events written alongside the application log
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from paper_trader.infrastructure.db.models import PaperBotLogModel


class BotLogRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def log(
        self,
        level: str,
        event: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> int:
        model = PaperBotLogModel(level=level.upper(), event=event, message=message, details=details)
        self.session.add(model)
        await self.session.flush()
        return model.id

    async def get_recent(self, limit: int = 50, event: Optional[str] = None) -> List[PaperBotLogModel]:
        query = select(PaperBotLogModel)
        if event:
            query = query.where(PaperBotLogModel.event == event)
        result = await self.session.execute(
            query.order_by(PaperBotLogModel.created_at.desc(), PaperBotLogModel.id.desc()).limit(limit)
        )
        return list(result.scalars().all())
