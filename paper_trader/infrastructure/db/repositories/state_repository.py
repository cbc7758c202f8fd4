"""
Bot State Repository
Single-row (id=1) persistence of the live SessionState
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from paper_trader.domain.models import (
    CompositeZone,
    Mode,
    Portfolio,
    Position,
    SessionState,
    TradeAction,
)
from paper_trader.infrastructure.db.models import PaperBotStateModel

STATE_ROW_ID = 1


def _positions_to_json(portfolio: Portfolio) -> Dict[str, dict]:
    return {
        instrument: {
            "shares": p.shares,
            "avg_cost": str(p.avg_cost),
            "entry_price": str(p.entry_price),
            "entry_time": p.entry_time.isoformat() if p.entry_time else None,
            "entry_mode": p.entry_mode.value if p.entry_mode else None,
        }
        for instrument, p in portfolio.positions.items()
    }


def _positions_from_json(raw: Optional[Dict[str, dict]]) -> Dict[str, Position]:
    positions = {}
    for instrument, body in (raw or {}).items():
        if int(body.get("shares", 0)) <= 0:
            continue
        positions[instrument] = Position(
            instrument=instrument,
            shares=int(body["shares"]),
            avg_cost=Decimal(body["avg_cost"]),
            entry_price=Decimal(body.get("entry_price") or body["avg_cost"]),
            entry_time=datetime.fromisoformat(body["entry_time"]) if body.get("entry_time") else None,
            entry_mode=Mode(body["entry_mode"]) if body.get("entry_mode") else None,
        )
    return positions


class BotStateRepository:
    """Repository for the current trading state"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def load(self) -> Optional[SessionState]:
        model = await self.session.get(PaperBotStateModel, STATE_ROW_ID)
        if model is None:
            return None
        portfolio = Portfolio(
            cash=Decimal(str(model.cash)),
            starting_capital=Decimal(str(model.starting_capital)),
            positions=_positions_from_json(model.positions),
            realized_pnl=Decimal(str(model.realized_pnl or 0)),
        )
        return SessionState(
            portfolio=portfolio,
            session_date=model.session_date,
            trades_today=model.trades_today or 0,
            composite_zone=CompositeZone(model.composite_zone) if model.composite_zone else None,
            posted_open=model.posted_open,
            posted_close=model.posted_close,
            posted_weekly=model.posted_weekly,
            last_action=TradeAction(model.last_action) if model.last_action else None,
        )

    async def save(self, state: SessionState) -> None:
        model = await self.session.get(PaperBotStateModel, STATE_ROW_ID)
        if model is None:
            model = PaperBotStateModel(id=STATE_ROW_ID)
            self.session.add(model)
        portfolio = state.portfolio
        model.cash = portfolio.cash
        model.starting_capital = portfolio.starting_capital
        model.realized_pnl = portfolio.realized_pnl
        model.positions = _positions_to_json(portfolio)
        model.trades_today = state.trades_today
        model.session_date = state.session_date
        model.composite_zone = state.composite_zone.value if state.composite_zone else None
        model.posted_open = state.posted_open
        model.posted_close = state.posted_close
        model.posted_weekly = state.posted_weekly
        model.last_action = state.last_action.value if state.last_action else None
        await self.session.flush()
