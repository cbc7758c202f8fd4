"""
Database Models (SQLAlchemy ORM)
Trade ledger is insert-only; bot state is a single row (id=1)
"""

from sqlalchemy import (
    Column, Integer, String, Numeric, Date, DateTime, Float, Text, JSON, Index
)

from paper_trader.infrastructure.db.database import Base
from paper_trader.utils.time import now_market_naive


class PaperTradeModel(Base):
    """Executed paper trade - append-only ledger"""
    __tablename__ = "paper_trades"

    id = Column(Integer, primary_key=True, autoincrement=True)
    executed_at = Column(DateTime, nullable=False, index=True)
    action = Column(String(8), nullable=False)
    instrument = Column(String(16), nullable=False)
    shares = Column(Integer, nullable=False)
    price = Column(Numeric(14, 4), nullable=False)
    notional = Column(Numeric(16, 4), nullable=False)
    cost = Column(Numeric(12, 4), nullable=False, default=0)
    realized_pnl = Column(Numeric(14, 4), nullable=True)
    portfolio_value = Column(Numeric(16, 4), nullable=False)
    cash_remaining = Column(Numeric(16, 4), nullable=False)
    mode = Column(String(20), nullable=True)
    tier = Column(Integer, nullable=True)
    flow_percentile = Column(Float, nullable=True)
    composite_zone = Column(String(20), nullable=True)
    reasoning = Column(JSON, nullable=False)
    created_at = Column(DateTime, nullable=False, default=now_market_naive)

    __table_args__ = (
        Index("ix_paper_trades_instrument_executed", "instrument", "executed_at"),
    )


class PaperBotStateModel(Base):
    """Current trading state - single row, id=1"""
    __tablename__ = "paper_bot_state"

    id = Column(Integer, primary_key=True)
    cash = Column(Numeric(16, 4), nullable=False)
    starting_capital = Column(Numeric(16, 4), nullable=False)
    realized_pnl = Column(Numeric(16, 4), nullable=False, default=0)
    positions = Column(JSON, nullable=False, default=dict)
    trades_today = Column(Integer, nullable=False, default=0)
    session_date = Column(Date, nullable=True)
    composite_zone = Column(String(20), nullable=True)
    posted_open = Column(Date, nullable=True)
    posted_close = Column(Date, nullable=True)
    posted_weekly = Column(Date, nullable=True)
    last_action = Column(String(8), nullable=True)
    updated_at = Column(DateTime, nullable=False, default=now_market_naive, onupdate=now_market_naive)


class PaperPortfolioSnapshotModel(Base):
    """End-of-day portfolio snapshot, one per date"""
    __tablename__ = "paper_portfolio_snapshots"

    id = Column(Integer, primary_key=True, autoincrement=True)
    snapshot_date = Column(Date, nullable=False, unique=True, index=True)
    cash = Column(Numeric(16, 4), nullable=False)
    positions_value = Column(Numeric(16, 4), nullable=False)
    total_value = Column(Numeric(16, 4), nullable=False)
    realized_pnl = Column(Numeric(16, 4), nullable=False)
    unrealized_pnl = Column(Numeric(16, 4), nullable=False)
    total_return_pct = Column(Numeric(10, 4), nullable=False)
    trades_count = Column(Integer, nullable=False, default=0)
    wins = Column(Integer, nullable=False, default=0)
    losses = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=now_market_naive)


class PaperBotLogModel(Base):
    """Free-form operational log entries"""
    __tablename__ = "paper_bot_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    level = Column(String(10), nullable=False)
    event = Column(String(50), nullable=False)
    message = Column(Text, nullable=False)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=now_market_naive, index=True)


class PaperFlowCacheModel(Base):
    """Last good flow readings, served when the provider fails"""
    __tablename__ = "paper_flow_cache"

    id = Column(Integer, primary_key=True, autoincrement=True)
    symbol = Column(String(16), nullable=False, index=True)
    reading = Column(Float, nullable=False)
    low_30d = Column(Float, nullable=False)
    high_30d = Column(Float, nullable=False)
    percentile = Column(Float, nullable=False)
    character = Column(String(50), nullable=True)
    fetched_at = Column(DateTime, nullable=False, default=now_market_naive, index=True)
