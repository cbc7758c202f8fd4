"""
Domain Models Package
Export all domain entities
"""

from .entities import (
    # Enums
    CompositeZone,
    Confidence,
    LevelType,
    Mode,
    TradeAction,

    # Entities
    ActiveSetup,
    CompositeReading,
    FlowReading,
    Portfolio,
    PortfolioValuation,
    Position,
    PriceLevel,
    Quote,
    RegimeReport,
    Trade,
    TradeSignal,
)
from .session import SessionState

__all__ = [
    "CompositeZone",
    "Confidence",
    "LevelType",
    "Mode",
    "TradeAction",
    "ActiveSetup",
    "CompositeReading",
    "FlowReading",
    "Portfolio",
    "PortfolioValuation",
    "Position",
    "PriceLevel",
    "Quote",
    "RegimeReport",
    "Trade",
    "TradeSignal",
    "SessionState",
]
