"""
Live session state.
Owned by one TradingService; persisted after every mutation so a restart resumes exactly.
"""

from dataclasses import dataclass
from datetime import date
from typing import Optional

from .entities import CompositeZone, Portfolio, TradeAction


@dataclass
class SessionState:
    portfolio: Portfolio
    session_date: Optional[date] = None
    trades_today: int = 0
    composite_zone: Optional[CompositeZone] = None
    posted_open: Optional[date] = None
    posted_close: Optional[date] = None
    posted_weekly: Optional[date] = None
    last_action: Optional[TradeAction] = None

    def roll_to(self, today: date) -> bool:
        """Reset daily counters when the session date changes. True when a reset happened."""
        if self.session_date == today:
            return False
        self.session_date = today
        self.trades_today = 0
        return True
