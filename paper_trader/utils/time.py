"""Market-time utilities (US/Central)."""

from datetime import datetime, time, timezone, tzinfo
from zoneinfo import ZoneInfo

from paper_trader.config import settings

MARKET_TZ = ZoneInfo(settings.TIMEZONE)
# Backtest bars are stamped in exchange-local time (09:30-16:00)
EXCHANGE_TZ = ZoneInfo("America/New_York")


def now_market() -> datetime:
    """Current timezone-aware time in the market timezone."""
    return datetime.now(MARKET_TZ)


def now_market_naive() -> datetime:
    """
    Current market time, returned as naive datetime for DB storage.
    """
    return now_market().replace(tzinfo=None)


def to_market(dt: datetime, naive_assumed_tz: tzinfo = timezone.utc) -> datetime:
    """Convert datetime to the market timezone."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=naive_assumed_tz)
    return dt.astimezone(MARKET_TZ)


def to_exchange_naive(dt: datetime, naive_assumed_tz: tzinfo = timezone.utc) -> datetime:
    """Exchange-local wall clock, naive"""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=naive_assumed_tz)
    return dt.astimezone(EXCHANGE_TZ).replace(tzinfo=None)


def market_open_time() -> time:
    return time(settings.MARKET_OPEN_HOUR, settings.MARKET_OPEN_MINUTE)


def market_close_time() -> time:
    return time(settings.MARKET_CLOSE_HOUR, settings.MARKET_CLOSE_MINUTE)


def is_weekday(dt: datetime) -> bool:
    return dt.weekday() < 5


def is_market_hours(dt: datetime) -> bool:
    """Regular session only; holidays are not modelled."""
    if not is_weekday(dt):
        return False
    return market_open_time() <= dt.time() < market_close_time()
