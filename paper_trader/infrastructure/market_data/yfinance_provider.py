"""
YFinance Market Data Provider
Async-safe Yahoo Finance quotes and intraday bars
"""

import asyncio
import logging
import random
import time
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional

import yfinance as yf

from paper_trader.backtest.bars import IntradayBar
from paper_trader.domain.errors import DataUnavailableError
from paper_trader.domain.models import Quote
from paper_trader.utils.time import now_market, to_exchange_naive

logger = logging.getLogger(__name__)


class YFinanceQuoteProvider:
    """
    Yahoo Finance quotes for the traded instruments
    Async-safe via thread offloading, short TTL cache per symbol
    """

    def __init__(self, cache_ttl_seconds: int = 300, retries: int = 2):
        self.cache_ttl_seconds = cache_ttl_seconds
        self.retries = retries
        self._cache: Dict[str, tuple] = {}

    async def _history(self, ticker: yf.Ticker, **kwargs):
        """
        Async-safe wrapper around yfinance history()
        """
        return await asyncio.to_thread(ticker.history, **kwargs)

    async def _history_with_retry(self, ticker: yf.Ticker, **kwargs):
        """
        Retry wrapper around history() to handle transient failures.
        """
        last_exc: Optional[Exception] = None
        for attempt in range(self.retries):
            try:
                return await self._history(ticker, **kwargs)
            except Exception as exc:
                last_exc = exc
                await asyncio.sleep(0.4 * (2 ** attempt) + random.random() * 0.2)
        if last_exc:
            logger.warning(f"yfinance history retries exhausted: {last_exc}")
        return await self._history(ticker, **kwargs)

    @staticmethod
    def _quantize(value: float) -> Decimal:
        return Decimal(str(value)).quantize(Decimal("0.01"))

    def _cache_get(self, key: str) -> Optional[Quote]:
        cached = self._cache.get(key)
        if not cached:
            return None
        ts, value = cached
        if time.time() - ts > self.cache_ttl_seconds:
            return None
        return value

    def _cache_set(self, key: str, value: Quote) -> None:
        self._cache[key] = (time.time(), value)

    # ------------------------------------------------------------------
    # QUOTES
    # ------------------------------------------------------------------

    async def get_quote(self, symbol: str) -> Quote:
        """Latest daily bar as a quote. Raises DataUnavailableError when nothing comes back."""
        cached = self._cache_get(symbol)
        if cached is not None:
            return cached

        try:
            hist = await self._history_with_retry(
                yf.Ticker(symbol), period="5d", interval="1d", auto_adjust=False
            )
        except Exception as exc:
            raise DataUnavailableError(f"Quote fetch failed for {symbol}: {exc}") from exc

        if hist is None or hist.empty or "Close" not in hist:
            raise DataUnavailableError(f"No price data for {symbol}")

        last = hist.iloc[-1]
        price = self._quantize(float(last["Close"]))
        previous_close = self._quantize(float(hist["Close"].iloc[-2])) if len(hist) > 1 else None
        change_pct = Decimal("0")
        if previous_close:
            change_pct = ((price / previous_close - 1) * 100).quantize(Decimal("0.01"))

        quote = Quote(
            symbol=symbol,
            price=price,
            change_pct=change_pct,
            volume=int(last.get("Volume", 0) or 0),
            day_high=self._quantize(float(last["High"])),
            day_low=self._quantize(float(last["Low"])),
            open=self._quantize(float(last["Open"])),
            previous_close=previous_close,
            timestamp=now_market(),
        )
        self._cache_set(symbol, quote)
        return quote

    # ------------------------------------------------------------------
    # INTRADAY BARS (backtests on recorded data)
    # ------------------------------------------------------------------

    async def get_intraday_bars(
        self,
        symbol: str,
        start: date,
        end: date,
        interval: str = "15m",
    ) -> Dict[date, List[IntradayBar]]:
        """Recorded bars grouped by session date (Yahoo keeps ~60 days of 15m data)"""
        hist = await self._history_with_retry(
            yf.Ticker(symbol),
            start=start.isoformat(),
            end=(end + timedelta(days=1)).isoformat(),
            interval=interval,
            auto_adjust=False,
        )
        grouped: Dict[date, List[IntradayBar]] = {}
        if hist is None or hist.empty:
            logger.warning(f"No intraday bars for {symbol} {start} -> {end}")
            return grouped

        for ts, row in hist.iterrows():
            stamp: datetime = to_exchange_naive(ts.to_pydatetime())
            grouped.setdefault(stamp.date(), []).append(
                IntradayBar(
                    timestamp=stamp,
                    open=self._quantize(float(row["Open"])),
                    high=self._quantize(float(row["High"])),
                    low=self._quantize(float(row["Low"])),
                    close=self._quantize(float(row["Close"])),
                    volume=int(row.get("Volume", 0) or 0),
                )
            )
        return grouped
