"""Simulated fills: unfavourable slippage plus a proportional transaction cost."""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from paper_trader.domain.models import Mode, Portfolio
from paper_trader.domain.services.accounting import apply_buy, apply_sell

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Fill:
    portfolio: Portfolio
    shares: int
    price: Decimal
    cost: Decimal
    realized_pnl: Optional[Decimal] = None


class ExecutionSimulator:
    def __init__(self, transaction_cost_pct: Decimal, slippage_pct: Decimal):
        self.transaction_cost_pct = transaction_cost_pct
        self.slippage_pct = slippage_pct

    def buy(
        self,
        portfolio: Portfolio,
        instrument: str,
        shares: int,
        reference_price: Decimal,
        *,
        timestamp: datetime,
        mode: Optional[Mode] = None,
    ) -> Optional[Fill]:
        """Fill above the reference price; None when cash cannot cover notional + cost"""
        price = reference_price * (1 + self.slippage_pct)
        cost = price * shares * self.transaction_cost_pct
        if price * shares + cost > portfolio.cash:
            logger.info(
                f"Buy rejected: {shares} {instrument} @ {price:.2f} needs "
                f"{price * shares + cost:.2f}, cash {portfolio.cash:.2f}"
            )
            return None
        updated = apply_buy(portfolio, instrument, shares, price, cost, timestamp=timestamp, mode=mode)
        return Fill(portfolio=updated, shares=shares, price=price, cost=cost)

    def sell(
        self,
        portfolio: Portfolio,
        instrument: str,
        shares: int,
        reference_price: Decimal,
    ) -> Optional[Fill]:
        """Fill below the reference price; size is clamped to the holding so oversize sells liquidate"""
        held = portfolio.shares_of(instrument)
        if held == 0 or shares <= 0:
            return None
        shares = min(shares, held)
        price = reference_price * (1 - self.slippage_pct)
        cost = price * shares * self.transaction_cost_pct
        result = apply_sell(portfolio, instrument, shares, price, cost)
        return Fill(
            portfolio=result.portfolio,
            shares=shares,
            price=price,
            cost=cost,
            realized_pnl=result.realized_pnl,
        )
