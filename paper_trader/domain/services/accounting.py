"""
PORTFOLIO ACCOUNTING
Pure valuation and mutation functions over holdings and prices

RULES:
❌ No I/O, no clocks
❌ No partial application: every check runs before a new Portfolio is built
✅ total_value == cash + sum(shares x price) exactly (Decimal arithmetic)
✅ Positions with zero shares do not exist
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Mapping, Optional

from paper_trader.domain.errors import AccountingError, MissingPriceError
from paper_trader.domain.models import Mode, Portfolio, PortfolioValuation, Position

ZERO = Decimal("0")


@dataclass(frozen=True)
class SellResult:
    portfolio: Portfolio
    realized_pnl: Decimal
    shares: int
    proceeds: Decimal


def value_portfolio(portfolio: Portfolio, prices: Mapping[str, Decimal]) -> PortfolioValuation:
    """
    Value every held instrument at the supplied price.

    Raises MissingPriceError when a held instrument has no price; a stale or
    guessed price would silently misstate the book.
    """
    market_values = {}
    unrealized = ZERO
    for instrument, position in portfolio.positions.items():
        price = prices.get(instrument)
        if price is None:
            raise MissingPriceError(instrument)
        market_values[instrument] = position.market_value(price)
        unrealized += position.unrealized_pnl(price)

    total_value = portfolio.cash + sum(market_values.values(), ZERO)
    total_return = total_value - portfolio.starting_capital
    if portfolio.starting_capital > 0:
        total_return_pct = total_return / portfolio.starting_capital * 100
    else:
        total_return_pct = ZERO

    return PortfolioValuation(
        cash=portfolio.cash,
        total_value=total_value,
        total_return=total_return,
        total_return_pct=total_return_pct,
        unrealized_pnl=unrealized,
        realized_pnl=portfolio.realized_pnl,
        market_values=market_values,
    )


def apply_buy(
    portfolio: Portfolio,
    instrument: str,
    shares: int,
    price: Decimal,
    cost: Decimal = ZERO,
    *,
    timestamp: Optional[datetime] = None,
    mode: Optional[Mode] = None,
) -> Portfolio:
    """Debit notional + cost and fold the fill into the weighted average cost"""
    if shares <= 0:
        raise AccountingError(f"Buy of {instrument} needs a positive share count, got {shares}")
    if price <= 0:
        raise AccountingError(f"Buy of {instrument} needs a positive price, got {price}")
    if cost < 0:
        raise AccountingError("Transaction cost cannot be negative")

    debit = price * shares + cost
    if debit > portfolio.cash:
        raise AccountingError(
            f"Insufficient cash for {shares} {instrument} @ {price}: need {debit}, have {portfolio.cash}"
        )

    existing = portfolio.position(instrument)
    if existing is None:
        position = Position(
            instrument=instrument,
            shares=shares,
            avg_cost=price,
            entry_price=price,
            entry_time=timestamp,
            entry_mode=mode,
        )
    else:
        total_shares = existing.shares + shares
        avg_cost = (existing.avg_cost * existing.shares + price * shares) / total_shares
        position = Position(
            instrument=instrument,
            shares=total_shares,
            avg_cost=avg_cost,
            entry_price=existing.entry_price,
            entry_time=existing.entry_time,
            entry_mode=existing.entry_mode,
        )

    positions = dict(portfolio.positions)
    positions[instrument] = position
    return Portfolio(
        cash=portfolio.cash - debit,
        starting_capital=portfolio.starting_capital,
        positions=positions,
        realized_pnl=portfolio.realized_pnl,
    )


def apply_sell(
    portfolio: Portfolio,
    instrument: str,
    shares: int,
    price: Decimal,
    cost: Decimal = ZERO,
) -> SellResult:
    """
    Credit notional - cost; realized P&L is (price - avg_cost) x shares.
    Selling the whole holding removes the position.
    """
    existing = portfolio.position(instrument)
    if existing is None:
        raise AccountingError(f"No {instrument} position to sell")
    if shares <= 0:
        raise AccountingError(f"Sell of {instrument} needs a positive share count, got {shares}")
    if shares > existing.shares:
        raise AccountingError(f"Cannot sell {shares} {instrument}; only {existing.shares} held")
    if price <= 0:
        raise AccountingError(f"Sell of {instrument} needs a positive price, got {price}")
    if cost < 0:
        raise AccountingError("Transaction cost cannot be negative")

    proceeds = price * shares - cost
    realized = (price - existing.avg_cost) * shares

    positions = dict(portfolio.positions)
    remaining = existing.shares - shares
    if remaining == 0:
        del positions[instrument]
    else:
        positions[instrument] = Position(
            instrument=instrument,
            shares=remaining,
            avg_cost=existing.avg_cost,
            entry_price=existing.entry_price,
            entry_time=existing.entry_time,
            entry_mode=existing.entry_mode,
        )

    updated = Portfolio(
        cash=portfolio.cash + proceeds,
        starting_capital=portfolio.starting_capital,
        positions=positions,
        realized_pnl=portfolio.realized_pnl + realized,
    )
    return SellResult(portfolio=updated, realized_pnl=realized, shares=shares, proceeds=proceeds)
