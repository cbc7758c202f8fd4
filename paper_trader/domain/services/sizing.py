"""
Position sizing.

One function sizes both instruments. The leveraged instrument gets the primary
fraction scaled by the policy's leveraged_allocation_ratio so that notional
exposure stays comparable.
"""

from decimal import Decimal, ROUND_FLOOR

from paper_trader.domain.models import Mode
from paper_trader.domain.strategy.policy import StrategyPolicy


def position_fraction(
    policy: StrategyPolicy,
    mode: Mode,
    tier: int,
    leveraged: bool = False,
) -> Decimal:
    """Fraction of available cash to commit to a new position"""
    fraction = policy.mode_allocation[mode]
    if policy.use_tier_multiplier:
        fraction = fraction * policy.tier_multiplier[tier]
    if leveraged:
        fraction = fraction * policy.leveraged_allocation_ratio
    return fraction


def position_size(cash: Decimal, fraction: Decimal, price: Decimal) -> int:
    """floor(cash x fraction / price); zero when the budget buys less than one share"""
    if price <= 0:
        raise ValueError("Price must be positive to size a position")
    if cash <= 0 or fraction <= 0:
        return 0
    return int((cash * fraction / price).to_integral_value(rounding=ROUND_FLOOR))
