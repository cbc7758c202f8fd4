"""
ENTRY / EXIT RULES
Shared by the live decision engine and the backtest engine

RESPONSIBILITIES:
- Locate support, resistance and target levels in a regime report
- Decide whether an open position should be closed
- Decide whether a flat book may open a position, and how large

RULES:
❌ No I/O
❌ No portfolio mutation
❌ No hardcoded thresholds (everything comes from StrategyPolicy)
✅ Every verdict carries an ordered reasoning trail
✅ Levels are always read against the primary instrument price
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from paper_trader.domain.models import (
    Confidence,
    LevelType,
    Mode,
    Position,
    RegimeReport,
    TradeAction,
)
from paper_trader.domain.services.sizing import position_fraction, position_size
from paper_trader.domain.strategy.policy import StrategyPolicy


@dataclass(frozen=True)
class LevelHit:
    name: str
    price: Decimal


@dataclass(frozen=True)
class RuleContext:
    """Market state a rule needs. `price` is the primary instrument price."""
    price: Decimal
    report: Optional[RegimeReport]
    now: datetime
    trades_today: int = 0
    flow_percentile: Optional[float] = None
    flow_character: str = ""


@dataclass(frozen=True)
class RuleVerdict:
    action: TradeAction
    reasoning: Tuple[str, ...]
    confidence: Confidence = Confidence.HIGH
    shares: Optional[int] = None
    target: Optional[Decimal] = None
    stop: Optional[Decimal] = None
    fraction: Optional[Decimal] = None
    support: Optional[LevelHit] = None

    @property
    def is_hold(self) -> bool:
        return self.action == TradeAction.HOLD


def money(value: Decimal) -> str:
    return f"${value:,.2f}"


def signed_money(value: Decimal) -> str:
    sign = "+" if value >= 0 else "-"
    return f"{sign}${abs(value):,.2f}"


def signed_pct(value: Decimal) -> str:
    return f"{'+' if value >= 0 else ''}{value:.1f}%"


def _hold(*reasons: str, confidence: Confidence = Confidence.HIGH) -> RuleVerdict:
    return RuleVerdict(action=TradeAction.HOLD, reasoning=tuple(reasons), confidence=confidence)


# ----------------------------------------------------------------------
# Level lookup
# ----------------------------------------------------------------------

def support_candidates(report: RegimeReport) -> List[LevelHit]:
    """Recognised supports in priority order: pivots, hedge level, moving averages, report levels"""
    # no put wall published: the master eject is the floor to buy against
    floor = ("put wall", report.put_wall) if report.put_wall else ("master eject", report.master_eject)
    named = [
        floor,
        ("hedge wall", report.hedge_wall),
        ("key gamma strike", report.key_gamma_strike),
        ("weekly 21 EMA", report.weekly_21ema),
        ("daily 21 EMA", report.daily_21ema),
    ]
    hits = [LevelHit(name, price) for name, price in named if price and price > 0]
    hits.extend(
        LevelHit(level.label, level.price)
        for level in report.levels_of(LevelType.SUPPORT, LevelType.ADD)
    )
    return hits


def resistance_candidates(report: RegimeReport, price: Decimal) -> List[LevelHit]:
    """Resistances and pivots strictly above price, nearest first"""
    named = [
        ("call wall", report.call_wall),
        ("key gamma strike", report.key_gamma_strike),
        ("daily 9 EMA", report.daily_9ema),
        ("weekly 13 EMA", report.weekly_13ema),
    ]
    hits = [LevelHit(name, level) for name, level in named if level and level > price]
    hits.extend(
        LevelHit(level.label, level.price)
        for level in report.levels_of(LevelType.RESISTANCE, LevelType.TRIM)
        if level.price > price
    )
    # stable sort keeps the named priority among equal prices
    return sorted(hits, key=lambda hit: hit.price)


def find_support(price: Decimal, report: RegimeReport, policy: StrategyPolicy) -> Optional[LevelHit]:
    """First support whose band [level - tol, level + tol x band_above_ratio] contains price"""
    for hit in support_candidates(report):
        tolerance = hit.price * policy.support_tolerance_pct
        upper = hit.price + tolerance * policy.support_band_above_ratio
        if hit.price - tolerance <= price <= upper:
            return hit
    return None


def find_resistance(price: Decimal, report: RegimeReport, tolerance_pct: Decimal) -> Optional[LevelHit]:
    """Nearest level above price that price has come within tolerance of"""
    for hit in resistance_candidates(report, price):
        if hit.price - price <= hit.price * tolerance_pct:
            return hit
    return None


def find_target_hit(price: Decimal, report: RegimeReport, policy: StrategyPolicy) -> Optional[LevelHit]:
    return find_resistance(price, report, policy.target_tolerance_pct)


def determine_target(price: Decimal, report: RegimeReport, policy: StrategyPolicy) -> Tuple[Decimal, str]:
    above = resistance_candidates(report, price)
    if above:
        return above[0].price, above[0].name
    return price * (1 + policy.default_target_pct), f"default +{policy.default_target_pct * 100:.1f}%"


def determine_stop(price: Decimal, report: RegimeReport, policy: StrategyPolicy) -> Tuple[Decimal, str]:
    if 0 < report.master_eject < price:
        return report.master_eject, "master eject"
    below = [hit for hit in support_candidates(report) if hit.price < price]
    if below:
        best = max(below, key=lambda hit: hit.price)
        return best.price, best.name
    return price * (1 - policy.default_stop_pct), f"default -{policy.default_stop_pct * 100:.1f}%"


def reward_risk(price: Decimal, target: Decimal, stop: Decimal) -> Decimal:
    risk = price - stop
    if risk <= 0:
        return Decimal("0")
    return (target - price) / risk


# ----------------------------------------------------------------------
# Exit
# ----------------------------------------------------------------------

def evaluate_exit(
    ctx: RuleContext,
    position: Position,
    position_price: Decimal,
    policy: StrategyPolicy,
) -> RuleVerdict:
    """
    First match wins:
    hard stop, regime flip to defensive, target hit, flow deterioration, late-day lock, hold.
    """
    report = ctx.report
    pnl = position.unrealized_pnl(position_price)
    pnl_pct = position.unrealized_pnl_pct(position_price)
    pnl_text = f"unrealized: {signed_money(pnl)} ({signed_pct(pnl_pct)})"

    # 1. Hard stop
    if report is not None and ctx.price < report.master_eject:
        return RuleVerdict(
            action=TradeAction.SELL,
            reasoning=(
                f"hard stop: price {money(ctx.price)} below master eject {money(report.master_eject)}",
                f"closing all {position.shares} shares regardless of P&L",
                pnl_text,
            ),
        )

    # 2. Regime flip
    if report is not None and report.mode.is_defensive and position.entry_mode != Mode.DEFENSIVE:
        outcome = "securing gains" if pnl > 0 else "protecting capital"
        return RuleVerdict(
            action=TradeAction.SELL,
            reasoning=(
                "mode flipped to defensive since entry; exiting entire position",
                f"{outcome} into defensive conditions",
                pnl_text,
            ),
        )

    # 3. Target
    if report is not None and pnl > 0:
        target = find_target_hit(ctx.price, report, policy)
        if target is not None:
            return RuleVerdict(
                action=TradeAction.SELL,
                reasoning=(
                    f"target hit: {target.name} ({money(target.price)})",
                    pnl_text,
                ),
            )

    # 4. Flow
    if (
        policy.flow_exit_pct is not None
        and ctx.flow_percentile is not None
        and ctx.flow_percentile < policy.flow_exit_pct
    ):
        return RuleVerdict(
            action=TradeAction.SELL,
            reasoning=(
                f"flow deteriorated to {ctx.flow_percentile:.0f}th percentile "
                f"(exit below {policy.flow_exit_pct:.0f}); momentum shift",
                "trimming exposure",
                pnl_text,
            ),
            confidence=Confidence.MEDIUM,
        )

    # 5. Late-day lock
    if (
        ctx.now.time() >= policy.late_exit_after
        and pnl > 0
        and pnl_pct >= policy.late_exit_min_gain_pct
    ):
        return RuleVerdict(
            action=TradeAction.SELL,
            reasoning=(
                f"past {policy.late_exit_after.strftime('%H:%M')} with {signed_pct(pnl_pct)} gain",
                "taking profit ahead of overnight risk",
            ),
            confidence=Confidence.MEDIUM,
        )

    # 6. Hold
    reasons = [f"holding {position.instrument}", pnl_text]
    if report is not None:
        target_price, target_name = determine_target(ctx.price, report, policy)
        distance = (target_price - ctx.price) / ctx.price * 100
        reasons.append(f"{distance:.1f}% to target ({target_name} {money(target_price)})")
    else:
        reasons.append("no regime report; only flow and time exits are active")
    return _hold(*reasons)


# ----------------------------------------------------------------------
# Entry
# ----------------------------------------------------------------------

def _near_put_wall(price: Decimal, report: RegimeReport, policy: StrategyPolicy) -> bool:
    if not report.put_wall:
        return False
    return abs(price - report.put_wall) / price < policy.defensive_nibble_tolerance_pct


def evaluate_entry(
    ctx: RuleContext,
    policy: StrategyPolicy,
    cash: Decimal,
    instrument_price: Decimal,
    leveraged: bool = False,
) -> RuleVerdict:
    """
    Entry gate for a flat book. Sizing uses instrument_price; every level check
    uses the primary price in ctx.
    """
    report = ctx.report
    price = ctx.price

    if report is None:
        return _hold("no regime report. sitting on hands until guidance arrives.")

    if ctx.now.time() >= policy.entry_cutoff:
        return _hold(f"past {policy.entry_cutoff.strftime('%H:%M')} entry cutoff. no new positions.")

    if ctx.trades_today >= policy.max_trades_per_day:
        return _hold(f"max trades reached ({policy.max_trades_per_day}). sitting out.")

    if price < report.master_eject:
        return _hold(
            f"price {money(price)} below master eject {money(report.master_eject)}",
            "no longs below eject. capital preservation.",
        )

    reasoning: List[str] = []
    confidence = Confidence.HIGH

    if report.mode.is_defensive:
        if not (policy.defensive_nibble_enabled and _near_put_wall(price, report, policy)):
            return _hold("mode is defensive. no new longs.")
        reasoning.append(
            f"defensive nibble: price within {policy.defensive_nibble_tolerance_pct * 100:.1f}% "
            f"of put wall {money(report.put_wall)}"
        )
        confidence = Confidence.LOW

    support = find_support(price, report, policy)
    if support is None:
        return _hold(*reasoning, "price not near a recognised support level", confidence=Confidence.MEDIUM)

    if policy.hold_near_resistance:
        ceiling = find_resistance(price, report, policy.resistance_tolerance_pct)
        if ceiling is not None:
            return _hold(
                *reasoning,
                f"price near resistance: {ceiling.name} ({money(ceiling.price)}); wait for breakout or pullback",
                confidence=Confidence.MEDIUM,
            )

    if ctx.flow_percentile is None:
        flow_text = "flow: no reading, gate skipped"
    else:
        flow_text = f"flow: {ctx.flow_character or 'n/a'} ({ctx.flow_percentile:.0f}th percentile)"
        if ctx.flow_percentile < policy.flow_heavy_selling_pct:
            if report.mode not in policy.flow_override_modes:
                return _hold(
                    *reasoning,
                    f"{flow_text}: heavy selling below {policy.flow_heavy_selling_pct:.0f}th percentile",
                    confidence=Confidence.MEDIUM,
                )
            reasoning.append(
                f"flow override: heavy selling ({ctx.flow_percentile:.0f}th percentile) "
                f"but at {support.name} in {report.mode.value} mode"
            )
            confidence = Confidence.MEDIUM if confidence == Confidence.HIGH else confidence

    target, target_name = determine_target(price, report, policy)
    stop, stop_name = determine_stop(price, report, policy)
    ratio = reward_risk(price, target, stop)
    if ratio < policy.min_reward_risk:
        return _hold(
            *reasoning,
            f"r/r {ratio:.2f} below minimum {policy.min_reward_risk}",
            confidence=Confidence.MEDIUM,
        )

    fraction = position_fraction(policy, report.mode, report.tier, leveraged=leveraged)
    shares = position_size(cash, fraction, instrument_price)
    if shares < 1:
        return _hold(*reasoning, "position size too small. skipping.")

    reasoning.extend([
        f"{report.mode.value} mode, tier {report.tier}: {fraction * 100:.1f}% position size",
        f"near support: {support.name} ({money(support.price)})",
        flow_text,
        f"target: {money(target)} ({target_name}) | stop: {money(stop)} ({stop_name})",
        f"r/r: {ratio:.2f} (min {policy.min_reward_risk})",
    ])
    return RuleVerdict(
        action=TradeAction.BUY,
        reasoning=tuple(reasoning),
        confidence=confidence,
        shares=shares,
        target=target,
        stop=stop,
        fraction=fraction,
        support=support,
    )
