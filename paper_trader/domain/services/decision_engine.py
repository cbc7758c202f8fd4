"""
DECISION ENGINE - CORE ORCHESTRATOR
Turns one snapshot of market state into a single trade signal

RESPONSIBILITIES:
- Force leveraged exits on composite zone deterioration
- Evaluate exits whenever a position is open (no pyramiding)
- Pick the instrument for a new entry from the composite zone
- Delegate entry/exit rules to the shared strategy rules

RULES:
❌ No execution
❌ No state mutation
❌ No I/O
✅ Missing optional data degrades to HOLD, never raises
✅ Always explain
"""

from datetime import datetime
from typing import Optional

from paper_trader.domain.models import (
    CompositeReading,
    CompositeZone,
    Confidence,
    FlowReading,
    Portfolio,
    Position,
    Quote,
    RegimeReport,
    TradeAction,
    TradeSignal,
)
from paper_trader.domain.strategy.policy import StrategyPolicy
from paper_trader.domain.strategy.rules import RuleContext, evaluate_entry, evaluate_exit, money
from paper_trader.utils.time import now_market

# Setups strong enough to upgrade a neutral zone to the leveraged instrument
OVERRIDE_SETUPS = ("oversold-extreme", "deep-value", "capitulation")


class DecisionEngine:
    """
    Decision Engine - The Brain
    One signal per call; the caller executes and persists it
    """

    def __init__(self, policy: StrategyPolicy, primary_symbol: str, leveraged_symbol: str):
        self.policy = policy
        self.primary_symbol = primary_symbol
        self.leveraged_symbol = leveraged_symbol

    def decide(
        self,
        quote: Quote,
        flow: Optional[FlowReading],
        report: Optional[RegimeReport],
        portfolio: Portfolio,
        trades_today: int,
        previous_zone: Optional[CompositeZone] = None,
        *,
        composite: Optional[CompositeReading] = None,
        leveraged_quote: Optional[Quote] = None,
        now: Optional[datetime] = None,
    ) -> TradeSignal:
        """
        Args:
            quote: primary instrument quote; all report levels are read against it
            flow: latest flow reading, falls back to the report's flow when None
            report: today's regime report, None when not yet published
            portfolio: current book
            trades_today: trades already executed this session
            previous_zone: composite zone seen on the previous cycle
            composite: current composite reading; None means primary instrument only
            leveraged_quote: required to price leveraged entries and exits
            now: decision time (defaults to quote time, then wall clock)
        """
        now = now or quote.timestamp or now_market()
        flow = flow or (report.flow if report else None)
        ctx = RuleContext(
            price=quote.price,
            report=report,
            now=now,
            trades_today=trades_today,
            flow_percentile=flow.percentile if flow else None,
            flow_character=flow.character if flow else "",
        )

        # Step 1: Zone deterioration forces leverage out first
        if composite is not None and previous_zone is not None and previous_zone != composite.zone:
            forced = self._zone_transition(previous_zone, composite.zone, portfolio, leveraged_quote)
            if forced is not None:
                return forced

        # Step 2: Open position -> exits only
        if not portfolio.is_flat:
            return self._evaluate_exit(ctx, quote, portfolio, composite, leveraged_quote)

        # Step 3: Flat -> entry
        return self._evaluate_entry(ctx, quote, portfolio, composite, leveraged_quote)

    # ------------------------------------------------------------------

    def _zone_transition(
        self,
        from_zone: CompositeZone,
        to_zone: CompositeZone,
        portfolio: Portfolio,
        leveraged_quote: Optional[Quote],
    ) -> Optional[TradeSignal]:
        leveraged = portfolio.position(self.leveraged_symbol)
        if leveraged is None or to_zone not in (CompositeZone.CAUTION, CompositeZone.DEFENSIVE):
            return None

        header = f"composite zone change: {from_zone.value} -> {to_zone.value}"
        return self._forced_leveraged_exit(header, to_zone, leveraged, leveraged_quote)

    def _forced_leveraged_exit(
        self,
        header: str,
        zone: CompositeZone,
        leveraged: Position,
        leveraged_quote: Optional[Quote],
    ) -> TradeSignal:
        """Sell every leveraged share; without a quote, hold and retry while the zone stays bad"""
        if leveraged_quote is None:
            return TradeSignal(
                action=TradeAction.HOLD,
                price=leveraged.avg_cost,
                reasoning=(
                    header,
                    f"no {self.leveraged_symbol} quote; forced exit deferred to next cycle",
                ),
                confidence=Confidence.LOW,
            )

        if zone == CompositeZone.DEFENSIVE:
            detail = (
                f"selling ALL {self.leveraged_symbol} immediately (forced liquidation)",
                "defensive conditions: leverage must exit",
            )
        else:
            detail = (
                f"selling {self.leveraged_symbol} first (leveraged exit priority)",
                "elevated risk: reducing leverage",
            )
        return TradeSignal(
            action=TradeAction.SELL,
            instrument=self.leveraged_symbol,
            shares=leveraged.shares,
            price=leveraged_quote.price,
            reasoning=(header,) + detail,
            confidence=Confidence.HIGH,
        )

    def _evaluate_exit(
        self,
        ctx: RuleContext,
        quote: Quote,
        portfolio: Portfolio,
        composite: Optional[CompositeReading],
        leveraged_quote: Optional[Quote],
    ) -> TradeSignal:
        position = portfolio.position(self.leveraged_symbol)
        if position is not None:
            # zone already caution/defensive with leverage still held (e.g. an earlier deferred exit)
            if composite is not None and composite.zone in (CompositeZone.CAUTION, CompositeZone.DEFENSIVE):
                header = f"{composite.zone.value} zone: {self.leveraged_symbol} still held"
                return self._forced_leveraged_exit(header, composite.zone, position, leveraged_quote)
            if leveraged_quote is None:
                return TradeSignal(
                    action=TradeAction.HOLD,
                    price=quote.price,
                    reasoning=(f"holding {self.leveraged_symbol} but no quote available; skipping exit checks",),
                    confidence=Confidence.LOW,
                )
            price = leveraged_quote.price
        else:
            position = portfolio.position(self.primary_symbol)
            if position is None:
                held = ", ".join(sorted(portfolio.positions))
                return TradeSignal(
                    action=TradeAction.HOLD,
                    price=quote.price,
                    reasoning=(f"position in untracked instrument(s) {held}; no rules apply",),
                    confidence=Confidence.LOW,
                )
            price = quote.price

        verdict = evaluate_exit(ctx, position, price, self.policy)
        if verdict.is_hold:
            return TradeSignal(
                action=TradeAction.HOLD,
                price=price,
                reasoning=verdict.reasoning,
                confidence=verdict.confidence,
            )
        return TradeSignal(
            action=TradeAction.SELL,
            instrument=position.instrument,
            shares=position.shares,
            price=price,
            reasoning=verdict.reasoning,
            confidence=verdict.confidence,
        )

    def _evaluate_entry(
        self,
        ctx: RuleContext,
        quote: Quote,
        portfolio: Portfolio,
        composite: Optional[CompositeReading],
        leveraged_quote: Optional[Quote],
    ) -> TradeSignal:
        prefix = []
        instrument = self.primary_symbol
        override_setups: tuple = ()

        if composite is not None:
            if not composite.zone.allows_entry:
                return TradeSignal(
                    action=TradeAction.HOLD,
                    price=quote.price,
                    reasoning=(
                        f"composite zone {composite.zone.value}: no new buys",
                        f"score {composite.score:.3f}: defensive posture",
                    ),
                )
            if composite.zone == CompositeZone.FULL_RISK_ON:
                instrument = self.leveraged_symbol
            else:
                override_setups = tuple(s for s in composite.active_setup_ids if s in OVERRIDE_SETUPS)
                if override_setups:
                    instrument = self.leveraged_symbol
                    names = ", ".join(s.replace("-", " ") for s in override_setups)
                    prefix.append(f"OVERRIDE: {names} active; upgrading to {self.leveraged_symbol}")
            prefix.append(f"composite {composite.zone.value} (score {composite.score:.2f}) -> {instrument}")

        leveraged = instrument == self.leveraged_symbol
        if leveraged:
            if leveraged_quote is None:
                return TradeSignal(
                    action=TradeAction.HOLD,
                    price=quote.price,
                    reasoning=tuple(prefix) + (f"no {self.leveraged_symbol} quote; cannot size entry",),
                    confidence=Confidence.LOW,
                )
            price = leveraged_quote.price
            prefix.append(
                f"{self.leveraged_symbol} sizing: {self.policy.leveraged_allocation_ratio * 100:.0f}% of mode allocation"
            )
        else:
            price = quote.price

        verdict = evaluate_entry(ctx, self.policy, portfolio.cash, price, leveraged=leveraged)
        if verdict.is_hold:
            return TradeSignal(
                action=TradeAction.HOLD,
                price=price,
                reasoning=tuple(prefix) + verdict.reasoning,
                confidence=verdict.confidence,
            )

        reasoning = tuple(prefix) + verdict.reasoning
        if leveraged:
            reasoning += (f"levels read on {self.primary_symbol} at {money(quote.price)}",)
        return TradeSignal(
            action=TradeAction.BUY,
            instrument=instrument,
            shares=verdict.shares,
            price=price,
            reasoning=reasoning,
            confidence=verdict.confidence,
            target=verdict.target,
            stop=verdict.stop,
            is_override=bool(override_setups),
            override_setups=override_setups,
        )
