from decimal import Decimal

import pytest

from paper_trader.domain.models import (
    ActiveSetup,
    CompositeReading,
    CompositeZone,
    Confidence,
    Mode,
    Portfolio,
    TradeAction,
)
from paper_trader.domain.services.accounting import apply_buy
from paper_trader.domain.services.decision_engine import DecisionEngine
from tests.factories import MORNING, make_flow, make_quote, make_report

CASH = Decimal("100000")


@pytest.fixture()
def engine(live_policy):
    return DecisionEngine(live_policy, "TSLA", "TSLL")


def _holding(instrument: str, shares: int, price: str) -> Portfolio:
    return apply_buy(Portfolio.fresh(CASH), instrument, shares, Decimal(price), mode=Mode.FAVORABLE)


@pytest.mark.unit
def test_buys_primary_at_support(engine):
    signal = engine.decide(
        make_quote("250"), make_flow(80), make_report(), Portfolio.fresh(CASH), 0, now=MORNING
    )

    assert signal.action == TradeAction.BUY
    assert signal.instrument == "TSLA"
    assert signal.shares == 100
    assert signal.target == Decimal("260")
    assert signal.stop == Decimal("245")
    assert not signal.is_override


@pytest.mark.unit
def test_report_flow_is_used_when_no_live_reading(engine):
    report = make_report(flow=make_flow(10))

    signal = engine.decide(make_quote("250"), None, report, Portfolio.fresh(CASH), 0, now=MORNING)

    # favorable mode is an override mode, so heavy selling does not block
    assert signal.action == TradeAction.BUY
    assert any(r.startswith("flow override") for r in signal.reasoning)


@pytest.mark.unit
def test_hard_stop_sells_whole_position(engine):
    signal = engine.decide(
        make_quote("240"), make_flow(80), make_report(), _holding("TSLA", 100, "250"), 0, now=MORNING
    )

    assert signal.action == TradeAction.SELL
    assert signal.shares == 100
    assert signal.reasoning[0] == "hard stop: price $240.00 below master eject $245.00"


@pytest.mark.unit
def test_no_pyramiding_while_holding(engine):
    signal = engine.decide(
        make_quote("250"), make_flow(80), make_report(), _holding("TSLA", 100, "250"), 0, now=MORNING
    )

    assert signal.action == TradeAction.HOLD
    assert signal.reasoning[0] == "holding TSLA"


@pytest.mark.unit
def test_no_entry_at_trade_cap(engine):
    signal = engine.decide(
        make_quote("250"), make_flow(80), make_report(), Portfolio.fresh(CASH), 2, now=MORNING
    )

    assert signal.action == TradeAction.HOLD
    assert signal.reasoning == ("max trades reached (2). sitting out.",)


@pytest.mark.unit
def test_no_composite_means_primary_only(engine):
    signal = engine.decide(
        make_quote("250"), make_flow(80), make_report(), Portfolio.fresh(CASH), 0,
        leveraged_quote=make_quote("15", "TSLL"), now=MORNING,
    )

    assert signal.instrument == "TSLA"


@pytest.mark.unit
def test_full_risk_on_buys_leveraged_at_reduced_size(engine):
    signal = engine.decide(
        make_quote("250"), make_flow(80), make_report(), Portfolio.fresh(CASH), 0,
        composite=CompositeReading(zone=CompositeZone.FULL_RISK_ON, score=0.8),
        leveraged_quote=make_quote("15", "TSLL"),
        now=MORNING,
    )

    assert signal.action == TradeAction.BUY
    assert signal.instrument == "TSLL"
    assert signal.price == Decimal("15")
    # 25% allocation x 50% leveraged ratio = 12,500 / 15
    assert signal.shares == 833
    assert signal.reasoning[-1] == "levels read on TSLA at $250.00"


@pytest.mark.unit
def test_neutral_zone_override_setup_upgrades_to_leveraged(engine):
    composite = CompositeReading(
        zone=CompositeZone.NEUTRAL,
        score=0.1,
        setups=(ActiveSetup("capitulation"), ActiveSetup("deep-value", status="watching")),
    )

    signal = engine.decide(
        make_quote("250"), make_flow(80), make_report(), Portfolio.fresh(CASH), 0,
        composite=composite, leveraged_quote=make_quote("15", "TSLL"), now=MORNING,
    )

    assert signal.instrument == "TSLL"
    assert signal.is_override
    assert signal.override_setups == ("capitulation",)
    assert signal.reasoning[0] == "OVERRIDE: capitulation active; upgrading to TSLL"


@pytest.mark.unit
def test_neutral_zone_without_override_buys_primary(engine):
    signal = engine.decide(
        make_quote("250"), make_flow(80), make_report(), Portfolio.fresh(CASH), 0,
        composite=CompositeReading(zone=CompositeZone.NEUTRAL, score=0.0),
        leveraged_quote=make_quote("15", "TSLL"),
        now=MORNING,
    )

    assert signal.instrument == "TSLA"
    assert signal.shares == 100


@pytest.mark.unit
@pytest.mark.parametrize("zone", [CompositeZone.CAUTION, CompositeZone.DEFENSIVE])
def test_deteriorated_zone_blocks_new_buys(engine, zone):
    signal = engine.decide(
        make_quote("250"), make_flow(80), make_report(), Portfolio.fresh(CASH), 0,
        composite=CompositeReading(zone=zone, score=-0.4), now=MORNING,
    )

    assert signal.action == TradeAction.HOLD
    assert signal.reasoning[0] == f"composite zone {zone.value}: no new buys"


@pytest.mark.unit
def test_leveraged_entry_without_quote_holds(engine):
    signal = engine.decide(
        make_quote("250"), make_flow(80), make_report(), Portfolio.fresh(CASH), 0,
        composite=CompositeReading(zone=CompositeZone.FULL_RISK_ON, score=0.8), now=MORNING,
    )

    assert signal.action == TradeAction.HOLD
    assert signal.confidence == Confidence.LOW


@pytest.mark.unit
def test_zone_change_to_defensive_forces_leveraged_exit(engine):
    signal = engine.decide(
        make_quote("250"), make_flow(80), make_report(), _holding("TSLL", 833, "15"), 0,
        CompositeZone.NEUTRAL,
        composite=CompositeReading(zone=CompositeZone.DEFENSIVE, score=-0.7),
        leveraged_quote=make_quote("14.20", "TSLL"),
        now=MORNING,
    )

    assert signal.action == TradeAction.SELL
    assert signal.instrument == "TSLL"
    assert signal.shares == 833
    assert signal.price == Decimal("14.20")
    assert signal.reasoning[0] == "composite zone change: neutral -> defensive"


@pytest.mark.unit
def test_zone_change_to_caution_exits_leverage_first(engine):
    signal = engine.decide(
        make_quote("250"), make_flow(80), make_report(), _holding("TSLL", 833, "15"), 0,
        CompositeZone.FULL_RISK_ON,
        composite=CompositeReading(zone=CompositeZone.CAUTION, score=-0.2),
        leveraged_quote=make_quote("15.10", "TSLL"),
        now=MORNING,
    )

    assert signal.action == TradeAction.SELL
    assert "selling TSLL first (leveraged exit priority)" in signal.reasoning


@pytest.mark.unit
def test_deferred_leveraged_exit_completes_once_quote_returns(engine):
    book = _holding("TSLL", 800, "15")
    composite = CompositeReading(zone=CompositeZone.DEFENSIVE, score=-0.7)

    deferred = engine.decide(
        make_quote("250"), make_flow(80), make_report(), book, 0, CompositeZone.NEUTRAL,
        composite=composite, now=MORNING,
    )
    # zone already stored as defensive on the next cycle
    retried = engine.decide(
        make_quote("250"), make_flow(80), make_report(), book, 0, CompositeZone.DEFENSIVE,
        composite=composite, leveraged_quote=make_quote("15.10", "TSLL"), now=MORNING,
    )

    assert deferred.action == TradeAction.HOLD
    assert deferred.reasoning[1] == "no TSLL quote; forced exit deferred to next cycle"
    assert retried.action == TradeAction.SELL
    assert retried.instrument == "TSLL"
    assert retried.shares == 800
    assert retried.reasoning[:2] == (
        "defensive zone: TSLL still held",
        "selling ALL TSLL immediately (forced liquidation)",
    )


@pytest.mark.unit
def test_leveraged_hold_reasoning_has_no_exit_claim(engine):
    signal = engine.decide(
        make_quote("250"), make_flow(80), make_report(), _holding("TSLL", 800, "15"), 0,
        CompositeZone.NEUTRAL,
        composite=CompositeReading(zone=CompositeZone.NEUTRAL, score=0.0),
        leveraged_quote=make_quote("15.10", "TSLL"), now=MORNING,
    )

    assert signal.action == TradeAction.HOLD
    assert signal.reasoning[0] == "holding TSLL"
    assert not any("exiting" in r for r in signal.reasoning)


@pytest.mark.unit
def test_zone_change_does_not_force_primary_exit(engine):
    signal = engine.decide(
        make_quote("250"), make_flow(80), make_report(), _holding("TSLA", 100, "250"), 0,
        CompositeZone.NEUTRAL,
        composite=CompositeReading(zone=CompositeZone.DEFENSIVE, score=-0.7),
        now=MORNING,
    )

    assert signal.action == TradeAction.HOLD
    assert signal.reasoning[0] == "holding TSLA"


@pytest.mark.unit
def test_leveraged_exit_uses_primary_levels(engine):
    # TSLA under master eject stops out the TSLL position
    signal = engine.decide(
        make_quote("240"), make_flow(80), make_report(), _holding("TSLL", 833, "15"), 0,
        leveraged_quote=make_quote("13.80", "TSLL"), now=MORNING,
    )

    assert signal.action == TradeAction.SELL
    assert signal.instrument == "TSLL"
    assert signal.price == Decimal("13.80")
    assert signal.reasoning[0].startswith("hard stop")
