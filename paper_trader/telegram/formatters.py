"""
Telegram message formatters.
Pure string builders; no I/O.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Optional

from paper_trader.domain.models import (
    CompositeReading,
    CompositeZone,
    FlowReading,
    Mode,
    Portfolio,
    PortfolioValuation,
    Quote,
    RegimeReport,
    Trade,
)
from paper_trader.domain.services.metrics import PerformanceSummary
from paper_trader.domain.strategy.rules import money, signed_money, signed_pct

MODE_EMOJI = {
    Mode.FAVORABLE: "🟢",
    Mode.CAUTION: "🟡",
    Mode.ELEVATED_CAUTION: "🟠",
    Mode.DEFENSIVE: "🔴",
}

ZONE_EMOJI = {
    CompositeZone.FULL_RISK_ON: "🟢",
    CompositeZone.NEUTRAL: "⚪",
    CompositeZone.CAUTION: "🟡",
    CompositeZone.DEFENSIVE: "🔴",
}


def _clock(now: datetime) -> str:
    return now.strftime("%I:%M %p").lstrip("0").lower()


def _zone_line(composite: Optional[CompositeReading]) -> str:
    if composite is None:
        return "⚪ composite: n/a (primary only)"
    return f"{ZONE_EMOJI[composite.zone]} composite: {composite.zone.value} ({composite.score:+.2f})"


def _mode_line(report: Optional[RegimeReport]) -> str:
    if report is None:
        return "⚪ no report yet"
    return f"{MODE_EMOJI[report.mode]} {report.mode.value} mode (tier {report.tier}) | eject {money(report.master_eject)}"


def _setup_names(setups: Iterable[str]) -> str:
    return ", ".join(s.replace("-", " ") for s in setups)


def describe_flow(flow: FlowReading) -> str:
    pct = flow.percentile
    if flow.reading >= 0:
        if pct >= 70:
            return "strong buying. flow supports longs."
        if pct >= 40:
            return "moderate buying. flow is constructive."
        return "mild buying. not enough to lean on."
    if pct <= 20:
        return "heavy selling. flow is aggressively negative."
    if pct <= 40:
        return "selling pressure. dealers hedging."
    if pct <= 60:
        return "mild selling, within normal range."
    return "negative but improving. selling pressure fading."


def portfolio_footer(portfolio: Portfolio, valuation: PortfolioValuation) -> str:
    total = valuation.total_value
    lines = [""]
    if portfolio.is_flat:
        lines.append("flat: 0 shares")
    for instrument, position in sorted(portfolio.positions.items()):
        value = valuation.market_values.get(instrument, Decimal("0"))
        share = value / total * 100 if total else Decimal("0")
        lines.append(f"{instrument}: {position.shares:,} shares ({share:.0f}% of port)")
    cash_share = valuation.cash / total * 100 if total else Decimal("0")
    lines.append(f"cash: {money(valuation.cash)} ({cash_share:.0f}%)")
    lines.append(f"portfolio: {money(total)} ({signed_pct(valuation.total_return_pct)})")
    return "\n".join(lines)


# ------------------------------------------------------------------
# CYCLE POSTS
# ------------------------------------------------------------------

def format_status(
    quote: Quote,
    report: Optional[RegimeReport],
    composite: Optional[CompositeReading],
    take: str,
    portfolio: Portfolio,
    valuation: PortfolioValuation,
    now: datetime,
) -> str:
    lines = [
        f"📊 STATUS UPDATE - {_clock(now)} CT",
        "",
        f"{quote.symbol} {money(quote.price)} ({signed_pct(quote.change_pct)})",
        _zone_line(composite),
        f"take: {take}",
    ]
    if report is not None:
        gamma = f"γ {report.key_gamma_strike:.0f} | " if report.key_gamma_strike else ""
        lines.append(f"levels: {gamma}eject {report.master_eject:.0f}")
    lines.append(_mode_line(report))
    return "\n".join(lines) + portfolio_footer(portfolio, valuation)


def entry_commentary(trade: Trade, report: Optional[RegimeReport], composite: Optional[CompositeReading],
                     leveraged_symbol: str) -> str:
    takes = []
    if trade.instrument == leveraged_symbol:
        if composite is not None and composite.zone == CompositeZone.NEUTRAL:
            takes.append("neutral zone, but an override setup is active. taking the leveraged position.")
        else:
            takes.append("composite zone is full risk-on. taking the leveraged position.")
    elif composite is not None and composite.zone == CompositeZone.NEUTRAL:
        takes.append("composite is neutral. shares only, no leverage.")

    if report is not None:
        takes.append({
            Mode.FAVORABLE: "favorable mode. full conviction sizing.",
            Mode.CAUTION: "caution mode. size stays measured.",
            Mode.ELEVATED_CAUTION: "elevated caution. smaller position, tighter risk.",
            Mode.DEFENSIVE: "defensive mode. nibble only at a key level.",
        }[report.mode])
        if abs(trade.price - report.master_eject) < 5:
            takes.append(f"close to master eject ({money(report.master_eject)}). tight leash.")

    if any(r.startswith("near support") for r in trade.reasoning):
        takes.append("price is sitting on support. that's the entry zone.")
    return " ".join(takes)


def exit_commentary(trade: Trade) -> str:
    text = " ".join(trade.reasoning).lower()
    if "target hit" in text:
        return "hit the target. took profit. discipline is the edge."
    if "hard stop" in text:
        return "stop triggered below master eject. small loss, capital preserved."
    if "mode flipped" in text:
        return "mode flipped to defensive. when the system says defend, you defend."
    if "composite zone change" in text:
        return "composite zone deteriorated. leverage exits first."
    if "flow deteriorated" in text:
        return "flow turned hard negative. trimming before it gets worse."
    if "overnight risk" in text:
        return "late in the session with gains. not holding overnight risk."
    return ". ".join(trade.reasoning)


def format_entry(
    trade: Trade,
    report: Optional[RegimeReport],
    composite: Optional[CompositeReading],
    flow: Optional[FlowReading],
    portfolio: Portfolio,
    valuation: PortfolioValuation,
    commentary: str,
    override_setups: Iterable[str] = (),
) -> str:
    override_setups = tuple(override_setups)
    tag = " ⚡ OVERRIDE" if override_setups else ""
    cash_before = trade.cash_after + trade.notional + trade.cost
    used_pct = trade.notional / cash_before * 100 if cash_before else Decimal("0")

    lines = [
        f"🟢 BUY{tag} - {_clock(trade.timestamp)} CT",
        "",
        f"bought {trade.shares:,} shares {trade.instrument} @ {money(trade.price)}",
    ]
    if override_setups:
        lines.append(f"⚡ override: {_setup_names(override_setups)} active")
    size = f"size: {money(trade.notional)} ({used_pct:.1f}% of cash)"
    if report is not None:
        size += f" | {report.mode.value} mode, tier {report.tier}"
    lines.append(size)
    for reason in trade.reasoning:
        if reason.startswith("target:") or reason.startswith("r/r:"):
            lines.append(reason)
    lines.append(_zone_line(composite))
    if flow is not None:
        lines.append(f"flow: {flow.reading:+,.0f} ({flow.percentile:.0f}th pctl) - {describe_flow(flow)}")
    lines += ["", "why this trade:", commentary]
    return "\n".join(lines) + portfolio_footer(portfolio, valuation)


def format_exit(trade: Trade, portfolio: Portfolio, valuation: PortfolioValuation, commentary: str) -> str:
    pnl = trade.realized_pnl or Decimal("0")
    basis = trade.notional - pnl
    pct = pnl / basis * 100 if basis else Decimal("0")
    lines = [
        f"🔴 SELL - {_clock(trade.timestamp)} CT",
        "",
        f"sold {trade.shares:,} shares {trade.instrument} @ {money(trade.price)}",
        f"result: {signed_money(pnl)} ({signed_pct(pct)})",
        "",
        "why I exited:",
        commentary,
    ]
    return "\n".join(lines) + portfolio_footer(portfolio, valuation)


def format_zone_change(
    from_zone: CompositeZone,
    composite: CompositeReading,
    leveraged_symbol: str,
    forced_exit: Optional[Trade] = None,
) -> str:
    to_zone = composite.zone
    lines = [
        "🔀 COMPOSITE ZONE CHANGE",
        "",
        f"{ZONE_EMOJI[from_zone]} {from_zone.value} -> {ZONE_EMOJI[to_zone]} {to_zone.value}",
        f"score: {composite.score:+.3f}",
        "",
    ]
    if to_zone == CompositeZone.DEFENSIVE:
        lines.append("defensive conditions. leveraged positions exit immediately.")
    elif to_zone == CompositeZone.CAUTION:
        lines.append(f"caution building. {leveraged_symbol} exits first.")
    elif to_zone == CompositeZone.FULL_RISK_ON:
        lines.append(f"full risk-on. cleared to deploy {leveraged_symbol}.")
    elif from_zone == CompositeZone.FULL_RISK_ON:
        lines.append(f"neutral. holding existing {leveraged_symbol}, no new leveraged entries.")
    else:
        lines.append("neutral. shares only.")

    if forced_exit is not None:
        lines += [
            "",
            "action taken:",
            f"sold {forced_exit.shares:,} shares {forced_exit.instrument} @ {money(forced_exit.price)}",
        ]
        if forced_exit.realized_pnl is not None:
            lines.append(f"p&l: {signed_money(forced_exit.realized_pnl)}")

    active = composite.active_setup_ids
    watching = tuple(s.setup_id for s in composite.setups if not s.is_active)
    if active:
        lines.append(f"\nactive: {', '.join(active)}")
    if watching:
        lines.append(f"watching: {', '.join(watching)}")
    return "\n".join(lines)


# ------------------------------------------------------------------
# SESSION POSTS
# ------------------------------------------------------------------

def format_market_open(
    quote: Quote,
    report: Optional[RegimeReport],
    composite: Optional[CompositeReading],
    flow: Optional[FlowReading],
    instrument: str,
    max_allocation_pct: Optional[Decimal] = None,
) -> str:
    lines = [
        "🔔 MARKET OPEN",
        "",
        f"{quote.symbol} {money(quote.price)} ({signed_pct(quote.change_pct)})",
        _mode_line(report),
        _zone_line(composite),
    ]
    if composite is not None and composite.active_setup_ids:
        lines.append(f"active: {_setup_names(composite.active_setup_ids)}")
    if flow is not None:
        lines.append(f"flow: {flow.reading:+,.0f} ({flow.percentile:.0f}th pctl) - {describe_flow(flow)}")

    lines += ["", "today's plan:"]
    if report is None:
        lines.append("no report yet. sitting on hands until guidance arrives.")
        return "\n".join(lines)

    if composite is not None and not composite.zone.allows_entry:
        lines.append(f"buys: none. {composite.zone.value} zone, sitting in cash.")
    else:
        supports = sorted(
            (lvl for lvl in report.levels if lvl.price < quote.price and lvl.price > report.master_eject
             and lvl.type.value in ("support", "add")),
            key=lambda lvl: lvl.price,
            reverse=True,
        )
        cap = f", up to {max_allocation_pct:.0f}% of cash" if max_allocation_pct is not None else ""
        if supports:
            level = supports[0]
            dist = (quote.price - level.price) / quote.price * 100
            lines.append(f"buys: {instrument} at {level.label} ({money(level.price)}, {dist:.1f}% below){cap}")
        elif report.put_wall and report.put_wall > report.master_eject:
            lines.append(f"buys: {instrument} near put wall ({money(report.put_wall)}){cap}")
        else:
            lines.append("buys: no support between here and eject. need a pullback.")

    trims = sorted(
        (lvl for lvl in report.levels if lvl.price > quote.price and lvl.type.value in ("trim", "resistance")),
        key=lambda lvl: lvl.price,
    )
    if trims:
        lines.append(f"sells: {trims[0].label} ({money(trims[0].price)})")
    elif report.call_wall and report.call_wall > quote.price:
        lines.append(f"sells: call wall ({money(report.call_wall)})")
    else:
        lines.append("sells: no targets above. holding for now.")

    eject_dist = (quote.price - report.master_eject) / quote.price * 100
    warn = " ⚠️" if eject_dist < 1 else ""
    lines.append(f"master eject: {money(report.master_eject)}{warn} ({eject_dist:.1f}% away), full exit below")
    return "\n".join(lines)


def format_market_close(
    portfolio: Portfolio,
    valuation: PortfolioValuation,
    trades_today: int,
    day_pnl: Decimal,
) -> str:
    lines = ["🔕 MARKET CLOSE", ""]
    if not portfolio.is_flat:
        lines.append("holding overnight:")
        for instrument, position in sorted(portfolio.positions.items()):
            value = valuation.market_values.get(instrument, position.cost_basis)
            lines.append(f"• {instrument}: {position.shares:,} shares, {signed_money(value - position.cost_basis)}")
    day_pct = day_pnl / portfolio.starting_capital * 100 if portfolio.starting_capital else Decimal("0")
    lines.append(f"day's p&l: {signed_money(day_pnl)} ({signed_pct(day_pct)})")
    lines.append(f"trades: {trades_today}")
    return "\n".join(lines) + portfolio_footer(portfolio, valuation) + "\n\nback at it tomorrow."


def format_weekly_report(
    summary: PerformanceSummary,
    start_value: Decimal,
    end_value: Decimal,
    week_start: date,
    week_end: date,
) -> str:
    change = (end_value - start_value) / start_value * 100 if start_value else Decimal("0")
    best = signed_money(summary.best_trade) if summary.best_trade is not None else "n/a"
    worst = signed_money(summary.worst_trade) if summary.worst_trade is not None else "n/a"
    return "\n".join([
        f"📅 WEEKLY PERFORMANCE ({week_start.isoformat()} - {week_end.isoformat()})",
        "",
        f"capital: {money(start_value)} -> {money(end_value)} ({signed_pct(change)})",
        f"closed trades: {summary.closed_trades}",
        f"win rate: {summary.win_rate * 100:.0f}%",
        f"profit factor: {summary.profit_factor_label}",
        f"avg winner: {money(summary.avg_winner)} | avg loser: {signed_money(summary.avg_loser)}",
        f"best: {best} | worst: {worst}",
        f"max drawdown: {money(summary.max_drawdown.amount)} ({summary.max_drawdown.pct:.1f}%)",
    ])


def format_error(message: str) -> str:
    return f"⚠️ SYSTEM ALERT\n\nerror: {message}\n\ninvestigating..."
