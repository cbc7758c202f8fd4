"""
Command line entrypoint.

    paper-trader run                      # live paper trading loop
    paper-trader backtest --seed 7        # replay the sample window
    paper-trader status                   # persisted state + recent trades
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from paper_trader.backtest.bars import StaticBarSource, SyntheticBarGenerator, SyntheticBarSource
from paper_trader.backtest.engine import BacktestEngine
from paper_trader.backtest.loader import load_window
from paper_trader.backtest.result import BacktestResult
from paper_trader.config import settings
from paper_trader.core.logging import setup_logging
from paper_trader.domain.errors import PaperTraderError
from paper_trader.domain.services.config_engine import StrategyConfigEngine

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = "backtest_window.yml"


# ------------------------------------------------------------------
# run
# ------------------------------------------------------------------

def cmd_run(args: argparse.Namespace) -> int:
    from paper_trader.scheduler.main import main

    asyncio.run(main(profile=args.profile))
    return 0


# ------------------------------------------------------------------
# backtest
# ------------------------------------------------------------------

def cmd_backtest(args: argparse.Namespace) -> int:
    config_engine = StrategyConfigEngine(Path(settings.STRATEGY_CONFIG_DIR))
    config_engine.load_all()
    policy = config_engine.get_policy(args.profile)
    execution = config_engine.execution

    window_path = Path(args.window) if args.window else Path(settings.STRATEGY_CONFIG_DIR) / DEFAULT_WINDOW
    window = load_window(window_path)
    seed = args.seed if args.seed is not None else execution.default_seed

    if args.bars == "recorded":
        from paper_trader.infrastructure.market_data.yfinance_provider import YFinanceQuoteProvider

        days = [s.date for s in window.sessions]
        recorded = asyncio.run(
            YFinanceQuoteProvider().get_intraday_bars(
                window.symbol, min(days), max(days), interval=f"{execution.bar_interval_minutes}m"
            )
        )
        bar_source = StaticBarSource(recorded)
        # recorded bars are not randomised
        seed = None
    else:
        bar_source = SyntheticBarSource(
            window.sessions,
            SyntheticBarGenerator(
                seed,
                interval_minutes=execution.bar_interval_minutes,
                session_open=execution.session_open,
                session_close=execution.session_close,
            ),
        )

    logger.info(f"Backtest window '{window.name}' ({len(window.reports)} reports, bars={args.bars})")
    result = BacktestEngine(policy, execution, bar_source, window.symbol, seed=seed).run(window.reports)
    print(render_report(result))

    if not args.no_export:
        paths = result.export(Path(args.output or settings.RESULTS_DIR))
        for kind, path in paths.items():
            print(f"  {kind}: {path}")
    return 0


def render_report(result: BacktestResult) -> str:
    s = result.summary
    lines = [
        "=" * 64,
        f"BACKTEST {result.symbol}  {result.start_date} -> {result.end_date}",
        f"policy {result.policy} | " + (f"seed {result.seed}" if result.seed is not None else "recorded bars"),
        "=" * 64,
        "",
        "DAY         MODE              OPEN      CLOSE   TRADES       VALUE",
    ]
    for d in result.daily_results:
        lines.append(
            f"{d.date}  {d.mode.value:<16} {d.open_price:>8.2f}  {d.close_price:>8.2f}  "
            f"{len(d.trades):>6}  {d.total_value:>11,.2f}"
        )
    lines += ["", "TRADES"]
    for t in result.trades:
        pnl = f"  pnl {t.realized_pnl:+,.2f}" if t.realized_pnl is not None else ""
        lines.append(f"  {t.timestamp:%m-%d %H:%M} {t.action.value.upper():<4} {t.shares:>5} @ {t.price:>8.2f}{pnl}")
        lines.append(f"      {t.reasoning[0]}")
    if not result.trades:
        lines.append("  (none)")

    dd = s.max_drawdown
    lines += [
        "",
        "PERFORMANCE",
        f"  starting capital   {result.starting_capital:>14,.2f}",
        f"  ending capital     {result.ending_capital:>14,.2f}",
        f"  total return       {result.total_return:>+14,.2f} ({result.total_return_pct:+.2f}%)",
        f"  buy & hold         {result.buy_and_hold_return:>+14,.2f} ({result.buy_and_hold_return_pct:+.2f}%)",
        f"  vs buy & hold      {result.outperformance:>+14,.2f} ({result.outperformance_pct:+.2f}%)",
        f"  trades             {result.total_trades:>14}",
        f"  closed             {s.closed_trades:>14}",
        f"  win rate           {s.win_rate * 100:>13.1f}%",
        f"  avg winner         {s.avg_winner:>14,.2f}",
        f"  avg loser          {s.avg_loser:>14,.2f}",
        f"  profit factor      {s.profit_factor_label:>14}",
        f"  max drawdown       {dd.amount:>14,.2f} ({dd.pct:.2f}%)",
        f"  costs              {result.transaction_costs:>14,.2f}",
    ]
    return "\n".join(lines)


# ------------------------------------------------------------------
# status
# ------------------------------------------------------------------

async def _status() -> int:
    from paper_trader.infrastructure.db.database import close_db, init_db, session_scope
    from paper_trader.infrastructure.db.repositories.state_repository import BotStateRepository
    from paper_trader.infrastructure.db.repositories.trade_repository import PaperTradeRepository

    await init_db()
    try:
        async with session_scope() as session:
            state = await BotStateRepository(session).load()
            recent = await PaperTradeRepository(session).get_recent(5)
    finally:
        await close_db()

    if state is None:
        print("No saved state. Start the bot with `paper-trader run`.")
        return 1

    p = state.portfolio
    print(f"session:       {state.session_date}")
    print(f"cash:          {p.cash:,.2f}")
    print(f"realized p&l:  {p.realized_pnl:+,.2f}")
    print(f"trades today:  {state.trades_today}")
    print(f"zone:          {state.composite_zone.value if state.composite_zone else 'n/a'}")
    if p.is_flat:
        print("positions:     none")
    for instrument, position in sorted(p.positions.items()):
        print(f"position:      {instrument} {position.shares} @ {position.avg_cost:.2f}")
    if recent:
        print("recent trades:")
        for t in recent:
            print(f"  {t.timestamp:%Y-%m-%d %H:%M} {t.action.value} {t.shares} {t.instrument} @ {t.price:.2f}")
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    return asyncio.run(_status())


# ------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="paper-trader", description="Regime-driven paper trader")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Start the live paper trading loop")
    run.add_argument("--profile", default=None, help="Strategy profile (default: STRATEGY_PROFILE)")
    run.set_defaults(func=cmd_run)

    bt = sub.add_parser("backtest", help="Replay a historical window")
    bt.add_argument("--window", default=None, help="Window file (YAML/JSON)")
    bt.add_argument("--seed", type=int, default=None, help="Synthetic bar seed")
    bt.add_argument("--profile", default="backtest", help="Strategy profile")
    bt.add_argument("--bars", choices=["synthetic", "recorded"], default="synthetic",
                    help="Synthetic bars from daily OHLC, or recorded yfinance intraday bars")
    bt.add_argument("--output", default=None, help="Export directory (default: RESULTS_DIR)")
    bt.add_argument("--no-export", action="store_true", help="Skip writing result files")
    bt.set_defaults(func=cmd_backtest)

    status = sub.add_parser("status", help="Show persisted bot state")
    status.set_defaults(func=cmd_status)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.command != "run":
        setup_logging(settings.LOG_LEVEL)
    try:
        return args.func(args)
    except (PaperTraderError, FileNotFoundError) as exc:
        logger.error(str(exc))
        return 2


if __name__ == "__main__":
    sys.exit(main())
