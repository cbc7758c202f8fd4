"""
Backtest results and export.
JSON for the summary, CSV (pandas) for the trade ledger and value series.
"""

import json
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from paper_trader.domain.models import Mode, Trade
from paper_trader.domain.services.metrics import PerformanceSummary


@dataclass(frozen=True)
class DailyResult:
    date: date
    mode: Mode
    open_price: Decimal
    close_price: Decimal
    trades: Tuple[Trade, ...]
    starting_cash: Decimal
    ending_cash: Decimal
    shares_held: int
    avg_cost: Decimal
    realized_pnl: Decimal
    unrealized_pnl: Decimal
    total_value: Decimal
    total_return: Decimal

    @property
    def daily_change_pct(self) -> Decimal:
        return (self.close_price - self.open_price) / self.open_price * 100

    @property
    def position_value(self) -> Decimal:
        return self.close_price * self.shares_held


@dataclass(frozen=True)
class BacktestResult:
    policy: str
    seed: Optional[int]
    symbol: str
    start_date: date
    end_date: date
    starting_capital: Decimal
    ending_capital: Decimal
    buy_and_hold_return_pct: Decimal
    trades: Tuple[Trade, ...]
    daily_results: Tuple[DailyResult, ...]
    value_series: Tuple[Tuple[datetime, Decimal], ...]
    summary: PerformanceSummary
    transaction_costs: Decimal

    @property
    def total_return(self) -> Decimal:
        return self.ending_capital - self.starting_capital

    @property
    def total_return_pct(self) -> Decimal:
        return self.total_return / self.starting_capital * 100

    @property
    def buy_and_hold_return(self) -> Decimal:
        return self.starting_capital * self.buy_and_hold_return_pct / 100

    @property
    def outperformance(self) -> Decimal:
        return self.total_return - self.buy_and_hold_return

    @property
    def outperformance_pct(self) -> Decimal:
        return self.total_return_pct - self.buy_and_hold_return_pct

    @property
    def total_trades(self) -> int:
        return len(self.trades)

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        s = self.summary
        return {
            "policy": self.policy,
            "seed": self.seed,
            "symbol": self.symbol,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "starting_capital": _num(self.starting_capital),
            "ending_capital": _num(self.ending_capital),
            "total_return": _num(self.total_return),
            "total_return_pct": _num(self.total_return_pct),
            "buy_and_hold_return": _num(self.buy_and_hold_return),
            "buy_and_hold_return_pct": _num(self.buy_and_hold_return_pct),
            "outperformance": _num(self.outperformance),
            "outperformance_pct": _num(self.outperformance_pct),
            "total_trades": self.total_trades,
            "closed_trades": s.closed_trades,
            "winning_trades": s.winners,
            "losing_trades": s.losers,
            "win_rate": round(s.win_rate, 4),
            "avg_winner": _num(s.avg_winner),
            "avg_loser": _num(s.avg_loser),
            "profit_factor": None if s.profit_factor is None else _num(s.profit_factor),
            "max_drawdown": _num(s.max_drawdown.amount),
            "max_drawdown_pct": _num(s.max_drawdown.pct),
            "transaction_costs": _num(self.transaction_costs),
            "daily_results": [
                {
                    "date": d.date.isoformat(),
                    "mode": d.mode.value,
                    "open": _num(d.open_price),
                    "close": _num(d.close_price),
                    "daily_change_pct": _num(d.daily_change_pct),
                    "trades": len(d.trades),
                    "ending_cash": _num(d.ending_cash),
                    "shares_held": d.shares_held,
                    "total_value": _num(d.total_value),
                    "total_return": _num(d.total_return),
                }
                for d in self.daily_results
            ],
        }

    def trades_frame(self) -> pd.DataFrame:
        rows: List[Dict[str, Any]] = [
            {
                "timestamp": t.timestamp,
                "action": t.action.value,
                "instrument": t.instrument,
                "shares": t.shares,
                "price": _num(t.price),
                "notional": _num(t.notional),
                "cost": _num(t.cost),
                "realized_pnl": None if t.realized_pnl is None else _num(t.realized_pnl),
                "portfolio_value": _num(t.portfolio_value_after),
                "cash_remaining": _num(t.cash_after),
                "mode": t.mode.value if t.mode else None,
                "flow_percentile": t.flow_percentile,
                "reasoning": " | ".join(t.reasoning),
            }
            for t in self.trades
        ]
        return pd.DataFrame(rows, columns=[
            "timestamp", "action", "instrument", "shares", "price", "notional", "cost",
            "realized_pnl", "portfolio_value", "cash_remaining", "mode", "flow_percentile", "reasoning",
        ])

    def values_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [(ts, _num(v)) for ts, v in self.value_series],
            columns=["timestamp", "portfolio_value"],
        )

    def export(self, output_dir: Path) -> Dict[str, Path]:
        """Write summary JSON, trades CSV and value-series CSV; return the paths"""
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        source = f"seed{self.seed}" if self.seed is not None else "recorded"
        stem = f"backtest_{self.start_date:%Y%m%d}_{self.end_date:%Y%m%d}_{source}"

        paths = {
            "summary": output_dir / f"{stem}.json",
            "trades": output_dir / f"{stem}_trades.csv",
            "values": output_dir / f"{stem}_values.csv",
        }
        with open(paths["summary"], "w") as f:
            json.dump(self.to_dict(), f, indent=2)
        self.trades_frame().to_csv(paths["trades"], index=False)
        self.values_frame().to_csv(paths["values"], index=False)
        return paths


def _num(value: Decimal, places: int = 4) -> float:
    return round(float(value), places)
