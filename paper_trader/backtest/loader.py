"""Load a historical window (daily sessions + regime reports) from YAML or JSON."""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import List

import yaml
from pydantic import ValidationError

from paper_trader.backtest.bars import DailyOHLC
from paper_trader.domain.errors import ConfigError
from paper_trader.domain.models import RegimeReport
from paper_trader.domain.schemas.report import BacktestWindowSchema


@dataclass(frozen=True)
class BacktestWindow:
    name: str
    symbol: str
    sessions: List[DailyOHLC]
    reports: List[RegimeReport]


def load_window(path: Path) -> BacktestWindow:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Backtest window not found: {path}")

    with open(path, "r") as f:
        if path.suffix == ".json":
            raw = json.load(f)
        else:
            raw = yaml.safe_load(f)

    try:
        window = BacktestWindowSchema.model_validate(raw or {})
    except ValidationError as exc:
        raise ConfigError(f"Invalid backtest window {path.name}: {exc}") from exc

    sessions = [
        DailyOHLC(
            date=s.date,
            open=s.open,
            high=s.high,
            low=s.low,
            close=s.close,
            volatility=s.volatility,
        )
        for s in window.sessions
    ]
    return BacktestWindow(
        name=window.name,
        symbol=window.symbol,
        sessions=sessions,
        reports=[r.to_domain() for r in window.reports],
    )
