import json
from datetime import datetime
from decimal import Decimal
from pathlib import Path

import pytest

from paper_trader import cli
from paper_trader.backtest.bars import IntradayBar
from paper_trader.infrastructure.market_data.yfinance_provider import YFinanceQuoteProvider

CONFIG_DIR = Path(__file__).resolve().parents[2] / "config"


@pytest.fixture()
def config_dir(monkeypatch):
    monkeypatch.setattr(cli.settings, "STRATEGY_CONFIG_DIR", str(CONFIG_DIR))


@pytest.mark.unit
def test_backtest_command_prints_report(config_dir, capsys):
    assert cli.main(["backtest", "--seed", "7", "--no-export"]) == 0

    out = capsys.readouterr().out
    assert "BACKTEST TSLA  2026-01-27 -> 2026-02-06" in out
    assert "seed 7" in out
    assert "PERFORMANCE" in out


@pytest.mark.unit
def test_backtest_command_exports(config_dir, tmp_path):
    assert cli.main(["backtest", "--seed", "7", "--output", str(tmp_path)]) == 0

    summary = json.loads(next(tmp_path.glob("*.json")).read_text())
    assert summary["seed"] == 7


@pytest.mark.unit
def test_missing_window_exits_with_error(config_dir, tmp_path):
    assert cli.main(["backtest", "--window", str(tmp_path / "nope.yml"), "--no-export"]) == 2


@pytest.mark.unit
def test_recorded_bars_run_has_no_seed(config_dir, monkeypatch, tmp_path, capsys):
    async def recorded(self, symbol, start, end, interval="15m"):
        price = Decimal("250")
        return {start: [IntradayBar(datetime(2026, 1, 27, 9, 30), price, price, price, price, 1_000_000)]}

    monkeypatch.setattr(YFinanceQuoteProvider, "get_intraday_bars", recorded)

    assert cli.main(["backtest", "--bars", "recorded", "--seed", "7", "--output", str(tmp_path)]) == 0

    assert "recorded bars" in capsys.readouterr().out
    summary = json.loads(next(tmp_path.glob("*.json")).read_text())
    assert summary["seed"] is None
