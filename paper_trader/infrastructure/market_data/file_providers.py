"""
File-backed report and composite providers.
The upstream parser drops one structured report per trading day into REPORTS_DIR.
"""

import json
import logging
from datetime import date
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError

from paper_trader.domain.models import CompositeReading, RegimeReport
from paper_trader.domain.schemas.report import CompositeSchema, RegimeReportSchema

logger = logging.getLogger(__name__)


def _read_structured(path: Path) -> Any:
    with open(path, "r") as f:
        if path.suffix == ".json":
            return json.load(f)
        return yaml.safe_load(f)


class FileReportProvider:
    SUFFIXES = (".json", ".yml", ".yaml")

    def __init__(self, reports_dir: Path):
        self.reports_dir = Path(reports_dir)

    def _path_for(self, day: date) -> Optional[Path]:
        for suffix in self.SUFFIXES:
            candidate = self.reports_dir / f"{day.isoformat()}{suffix}"
            if candidate.exists():
                return candidate
        return None

    async def get_report(self, day: date) -> Optional[RegimeReport]:
        """Today's report, or None when missing or unreadable"""
        path = self._path_for(day)
        if path is None:
            logger.info(f"No regime report for {day} in {self.reports_dir}")
            return None
        try:
            return RegimeReportSchema.model_validate(_read_structured(path)).to_domain()
        except (ValidationError, ValueError, yaml.YAMLError) as exc:
            logger.error(f"Regime report {path.name} rejected: {exc}")
            return None


class FileCompositeProvider:
    def __init__(self, path: Path):
        self.path = Path(path)

    async def get_composite(self) -> Optional[CompositeReading]:
        if not self.path.exists():
            return None
        try:
            return CompositeSchema.model_validate(_read_structured(self.path)).to_domain()
        except (ValidationError, ValueError, yaml.YAMLError) as exc:
            logger.error(f"Composite reading {self.path.name} rejected: {exc}")
            return None
