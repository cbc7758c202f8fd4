"""
Flow Data Provider
Fetches the dealer-hedging flow reading over HTTP (httpx)
"""

import logging
from typing import Optional

import httpx
from pydantic import ValidationError

from paper_trader.domain.errors import ExternalServiceError
from paper_trader.domain.models import FlowReading
from paper_trader.domain.schemas.report import FlowSchema

logger = logging.getLogger(__name__)


class HttpFlowProvider:
    """
    Expects JSON shaped like:
    {"reading": -120.5, "low_30d": -420, "high_30d": 610, "character": "selling", "percentile": 29.1}
    """

    def __init__(self, base_url: Optional[str], api_key: Optional[str] = None, timeout: float = 10.0):
        self.base_url = base_url
        self.api_key = api_key
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.base_url)

    async def get_flow(self, symbol: str) -> FlowReading:
        if not self.base_url:
            raise ExternalServiceError("Flow provider not configured (FLOW_API_URL missing)")

        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(self.base_url, params={"symbol": symbol}, headers=headers)
                resp.raise_for_status()
                payload = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ExternalServiceError(f"Flow fetch failed for {symbol}: {exc}") from exc

        try:
            return FlowSchema.model_validate(payload).to_domain()
        except ValidationError as exc:
            raise ExternalServiceError(f"Flow payload for {symbol} invalid: {exc}") from exc
