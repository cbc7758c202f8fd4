"""
COMMENTARY SERVICE

Optional LLM voice for trade posts.
Provider switch: none | local (Ollama-style /api/generate) | openai (Responses API).
Returns None whenever no text is available; callers fall back to template commentary.
"""

import json
import logging
from typing import Any, Dict, Optional

import httpx

from paper_trader.config import settings

logger = logging.getLogger(__name__)

PROMPT = (
    "You are a disciplined paper trader explaining one trade to a chat channel."
    " Two sentences, lowercase, no emojis, no price predictions."
    " Only use the facts given."
)


async def generate_commentary(kind: str, context: Dict[str, Any]) -> Optional[str]:
    provider = (settings.LLM_PROVIDER or "none").lower()
    if provider == "none":
        return None

    prompt = f"{PROMPT}\nEvent: {kind}\nContext: {json.dumps(context, default=str)}"

    try:
        if provider == "local":
            return await _local(prompt)
        if provider == "openai":
            return await _openai(prompt)
    except httpx.HTTPError as exc:
        logger.warning(f"Commentary ({provider}) failed: {exc}")
        return None

    logger.warning(f"Unknown LLM_PROVIDER '{provider}', commentary disabled")
    return None


async def _local(prompt: str) -> Optional[str]:
    url = f"{settings.LLM_BASE_URL.rstrip('/')}/api/generate"
    body = {
        "model": settings.LLM_MODEL,
        "prompt": prompt,
        "stream": False,
    }
    async with httpx.AsyncClient(timeout=20.0) as client:
        resp = await client.post(url, json=body)
    if resp.status_code != 200:
        return None
    return _clean(resp.json().get("response", ""))


async def _openai(prompt: str) -> Optional[str]:
    if not settings.OPENAI_API_KEY:
        return None
    headers = {
        "Authorization": f"Bearer {settings.OPENAI_API_KEY}",
        "Content-Type": "application/json",
    }
    body = {
        "model": settings.LLM_MODEL,
        "input": prompt,
    }
    async with httpx.AsyncClient(timeout=20.0) as client:
        resp = await client.post("https://api.openai.com/v1/responses", headers=headers, json=body)
    if resp.status_code != 200:
        return None
    return _clean(_extract_response_text(resp.json()))


def _extract_response_text(payload: Dict[str, Any]) -> str:
    # Responses API output text
    for item in payload.get("output") or []:
        for part in item.get("content") or []:
            if part.get("type") == "output_text":
                return part.get("text", "")
    return ""


def _clean(text: str) -> Optional[str]:
    text = (text or "").strip()
    return text or None
