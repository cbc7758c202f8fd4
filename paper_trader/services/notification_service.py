"""Notification helpers (Telegram)."""

import logging

import httpx

from paper_trader.config import settings

logger = logging.getLogger(__name__)


def telegram_configured() -> bool:
    return bool(settings.TELEGRAM_ENABLED and settings.TELEGRAM_BOT_TOKEN and settings.TELEGRAM_CHAT_ID)


async def send_telegram_message(text: str) -> bool:
    """Send a Telegram message if enabled and bot token + chat ID are configured."""
    if not telegram_configured():
        logger.info("Telegram post skipped (disabled or missing TELEGRAM_BOT_TOKEN / TELEGRAM_CHAT_ID)")
        return False

    url = f"https://api.telegram.org/bot{settings.TELEGRAM_BOT_TOKEN}/sendMessage"
    payload = {"chat_id": settings.TELEGRAM_CHAT_ID, "text": text}

    try:
        async with httpx.AsyncClient(timeout=15.0) as client:
            resp = await client.post(url, json=payload)
            resp.raise_for_status()
        return True
    except httpx.HTTPError as exc:
        logger.error(f"Telegram post failed: {exc}")
        return False
