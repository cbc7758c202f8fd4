"""
Logging redaction helpers.
Scrubs bot tokens and API keys from log messages before they hit a handler.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable


_PATTERNS: Iterable[tuple[re.Pattern, str]] = (
    # Telegram bot token in URL: /bot<token>/
    (re.compile(r"bot\d+:[A-Za-z0-9_-]{20,}"), "bot[REDACTED]"),
    # Authorization: Bearer <token>
    (re.compile(r"(Bearer\s+)([A-Za-z0-9\-\._]+)"), r"\1[REDACTED]"),
    # OpenAI style secret keys
    (re.compile(r"sk-[A-Za-z0-9_\-]{16,}"), "sk-[REDACTED]"),
    # Flow API key / generic key=value secrets
    (re.compile(r"(?i)(api[_-]?key|token|secret)\s*[:=]\s*([A-Za-z0-9\-\._]+)"), r"\1=[REDACTED]"),
)


def redact_message(message: str) -> str:
    redacted = message
    for pattern, replacement in _PATTERNS:
        redacted = pattern.sub(replacement, redacted)
    return redacted


class RedactingFilter(logging.Filter):
    """Filter that redacts sensitive data from log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            record.msg = redact_message(record.getMessage())
            record.args = ()
        except (TypeError, ValueError):
            # Malformed format args: let the handler report it as usual
            pass
        return True


def install_redaction_filter() -> None:
    root = logging.getLogger()
    if any(isinstance(existing, RedactingFilter) for existing in root.filters):
        return
    redacting = RedactingFilter()
    root.addFilter(redacting)
    # Root logger filters do not apply to records propagated from child loggers
    for handler in root.handlers:
        if not any(isinstance(f, RedactingFilter) for f in handler.filters):
            handler.addFilter(redacting)
