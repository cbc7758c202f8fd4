import logging
import sys

from paper_trader.utils.logging_redaction import install_redaction_filter

_NOISY_LOGGERS = ("sqlalchemy.engine", "httpx", "httpcore", "apscheduler.executors.default", "yfinance")


def setup_logging(level: str = "INFO") -> None:
    """
    Configure centralized application logging.
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    install_redaction_filter()
