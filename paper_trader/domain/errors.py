"""
Domain errors.
Rejections raise before any state changes; callers decide whether to hold, skip or log.
"""


class PaperTraderError(Exception):
    """Base error for the paper trader"""


class ConfigError(PaperTraderError, ValueError):
    """Invalid or missing strategy configuration"""


class DataUnavailableError(PaperTraderError):
    """A required input (report, quote) could not be obtained"""


class ExternalServiceError(PaperTraderError):
    """Flow provider, notification channel or commentary call failed"""


class AccountingError(PaperTraderError, ValueError):
    """A buy or sell would break a portfolio invariant"""


class MissingPriceError(AccountingError, KeyError):
    """Valuation requested without a price for a held instrument"""

    def __init__(self, instrument: str):
        self.instrument = instrument
        super().__init__(f"No price supplied for held instrument {instrument}")

    def __str__(self) -> str:
        return f"No price supplied for held instrument {self.instrument}"


class PersistenceError(PaperTraderError):
    """State could not be written to storage"""
