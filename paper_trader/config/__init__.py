"""
Application Settings
Load from environment variables
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    """Application settings from environment"""

    # ======================
    # Database
    # ======================
    DATABASE_URL: str = "sqlite+aiosqlite:///data/paper_trader.db"
    DB_ECHO: bool = False
    AUTO_CREATE_TABLES: bool = True

    # ======================
    # Application
    # ======================
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # ======================
    # Instruments
    # ======================
    PRIMARY_SYMBOL: str = "TSLA"
    LEVERAGED_SYMBOL: str = "TSLL"
    STARTING_CAPITAL: float = 100000.0

    # ======================
    # Market Timings (US/Central)
    # ======================
    TIMEZONE: str = "America/Chicago"
    MARKET_OPEN_HOUR: int = 8
    MARKET_OPEN_MINUTE: int = 30
    MARKET_CLOSE_HOUR: int = 15
    MARKET_CLOSE_MINUTE: int = 0
    WEEKLY_REPORT_HOUR: int = 18

    # ======================
    # Scheduler
    # ======================
    SCHEDULER_ENABLED: bool = True
    UPDATE_INTERVAL_MINUTES: int = 15
    FLOW_INTERVAL_MINUTES: int = 60

    # ======================
    # Strategy
    # ======================
    STRATEGY_CONFIG_DIR: str = "config"
    STRATEGY_PROFILE: str = "live"
    REPORTS_DIR: str = "data/reports"
    COMPOSITE_FILE: str = "data/composite.json"
    RESULTS_DIR: str = "data/backtests"

    # ======================
    # Flow Data
    # ======================
    FLOW_API_URL: Optional[str] = None
    FLOW_API_KEY: Optional[str] = None
    FLOW_CACHE_MAX_AGE_HOURS: int = 24

    # ======================
    # Telegram
    # ======================
    TELEGRAM_BOT_TOKEN: Optional[str] = None
    TELEGRAM_CHAT_ID: Optional[str] = None
    TELEGRAM_ENABLED: bool = False

    # ======================
    # Commentary (LLM)
    # ======================
    LLM_PROVIDER: str = "none"  # none | local | openai
    LLM_MODEL: str = "llama3.1"
    LLM_BASE_URL: str = "http://localhost:11434"
    OPENAI_API_KEY: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="forbid",
    )


# Global settings instance
settings = Settings()
