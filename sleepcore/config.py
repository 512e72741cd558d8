"""
Configuration management with environment variable support and validation.

Design principles:
- Validation at startup (fail fast)
- Type safety with Pydantic
- Durations are timedeltas everywhere past this module
"""

import logging
import os
from datetime import timedelta
from functools import lru_cache
from typing import Literal, cast

import structlog
from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

# Load environment variables from .env file
load_dotenv()


class AlarmConfig(BaseModel):
    """Timing parameters for the sleep state machine."""

    sleep_duration: timedelta = Field(
        default=timedelta(hours=8), description="Continuous sleep before the alarm fires"
    )
    test_sleep_duration: timedelta = Field(
        default=timedelta(minutes=1), description="Sleep duration substituted in test mode"
    )
    grace_window: timedelta = Field(
        default=timedelta(hours=1), description="Interruption tolerated before a session ends"
    )
    immediate_delay: timedelta = Field(
        default=timedelta(seconds=1), description="Deadline offset for an already overdue session"
    )

    @model_validator(mode="after")
    def durations_positive(self) -> "AlarmConfig":
        for name in ("sleep_duration", "test_sleep_duration", "grace_window", "immediate_delay"):
            if getattr(self, name) <= timedelta(0):
                raise ValueError(f"{name} must be positive")
        return self

    def effective_sleep_duration(self, test_mode: bool) -> timedelta:
        """Sleep duration in effect for the given mode. The grace window never changes."""
        return self.test_sleep_duration if test_mode else self.sleep_duration


class StorageConfig(BaseModel):
    """Where the session record lives."""

    state_file: str = Field(
        default="./data/sleep_session.json", description="Path to the persisted session record"
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    format: Literal["json", "console"] = Field(default="json", description="Logging format")


class AppConfig(BaseModel):
    """Main application configuration combining all subsystems."""

    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    alarm: AlarmConfig = Field(default_factory=AlarmConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def debug_only_in_dev(self) -> "AppConfig":
        """Ensure debug mode is only allowed in development environment."""
        if self.debug and self.environment != "development":
            raise ValueError("debug mode is only allowed in development environment")
        return self


def load_config_from_env() -> AppConfig:
    """Load configuration from environment variables with validation."""

    def _env_to_literal(val: str) -> Literal["development", "staging", "production"]:
        v = val.strip().lower()
        if v in {"dev", "development"}:
            return "development"
        if v in {"stage", "staging"}:
            return "staging"
        return "production"

    def _level_to_literal(val: str) -> Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
        v = val.strip().upper()
        return cast(
            Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
            v if v in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"} else "INFO",
        )

    environment = _env_to_literal(os.getenv("ENVIRONMENT", "development"))
    debug = environment == "development"

    alarm_config = AlarmConfig(
        sleep_duration=timedelta(hours=float(os.getenv("SLEEP_DURATION_HOURS", "8"))),
        test_sleep_duration=timedelta(
            seconds=float(os.getenv("TEST_SLEEP_DURATION_SECONDS", "60"))
        ),
        grace_window=timedelta(minutes=float(os.getenv("GRACE_WINDOW_MINUTES", "60"))),
    )

    storage_config = StorageConfig(
        state_file=os.getenv("SESSION_STATE_FILE", "./data/sleep_session.json"),
    )

    logging_config = LoggingConfig(
        level=_level_to_literal(os.getenv("LOG_LEVEL", "INFO")),
        format="console" if debug else "json",
    )

    return AppConfig(
        environment=environment,
        debug=debug,
        alarm=alarm_config,
        storage=storage_config,
        logging=logging_config,
    )


def configure_logging(config: LoggingConfig) -> None:
    """Route structlog through stdlib logging at the configured level and format."""
    logging.basicConfig(level=config.level, format="%(message)s")
    renderer = (
        structlog.dev.ConsoleRenderer()
        if config.format == "console"
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
    )


@lru_cache
def get_config() -> AppConfig:
    """Get cached application configuration."""
    return load_config_from_env()


def validate_config() -> None:
    """Validate configuration at startup."""
    try:
        config = get_config()
        print(f"✅ Configuration loaded for {config.environment} environment")
    except Exception as e:
        print(f"❌ Configuration validation failed: {e}")
        raise


def print_config_summary() -> None:
    """Print configuration summary for debugging."""
    config = get_config()

    print("\n🔧 CONFIGURATION SUMMARY")
    print(f"Environment: {config.environment}")
    print(f"Debug Mode: {config.debug}")
    print(f"Log Level: {config.logging.level}")

    print("\n⏰ ALARM CONFIGURATION")
    print(f"Sleep Duration: {config.alarm.sleep_duration}")
    print(f"Test Mode Duration: {config.alarm.test_sleep_duration}")
    print(f"Grace Window: {config.alarm.grace_window}")

    print("\n💾 STORAGE CONFIGURATION")
    print(f"State File: {config.storage.state_file}")


if __name__ == "__main__":
    validate_config()
    print_config_summary()
