"""
Centralized configuration for the offerflow services.

All settings come from environment variables and are validated once at
process start. Invalid values raise ConfigurationError, which every
service entry point turns into a logged error and a non-zero exit.
"""
import logging
import os
import sys
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Mapping, Optional

from .errors import ConfigurationError

LOG_FORMAT = "%(asctime)s - %(levelname)s - [%(threadName)s] %(name)s - %(message)s"

OFFER_INPUT_QUEUE = "OfferInput"
PROCESSED_OFFERS_QUEUE = "ProcessedOffers"


class LogLevel(str, Enum):
    TRACE = "TRACE"
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    @classmethod
    def parse(cls, value: Optional[str]) -> "LogLevel":
        """Case-insensitive lookup; blank or unknown values fall back to INFO."""
        if value is None or not value.strip():
            return cls.INFO
        try:
            return cls(value.strip().upper())
        except ValueError:
            return cls.INFO

    @property
    def level(self) -> int:
        if self is LogLevel.TRACE:
            return logging.DEBUG
        if self is LogLevel.WARN:
            return logging.WARNING
        return logging.getLevelName(self.value)


def configure_logging(level: LogLevel = LogLevel.INFO):
    """Configure root logging to stdout for a service process."""
    logging.basicConfig(
        level=level.level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )


# ---------------------------------------------------------------------------
# Environment helpers
# ---------------------------------------------------------------------------

def _required(env: Mapping[str, str], name: str) -> str:
    value = env.get(name)
    if value is None or not value.strip():
        raise ConfigurationError(f"{name} is required")
    return value


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        raise ConfigurationError(f"{name} must be a valid integer. Got: {raw}") from None


def _positive_int(env: Mapping[str, str], name: str, default: int) -> int:
    value = _int(env, name, default)
    if value <= 0:
        raise ConfigurationError(f"{name} must be greater than 0. Got: {value}")
    return value


def _positive_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw.strip())
    except ValueError:
        raise ConfigurationError(f"{name} must be a number. Got: {raw}") from None
    if value <= 0:
        raise ConfigurationError(f"{name} must be greater than 0. Got: {raw}")
    return value


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BusSettings:
    """Broker connection parameters shared by every service."""
    host: str
    port: int
    username: str
    password: str = field(repr=False)

    @classmethod
    def from_env(cls, env: Mapping[str, str] = os.environ) -> "BusSettings":
        host = _required(env, "RABBITMQ_HOST").strip()
        port_raw = _required(env, "RABBITMQ_PORT")
        username = _required(env, "RABBITMQ_USERNAME").strip()
        password = _required(env, "RABBITMQ_PASSWORD")

        try:
            port = int(port_raw.strip())
        except ValueError:
            raise ConfigurationError(
                f"RABBITMQ_PORT must be a valid integer. Got: {port_raw}"
            ) from None
        if not 1 <= port <= 65535:
            raise ConfigurationError(f"RABBITMQ_PORT must be between 1 and 65535. Got: {port}")

        return cls(host=host, port=port, username=username, password=password)


class OfferStrategy(str, Enum):
    """What the importer does with an extracted offer payload."""
    LOGGING = "LoggingStrategy"
    MESSAGE_BUS = "MessageBusStrategy"

    @classmethod
    def parse(cls, value: Optional[str]) -> "OfferStrategy":
        if value is None or not value.strip():
            return cls.MESSAGE_BUS
        try:
            return cls(value.strip())
        except ValueError:
            valid = ", ".join(s.value for s in cls)
            raise ConfigurationError(
                f"OFFER_STRATEGY must be one of {valid}. Got: {value}"
            ) from None


@dataclass(frozen=True)
class ImporterSettings:
    max_file_size_mb: int = 10
    path_offers: Path = Path(".")
    offer_strategy: OfferStrategy = OfferStrategy.MESSAGE_BUS
    poll_interval: float = 5.0
    queue_capacity: int = 10
    log_level: LogLevel = LogLevel.INFO

    @classmethod
    def from_env(cls, env: Mapping[str, str] = os.environ) -> "ImporterSettings":
        max_size = _positive_int(env, "MAX_FILE_SIZE", 10)

        raw_path = env.get("PATH_OFFERS")
        path = Path(raw_path.strip() if raw_path and raw_path.strip() else ".")
        if not path.exists():
            raise ConfigurationError(f"PATH_OFFERS does not exist: {path}")
        if not path.is_dir():
            raise ConfigurationError(f"PATH_OFFERS is not a directory: {path}")

        return cls(
            max_file_size_mb=max_size,
            path_offers=path,
            offer_strategy=OfferStrategy.parse(env.get("OFFER_STRATEGY")),
            poll_interval=_positive_float(env, "POLL_INTERVAL", 5.0),
            queue_capacity=_positive_int(env, "QUEUE_CAPACITY", 10),
            log_level=LogLevel.parse(env.get("LOG_LEVEL")),
        )


@dataclass(frozen=True)
class PersistenceSettings:
    output_path: Path
    log_level: LogLevel = LogLevel.INFO

    @classmethod
    def from_env(cls, env: Mapping[str, str] = os.environ) -> "PersistenceSettings":
        path = Path(_required(env, "OFFER_PERSISTENCE_PATH").strip())
        if path.exists() and not path.is_dir():
            raise ConfigurationError(f"OFFER_PERSISTENCE_PATH is not a directory: {path}")
        return cls(output_path=path, log_level=LogLevel.parse(env.get("LOG_LEVEL")))


@dataclass(frozen=True)
class PipelineSettings:
    """Settings for the offer pipeline service (ingestion, matching, REST)."""
    db_url: str = "sqlite:///data/offerflow.db"

    # OpenAI-compatible chat completion endpoint
    ai_base_url: str = "http://localhost:11434/v1"
    ai_model: str = "llama3"
    ai_api_key: str = field(default="", repr=False)
    ai_timeout: float = 60.0

    # Optional credentials service that hands out API keys
    ai_auth_url: str = ""
    ai_auth_username: str = ""
    ai_auth_password: str = field(default="", repr=False)
    ai_auth_mail: str = ""

    matching_interval: int = 60
    compare_workers: int = 4
    staging_capacity: int = 100

    api_host: str = "0.0.0.0"
    api_port: int = 8080
    log_level: LogLevel = LogLevel.INFO

    @classmethod
    def from_env(cls, env: Mapping[str, str] = os.environ) -> "PipelineSettings":
        api_port = _int(env, "API_PORT", 8080)
        if not 1 <= api_port <= 65535:
            raise ConfigurationError(f"API_PORT must be between 1 and 65535. Got: {api_port}")

        return cls(
            db_url=env.get("OFFERFLOW_DB_URL", cls.db_url),
            ai_base_url=env.get("AI_BASE_URL", cls.ai_base_url).rstrip("/"),
            ai_model=env.get("AI_MODEL", cls.ai_model),
            ai_api_key=env.get("AI_API_KEY", ""),
            ai_timeout=_positive_float(env, "AI_TIMEOUT", 60.0),
            ai_auth_url=env.get("AI_AUTH_URL", "").rstrip("/"),
            ai_auth_username=env.get("AI_AUTH_USERNAME", ""),
            ai_auth_password=env.get("AI_AUTH_PASSWORD", ""),
            ai_auth_mail=env.get("AI_AUTH_MAIL", ""),
            matching_interval=_positive_int(env, "MATCHING_INTERVAL", 60),
            compare_workers=_positive_int(env, "COMPARE_WORKERS", 4),
            staging_capacity=_positive_int(env, "STAGING_CAPACITY", 100),
            api_host=env.get("API_HOST", cls.api_host),
            api_port=api_port,
            log_level=LogLevel.parse(env.get("LOG_LEVEL")),
        )


@lru_cache
def get_settings() -> PipelineSettings:
    """Get cached pipeline settings instance."""
    return PipelineSettings.from_env()
