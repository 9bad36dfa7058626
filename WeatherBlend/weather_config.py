"""Environment-driven configuration and API key lookup."""
import logging
import os
from dataclasses import dataclass
from typing import Dict, Optional

from dotenv import load_dotenv

from weather_cache import CACHE_VERSION
from weather_provider import ValidationError

DEFAULT_CACHE_PATH = "weather-cache.sqlite3"

# Provider id -> environment variable holding its key
API_KEY_ENV = {
    "visualcrossing": "VISUALCROSSING_API_KEY",
    "openweathermap": "OPENWEATHERMAP_API_KEY",
    "meteostat": "METEOSTAT_API_KEY",
}


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ValidationError(f"Invalid {name}: {value!r}") from exc


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ValidationError(f"Invalid {name}: {value!r}") from exc


@dataclass
class EngineConfig:
    cache_path: str = DEFAULT_CACHE_PATH
    cache_version: str = CACHE_VERSION
    timeout: float = 8.0
    historical_timeout: float = 15.0
    max_attempts: int = 3
    retry_base_delay: float = 0.3
    backoff_multiplier: float = 2.0

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "EngineConfig":
        """
        Build the configuration from WEATHER_* environment variables.

        Args:
            dotenv: Load a .env file first (python-dotenv never overrides
                variables that are already set)

        Raises:
            ValidationError: If a numeric variable can't be parsed or is out of range
        """
        if dotenv:
            load_dotenv()
        config = cls(
            cache_path=os.getenv("WEATHER_CACHE_PATH") or DEFAULT_CACHE_PATH,
            cache_version=os.getenv("WEATHER_CACHE_VERSION") or CACHE_VERSION,
            timeout=_env_float("WEATHER_TIMEOUT", 8.0),
            historical_timeout=_env_float("WEATHER_HISTORICAL_TIMEOUT", 15.0),
            max_attempts=_env_int("WEATHER_MAX_ATTEMPTS", 3),
            retry_base_delay=_env_float("WEATHER_RETRY_BASE_DELAY", 0.3),
            backoff_multiplier=_env_float("WEATHER_BACKOFF_MULTIPLIER", 2.0),
        )
        config.validate()
        logging.info(
            "Configuration loaded: cache=%s version=%s timeout=%ss historical_timeout=%ss attempts=%s",
            config.cache_path,
            config.cache_version,
            config.timeout,
            config.historical_timeout,
            config.max_attempts,
        )
        return config

    def validate(self) -> None:
        if self.timeout <= 0 or self.historical_timeout <= 0:
            raise ValidationError("Timeouts must be positive")
        if self.max_attempts < 1:
            raise ValidationError("WEATHER_MAX_ATTEMPTS must be at least 1")
        if self.retry_base_delay < 0 or self.backoff_multiplier < 1:
            raise ValidationError("Retry delay must be >= 0 and backoff multiplier >= 1")


class EnvKeyStore:
    """
    Looks up provider API keys, explicit overrides first, then the environment.

    Keyless providers simply have no entry; get_key returns None for them.
    """

    def __init__(self, overrides: Optional[Dict[str, str]] = None):
        self.overrides = dict(overrides or {})

    def get_key(self, provider_id: str) -> Optional[str]:
        if self.overrides.get(provider_id):
            return self.overrides[provider_id]
        env_name = API_KEY_ENV.get(provider_id)
        if env_name is None:
            return None
        return os.getenv(env_name) or None
