"""Weather provider abstraction - allows querying several weather APIs interchangeably."""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

import requests

from weather_data import CurrentConditions, DailyRecord, HourlyRecord


class WeatherProviderError(Exception):
    """Exception raised when a weather provider fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ValidationError(WeatherProviderError, ValueError):
    """Request rejected before any network call (bad coordinates, dates, missing key)."""


class ClientError(WeatherProviderError):
    """Permanent provider error (HTTP 4xx, invalid API key). Never retried."""


class RetryExhaustedError(WeatherProviderError):
    """Transient failures persisted through every retry attempt."""

    def __init__(self, message: str, status_code: Optional[int] = None, state=None):
        super().__init__(message, status_code=status_code)
        self.state = state


class AllSourcesFailedError(WeatherProviderError):
    """No source produced usable data for a request."""


class NoDataError(AllSourcesFailedError):
    """Daily/hourly request produced nothing, fallbacks included."""


class WeatherAdapterBase:
    """
    Pure translator from one provider's raw JSON into the canonical model.

    Adapters never perform I/O and never raise on unexpected shapes: a payload
    without the expected top-level keys yields None / an empty list.
    """

    source_id = ""

    @staticmethod
    def normalize_current(raw: Any) -> Optional[CurrentConditions]:
        return None

    @staticmethod
    def normalize_daily(raw: Any) -> List[DailyRecord]:
        return []

    @staticmethod
    def normalize_hourly(raw: Any) -> List[HourlyRecord]:
        return []


class WeatherProviderBase(ABC):
    """Abstract base class for weather data providers."""

    source_id: str = ""
    requires_key: bool = False
    adapter = WeatherAdapterBase

    def __init__(self, timeout: float = 8.0):
        """
        Args:
            timeout: Default HTTP request timeout in seconds
        """
        self.timeout = timeout

    @abstractmethod
    def fetch_current(self, lat: float, lon: float, api_key: Optional[str] = None,
                      timeout: Optional[float] = None) -> Any:
        """
        Fetch the raw current-conditions payload.

        Raises:
            WeatherProviderError: If the provider fails to deliver a payload
        """

    @abstractmethod
    def fetch_daily(self, lat: float, lon: float, start_date: str, end_date: str,
                    api_key: Optional[str] = None, timeout: Optional[float] = None) -> Any:
        """Fetch the raw daily payload for an inclusive date range."""

    @abstractmethod
    def fetch_hourly(self, lat: float, lon: float, start_date: str, end_date: str,
                     api_key: Optional[str] = None, timeout: Optional[float] = None) -> Any:
        """Fetch the raw hourly payload for an inclusive date range."""

    def _require_key(self, api_key: Optional[str]) -> str:
        if not api_key:
            raise ValidationError(f"{self.source_id} requires an API key")
        return api_key

    def _get_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        timeout = timeout or self.timeout
        try:
            logging.info(f"[{self.source_id}] GET {url}")
            logging.debug(f"[{self.source_id}] params={params}")
            response = requests.get(url, params=params, headers=headers, timeout=timeout)
            logging.debug(f"[{self.source_id}] response status: {response.status_code}")

        except requests.exceptions.Timeout as e:
            logging.warning(f"[{self.source_id}] request timed out after {timeout}s")
            raise WeatherProviderError(f"Network error: timeout after {timeout}s") from e
        except requests.exceptions.RequestException as e:
            logging.error(f"[{self.source_id}] network error during API request: {e}")
            raise WeatherProviderError(f"Network error: {e}") from e

        if not response.ok:
            logging.error(f"[{self.source_id}] request failed with status {response.status_code}")
            self._handle_error_response(response)

        try:
            return response.json()
        except ValueError as e:
            logging.error(f"[{self.source_id}] failed to parse API response: {e}")
            raise WeatherProviderError(f"Failed to parse response: {e}") from e

    def _handle_error_response(self, response: requests.Response) -> None:
        """Parse and raise error from a provider error response."""
        status = response.status_code
        error_cls = ClientError if 400 <= status < 500 else WeatherProviderError
        try:
            error_data = response.json()
        except ValueError:
            # Not JSON, use HTTP status
            text = (response.text or "")[:200]
            raise error_cls(f"HTTP {status}: {text}", status_code=status)

        message = None
        if isinstance(error_data, dict):
            message = error_data.get("message") or error_data.get("error") or error_data.get("reason")
        logging.error(f"[{self.source_id}] API error response: {error_data}")
        raise error_cls(f"HTTP {status}: {message or 'Unknown error'}", status_code=status)


# Parsing helpers shared by the adapters ---------------------------------

def safe_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def safe_index(values: Any, index: int) -> Any:
    """values[index], or None if values isn't a list or is too short."""
    if not isinstance(values, list):
        return None
    try:
        return values[index]
    except IndexError:
        return None


def first_not_none(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def mean(values: Iterable[Optional[float]]) -> Optional[float]:
    filtered = [v for v in values if v is not None]
    if not filtered:
        return None
    return sum(filtered) / len(filtered)


def average_of_bounds(low: Optional[float], high: Optional[float]) -> Optional[float]:
    """(min + max) / 2 when both bounds are known."""
    if low is None or high is None:
        return None
    return (low + high) / 2


def scale(value: Optional[float], factor: float) -> Optional[float]:
    if value is None:
        return None
    return value * factor
