"""Command-line entry point for the weather aggregation engine."""
import argparse
import asyncio
import json
import logging
import os
import sys
from typing import Any, Optional

from weather_cache import CacheStoreError, MemoryStore, SqliteStore, WeatherCache
from weather_config import EngineConfig, EnvKeyStore
from weather_provider import WeatherProviderError
from weather_retry import RetryOptions
from weather_service import WeatherService


def parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser("Multi-source weather aggregation")
    parser.add_argument("--log-file", default=None, help="Also write logs to this file")
    parser.add_argument("--verbose", action="store_true")
    parser.add_argument("--cache-path", default=None, help="SQLite cache file (':memory:' disables persistence)")
    parser.add_argument("--timeout", type=float, default=None, help="HTTP timeout in seconds")

    subparsers = parser.add_subparsers(dest="command", required=True)

    current = subparsers.add_parser("current", help="Current conditions")
    current.add_argument("lat", type=float)
    current.add_argument("lon", type=float)

    for name, help_text in (("daily", "Daily history"), ("hourly", "Hourly history")):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("lat", type=float)
        sub.add_argument("lon", type=float)
        sub.add_argument("start", help="YYYY-MM-DD")
        sub.add_argument("end", help="YYYY-MM-DD")

    return parser.parse_args(argv)


def setup_logging(log_file: Optional[str], verbose: bool) -> None:
    log_level = logging.DEBUG if verbose else logging.INFO
    # stdout carries the JSON result
    handlers = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )


def build_weather_service(config: EngineConfig) -> WeatherService:
    if config.cache_path == ":memory:":
        store = MemoryStore()
    else:
        store = SqliteStore(os.path.abspath(config.cache_path))
    cache = WeatherCache(store, version=config.cache_version)
    retry_options = RetryOptions(
        max_attempts=config.max_attempts,
        base_delay=config.retry_base_delay,
        backoff_multiplier=config.backoff_multiplier,
    )
    return WeatherService(
        cache=cache,
        key_lookup=EnvKeyStore(),
        retry_options=retry_options,
        timeout=config.timeout,
        historical_timeout=config.historical_timeout,
    )


async def run_command(service: WeatherService, args: argparse.Namespace) -> Any:
    if args.command == "current":
        result = await service.load_current_weather(args.lat, args.lon)
        return result.to_dict()
    if args.command == "daily":
        records = await service.load_history(args.lat, args.lon, args.start, args.end)
    else:
        records = await service.load_hourly_history(args.lat, args.lon, args.start, args.end)
    return [record.to_dict() for record in records]


def main(argv: Optional[list] = None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_file, args.verbose)

    try:
        config = EngineConfig.from_env()
        if args.cache_path:
            config.cache_path = args.cache_path
        if args.timeout:
            config.timeout = args.timeout
        service = build_weather_service(config)
    except (WeatherProviderError, CacheStoreError) as err:
        logging.error("Configuration error: %s", err)
        print(f"Error: {err}", file=sys.stderr)
        return 2

    try:
        result = asyncio.run(run_command(service, args))
    except WeatherProviderError as err:
        logging.error("Weather request failed: %s", err)
        failures = service.last_failures.get(args.command)
        if failures:
            logging.error("Source failures: %s", failures)
        print(f"Error: {err}", file=sys.stderr)
        return 1
    finally:
        service.close()
        logging.info("Weather service closed")

    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
