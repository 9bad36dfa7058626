"""
WMO weather-code taxonomy and per-provider translators.

Every adapter reports conditions as one of the WMO codes below. Providers that
use their own vocabulary (numeric enums, free text, icon names) go through one
of the translators, which are total: unknown input resolves to DEFAULT_CODE.
"""
from typing import List, NamedTuple, Optional, Tuple


class WeatherCode(NamedTuple):
    description: str
    icon: str
    severity: int  # 0 (benign) .. 5 (severe)


WEATHER_CODES = {
    0: WeatherCode("Clear sky", "clear", 0),
    1: WeatherCode("Mainly clear", "mostly-clear", 0),
    2: WeatherCode("Partly cloudy", "partly-cloudy", 0),
    3: WeatherCode("Cloudy", "cloudy", 0),
    45: WeatherCode("Fog", "fog", 1),
    48: WeatherCode("Freezing fog", "fog", 2),
    51: WeatherCode("Light drizzle", "drizzle", 1),
    53: WeatherCode("Drizzle", "drizzle", 1),
    55: WeatherCode("Heavy drizzle", "drizzle", 2),
    56: WeatherCode("Freezing drizzle", "freezing-drizzle", 2),
    57: WeatherCode("Heavy freezing drizzle", "freezing-drizzle", 3),
    61: WeatherCode("Light rain", "rain-light", 1),
    63: WeatherCode("Rain", "rain", 2),
    65: WeatherCode("Heavy rain", "rain-heavy", 3),
    66: WeatherCode("Freezing rain", "freezing-rain", 3),
    67: WeatherCode("Heavy freezing rain", "freezing-rain", 4),
    71: WeatherCode("Light snowfall", "snow-light", 2),
    73: WeatherCode("Snowfall", "snow", 2),
    75: WeatherCode("Heavy snowfall", "snow-heavy", 3),
    77: WeatherCode("Snow grains", "snow-grains", 2),
    80: WeatherCode("Light rain showers", "showers-light", 1),
    81: WeatherCode("Rain showers", "showers", 2),
    82: WeatherCode("Violent rain showers", "showers-heavy", 3),
    85: WeatherCode("Light snow showers", "snow-showers-light", 2),
    86: WeatherCode("Snow showers", "snow-showers", 3),
    95: WeatherCode("Thunderstorm", "thunderstorm", 4),
    96: WeatherCode("Thunderstorm with light hail", "thunderstorm-hail", 4),
    99: WeatherCode("Thunderstorm with hail", "thunderstorm-hail", 5),
}

DEFAULT_CODE = 3

# Ordered: first match wins. Precipitation outranks cloud cover ("Rain, Overcast"
# is rain) and specific phrases precede the generic ones they contain.
CONDITION_RULES: List[Tuple[Tuple[str, ...], int]] = [
    (("thunderstorm", "thunder"), 95),
    (("freezing rain",), 66),
    (("freezing drizzle",), 56),
    (("drizzle",), 51),
    (("heavy rain",), 65),
    (("shower",), 81),
    (("rain",), 63),
    (("snow",), 73),
    (("fog", "mist"), 45),
    (("partly cloudy", "mostly clear", "partially cloudy"), 2),
    (("clear", "sunny"), 0),
    (("cloudy", "overcast"), 3),
]

# BrightSky/DWD icon identifiers
ICON_CODES = {
    "clear-day": 0,
    "clear-night": 0,
    "partly-cloudy-day": 2,
    "partly-cloudy-night": 2,
    "cloudy": 3,
    "fog": 45,
    "wind": 3,
    "rain": 63,
    "sleet": 66,
    "snow": 73,
    "hail": 96,
    "thunderstorm": 95,
}


def describe(code: Optional[int]) -> WeatherCode:
    """Look up a code, falling back to an 'Unknown' entry with the default icon."""
    entry = WEATHER_CODES.get(code) if code is not None else None
    if entry is None:
        default = WEATHER_CODES[DEFAULT_CODE]
        return WeatherCode("Unknown", default.icon, default.severity)
    return entry


def owm_id_to_code(owm_id) -> int:
    """Map an OpenWeatherMap condition id (https://openweathermap.org/weather-conditions)."""
    try:
        owm_id = int(owm_id)
    except (TypeError, ValueError):
        return DEFAULT_CODE

    if 200 <= owm_id < 300:
        return 95
    if 300 <= owm_id < 400:
        return 51
    if 500 <= owm_id < 600:
        if owm_id >= 502:
            return 65
        if owm_id == 501:
            return 63
        return 61
    if 600 <= owm_id < 700:
        return 73
    if 700 <= owm_id < 800:
        return 45
    if owm_id == 800:
        return 0
    if owm_id == 801:
        return 1
    if owm_id == 802:
        return 2
    return DEFAULT_CODE


def condition_to_code(conditions) -> int:
    """Map a free-text condition such as 'Partially cloudy, Rain' to a code."""
    if not conditions or not isinstance(conditions, str):
        return DEFAULT_CODE
    text = conditions.lower()
    for keywords, code in CONDITION_RULES:
        if any(keyword in text for keyword in keywords):
            return code
    return DEFAULT_CODE


def icon_to_code(icon) -> int:
    if not isinstance(icon, str):
        return DEFAULT_CODE
    return ICON_CODES.get(icon, DEFAULT_CODE)


def precipitation_to_code(precip_mm, snow_mm=None) -> int:
    """Guess a code from station precipitation totals (no condition data)."""
    try:
        precip = float(precip_mm) if precip_mm is not None else 0.0
        snow = float(snow_mm) if snow_mm is not None else 0.0
    except (TypeError, ValueError):
        return DEFAULT_CODE

    if precip > 10:
        return 65
    if precip > 2:
        return 63
    if precip > 0:
        return 61
    if snow > 0:
        return 73
    return 0
