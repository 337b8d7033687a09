# backend/tripstream/services/weather_service.py

import re
import requests
from datetime import date
from typing import Dict, Any, Optional, Tuple

from tripstream.core.logger import logger


GEOCODE_URL = "https://geocoding-api.open-meteo.com/v1/search"
FORECAST_URL = "https://api.open-meteo.com/v1/forecast"

# WMO weather codes
WEATHER_CONDITIONS = {
    0: "Clear sky",
    1: "Mainly clear",
    2: "Partly cloudy",
    3: "Overcast",
    45: "Foggy",
    48: "Depositing rime fog",
    51: "Light drizzle",
    53: "Moderate drizzle",
    55: "Dense drizzle",
    61: "Slight rain",
    63: "Moderate rain",
    65: "Heavy rain",
    71: "Slight snow",
    73: "Moderate snow",
    75: "Heavy snow",
    77: "Snow grains",
    80: "Slight rain showers",
    81: "Moderate rain showers",
    82: "Violent rain showers",
    85: "Slight snow showers",
    86: "Heavy snow showers",
    95: "Thunderstorm",
    96: "Thunderstorm with slight hail",
    99: "Thunderstorm with heavy hail",
}

COORDS_RE = re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s*,\s*(-?\d+(?:\.\d+)?)\s*$")


class WeatherService:
    """Open-Meteo forecast client (free, no API key required)."""

    def __init__(self, timeout: float = 10):
        self.timeout = timeout

    def geocode(self, location: str) -> Optional[Tuple[float, float]]:
        match = COORDS_RE.match(location)
        if match:
            return float(match.group(1)), float(match.group(2))

        resp = requests.get(
            GEOCODE_URL,
            params={"name": location, "count": 1, "language": "en", "format": "json"},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        results = resp.json().get("results") or []
        if not results:
            return None
        return results[0]["latitude"], results[0]["longitude"]

    def get_forecast(
        self,
        location: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        10-day forecast (or the requested date window) in Fahrenheit.

        Raises:
            LookupError: the location could not be geocoded
        """
        coords = self.geocode(location)
        if coords is None:
            raise LookupError(f"Could not find location: {location}")

        lat, lon = coords
        params = {
            "latitude": lat,
            "longitude": lon,
            "daily": "temperature_2m_max,temperature_2m_min,weathercode,"
                     "precipitation_probability_max,windspeed_10m_max",
            "current_weather": "true",
            "temperature_unit": "fahrenheit",
            "windspeed_unit": "mph",
            "timezone": "auto",
        }
        if start_date and end_date:
            params["start_date"] = start_date
            params["end_date"] = end_date
        else:
            params["forecast_days"] = 10

        logger.debug(f"Open-Meteo forecast for {location} ({lat}, {lon})")
        resp = requests.get(FORECAST_URL, params=params, timeout=self.timeout)
        resp.raise_for_status()
        data = resp.json()

        daily = data.get("daily") or {}
        forecast = [
            {
                "date": day,
                "high": round(daily["temperature_2m_max"][i]),
                "low": round(daily["temperature_2m_min"][i]),
                "condition": WEATHER_CONDITIONS.get(daily["weathercode"][i], "Unknown"),
                "rain_chance": daily["precipitation_probability_max"][i],
                "wind_speed": round(daily["windspeed_10m_max"][i]),
            }
            for i, day in enumerate(daily.get("time", []))
        ]

        current_raw = data.get("current_weather")
        if current_raw:
            current = {
                "date": date.today().isoformat(),
                "high": round(current_raw["temperature"]),
                "low": round(current_raw["temperature"]),
                "condition": WEATHER_CONDITIONS.get(current_raw["weathercode"], "Unknown"),
                "rain_chance": 0,
                "wind_speed": round(current_raw["windspeed"]),
            }
        else:
            current = forecast[0] if forecast else None

        historical_avg = None
        if forecast:
            historical_avg = {
                "high": round(sum(d["high"] for d in forecast) / len(forecast)),
                "low": round(sum(d["low"] for d in forecast) / len(forecast)),
            }

        return {
            "location": location,
            "current": current,
            "forecast": forecast,
            "historical_avg": historical_avg,
        }
