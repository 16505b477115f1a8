import json
from typing import Any

import httpx

from insight_chat.errors import UpstreamError, ValidationError

_FORECAST_URL = "https://api.open-meteo.com/v1/forecast"
_TIMEOUT_SECONDS = 15


class GetWeatherTool:
    @property
    def name(self) -> str:
        return "get_weather"

    @property
    def description(self) -> str:
        return "Get the current weather at a location"

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "latitude": {"type": "number"},
                "longitude": {"type": "number"},
            },
            "required": ["latitude", "longitude"],
        }

    async def execute(self, tool_input: dict[str, Any]) -> str:
        try:
            latitude = float(tool_input["latitude"])
            longitude = float(tool_input["longitude"])
        except (KeyError, TypeError, ValueError) as ex:
            raise ValidationError("latitude and longitude must be numbers") from ex

        params = {
            "latitude": latitude,
            "longitude": longitude,
            "current": "temperature_2m",
            "hourly": "temperature_2m",
            "daily": "sunrise,sunset",
            "timezone": "auto",
        }
        try:
            async with httpx.AsyncClient(timeout=_TIMEOUT_SECONDS) as client:
                response = await client.get(_FORECAST_URL, params=params)
                response.raise_for_status()
        except httpx.TimeoutException as ex:
            raise UpstreamError(f"Weather request timed out after {_TIMEOUT_SECONDS} seconds") from ex
        except httpx.HTTPError as ex:
            raise UpstreamError(f"Weather request failed: {ex}") from ex

        return json.dumps(response.json())
