import asyncio
import json
import unittest
from unittest.mock import patch

import httpx

from insight_chat.errors import UpstreamError, ValidationError
from insight_chat.tools.weather_tool import GetWeatherTool

_REAL_ASYNC_CLIENT = httpx.AsyncClient


def _client_factory(handler):
    def factory(**kwargs):
        return _REAL_ASYNC_CLIENT(transport=httpx.MockTransport(handler), **kwargs)
    return factory


class GetWeatherToolTests(unittest.TestCase):
    def test_returns_forecast_json(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"current": {"temperature_2m": 18.4}})

        with patch("insight_chat.tools.weather_tool.httpx.AsyncClient", side_effect=_client_factory(handler)):
            result = asyncio.run(GetWeatherTool().execute({"latitude": 52.52, "longitude": 13.41}))

        self.assertEqual({"current": {"temperature_2m": 18.4}}, json.loads(result))
        self.assertEqual("52.52", requests[0].url.params["latitude"])
        self.assertEqual("temperature_2m", requests[0].url.params["current"])

    def test_http_error_is_upstream_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, text="unavailable")

        with patch("insight_chat.tools.weather_tool.httpx.AsyncClient", side_effect=_client_factory(handler)):
            with self.assertRaises(UpstreamError):
                asyncio.run(GetWeatherTool().execute({"latitude": 1, "longitude": 2}))

    def test_timeout_is_upstream_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with patch("insight_chat.tools.weather_tool.httpx.AsyncClient", side_effect=_client_factory(handler)):
            with self.assertRaisesRegex(UpstreamError, "timed out"):
                asyncio.run(GetWeatherTool().execute({"latitude": 1, "longitude": 2}))

    def test_invalid_coordinates_are_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            asyncio.run(GetWeatherTool().execute({"latitude": "north"}))


if __name__ == "__main__":
    unittest.main()
