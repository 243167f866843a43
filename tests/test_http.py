"""Tests for the REST caller, using ``httpx.MockTransport``."""

import json

import httpx
import pytest

from rxcord.errors import APIError, AuthenticationError, DiscordError, RateLimitError
from rxcord.http import HTTPClient


def _client(handler, logger_provider):
    return HTTPClient(
        "tok", transport=httpx.MockTransport(handler), logger_provider=logger_provider
    )


def test_get_sends_auth_and_parses_json(logger_provider):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"id": "1", "username": "bot"})

    with _client(handler, logger_provider) as http:
        assert http.get("/users/@me", params={"with_counts": "true"}) == {
            "id": "1",
            "username": "bot",
        }

    request = seen[0]
    assert request.method == "GET"
    assert request.url.path == "/api/v10/users/@me"
    assert request.url.params["with_counts"] == "true"
    assert request.headers["Authorization"] == "Bot tok"
    assert request.headers["User-Agent"].startswith("DiscordBot")


def test_post_sends_json_body(logger_provider):
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"id": "m1"})

    http = _client(handler, logger_provider)
    assert http.post("/channels/1/messages", {"content": "hi"}) == {"id": "m1"}
    assert bodies == [{"content": "hi"}]
    http.close()


def test_empty_body_returns_none(logger_provider):
    http = _client(lambda request: httpx.Response(204), logger_provider)
    assert http.delete("/channels/1/messages/2") is None


def test_non_json_body_returns_text(logger_provider):
    http = _client(lambda request: httpx.Response(200, text="pong"), logger_provider)
    assert http.put("/ping") == "pong"


class TestErrors:
    def test_401_is_authentication_error(self, logger_provider):
        http = _client(lambda request: httpx.Response(401, json={"message": "401: Unauthorized"}), logger_provider)
        with pytest.raises(AuthenticationError):
            http.get("/users/@me")

    def test_429_carries_retry_after(self, logger_provider):
        http = _client(
            lambda request: httpx.Response(
                429, json={"message": "You are being rate limited.", "retry_after": 1.5}
            ),
            logger_provider,
        )
        with pytest.raises(RateLimitError) as info:
            http.post("/channels/1/messages", {"content": "hi"})
        assert info.value.retry_after == 1.5
        assert info.value.status_code == 429

    def test_429_falls_back_to_header(self, logger_provider):
        http = _client(
            lambda request: httpx.Response(429, headers={"Retry-After": "3"}),
            logger_provider,
        )
        with pytest.raises(RateLimitError) as info:
            http.get("/gateway/bot")
        assert info.value.retry_after == 3.0

    def test_remote_code_and_message(self, logger_provider):
        http = _client(
            lambda request: httpx.Response(
                404, json={"code": 10003, "message": "Unknown Channel"}
            ),
            logger_provider,
        )
        with pytest.raises(APIError) as info:
            http.get("/channels/404")
        assert info.value.status_code == 404
        assert info.value.code == 10003
        assert "Unknown Channel" in str(info.value)

    def test_network_failure_is_api_error(self, logger_provider):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        http = _client(handler, logger_provider)
        with pytest.raises(APIError) as info:
            http.get("/users/@me")
        assert info.value.status_code == 0

    def test_hierarchy(self):
        assert issubclass(RateLimitError, APIError)
        assert issubclass(APIError, DiscordError)
        assert issubclass(AuthenticationError, DiscordError)
