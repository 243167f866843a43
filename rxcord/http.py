"""Authenticated REST caller.

Usage::

    with HTTPClient(token) as http:
        me = http.get("/users/@me")
        http.post(f"/channels/{channel_id}/messages", {"content": "hi"})
"""

from typing import Any

import httpx
from opentelemetry._logs import LoggerProvider

from .errors import APIError, AuthenticationError, RateLimitError
from .telemetry import LogContext, OTelLogger, get_default_providers

BASE_URL = "https://discord.com/api/v10"
USER_AGENT = "DiscordBot (https://github.com/rxcord/rxcord, 0.1.0)"


class HTTPClient:
    """Synchronous REST client returning decoded bodies.

    Rate limits are surfaced as :class:`RateLimitError` and never retried.

    Args:
        token: Bot token, sent as ``Authorization: Bot <token>``.
        base_url: API root every path is appended to.
        timeout: Request timeout in seconds.
        transport: Optional httpx transport, e.g. ``httpx.MockTransport``.
    """

    def __init__(
        self,
        token: str,
        base_url: str = BASE_URL,
        timeout: float = 15.0,
        transport: httpx.BaseTransport | None = None,
        logger_provider: LoggerProvider | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bot {token}",
                "User-Agent": USER_AGENT,
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

        if logger_provider is None:
            _, logger_provider = get_default_providers("rxcord")
        self._log = OTelLogger(
            logger_provider.get_logger("rxcord.http"),
            source="HTTPClient",
            context=LogContext(service="rxcord", component="http"),
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "HTTPClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Verbs
    # ------------------------------------------------------------------

    def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return self.request("GET", path, params=params)

    def post(self, path: str, payload: Any = None) -> Any:
        return self.request("POST", path, json=payload if payload is not None else {})

    def patch(self, path: str, payload: Any = None) -> Any:
        return self.request("PATCH", path, json=payload if payload is not None else {})

    def put(self, path: str, payload: Any = None) -> Any:
        return self.request("PUT", path, json=payload if payload is not None else {})

    def delete(self, path: str) -> Any:
        return self.request("DELETE", path)

    def request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        """Send one request.

        Returns:
            None for an empty body, the decoded JSON when the body parses,
            the raw text otherwise.

        Raises:
            AuthenticationError: 401.
            RateLimitError: 429.
            APIError: Any other error status, or a network failure.
        """
        try:
            response = self._client.request(method, path, params=params, json=json)
        except httpx.HTTPError as e:
            raise APIError(f"HTTP error on {method} {path}: {e}") from e

        if response.status_code >= 400:
            self._raise_for_status(response, method, path)

        return self._parse_body(response)

    # ------------------------------------------------------------------
    # Response handling
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_body(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    def _raise_for_status(
        self, response: httpx.Response, method: str, path: str
    ) -> None:
        """Map error statuses to :mod:`rxcord.errors` types."""
        status = response.status_code
        body = response.text[:500]
        payload = self._parse_body(response)
        if not isinstance(payload, dict):
            payload = {}

        self._log.warning(f"{method} {path} -> {status}")

        if status == 401:
            raise AuthenticationError("Invalid token")

        if status == 429:
            retry_after = payload.get("retry_after")
            if retry_after is None:
                retry_after = response.headers.get("Retry-After")
            try:
                retry_after = float(retry_after) if retry_after is not None else None
            except ValueError:
                retry_after = None
            raise RateLimitError(
                f"Rate limited. Retry after {retry_after} seconds",
                retry_after=retry_after,
                status_code=status,
                response_body=body,
            )

        code = payload.get("code")
        message = payload.get("message") or body or response.reason_phrase
        raise APIError(
            f"{method} {path} -> {status}: {message}",
            status_code=status,
            code=code if isinstance(code, int) else None,
            response_body=body,
        )
