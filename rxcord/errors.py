"""Error hierarchy for :mod:`rxcord`.

Everything raised to application code inherits from :class:`DiscordError`.
Gateway-internal failures (dropped frames, closed sockets, invalid sessions)
are not raised at all; the gateway logs them and recovers.
"""


class DiscordError(Exception):
    """Base exception for all rxcord errors."""


class AuthenticationError(DiscordError):
    """The token was rejected by the remote API (HTTP 401)."""


class APIError(DiscordError):
    """A REST request failed.

    Attributes:
        status_code: HTTP status of the failed response, 0 for network errors.
        code: Remote JSON error code, when the body carried one.
        response_body: Raw (truncated) response body.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 0,
        code: int | None = None,
        response_body: str = "",
    ):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.response_body = response_body


class RateLimitError(APIError):
    """Rate limited (429). ``retry_after`` is in seconds when known."""

    def __init__(self, message: str, retry_after: float | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class GatewayError(DiscordError):
    """Misuse of the gateway lifecycle, e.g. restarting a stopped gateway."""
