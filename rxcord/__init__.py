"""rxcord: a reactive, self-healing bot gateway client.

The gateway is a ReactiveX subject emitting every dispatch as
``TaggedData(<event name>, <payload>)``; :class:`Client` wraps it with an
event dispatcher, small caches and a REST caller.
"""

from .client import Client
from .errors import (
    APIError,
    AuthenticationError,
    DiscordError,
    GatewayError,
    RateLimitError,
)
from .events import EventDispatcher
from .gateway import (
    Envelope,
    Gateway,
    GatewayConfig,
    GatewayState,
    Intents,
    Opcode,
    RetryPolicy,
)
from .http import HTTPClient
from .utils import TaggedData

__version__ = "0.1.0"

__all__ = [
    "Client",
    "Gateway",
    "GatewayConfig",
    "GatewayState",
    "Intents",
    "RetryPolicy",
    "Envelope",
    "Opcode",
    "EventDispatcher",
    "HTTPClient",
    "TaggedData",
    # errors
    "DiscordError",
    "AuthenticationError",
    "APIError",
    "RateLimitError",
    "GatewayError",
]
