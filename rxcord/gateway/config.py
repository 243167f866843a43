"""Gateway connection configuration."""

import sys
from dataclasses import dataclass
from enum import IntFlag

GATEWAY_VERSION = 10


class Intents(IntFlag):
    """Event categories requested at identify time.

    Plain integers are accepted wherever intents are expected.
    """

    GUILDS = 1 << 0
    GUILD_MEMBERS = 1 << 1
    GUILD_MODERATION = 1 << 2
    GUILD_EXPRESSIONS = 1 << 3
    GUILD_INTEGRATIONS = 1 << 4
    GUILD_WEBHOOKS = 1 << 5
    GUILD_INVITES = 1 << 6
    GUILD_VOICE_STATES = 1 << 7
    GUILD_PRESENCES = 1 << 8
    GUILD_MESSAGES = 1 << 9
    GUILD_MESSAGE_REACTIONS = 1 << 10
    GUILD_MESSAGE_TYPING = 1 << 11
    DIRECT_MESSAGES = 1 << 12
    DIRECT_MESSAGE_REACTIONS = 1 << 13
    DIRECT_MESSAGE_TYPING = 1 << 14
    MESSAGE_CONTENT = 1 << 15
    GUILD_SCHEDULED_EVENTS = 1 << 16

    @classmethod
    def default(cls) -> "Intents":
        """Everything except the privileged intents."""
        privileged = cls.GUILD_MEMBERS | cls.GUILD_PRESENCES | cls.MESSAGE_CONTENT
        everything = cls(0)
        for intent in cls:
            everything |= intent
        return everything & ~privileged


@dataclass(frozen=True)
class GatewayConfig:
    """Typed gateway connection configuration.

    Attributes:
        host: Gateway host.
        version: Gateway protocol version, sent in the URL.
        encoding: Payload encoding, sent in the URL.
        transport_compression: Ask for a ``zlib-stream`` compressed socket.
        compress: The ``compress`` flag of the identify payload.
        large_threshold: Member count above which guilds are sent without
            offline members.
        client_name: Reported as ``browser`` and ``device`` on identify.
        connect_timeout: Seconds allowed for opening the socket.
    """

    host: str = "gateway.discord.gg"
    version: int = GATEWAY_VERSION
    encoding: str = "json"
    transport_compression: bool = True
    compress: bool = True
    large_threshold: int = 250
    client_name: str = "rxcord"
    connect_timeout: float = 10.0

    @property
    def url(self) -> str:
        url = f"wss://{self.host}/?v={self.version}&encoding={self.encoding}"
        if self.transport_compression:
            url += "&compress=zlib-stream"
        return url

    def identify_properties(self) -> dict[str, str]:
        return {
            "os": sys.platform,
            "browser": self.client_name,
            "device": self.client_name,
        }
