"""High-level bot client: gateway, event handlers, caches and REST."""

import threading
from collections.abc import Callable
from typing import Any

from opentelemetry._logs import LoggerProvider
from opentelemetry.trace import TracerProvider
from reactivex.abc import DisposableBase, SchedulerBase

from .events import EventDispatcher, Handler
from .gateway import Gateway, GatewayConfig, GatewayState
from .http import HTTPClient
from .telemetry import LogContext, OTelLogger, get_default_providers
from .utils import TaggedData, get_full_error_info


class Client:
    """Connects a bot to the gateway and routes events to handlers.

    Handlers are registered by lower-cased event name; the client keeps a
    small cache (current user, guilds, channels) that is updated before the
    corresponding handlers run.

    Example:
        >>> client = Client(token, Intents.default())
        >>> @client.event("message_create")
        ... def on_message(message):
        ...     print(message["content"])
        >>> client.run()

    Args:
        token: Bot token.
        intents: Intents bitmask.
        config: Gateway configuration.
        http: REST caller; one is created from ``token`` if omitted.
        scheduler: Scheduler handlers run on (see :class:`EventDispatcher`).
        **gateway_options: Passed through to every :class:`Gateway` created.
    """

    def __init__(
        self,
        token: str,
        intents: int = 0,
        *,
        config: GatewayConfig | None = None,
        http: HTTPClient | None = None,
        scheduler: SchedulerBase | None = None,
        tracer_provider: TracerProvider | None = None,
        logger_provider: LoggerProvider | None = None,
        **gateway_options: Any,
    ):
        if not token:
            raise ValueError("Token cannot be None or empty")
        self.token = token
        self.intents = int(intents)
        self.config = config or GatewayConfig()

        if logger_provider is None:
            tracer_provider_default, logger_provider = get_default_providers("rxcord")
            tracer_provider = tracer_provider or tracer_provider_default
        self._tracer_provider = tracer_provider
        self._logger_provider = logger_provider
        self._gateway_options = gateway_options
        self._log = OTelLogger(
            logger_provider.get_logger("rxcord.client"),
            source="Client",
            context=LogContext(service="rxcord", component="client"),
        )

        self.http = http or HTTPClient(token, logger_provider=logger_provider)
        self.events = EventDispatcher(scheduler, logger_provider=logger_provider)
        self.gateway: Gateway | None = None
        self._subscription: DisposableBase | None = None

        self._lock = threading.RLock()
        self._user: dict[str, Any] | None = None
        self._guilds: dict[str, dict[str, Any]] = {}
        self._channels: dict[str, dict[str, Any]] = {}

        self._cache_handlers: dict[str, Callable[[Any], None]] = {
            "ready": self._handle_ready,
            "guild_create": self._handle_guild_create,
            "channel_create": self._handle_channel_upsert,
            "channel_update": self._handle_channel_upsert,
            "channel_delete": self._handle_channel_delete,
        }

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def on(self, event: str, handler: Handler) -> Handler:
        return self.events.register(event, handler)

    def event(self, name: str) -> Callable[[Handler], Handler]:
        """Decorator form of :meth:`on`."""

        def decorator(handler: Handler) -> Handler:
            return self.events.register(name, handler)

        return decorator

    def emit(self, event: str, *args: Any) -> None:
        self.events.fire(event, *args)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> Gateway:
        """Connect on a background thread and return the running gateway."""
        gateway = self._new_gateway()
        gateway.start()
        return gateway

    async def connect(self) -> None:
        """Connect within the caller's event loop until the client stops."""
        gateway = self._new_gateway()
        await gateway.run()

    def stop(self) -> None:
        gateway = self.gateway
        if gateway is not None:
            gateway.stop()

    async def close(self) -> None:
        gateway = self.gateway
        if gateway is not None:
            await gateway.aclose()
        self.http.close()

    def update_presence(
        self,
        status: str = "online",
        activity: dict[str, Any] | None = None,
        since: int | None = None,
        afk: bool = False,
    ) -> None:
        """Update presence. Ignored with a warning when not connected."""
        if self.gateway is None:
            self._log.warning("Not connected, presence update ignored")
            return
        self.gateway.update_presence(status, activity, since=since, afk=afk)

    def _new_gateway(self) -> Gateway:
        if self.gateway is not None and self.gateway.state is not GatewayState.CLOSED:
            self._log.warning("Replacing a gateway that is still running")
            self.gateway.stop()
        if self._subscription is not None:
            self._subscription.dispose()

        gateway = Gateway(
            self.token,
            self.intents,
            config=self.config,
            tracer_provider=self._tracer_provider,
            logger_provider=self._logger_provider,
            **self._gateway_options,
        )
        self._subscription = gateway.subscribe(
            on_next=self._on_event,
            on_error=lambda e: self._log.error(
                f"Gateway stream failed:\n{get_full_error_info(e)}"
            ),
        )
        self.gateway = gateway
        return gateway

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def ready(self) -> bool:
        """True while the current gateway session is usable.

        Cleared when the connection drops and set again by READY or RESUMED.
        """
        gateway = self.gateway
        return gateway is not None and gateway.ready

    @property
    def user(self) -> dict[str, Any] | None:
        with self._lock:
            return self._user

    @property
    def guilds(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            return dict(self._guilds)

    @property
    def channels(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            return dict(self._channels)

    # ------------------------------------------------------------------
    # Event routing
    # ------------------------------------------------------------------

    def _on_event(self, event: TaggedData) -> None:
        handler = self._cache_handlers.get(event.tag)
        if handler is not None and isinstance(event.data, dict):
            with self._lock:
                handler(event.data)
        self.events.fire(event.tag, event.data)

    def _handle_ready(self, data: dict[str, Any]) -> None:
        self._user = data.get("user")
        for guild in data.get("guilds") or ():
            if "id" in guild:
                self._guilds[guild["id"]] = guild

    def _handle_guild_create(self, data: dict[str, Any]) -> None:
        if "id" not in data:
            return
        self._guilds[data["id"]] = data
        for channel in data.get("channels") or ():
            if "id" in channel:
                self._channels[channel["id"]] = channel

    def _handle_channel_upsert(self, data: dict[str, Any]) -> None:
        if "id" in data:
            self._channels[data["id"]] = data

    def _handle_channel_delete(self, data: dict[str, Any]) -> None:
        self._channels.pop(data.get("id"), None)
