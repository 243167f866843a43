"""Event dispatcher: named handler registry with independent execution."""

import threading
from collections import defaultdict
from collections.abc import Callable
from typing import Any

from opentelemetry._logs import LoggerProvider
from reactivex.abc import SchedulerBase
from reactivex.scheduler import ThreadPoolScheduler

from .telemetry import LogContext, OTelLogger, get_default_providers
from .utils import TaggedData, get_full_error_info

Handler = Callable[..., Any]


class EventDispatcher:
    """Maps event names to handlers and runs them without blocking the caller.

    Every handler of a fired event runs as its own action on ``scheduler``
    (a ``ThreadPoolScheduler`` unless injected), so a slow or failing handler
    never delays the gateway nor any other handler. Handler exceptions are
    logged with their traceback and otherwise ignored.

    The dispatcher is also an observer: subscribe it to a
    :class:`~rxcord.gateway.Gateway` and every ``TaggedData(name, data)`` is
    fired as ``fire(name, data)``.
    """

    def __init__(
        self,
        scheduler: SchedulerBase | None = None,
        logger_provider: LoggerProvider | None = None,
    ):
        self._scheduler = scheduler or ThreadPoolScheduler(8)
        self._handlers: dict[str, list[Handler]] = defaultdict(list)
        self._lock = threading.RLock()

        if logger_provider is None:
            _, logger_provider = get_default_providers("rxcord")
        self._log = OTelLogger(
            logger_provider.get_logger("rxcord.events"),
            source="EventDispatcher",
            context=LogContext(service="rxcord", component="events"),
        )

    def register(self, event: str, handler: Handler) -> Handler:
        """Add ``handler`` for ``event`` and return it.

        Raises:
            ValueError: If ``handler`` is None.
            TypeError: If ``handler`` is not callable.
        """
        if handler is None:
            raise ValueError(f"A handler is required to register {event!r}")
        if not callable(handler):
            raise TypeError(f"Handler for {event!r} is not callable: {handler!r}")
        with self._lock:
            self._handlers[str(event)].append(handler)
        return handler

    def unregister(self, event: str, handler: Handler | None = None) -> None:
        """Remove one handler, or every handler of ``event`` when omitted."""
        with self._lock:
            if handler is None:
                self._handlers.pop(str(event), None)
                return
            handlers = self._handlers.get(str(event))
            if handlers and handler in handlers:
                handlers.remove(handler)
                if not handlers:
                    del self._handlers[str(event)]

    def clear(self) -> None:
        with self._lock:
            self._handlers.clear()

    def handlers_for(self, event: str) -> list[Handler]:
        with self._lock:
            return list(self._handlers.get(str(event), ()))

    @property
    def events(self) -> list[str]:
        with self._lock:
            return [name for name, handlers in self._handlers.items() if handlers]

    def fire(self, event: str, *args: Any) -> None:
        """Schedule every handler of ``event`` with ``args`` and return."""
        for handler in self.handlers_for(event):
            self._scheduler.schedule(self._make_action(event, handler, args))

    def _make_action(self, event: str, handler: Handler, args: tuple):
        def action(_scheduler, _state=None):
            try:
                handler(*args)
            except Exception as e:
                self._log.error(
                    f"Handler {getattr(handler, '__name__', handler)!r} for "
                    f"{event!r} failed:\n{get_full_error_info(e)}"
                )

        return action

    # Observer protocol, so the dispatcher can subscribe to a gateway stream.

    def on_next(self, value: TaggedData) -> None:
        self.fire(value.tag, value.data)

    def on_error(self, error: Exception) -> None:
        self._log.error(f"Event stream failed:\n{get_full_error_info(error)}")

    def on_completed(self) -> None:
        self._log.debug("Event stream completed")
