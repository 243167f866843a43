"""Heartbeat timer for one gateway connection."""

import asyncio
import time
from collections.abc import Awaitable, Callable

from ..telemetry import OTelLogger
from .session import Connection

SendHeartbeat = Callable[[Connection], Awaitable[None]]
OnTimeout = Callable[[Connection], Awaitable[None]]


class HeartbeatScheduler:
    """Periodically sends heartbeats and detects missing acknowledgements.

    One scheduler serves the gateway for its whole life, but it is bound to a
    single :class:`Connection` at a time: :meth:`start` always cancels the
    previous timer before arming a new one, so a replaced connection can never
    receive a stale heartbeat.

    Every ``heartbeat_interval_ms`` the timer checks ``awaiting_ack``:
        - False: mark it True and call ``send(connection)``.
        - True: the last heartbeat was never acknowledged; the timer stops
          itself and calls ``on_timeout(connection)``.

    Args:
        send: Coroutine sending one heartbeat on the connection.
        on_timeout: Coroutine called once when an ACK is missed.
        sleep: Delay coroutine, ``asyncio.sleep`` unless injected.
        logger: Optional logger.
    """

    def __init__(
        self,
        send: SendHeartbeat,
        on_timeout: OnTimeout,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        logger: OTelLogger | None = None,
    ):
        self._send = send
        self._on_timeout = on_timeout
        self._sleep = sleep
        self._logger = logger
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, connection: Connection) -> None:
        """Arm the timer for ``connection``. Must run on the gateway's loop."""
        if connection.heartbeat_interval_ms is None:
            raise ValueError("connection has no heartbeat interval")
        self.stop()
        connection.awaiting_ack = False
        self._task = asyncio.get_running_loop().create_task(self._beat(connection))

    def stop(self) -> None:
        """Cancel the timer. Idempotent."""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()

    async def _beat(self, connection: Connection) -> None:
        assert connection.heartbeat_interval_ms is not None
        interval = connection.heartbeat_interval_ms / 1000.0
        while True:
            await self._sleep(interval)

            if connection.awaiting_ack:
                if self._logger is not None:
                    self._logger.warning(
                        "Heartbeat ACK not received, connection considered dead",
                        connection_id=connection.conn_id,
                    )
                # detach so stop() from the timeout path cannot cancel us midway
                self._task = None
                await self._on_timeout(connection)
                return

            connection.awaiting_ack = True
            connection.last_heartbeat = time.monotonic()
            await self._send(connection)
