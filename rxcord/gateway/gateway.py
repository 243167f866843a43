"""Resilient ReactiveX-compatible gateway connection.

The :class:`Gateway` owns the socket lifecycle: connect, identify or resume,
heartbeat, dispatch, and reconnect. All frame processing, heartbeat ticks and
backoff waits run as tasks on a single asyncio loop, so session state is only
ever touched from one thread.
"""

import asyncio
import threading
import time
from collections.abc import Awaitable, Callable
from contextlib import nullcontext
from typing import Any

from opentelemetry._logs import LoggerProvider
from opentelemetry.metrics import MeterProvider
from opentelemetry.trace import Tracer, TracerProvider
from reactivex import Subject
from reactivex import operators as ops
from reactivex.subject import BehaviorSubject

from ..errors import GatewayError
from ..telemetry import LogContext, MetricsHelper, OTelLogger, get_default_providers
from ..utils import TaggedData, get_full_error_info, get_short_error_info
from .backoff import RetryPolicy
from .codec import Envelope, Opcode, PayloadCodec
from .config import GatewayConfig
from .heartbeat import HeartbeatScheduler
from .session import Connection, GatewayState, Session
from .transport import (
    Transport,
    TransportClosed,
    TransportError,
    WebSocketTransport,
)

PRESENCE_STATUSES = frozenset({"online", "dnd", "idle", "invisible"})

# Closing with a non-1000 code keeps the session resumable server-side.
RECONNECT_CLOSE_CODE = 4000
# invalid seq, session timed out
SESSION_RESET_CLOSE_CODES = frozenset({4007, 4009})
# authentication failed, invalid shard, sharding required,
# invalid API version, invalid intents, disallowed intents
FATAL_CLOSE_CODES = frozenset({4004, 4010, 4011, 4012, 4013, 4014})


class Gateway(Subject):
    """A resilient ReactiveX-compatible gateway client.

    The subject is both an *Observable* -- emitting every dispatch as
    ``TaggedData(<lower-cased event name>, <payload>)`` -- and an *Observer*
    -- accepting :class:`Envelope` values to send to the server.

    Key Features
    ------------
    * **Resume or re-identify** -- a known session is resumed after any
      reconnect; the session is dropped whenever the server says it cannot be
      resumed.
    * **Heartbeat** -- a missed heartbeat ACK marks the connection dead and
      triggers a reconnect.
    * **Unbounded retries** -- every failure is retried with jittered backoff
      until :meth:`stop` is called or the server rejects the credentials.

    Parameters
    ----------
    token : str
        Bot token sent in identify and resume.
    intents : int
        Intents bitmask (see :class:`~rxcord.gateway.Intents`).
    config : GatewayConfig | None
        Endpoint and identify options.
    retry_policy : RetryPolicy | None
        Backoff strategy. If None, uses default RetryPolicy().
    transport_factory : Callable[[], Transport] | None
        Creates one transport per connection; defaults to
        :class:`WebSocketTransport`.
    sleep, heartbeat_sleep : Callable[[float], Awaitable[None]]
        Delay coroutines for backoff and for the heartbeat timer.
    name : str | None
        Log source name, ``"Gateway"`` by default.
    """

    def __init__(
        self,
        token: str,
        intents: int = 0,
        config: GatewayConfig | None = None,
        retry_policy: RetryPolicy | None = None,
        transport_factory: Callable[[], Transport] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        heartbeat_sleep: Callable[[float], Awaitable[None]] | None = None,
        name: str | None = None,
        tracer_provider: TracerProvider | None = None,
        logger_provider: LoggerProvider | None = None,
        meter_provider: MeterProvider | None = None,
    ):
        super().__init__()
        self.token = token
        self.intents = int(intents)
        self.config = config or GatewayConfig()
        self._retry_policy = retry_policy if retry_policy else RetryPolicy()
        self._transport_factory = transport_factory or (
            lambda: WebSocketTransport(self.config.connect_timeout)
        )
        self._sleep = sleep
        self._name = name or "Gateway"

        if logger_provider is None:
            _, logger_provider = get_default_providers("rxcord")
        self._base_log = OTelLogger(
            logger_provider.get_logger(f"rxcord.gateway.{self._name}"),
            source=self._name,
            context=LogContext(service="rxcord", component="gateway"),
        )
        self._log = self._base_log
        self._tracer: Tracer | None = (
            tracer_provider.get_tracer("rxcord.gateway") if tracer_provider else None
        )

        self._reconnects = self._dispatches = self._latency_ms = None
        if meter_provider is not None:
            metrics = MetricsHelper(meter_provider, "rxcord.gateway")
            self._reconnects = metrics.counter(
                "rxcord.gateway.reconnects", "Gateway connections reopened"
            )
            self._dispatches = metrics.counter(
                "rxcord.gateway.dispatches", "Dispatch events received"
            )
            self._latency_ms = metrics.histogram(
                "rxcord.gateway.heartbeat.latency", "Heartbeat round trip", unit="ms"
            )

        self.session = Session()
        self._connection: Connection | None = None
        self._latency: float | None = None
        self._heartbeat = HeartbeatScheduler(
            self._send_heartbeat,
            self._handle_heartbeat_timeout,
            sleep=heartbeat_sleep or sleep,
            logger=self._log,
        )

        self._state_subject: BehaviorSubject[GatewayState] = BehaviorSubject(
            GatewayState.DISCONNECTED
        )

        # Private loop; either the background thread's or the caller's.
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._loop_ready = threading.Event()
        self._stopped: asyncio.Event | None = None

        self._running = False
        self._stop_requested = False
        self._finished = False

    # ---------------- public state ---------------- #

    @property
    def connection_state(self):
        """Observable stream of state transitions.

        New subscribers immediately receive the current state.
        """
        return self._state_subject.pipe(ops.share())

    @property
    def state(self) -> GatewayState:
        return self._state_subject.value

    @property
    def session_id(self) -> str | None:
        return self.session.session_id

    @property
    def sequence(self) -> int | None:
        return self.session.sequence

    @property
    def ready(self) -> bool:
        return self.session.ready

    @property
    def latency(self) -> float | None:
        """Seconds between the last heartbeat and its ACK."""
        return self._latency

    # ---------------- Observer side ---------------- #

    def on_next(self, value: Envelope) -> None:
        """Send an envelope to the server. Dropped when not connected."""
        conn, loop = self._connection, self._loop
        if conn is None or loop is None or self._stop_requested:
            self._log.warning(f"Not connected, dropping op {int(value.op)}")
            return
        asyncio.run_coroutine_threadsafe(self._send(conn, value), loop)

    def on_error(self, error: Exception) -> None:
        self._log.error(f"Upstream error, stopping: {get_short_error_info(error)}")
        self.stop()

    def on_completed(self) -> None:
        self.stop()

    def update_presence(
        self,
        status: str = "online",
        activity: dict[str, Any] | None = None,
        since: int | None = None,
        afk: bool = False,
    ) -> None:
        """Update the bot's presence.

        Raises:
            ValueError: If ``status`` is not one of online, dnd, idle, invisible.
        """
        if status not in PRESENCE_STATUSES:
            raise ValueError(
                f"Invalid status {status!r}, expected one of {sorted(PRESENCE_STATUSES)}"
            )
        payload = {
            "since": since,
            "activities": [activity] if activity else [],
            "status": status,
            "afk": afk,
        }
        self.on_next(Envelope(Opcode.PRESENCE_UPDATE, payload))

    # ---------------- lifecycle ---------------- #

    def start(self) -> None:
        """Run the gateway on a background thread.

        Returns once the connection attempt has been initiated.

        Raises:
            GatewayError: If the gateway was already stopped.
        """
        if self._stop_requested:
            raise GatewayError("Gateway has been stopped; create a new one")
        if self._thread is not None and self._thread.is_alive():
            self._log.warning("Gateway already started")
            return
        self._thread = threading.Thread(
            target=self._run_loop, name=f"rxcord-{self._name}", daemon=True
        )
        self._thread.start()
        self._loop_ready.wait(timeout=5.0)

    def stop(self) -> None:
        """Stop the gateway for good. Idempotent, callable from any thread."""
        loop = self._loop
        if self._running and loop is not None and loop.is_running():
            future = asyncio.run_coroutine_threadsafe(self.aclose(), loop)
            if self._on_loop_thread(loop):
                return
            try:
                future.result(timeout=5.0)
            except TimeoutError:
                self._log.warning("Timed out waiting for the gateway to close")
            if self._thread is not None:
                self._thread.join(timeout=3.0)
            return

        self._stop_requested = True
        self.session.ready = False
        self._finish()

    async def aclose(self) -> None:
        """Stop the gateway from within its loop.

        Tears down, in order: heartbeat timer, transport, ``ready``.
        """
        self._stop_requested = True
        if self._stopped is not None:
            self._stopped.set()
        self._heartbeat.stop()
        conn, self._connection = self._connection, None
        if conn is not None:
            await conn.transport.close(1000, "client stop")
        self.session.ready = False
        self._set_state(GatewayState.CLOSED)
        if not self._running:
            self._finish()

    async def run(self) -> None:
        """Connect and keep the gateway alive until stopped.

        Retries indefinitely: failed connection attempts back off
        exponentially, dropped connections reopen after a randomized delay.
        """
        if self._running:
            raise GatewayError("Gateway is already running")
        if self._stop_requested:
            raise GatewayError("Gateway has been stopped; create a new one")

        self._running = True
        self._loop = asyncio.get_running_loop()
        self._stopped = asyncio.Event()
        self._loop_ready.set()

        attempt = 0
        reconnecting = False
        try:
            while not self._stop_requested:
                self._set_state(
                    GatewayState.RECONNECTING if reconnecting else GatewayState.CONNECTING
                )
                conn = Connection(
                    transport=self._transport_factory(),
                    codec=PayloadCodec(logger=self._log),
                )
                self._log.info(
                    f"Connecting to {self.config.url} (attempt {attempt + 1})",
                    connection_id=conn.conn_id,
                )

                try:
                    await conn.transport.connect(self.config.url)
                except TransportError as e:
                    attempt += 1
                    delay = self._retry_policy.get_delay(attempt - 1)
                    self._log.warning(
                        f"Connection failed: {e}, retry {attempt} in {delay:.2f}s",
                        connection_id=conn.conn_id,
                    )
                    self._set_state(GatewayState.DISCONNECTED)
                    reconnecting = True
                    await self._backoff(delay)
                    continue

                if self._stop_requested:
                    await conn.transport.close(1000, "client stop")
                    break

                attempt = 0
                self._connection = conn
                self._set_state(GatewayState.AWAITING_HELLO)

                closed = await self._receive_loop(conn)
                await self._teardown(conn, closed)

                if self._stop_requested or not self._should_reconnect(closed):
                    break

                reconnecting = True
                if self._reconnects is not None:
                    self._reconnects.add(1, {"close_code": str(closed.code)})
                await self._backoff(self._retry_policy.get_session_delay())

        except Exception as e:
            self._log.error(f"Gateway loop failed:\n{get_full_error_info(e)}")
            raise

        finally:
            self._heartbeat.stop()
            self._connection = None
            self.session.ready = False
            self._running = False
            self._finish()

    # ---------------- frame processing ---------------- #

    async def _receive_loop(self, conn: Connection) -> TransportClosed:
        while True:
            try:
                frame = await conn.transport.recv()
            except TransportClosed as closed:
                return closed

            envelope = conn.codec.decode(frame)
            if envelope is None:
                continue

            try:
                await self._handle_envelope(conn, envelope)
            except Exception as e:
                self._log.error(
                    f"Error handling op {envelope.op}:\n{get_full_error_info(e)}",
                    connection_id=conn.conn_id,
                )

    async def _handle_envelope(self, conn: Connection, envelope: Envelope) -> None:
        self.session.observe_sequence(envelope.sequence)
        op = envelope.op

        if op == Opcode.DISPATCH:
            self._handle_dispatch(envelope.event_name, envelope.data)
        elif op == Opcode.HELLO:
            await self._handle_hello(conn, envelope.data)
        elif op == Opcode.HEARTBEAT_ACK:
            self._handle_heartbeat_ack(conn)
        elif op == Opcode.HEARTBEAT:
            await self._send_heartbeat(conn)
        elif op == Opcode.INVALID_SESSION:
            await self._handle_invalid_session(conn, envelope.data is True)
        elif op == Opcode.RECONNECT:
            self._log.info("Server requested reconnect", connection_id=conn.conn_id)
            await conn.transport.close(RECONNECT_CLOSE_CODE, "reconnect requested")
        else:
            self._log.debug(f"Ignoring op {op}", connection_id=conn.conn_id)

    async def _handle_hello(self, conn: Connection, data: Any) -> None:
        interval = data.get("heartbeat_interval") if isinstance(data, dict) else None
        if not isinstance(interval, (int, float)) or interval <= 0:
            self._log.warning(f"HELLO without a usable heartbeat interval: {data!r}")
            return

        conn.heartbeat_interval_ms = interval
        self._heartbeat.start(conn)

        if self.session.resumable:
            await self._resume(conn)
        else:
            await self._identify(conn)

    def _handle_dispatch(self, event_name: str | None, data: Any) -> None:
        if event_name is None:
            self._log.warning("Dropping dispatch without an event name")
            return

        if event_name == "READY":
            if isinstance(data, dict):
                self.session.session_id = data.get("session_id")
            self._bind_session_log()
            self.session.ready = True
            self._set_state(GatewayState.CONNECTED)
            self._log.info(f"Session {self.session.session_id} ready")
        elif event_name == "RESUMED":
            self.session.ready = True
            self._set_state(GatewayState.CONNECTED)
            self._log.info(f"Session {self.session.session_id} resumed")

        if self._dispatches is not None:
            self._dispatches.add(1, {"event": event_name})
        super().on_next(TaggedData(event_name.lower(), data))

    def _handle_heartbeat_ack(self, conn: Connection) -> None:
        conn.awaiting_ack = False
        if conn.last_heartbeat is None:
            return
        conn.latency = time.monotonic() - conn.last_heartbeat
        self._latency = conn.latency
        if self._latency_ms is not None:
            self._latency_ms.record(conn.latency * 1000.0)

    async def _handle_invalid_session(self, conn: Connection, resumable: bool) -> None:
        if resumable and self.session.resumable:
            self._log.info("Session invalidated but resumable, resuming")
            await self._resume(conn)
            return
        if resumable:
            self._log.info("Session invalidated with nothing to resume, identifying")
            await self._identify(conn)
            return

        self._log.warning("Session invalidated, re-identifying")
        self.session.invalidate()
        self._bind_session_log()
        await self._backoff(self._retry_policy.get_session_delay())
        if self._stop_requested or not conn.transport.open:
            return
        await self._identify(conn)

    async def _handle_heartbeat_timeout(self, conn: Connection) -> None:
        if conn is not self._connection:
            return
        await conn.transport.close(RECONNECT_CLOSE_CODE, "heartbeat timeout")

    # ---------------- outbound ---------------- #

    async def _identify(self, conn: Connection) -> None:
        self._set_state(GatewayState.IDENTIFYING)
        payload = {
            "token": self.token,
            "intents": self.intents,
            "properties": self.config.identify_properties(),
            "compress": self.config.compress,
            "large_threshold": self.config.large_threshold,
        }
        with self._span("gateway.identify"):
            await self._send(conn, Envelope(Opcode.IDENTIFY, payload))

    async def _resume(self, conn: Connection) -> None:
        self._set_state(GatewayState.RESUMING)
        payload = {
            "token": self.token,
            "session_id": self.session.session_id,
            "seq": self.session.sequence,
        }
        with self._span("gateway.resume"):
            await self._send(conn, Envelope(Opcode.RESUME, payload))

    async def _send_heartbeat(self, conn: Connection) -> None:
        conn.awaiting_ack = True
        conn.last_heartbeat = time.monotonic()
        await self._send(conn, Envelope(Opcode.HEARTBEAT, self.session.sequence))

    async def _send(self, conn: Connection, envelope: Envelope) -> None:
        try:
            await conn.transport.send(conn.codec.encode(envelope))
        except TransportClosed as e:
            self._log.warning(
                f"Failed to send op {int(envelope.op)}: {e}",
                connection_id=conn.conn_id,
            )

    # ---------------- plumbing ---------------- #

    async def _teardown(self, conn: Connection, closed: TransportClosed) -> None:
        self._heartbeat.stop()
        if self._connection is conn:
            self._connection = None
        self.session.ready = False
        await conn.transport.close(RECONNECT_CLOSE_CODE, "connection lost")
        self._log.info(
            f"Connection closed (code={closed.code}, reason={closed.reason!r})",
            connection_id=conn.conn_id,
        )
        self._set_state(GatewayState.DISCONNECTED)

    def _should_reconnect(self, closed: TransportClosed) -> bool:
        if closed.code in FATAL_CLOSE_CODES:
            self._log.error(
                f"Gateway closed with unrecoverable code {closed.code}: "
                f"{closed.reason or 'no reason'}; not reconnecting"
            )
            return False
        if closed.code in SESSION_RESET_CLOSE_CODES:
            self._log.warning(f"Session cannot be resumed (code {closed.code})")
            self.session.invalidate()
            self._bind_session_log()
        return True

    async def _backoff(self, delay: float) -> None:
        """Wait ``delay`` seconds, returning early if the gateway is stopped."""
        if self._stop_requested or self._stopped is None:
            return
        sleeper = asyncio.ensure_future(self._sleep(delay))
        stopper = asyncio.ensure_future(self._stopped.wait())
        try:
            await asyncio.wait({sleeper, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, stopper):
                if not task.done():
                    task.cancel()

    def _bind_session_log(self) -> None:
        session_id = self.session.session_id
        self._log = (
            self._base_log.with_context(session_id=session_id)
            if session_id
            else self._base_log
        )

    def _span(self, name: str):
        if self._tracer is None:
            return nullcontext()
        return self._tracer.start_as_current_span(
            name, attributes={"gateway.intents": self.intents}
        )

    def _set_state(self, state: GatewayState) -> None:
        if self._state_subject.value is GatewayState.CLOSED:
            return
        self._log.debug(f"Gateway state: {state.value}")
        self._state_subject.on_next(state)

    def _finish(self) -> None:
        if self._finished:
            return
        self._finished = True
        self._set_state(GatewayState.CLOSED)
        self._log.info("Gateway closed.")
        self._state_subject.on_completed()
        super().on_completed()

    def _on_loop_thread(self, loop: asyncio.AbstractEventLoop) -> bool:
        try:
            return asyncio.get_running_loop() is loop
        except RuntimeError:
            return False

    def _run_loop(self) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            loop.run_until_complete(self.run())
        except Exception as e:
            self._log.error(f"Gateway thread exited: {get_short_error_info(e)}")
        finally:
            loop.close()
