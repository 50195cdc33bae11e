"""
Connection management for Message Broker SDK.

This module owns the single transport connection to the broker. It exposes a
small state machine::

    DISCONNECTED --connect()--> CONNECTING --success--> CONNECTED
    CONNECTED --close/error--> DISCONNECTED --(auto)--> CONNECTING ...

Failed attempts are retried every ``heartbeat`` seconds; a heartbeat of 0
disables automatic reconnection and surfaces failures to the caller instead.
Transport signals are re-emitted as ``ConnectionEvent`` values through
``ConnectionEvents``, which also hands out one-shot futures to code that needs
to wait for a given event.
"""

import asyncio
import inspect
import uuid
from collections import defaultdict
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

import aio_pika
from aio_pika.abc import AbstractConnection

from ..config import BrokerConfig
from ..exceptions import BrokerConnectionError, create_connection_error
from ..logging import BrokerLogger, BrokerEventType


Connector = Callable[..., Awaitable[AbstractConnection]]
EventListener = Callable[..., Any]


class ConnectionState(str, Enum):
    """States of the broker connection."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class ConnectionEvent(str, Enum):
    """Events emitted by the connection manager."""
    CONNECT = "connect"
    DISCONNECT = "disconnect"
    BLOCKED = "blocked"
    UNBLOCKED = "unblocked"
    ERROR = "error"


class ConnectionEvents:
    """
    Listener registry for connection events.

    Listeners are called every time an event is emitted. ``wait_for`` returns a
    future that is settled by the next emission of the event only, so each
    waiter is woken exactly once.
    """

    def __init__(self, logger: Optional[BrokerLogger] = None):
        self.logger = logger or BrokerLogger("connection_events")
        self._listeners: Dict[ConnectionEvent, List[EventListener]] = defaultdict(list)
        self._waiters: Dict[ConnectionEvent, List[asyncio.Future]] = defaultdict(list)

    def add_listener(self, event: ConnectionEvent, listener: EventListener) -> None:
        """Call ``listener`` every time ``event`` is emitted."""
        self._listeners[event].append(listener)

    def remove_listener(self, event: ConnectionEvent, listener: EventListener) -> None:
        """Stop calling ``listener`` for ``event``."""
        if listener in self._listeners[event]:
            self._listeners[event].remove(listener)

    def listener_count(self, event: ConnectionEvent) -> int:
        return len(self._listeners[event])

    def wait_for(self, event: ConnectionEvent) -> asyncio.Future:
        """Return a future resolved by the next emission of ``event``."""
        waiter = asyncio.get_running_loop().create_future()
        self._waiters[event].append(waiter)
        return waiter

    def emit(self, event: ConnectionEvent, *args: Any) -> None:
        """Wake the waiters of ``event`` and call its listeners."""
        waiters, self._waiters[event] = self._waiters[event], []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(args[0] if args else None)

        for listener in list(self._listeners[event]):
            try:
                result = listener(*args)
                if inspect.isawaitable(result):
                    asyncio.ensure_future(result)
            except Exception as e:
                self.logger.error(f"Listener for '{event.value}' failed: {e}", exc_info=True)

    def fail_waiters(self, event: ConnectionEvent, error: BaseException) -> None:
        """Reject every waiter of ``event`` with ``error``."""
        waiters, self._waiters[event] = self._waiters[event], []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_exception(error)


class ConnectionManager:
    """
    Owner of the broker connection.

    Concurrent ``connect()`` calls share a single in-flight attempt. When the
    transport closes or fails, the manager tears the connection down, emits
    ``disconnect`` and reconnects on its own unless auto-reconnect is disabled
    or the manager was closed.
    """

    def __init__(
        self,
        config: Optional[BrokerConfig] = None,
        connector: Optional[Connector] = None,
        logger: Optional[BrokerLogger] = None
    ):
        """
        Initialize connection manager.

        Args:
            config: Broker configuration
            connector: Coroutine function opening a transport connection, ``aio_pika.connect`` by default
            logger: Broker logger
        """
        self.config = config or BrokerConfig()
        self.id = str(uuid.uuid4())
        self.logger = logger or BrokerLogger("connection_manager")
        self.events = ConnectionEvents(self.logger)

        self._connector: Connector = connector or aio_pika.connect
        self._connection: Optional[AbstractConnection] = None
        self._state = ConnectionState.DISCONNECTED
        self._connect_task: Optional[asyncio.Task] = None
        self._background: List[asyncio.Task] = []
        self._closing = False

        self.logger.debug(f"Instantiating a new connection manager <{self.id}>")

    @property
    def connection(self) -> Optional[AbstractConnection]:
        """The live transport connection, if any."""
        return self._connection

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_closed(self) -> bool:
        """True once ``close()`` has been called."""
        return self._closing

    def is_connected(self) -> bool:
        """Check whether a live connection exists."""
        return self._connection is not None

    async def connect(self) -> AbstractConnection:
        """
        Connect to the broker.

        Returns the live connection right away if there is one; otherwise joins
        the in-flight attempt or starts a new one.

        Raises:
            BrokerConnectionError: If the manager is closed, or the attempt
                failed and auto-reconnect is disabled
        """
        if self._connection is not None:
            return self._connection

        if self._closing:
            raise BrokerConnectionError("Connection manager is closed", destination=self.config.sanitized_url)

        task = self._connect_task
        if task is None or task.done():
            task = self._connect_task = asyncio.ensure_future(self._establish())

        return await asyncio.shield(task)

    async def wait_until_connected(self) -> AbstractConnection:
        """
        Wait for the next successful connection.

        A connection attempt is started if none is in flight, so waiting never
        depends on some other caller having called ``connect()``.
        """
        if self._connection is not None:
            return self._connection

        if self._closing:
            raise BrokerConnectionError("Connection manager is closed", destination=self.config.sanitized_url)

        waiter = self.events.wait_for(ConnectionEvent.CONNECT)
        self._ensure_connecting()
        return await waiter

    async def disconnect(self) -> None:
        """
        Tear down the current connection.

        Returns once the ``disconnect`` event has been emitted. When
        auto-reconnect is enabled a new connection attempt follows right away.
        """
        connection = self._detach()
        if connection is None:
            return

        waiter = self.events.wait_for(ConnectionEvent.DISCONNECT)
        await self._teardown(connection)
        await waiter
        self._schedule_reconnect()

    async def close(self) -> None:
        """Disconnect for good: no further reconnection attempts are made."""
        self._closing = True

        tasks = [t for t in self._background if not t.done()]
        if self._connect_task is not None and not self._connect_task.done():
            tasks.append(self._connect_task)

        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._background.clear()

        self.events.fail_waiters(
            ConnectionEvent.CONNECT,
            BrokerConnectionError("Connection manager is closed", destination=self.config.sanitized_url)
        )

        connection = self._detach()
        if connection is not None:
            await self._teardown(connection)

    def notify_blocked(self, reason: str = "") -> None:
        """Signal that the broker blocked the connection."""
        self.logger.warning(
            f"Broker blocked the connection because: {reason}",
            event_type=BrokerEventType.CONNECTION,
            operation="connection:blocked"
        )
        self.events.emit(ConnectionEvent.BLOCKED, reason)

    def notify_unblocked(self) -> None:
        """Signal that the broker unblocked the connection."""
        self.logger.info("Broker has unblocked the connection", operation="connection:unblocked")
        self.events.emit(ConnectionEvent.UNBLOCKED)

    async def _open(self) -> AbstractConnection:
        kwargs: Dict[str, Any] = {}
        if self.config.connection_name:
            kwargs["client_properties"] = {"connection_name": self.config.connection_name}
        return await self._connector(self.config.url, **kwargs)

    async def _establish(self) -> AbstractConnection:
        url = self.config.sanitized_url
        self._state = ConnectionState.CONNECTING
        attempt = 0

        try:
            while True:
                attempt += 1
                self.logger.info(f"<{self.id}> is connecting to {url}...", metadata={'attempt': attempt})

                try:
                    connection = await self._open()
                except Exception as e:
                    if self._closing or not self.config.auto_reconnect:
                        error = create_connection_error(url, e)
                        self._state = ConnectionState.DISCONNECTED
                        self.logger.error(f"Unable to connect to {url}: {e}")
                        self.events.emit(ConnectionEvent.ERROR, error)
                        self.events.fail_waiters(ConnectionEvent.CONNECT, error)
                        raise error from e

                    self.logger.warning(
                        f"Unable to connect to {url}, retrying in {self.config.heartbeat}s",
                        event_type=BrokerEventType.CONNECTION,
                        metadata={'attempt': attempt, 'error': str(e)}
                    )
                    await asyncio.sleep(self.config.heartbeat)
                    continue

                self._attach(connection)
                return connection
        except asyncio.CancelledError:
            if self._connection is None:
                self._state = ConnectionState.DISCONNECTED
            raise

    def _attach(self, connection: AbstractConnection) -> None:
        self._connection = connection
        self._state = ConnectionState.CONNECTED
        connection.close_callbacks.add(self._on_connection_closed)

        self.logger.log_connection("established", self.config.sanitized_url, manager_id=self.id)
        self.events.emit(ConnectionEvent.CONNECT, connection)

    def _on_connection_closed(self, sender: Any, exc: Optional[BaseException] = None) -> None:
        if sender is not self._connection:
            return

        if isinstance(exc, Exception):
            self.logger.error(f"An error occurred in the broker connection: {exc}")
            self.events.emit(ConnectionEvent.ERROR, exc)
        else:
            self.logger.info("Broker connection closed")

        self._spawn(self._handle_connection_lost(self._detach()))

    async def _handle_connection_lost(self, connection: AbstractConnection) -> None:
        await self._teardown(connection)
        self._schedule_reconnect()

    def _detach(self) -> Optional[AbstractConnection]:
        connection, self._connection = self._connection, None
        if connection is not None:
            self._state = ConnectionState.DISCONNECTED
        return connection

    async def _teardown(self, connection: AbstractConnection) -> None:
        try:
            if not connection.is_closed:
                await connection.close()
        except Exception as e:
            self.logger.warning(f"Failed to close the connection because: {e}")

        self.logger.log_connection("closed", self.config.sanitized_url, manager_id=self.id)
        self.events.emit(ConnectionEvent.DISCONNECT)

    def _schedule_reconnect(self) -> None:
        if self._closing or not self.config.auto_reconnect:
            return
        self._ensure_connecting()

    def _ensure_connecting(self) -> None:
        if self._connection is not None or self._closing:
            return
        if self._connect_task is not None and not self._connect_task.done():
            return
        self._spawn(self._reconnect())

    async def _reconnect(self) -> None:
        try:
            await self.connect()
        except BrokerConnectionError as e:
            self.logger.warning(f"Reconnection attempt failed: {e}")

    def _spawn(self, coro: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._background.append(task)
        task.add_done_callback(self._forget)

    def _forget(self, task: asyncio.Task) -> None:
        if task in self._background:
            self._background.remove(task)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self.id}, url={self.config.sanitized_url}, state={self._state.value})"
