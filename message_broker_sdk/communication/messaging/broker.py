"""
Message broker facade for Message Broker SDK.

``MessageBroker`` is the object application code holds on to. It owns one
connection manager and composes the channel registry, the correlation
registry, the publisher and the consumer that operate on it.
"""

from typing import Any, Dict, Optional, Union

from aio_pika.abc import AbstractChannel, AbstractConnection

from ..config import BrokerConfig, ExchangeType
from ..logging import BrokerLogger
from .channels import ChannelRegistry
from .connection import Connector, ConnectionEvent, ConnectionEvents, ConnectionManager, ConnectionState
from .consumer import Consumer, PayloadHandler, RoutedPayloadHandler, RoutingKeys
from .correlation import CorrelationRegistry
from .publisher import Publisher, ReplyTo


class MessageBroker:
    """
    Publish/consume client for an AMQP broker.

    Example:
        broker = create_message_broker("amqp://localhost:5672")
        await broker.connect()
        await broker.receive_from_queue("tasks", handle_task)
        await broker.send_to_queue("tasks", {"data": {"id": 1}})
        await broker.close()
    """

    def __init__(
        self,
        config: Optional[BrokerConfig] = None,
        connector: Optional[Connector] = None,
        logger: Optional[BrokerLogger] = None
    ):
        """
        Initialize message broker.

        Args:
            config: Broker configuration
            connector: Coroutine function opening a transport connection
            logger: Broker logger
        """
        self.config = config or BrokerConfig()
        self.logger = logger or BrokerLogger("message_broker")

        self.manager = ConnectionManager(self.config, connector=connector, logger=self.logger)
        self.channels = ChannelRegistry(self.manager, logger=self.logger)
        self.correlations = CorrelationRegistry(logger=self.logger)
        self.publisher = Publisher(self.channels, self.config, self.correlations, logger=self.logger)
        self.consumer = Consumer(self.channels, self.config, logger=self.logger)

    @property
    def id(self) -> str:
        return self.manager.id

    @property
    def events(self) -> ConnectionEvents:
        """Connection events (connect, disconnect, blocked, unblocked, error)."""
        return self.manager.events

    @property
    def state(self) -> ConnectionState:
        return self.manager.state

    def is_connected(self) -> bool:
        return self.manager.is_connected()

    def on(self, event: ConnectionEvent, listener) -> None:
        """Shortcut for ``events.add_listener``."""
        self.manager.events.add_listener(event, listener)

    async def connect(self) -> AbstractConnection:
        """Connect to the broker, joining any attempt in flight."""
        return await self.manager.connect()

    async def disconnect(self) -> None:
        """Drop the current connection; auto-reconnect applies afterwards."""
        await self.manager.disconnect()

    async def close(self) -> None:
        """Close every channel and the connection, without reconnecting."""
        await self.channels.close_all()
        await self.manager.close()

    async def create_channel(self) -> AbstractChannel:
        """Open a channel on the current connection, waiting for one if needed."""
        return await self.channels.create_channel()

    async def send_to_queue(
        self,
        queue: str,
        payload: Any = None,
        *,
        correlation_id: Optional[str] = None,
        durable: bool = True,
        reply_to: ReplyTo = False,
        timeout: float = 0
    ) -> Any:
        """Send a message directly to a queue. See ``Publisher.send_to_queue``."""
        return await self.publisher.send_to_queue(
            queue,
            payload,
            correlation_id=correlation_id,
            durable=durable,
            reply_to=reply_to,
            timeout=timeout
        )

    async def send_to_exchange(
        self,
        exchange: str,
        payload: Any = None,
        *,
        correlation_id: Optional[str] = None,
        durable: bool = True,
        exchange_type: Union[str, ExchangeType] = ExchangeType.FANOUT,
        key: str = "",
        reply_to: ReplyTo = False,
        timeout: float = 0
    ) -> Any:
        """Send a message to an exchange. See ``Publisher.send_to_exchange``."""
        return await self.publisher.send_to_exchange(
            exchange,
            payload,
            correlation_id=correlation_id,
            durable=durable,
            exchange_type=exchange_type,
            key=key,
            reply_to=reply_to,
            timeout=timeout
        )

    async def send_to_direct_exchange(self, exchange: str, key: str, payload: Any = None, **kwargs) -> Any:
        return await self.publisher.send_to_direct_exchange(exchange, key, payload, **kwargs)

    async def send_to_topic(self, exchange: str, topic: str, payload: Any = None, **kwargs) -> Any:
        return await self.publisher.send_to_topic(exchange, topic, payload, **kwargs)

    async def broadcast(
        self,
        exchange: str,
        payload: Any = None,
        *,
        correlation_id: Optional[str] = None,
        durable: bool = True
    ) -> str:
        """Broadcast a message through a fanout exchange."""
        return await self.publisher.broadcast(exchange, payload, correlation_id=correlation_id, durable=durable)

    async def receive_from_queue(self, queue: str, handler: PayloadHandler, **kwargs) -> AbstractChannel:
        """Consume messages from a queue. See ``Consumer.receive_from_queue``."""
        return await self.consumer.receive_from_queue(queue, handler, **kwargs)

    async def receive_from_exchange(self, exchange: str, handler: RoutedPayloadHandler, **kwargs) -> AbstractChannel:
        """Consume messages from an exchange. See ``Consumer.receive_from_exchange``."""
        return await self.consumer.receive_from_exchange(exchange, handler, **kwargs)

    async def listen(self, exchange: str, handler: PayloadHandler, **kwargs) -> AbstractChannel:
        return await self.consumer.listen(exchange, handler, **kwargs)

    async def receive_from_topic(
        self,
        exchange: str,
        topic: RoutingKeys,
        handler: RoutedPayloadHandler,
        **kwargs
    ) -> AbstractChannel:
        return await self.consumer.receive_from_topic(exchange, topic, handler, **kwargs)

    async def receive_from_direct_exchange(
        self,
        exchange: str,
        key: RoutingKeys,
        handler: PayloadHandler,
        **kwargs
    ) -> AbstractChannel:
        return await self.consumer.receive_from_direct_exchange(exchange, key, handler, **kwargs)

    def get_connection_info(self) -> Dict[str, Any]:
        """Get connection information."""
        return {
            "id": self.manager.id,
            "url": self.config.sanitized_url,
            "state": self.manager.state.value,
            "connected": self.manager.is_connected(),
            "channels_count": len(self.channels),
            "pending_replies": len(self.correlations),
            "heartbeat": self.config.heartbeat
        }

    async def __aenter__(self) -> 'MessageBroker':
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(url={self.config.sanitized_url}, state={self.manager.state.value})"


def create_message_broker(
    url: Optional[str] = None,
    heartbeat: Optional[float] = None,
    connector: Optional[Connector] = None,
    **kwargs
) -> MessageBroker:
    """
    Create a message broker.

    Args:
        url: Broker URL, ``amqp://localhost:5672`` by default
        heartbeat: Seconds between reconnection attempts; 0 disables auto-reconnect
        connector: Coroutine function opening a transport connection
        **kwargs: Additional ``BrokerConfig`` fields

    Returns:
        An unconnected ``MessageBroker``
    """
    config_data: Dict[str, Any] = dict(kwargs)
    if url is not None:
        config_data['url'] = url
    if heartbeat is not None:
        config_data['heartbeat'] = heartbeat

    return MessageBroker(BrokerConfig(**config_data), connector=connector)
