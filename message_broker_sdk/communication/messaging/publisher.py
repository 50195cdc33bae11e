"""
Publish operations for Message Broker SDK.

Every publish runs on a channel of its own that is closed once the operation
completes. When a reply is requested, a consumer bound to the reply queue is
registered before the message goes out and only the delivery bearing the
request's correlation ID settles the call.
"""

from typing import Any, Awaitable, Callable, Optional, Union

import aio_pika
from aio_pika import DeliveryMode
from aio_pika.abc import AbstractChannel, AbstractExchange, AbstractIncomingMessage

from ..config import BrokerConfig, ExchangeType
from ..exceptions import (
    BrokerConfigurationError,
    BrokerError,
    InvalidReplyError,
    MessageSerializationError
)
from ..logging import BrokerLogger, BrokerEventType
from .channels import ChannelRegistry
from .correlation import CorrelationRegistry
from .payload import (
    MessagePayload,
    create_correlation_id,
    decode_body,
    encode_payload,
    is_correlation_id,
    is_message_payload,
    make_payload,
    to_message_payload
)


ReplyTo = Union[bool, str]
Declarer = Callable[[AbstractChannel], Awaitable[AbstractExchange]]


def resolve_exchange_type(exchange_type: Union[str, ExchangeType]) -> ExchangeType:
    """Normalize an exchange type given as a string or enum member."""
    try:
        return ExchangeType(exchange_type)
    except ValueError as e:
        raise BrokerConfigurationError(
            f"Unsupported exchange type {exchange_type!r}, expected one of "
            f"{[t.value for t in ExchangeType]}",
            cause=e
        ) from e


class Publisher:
    """
    Publisher of message payloads to queues and exchanges.

    Operations return the correlation ID of the published message when no
    reply is requested, and the reply otherwise. A reply that is a valid
    envelope is returned as a ``MessagePayload``; anything else is returned
    as decoded from JSON so that callers can decide what to do with it. A
    reply body that is not JSON at all fails the call with
    ``InvalidReplyError``.
    """

    def __init__(
        self,
        channels: ChannelRegistry,
        config: Optional[BrokerConfig] = None,
        correlations: Optional[CorrelationRegistry] = None,
        logger: Optional[BrokerLogger] = None
    ):
        self.channels = channels
        self.config = config or BrokerConfig()
        self.logger = logger or BrokerLogger("publisher")
        self.correlations = correlations or CorrelationRegistry(self.logger)

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
        """
        Send a message directly to a queue.

        Args:
            queue: Name of the queue, asserted before publishing
            payload: Message payload, an empty one when omitted
            correlation_id: Correlation ID, generated when omitted
            durable: Assert a durable queue and publish a persistent message
            reply_to: ``True`` to wait for a reply on the direct reply-to queue,
                or the name of the queue to wait on
            timeout: Milliseconds to wait for the reply; 0 waits forever

        Returns:
            The reply if one was requested, the correlation ID otherwise

        Raises:
            InvalidPayloadError: If the payload is not a message payload
            ReplyTimeoutError: If no reply arrived in time
        """
        async def declare(channel: AbstractChannel) -> AbstractExchange:
            await channel.declare_queue(queue, durable=durable)
            return channel.default_exchange

        return await self._publish(
            queue,
            declare,
            routing_key=queue,
            payload=payload,
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
        """
        Send a message to an exchange.

        Args:
            exchange: Name of the exchange, asserted before publishing
            payload: Message payload, an empty one when omitted
            correlation_id: Correlation ID, generated when omitted
            durable: Assert a durable exchange and publish a persistent message
            exchange_type: ``fanout``, ``topic`` or ``direct``
            key: Routing key, ignored by fanout exchanges
            reply_to: ``True`` to wait for a reply on the direct reply-to queue,
                or the name of the queue to wait on
            timeout: Milliseconds to wait for the reply; 0 waits forever

        Returns:
            The reply if one was requested, the correlation ID otherwise
        """
        kind = resolve_exchange_type(exchange_type)
        routing_key = "" if kind is ExchangeType.FANOUT else key

        async def declare(channel: AbstractChannel) -> AbstractExchange:
            return await channel.declare_exchange(
                exchange,
                type=aio_pika.ExchangeType(kind.value),
                durable=durable
            )

        return await self._publish(
            exchange,
            declare,
            routing_key=routing_key,
            payload=payload,
            correlation_id=correlation_id,
            durable=durable,
            reply_to=reply_to,
            timeout=timeout
        )

    async def send_to_direct_exchange(self, exchange: str, key: str, payload: Any = None, **kwargs) -> Any:
        """Send a message to a direct exchange with the given routing key."""
        return await self.send_to_exchange(
            exchange, payload, exchange_type=ExchangeType.DIRECT, key=key, **kwargs
        )

    async def send_to_topic(self, exchange: str, topic: str, payload: Any = None, **kwargs) -> Any:
        """Send a message to a topic exchange with the given topic."""
        return await self.send_to_exchange(
            exchange, payload, exchange_type=ExchangeType.TOPIC, key=topic, **kwargs
        )

    async def broadcast(
        self,
        exchange: str,
        payload: Any = None,
        *,
        correlation_id: Optional[str] = None,
        durable: bool = True
    ) -> str:
        """
        Broadcast a message to every queue bound to a fanout exchange.

        Returns:
            The correlation ID of the message
        """
        result = await self.send_to_exchange(
            exchange,
            payload,
            correlation_id=correlation_id,
            durable=durable,
            exchange_type=ExchangeType.FANOUT
        )

        if not is_correlation_id(result):
            raise BrokerError("Broadcasting did not yield a correlation ID", destination=exchange)

        return result

    def _reply_queue(self, reply_to: ReplyTo) -> Optional[str]:
        if reply_to is True:
            return self.config.reply_to_queue
        if isinstance(reply_to, str) and reply_to:
            return reply_to
        return None

    async def _publish(
        self,
        destination: str,
        declare: Declarer,
        *,
        routing_key: str,
        payload: Any,
        correlation_id: Optional[str],
        durable: bool,
        reply_to: ReplyTo,
        timeout: float
    ) -> Any:
        message_payload = make_payload() if payload is None else to_message_payload(payload)
        body = encode_payload(message_payload)
        correlation_id = correlation_id or create_correlation_id()
        reply_queue = self._reply_queue(reply_to)

        channel = await self.channels.create_channel()
        pending = None

        try:
            target = await declare(channel)

            if reply_queue:
                pending = self.correlations.register(correlation_id, destination, timeout)
                await self._consume_replies(channel, reply_queue, correlation_id)

            message = aio_pika.Message(
                body,
                content_type=self.config.content_type,
                correlation_id=correlation_id,
                reply_to=reply_queue,
                delivery_mode=DeliveryMode.PERSISTENT if durable else DeliveryMode.NOT_PERSISTENT
            )
            await target.publish(message, routing_key=routing_key)

            self.logger.log_message_publish(
                destination,
                correlation_id,
                message_size=len(body),
                routing_key=routing_key,
                reply_to=reply_queue
            )

            if pending is None:
                return correlation_id

            return await pending.future
        finally:
            if pending is not None:
                self.correlations.discard(correlation_id)
            await self.channels.close_channel(channel)

    async def _consume_replies(self, channel: AbstractChannel, reply_queue: str, correlation_id: str) -> None:
        queue = await channel.get_queue(reply_queue, ensure=False)

        async def on_reply(message: AbstractIncomingMessage) -> None:
            if message.correlation_id != correlation_id:
                return

            try:
                value = decode_body(message.body)
            except MessageSerializationError as e:
                self.logger.error(f"Undecodable reply received on {reply_queue}: {e}", correlation_id=correlation_id)
                self.correlations.reject(
                    correlation_id,
                    InvalidReplyError(
                        f"Invalid reply: {e.message}",
                        cause=e,
                        destination=reply_queue,
                        operation="await_reply",
                        correlation_id=correlation_id
                    )
                )
                return

            if is_message_payload(value):
                value = to_message_payload(value)

            self.logger.debug(
                f"Received reply on {reply_queue}",
                event_type=BrokerEventType.REPLY,
                operation="await_reply",
                status="failure" if isinstance(value, MessagePayload) and value.is_error else "success",
                correlation_id=correlation_id
            )
            self.correlations.resolve(correlation_id, value)

        await queue.consume(on_reply, no_ack=True)
