"""
Consume operations for Message Broker SDK.

Handlers receive decoded ``MessagePayload`` objects and may be plain functions
or coroutine functions. What a handler returns is sent back to the publisher
when the delivery asks for a reply; what it raises is sent back as an error
envelope and the delivery is rejected without requeueing.
"""

import inspect
import time
from typing import Any, Callable, Iterable, List, Optional, Union

import aio_pika
from aio_pika.abc import AbstractChannel, AbstractIncomingMessage, AbstractQueue

from ..config import BrokerConfig, ExchangeType
from ..exceptions import HandlerFailureError, create_content_type_error
from ..logging import BrokerLogger, BrokerEventType, CorrelationContext
from .channels import ChannelRegistry
from .payload import MessagePayload, decode_payload, encode_payload, is_message_payload, make_payload, to_message_payload
from .publisher import resolve_exchange_type


PayloadHandler = Callable[[MessagePayload], Any]
RoutedPayloadHandler = Callable[[str, MessagePayload], Any]
RoutingKeys = Union[str, Iterable[str]]
Invoker = Callable[[AbstractIncomingMessage, MessagePayload], Any]


def _routing_keys(keys: RoutingKeys) -> List[str]:
    if isinstance(keys, str):
        return [keys]
    return list(keys)


def _reply_payload(result: Any) -> MessagePayload:
    if result is None:
        return make_payload()
    if is_message_payload(result):
        return to_message_payload(result)
    return make_payload(result)


class Consumer:
    """Consumer of message payloads from queues and exchanges."""

    def __init__(
        self,
        channels: ChannelRegistry,
        config: Optional[BrokerConfig] = None,
        logger: Optional[BrokerLogger] = None
    ):
        self.channels = channels
        self.config = config or BrokerConfig()
        self.logger = logger or BrokerLogger("consumer")

    async def receive_from_queue(
        self,
        queue: str,
        handler: PayloadHandler,
        *,
        ack: bool = True,
        durable: bool = True,
        prefetch: int = 0,
        auto_close_channel: bool = False
    ) -> AbstractChannel:
        """
        Consume messages from a queue.

        Args:
            queue: Name of the queue, asserted before consuming
            handler: Called with each decoded payload
            ack: Acknowledge processed deliveries (reject failed ones)
            durable: Assert a durable queue
            prefetch: Maximum number of unacknowledged deliveries; 0 means unlimited
            auto_close_channel: Close the channel after the first processed delivery

        Returns:
            The channel the consumer runs on
        """
        channel = await self.channels.create_channel()
        try:
            declared = await channel.declare_queue(queue, durable=durable)
            await self._consume(
                channel,
                declared,
                queue,
                lambda message, payload: handler(payload),
                ack=ack,
                prefetch=prefetch,
                auto_close_channel=auto_close_channel
            )
        except BaseException:
            await self.channels.close_channel(channel)
            raise

        self.logger.info(f"Listening for queue \"{queue}\"...", event_type=BrokerEventType.MESSAGE_CONSUME)
        return channel

    async def receive_from_exchange(
        self,
        exchange: str,
        handler: RoutedPayloadHandler,
        *,
        ack: bool = True,
        durable: bool = True,
        exchange_type: Union[str, ExchangeType] = ExchangeType.FANOUT,
        keys: RoutingKeys = "",
        prefetch: int = 0,
        auto_close_channel: bool = False
    ) -> AbstractChannel:
        """
        Consume messages from an exchange.

        An exclusive, server-named queue is declared and bound to the exchange
        once per routing key.

        Args:
            exchange: Name of the exchange, asserted before consuming
            handler: Called with the routing key and the decoded payload
            ack: Acknowledge processed deliveries (reject failed ones)
            durable: Assert a durable exchange
            exchange_type: ``fanout``, ``topic`` or ``direct``
            keys: Routing key or keys to bind the queue with
            prefetch: Maximum number of unacknowledged deliveries; 0 means unlimited
            auto_close_channel: Close the channel after the first processed delivery

        Returns:
            The channel the consumer runs on
        """
        kind = resolve_exchange_type(exchange_type)
        routing_keys = _routing_keys(keys)

        channel = await self.channels.create_channel()
        try:
            declared_exchange = await channel.declare_exchange(
                exchange,
                type=aio_pika.ExchangeType(kind.value),
                durable=durable
            )
            queue = await channel.declare_queue(exclusive=True)
            for key in routing_keys:
                await queue.bind(declared_exchange, routing_key=key)

            await self._consume(
                channel,
                queue,
                exchange,
                lambda message, payload: handler(message.routing_key, payload),
                ack=ack,
                prefetch=prefetch,
                auto_close_channel=auto_close_channel
            )
        except BaseException:
            await self.channels.close_channel(channel)
            raise

        self.logger.info(
            f"Listening for exchange \"{exchange}\" with keys {routing_keys}...",
            event_type=BrokerEventType.MESSAGE_CONSUME
        )
        return channel

    async def listen(self, exchange: str, handler: PayloadHandler, **kwargs) -> AbstractChannel:
        """Consume broadcast messages from a fanout exchange."""
        return await self.receive_from_exchange(
            exchange,
            lambda routing_key, payload: handler(payload),
            exchange_type=ExchangeType.FANOUT,
            **kwargs
        )

    async def receive_from_topic(
        self,
        exchange: str,
        topic: RoutingKeys,
        handler: RoutedPayloadHandler,
        **kwargs
    ) -> AbstractChannel:
        """Consume messages from a topic exchange matching the given topic pattern(s)."""
        return await self.receive_from_exchange(
            exchange, handler, exchange_type=ExchangeType.TOPIC, keys=topic, **kwargs
        )

    async def receive_from_direct_exchange(
        self,
        exchange: str,
        key: RoutingKeys,
        handler: PayloadHandler,
        **kwargs
    ) -> AbstractChannel:
        """Consume messages from a direct exchange with the given routing key(s)."""
        return await self.receive_from_exchange(
            exchange,
            lambda routing_key, payload: handler(payload),
            exchange_type=ExchangeType.DIRECT,
            keys=key,
            **kwargs
        )

    async def _consume(
        self,
        channel: AbstractChannel,
        queue: AbstractQueue,
        source: str,
        invoke: Invoker,
        *,
        ack: bool,
        prefetch: int,
        auto_close_channel: bool
    ) -> None:
        if prefetch and prefetch > 0:
            await channel.set_qos(prefetch_count=prefetch)

        async def on_message(message: Optional[AbstractIncomingMessage]) -> None:
            await self._process(channel, source, message, invoke, ack, auto_close_channel)

        await queue.consume(on_message, no_ack=not ack)

    async def _process(
        self,
        channel: AbstractChannel,
        source: str,
        message: Optional[AbstractIncomingMessage],
        invoke: Invoker,
        ack: bool,
        auto_close_channel: bool
    ) -> None:
        if message is None:
            self.logger.debug(f"[{source}] No message received", event_type=BrokerEventType.MESSAGE_CONSUME)
            if auto_close_channel:
                await self.channels.close_channel(channel)
            return

        if message.content_type != self.config.content_type:
            error = create_content_type_error(
                source, message.content_type, self.config.content_type, message.correlation_id
            )
            self.logger.error(str(error), event_type=BrokerEventType.MESSAGE_CONSUME, correlation_id=message.correlation_id)
            return

        start = time.monotonic()
        with CorrelationContext(message.correlation_id):
            try:
                payload = decode_payload(message.body)
                result = invoke(message, payload)
                if inspect.isawaitable(result):
                    result = await result

                if message.reply_to:
                    await self._reply(channel, message, _reply_payload(result))

                if ack:
                    await message.ack()

                self.logger.log_message_consume(
                    source,
                    message.correlation_id,
                    processing_time_ms=(time.monotonic() - start) * 1000
                )
            except Exception as e:
                failure = HandlerFailureError(
                    f"Error occurred while handling message: {e}",
                    cause=e,
                    destination=source,
                    operation="consume",
                    correlation_id=message.correlation_id
                )
                self.logger.log_message_consume(
                    source,
                    message.correlation_id,
                    status="failure",
                    processing_time_ms=(time.monotonic() - start) * 1000,
                    error=str(failure)
                )

                if message.reply_to:
                    try:
                        await self._reply(channel, message, make_payload(e))
                    except Exception as reply_error:
                        self.logger.error(
                            f"Failed to send error reply: {reply_error}",
                            correlation_id=message.correlation_id
                        )

                if ack:
                    try:
                        await message.nack(requeue=False)
                    except Exception as nack_error:
                        self.logger.error(f"Failed to nack message: {nack_error}")

        if auto_close_channel:
            await self.channels.close_channel(channel)

    async def _reply(self, channel: AbstractChannel, message: AbstractIncomingMessage, payload: MessagePayload) -> None:
        self.logger.log_reply(message.reply_to, message.correlation_id, is_error=payload.is_error)
        await channel.default_exchange.publish(
            aio_pika.Message(
                encode_payload(payload),
                content_type=self.config.content_type,
                correlation_id=message.correlation_id
            ),
            routing_key=message.reply_to
        )
