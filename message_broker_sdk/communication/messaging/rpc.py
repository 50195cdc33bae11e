"""
RPC client and server for Message Broker SDK.

Both wrap a ``MessageBroker``. The client always waits for a reply and insists
that the reply is a well-formed message payload; the server consumes requests
and answers them through the reply metadata of each delivery.
"""

from typing import Any, Optional

from aio_pika.abc import AbstractChannel

from ..exceptions import InvalidReplyError
from ..logging import BrokerLogger
from .broker import MessageBroker
from .consumer import PayloadHandler, RoutedPayloadHandler, RoutingKeys
from .payload import MessagePayload


class RPCClient:
    """
    Request side of the RPC pattern.

    The ``send_*`` methods request a reply on the direct reply-to queue unless
    told otherwise, and return the reply payload.
    """

    def __init__(self, broker: MessageBroker, logger: Optional[BrokerLogger] = None):
        self.broker = broker
        self.logger = logger or BrokerLogger("rpc_client")

    async def send_to_queue(self, queue: str, payload: Any = None, **kwargs) -> MessagePayload:
        """
        Send a request to a queue and wait for the reply.

        Raises:
            InvalidReplyError: If the reply is not valid JSON or not a message payload
            ReplyTimeoutError: If ``timeout`` elapsed before the reply arrived
        """
        kwargs.setdefault('reply_to', True)
        return self._check_reply(queue, await self.broker.send_to_queue(queue, payload, **kwargs))

    async def send_to_exchange(self, exchange: str, payload: Any = None, **kwargs) -> MessagePayload:
        """Send a request to an exchange and wait for the reply."""
        kwargs.setdefault('reply_to', True)
        return self._check_reply(exchange, await self.broker.send_to_exchange(exchange, payload, **kwargs))

    async def send_to_direct_exchange(self, exchange: str, key: str, payload: Any = None, **kwargs) -> MessagePayload:
        """Send a request to a direct exchange and wait for the reply."""
        kwargs.setdefault('reply_to', True)
        return self._check_reply(
            exchange, await self.broker.send_to_direct_exchange(exchange, key, payload, **kwargs)
        )

    async def send_to_topic(self, exchange: str, topic: str, payload: Any = None, **kwargs) -> MessagePayload:
        """Send a request to a topic exchange and wait for the reply."""
        kwargs.setdefault('reply_to', True)
        return self._check_reply(exchange, await self.broker.send_to_topic(exchange, topic, payload, **kwargs))

    async def request(self, queue: str, payload: Any = None, timeout: float = 0) -> MessagePayload:
        """Send a request to a queue over the direct reply-to queue."""
        return await self.send_to_queue(queue, payload, reply_to=True, timeout=timeout)

    def _check_reply(self, destination: str, reply: Any) -> MessagePayload:
        if not isinstance(reply, MessagePayload):
            self.logger.error(f"Invalid reply received from {destination}: {reply!r}")
            raise InvalidReplyError(
                "Invalid reply: the response is not a message payload",
                destination=destination,
                operation="rpc",
                details={'reply': repr(reply)}
            )
        return reply


class RPCServer:
    """Reply side of the RPC pattern."""

    def __init__(self, broker: MessageBroker):
        self.broker = broker

    async def receive_from_queue(self, queue: str, handler: PayloadHandler, **kwargs) -> AbstractChannel:
        return await self.broker.receive_from_queue(queue, handler, **kwargs)

    async def receive_from_exchange(self, exchange: str, handler: RoutedPayloadHandler, **kwargs) -> AbstractChannel:
        return await self.broker.receive_from_exchange(exchange, handler, **kwargs)

    async def listen(self, exchange: str, handler: PayloadHandler, **kwargs) -> AbstractChannel:
        return await self.broker.listen(exchange, handler, **kwargs)

    async def receive_from_topic(
        self,
        exchange: str,
        topic: RoutingKeys,
        handler: RoutedPayloadHandler,
        **kwargs
    ) -> AbstractChannel:
        return await self.broker.receive_from_topic(exchange, topic, handler, **kwargs)

    async def receive_from_direct_exchange(
        self,
        exchange: str,
        key: RoutingKeys,
        handler: PayloadHandler,
        **kwargs
    ) -> AbstractChannel:
        return await self.broker.receive_from_direct_exchange(exchange, key, handler, **kwargs)
