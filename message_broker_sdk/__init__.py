"""
Message Broker SDK

Connection lifecycle management and a request/reply protocol on top of an
AMQP 0-9-1 broker such as RabbitMQ.

Example usage:
    from message_broker_sdk import create_message_broker, RPCClient, make_payload

    broker = create_message_broker("amqp://localhost:5672")

    async def double(payload):
        return make_payload(payload.data * 2)

    await broker.receive_from_queue("double", double)
    reply = await RPCClient(broker).request("double", {"data": 21}, timeout=5000)
"""

from .version import __version__
from .communication.config import BrokerConfig, ExchangeType
from .communication.exceptions import (
    BrokerError,
    BrokerConnectionError,
    InvalidPayloadError,
    InvalidReplyError,
    ReplyTimeoutError,
    ContentTypeMismatchError,
    HandlerFailureError,
    RemoteError
)
from .communication.logging import BrokerLogger, CorrelationContext
from .communication.messaging import (
    MessagePayload,
    make_payload,
    MessageBroker,
    create_message_broker,
    ConnectionEvent,
    ConnectionState,
    RPCClient,
    RPCServer,
    invoke_action,
    invoke_action_with_payload,
    invoke_action_with_routing_key_and_payload
)

# Package metadata
__title__ = "message-broker-sdk"

__all__ = [
    "__version__",
    "BrokerConfig",
    "ExchangeType",
    "BrokerError",
    "BrokerConnectionError",
    "InvalidPayloadError",
    "InvalidReplyError",
    "ReplyTimeoutError",
    "ContentTypeMismatchError",
    "HandlerFailureError",
    "RemoteError",
    "BrokerLogger",
    "CorrelationContext",
    "MessagePayload",
    "make_payload",
    "MessageBroker",
    "create_message_broker",
    "ConnectionEvent",
    "ConnectionState",
    "RPCClient",
    "RPCServer",
    "invoke_action",
    "invoke_action_with_payload",
    "invoke_action_with_routing_key_and_payload",
]
