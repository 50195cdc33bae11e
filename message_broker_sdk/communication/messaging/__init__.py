"""
Messaging module for Message Broker SDK.

This module provides the connection manager, the publish/consume operations
and the RPC helpers built on top of an AMQP broker.
"""

from .payload import (
    MessagePayload,
    SerializedError,
    make_payload,
    to_message_payload,
    is_message_payload,
    encode_payload,
    decode_body,
    decode_payload,
    serialize_error,
    deserialize_error,
    create_correlation_id,
    is_correlation_id
)

from .correlation import CorrelationRegistry, PendingRequest

from .connection import (
    ConnectionManager,
    ConnectionEvents,
    ConnectionEvent,
    ConnectionState
)

from .channels import ChannelRegistry
from .publisher import Publisher
from .consumer import Consumer
from .broker import MessageBroker, create_message_broker
from .rpc import RPCClient, RPCServer

from .actions import (
    invoke_action,
    invoke_action_with_payload,
    invoke_action_with_routing_key_and_payload
)

__all__ = [
    # Payloads
    "MessagePayload",
    "SerializedError",
    "make_payload",
    "to_message_payload",
    "is_message_payload",
    "encode_payload",
    "decode_body",
    "decode_payload",
    "serialize_error",
    "deserialize_error",
    "create_correlation_id",
    "is_correlation_id",

    # Correlation
    "CorrelationRegistry",
    "PendingRequest",

    # Connection
    "ConnectionManager",
    "ConnectionEvents",
    "ConnectionEvent",
    "ConnectionState",
    "ChannelRegistry",

    # Operations
    "Publisher",
    "Consumer",
    "MessageBroker",
    "create_message_broker",
    "RPCClient",
    "RPCServer",

    # Actions
    "invoke_action",
    "invoke_action_with_payload",
    "invoke_action_with_routing_key_and_payload",
]
