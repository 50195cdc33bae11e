"""
Communication module for Message Broker SDK.

This module provides configuration, error handling and structured logging for
the messaging layer, and re-exports its public API.
"""

from .config import (
    BrokerConfig,
    ExchangeType,
    DEFAULT_BROKER_CONFIG,
    DEFAULT_BROKER_URL,
    DEFAULT_REPLY_TO_QUEUE,
    PAYLOAD_CONTENT_TYPE
)

from .exceptions import (
    ErrorContext,
    BrokerError,
    BrokerConnectionError,
    BrokerConfigurationError,
    InvalidPayloadError,
    InvalidReplyError,
    ReplyTimeoutError,
    ContentTypeMismatchError,
    HandlerFailureError,
    MessageSerializationError,
    RemoteError,
    create_timeout_error,
    create_connection_error,
    create_content_type_error
)

from .logging import (
    BrokerLogger,
    BrokerEvent,
    BrokerEventType,
    LogLevel,
    CorrelationContext,
    get_correlation_id,
    set_correlation_id
)

from .messaging import (
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
    is_correlation_id,
    CorrelationRegistry,
    PendingRequest,
    ConnectionManager,
    ConnectionEvents,
    ConnectionEvent,
    ConnectionState,
    ChannelRegistry,
    Publisher,
    Consumer,
    MessageBroker,
    create_message_broker,
    RPCClient,
    RPCServer,
    invoke_action,
    invoke_action_with_payload,
    invoke_action_with_routing_key_and_payload
)
from .messaging import __all__ as _messaging_all

__all__ = [
    # Configuration
    "BrokerConfig",
    "ExchangeType",
    "DEFAULT_BROKER_CONFIG",
    "DEFAULT_BROKER_URL",
    "DEFAULT_REPLY_TO_QUEUE",
    "PAYLOAD_CONTENT_TYPE",

    # Exceptions
    "ErrorContext",
    "BrokerError",
    "BrokerConnectionError",
    "BrokerConfigurationError",
    "InvalidPayloadError",
    "InvalidReplyError",
    "ReplyTimeoutError",
    "ContentTypeMismatchError",
    "HandlerFailureError",
    "MessageSerializationError",
    "RemoteError",
    "create_timeout_error",
    "create_connection_error",
    "create_content_type_error",

    # Logging
    "BrokerLogger",
    "BrokerEvent",
    "BrokerEventType",
    "LogLevel",
    "CorrelationContext",
    "get_correlation_id",
    "set_correlation_id",
] + list(_messaging_all)
