"""
Broker Exceptions for Message Broker SDK.

This module defines the exception hierarchy for the connection manager and the
publish/consume/RPC protocol built on top of it.
"""

from typing import Optional, Dict, Any
from dataclasses import dataclass, field
from datetime import datetime, timezone


@dataclass
class ErrorContext:
    """Context information for broker errors."""
    destination: Optional[str] = None
    operation: Optional[str] = None
    correlation_id: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    details: Dict[str, Any] = field(default_factory=dict)
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert context to dictionary."""
        return {
            'destination': self.destination,
            'operation': self.operation,
            'correlation_id': self.correlation_id,
            'timestamp': self.timestamp.isoformat(),
            'details': self.details
        }


class BrokerError(Exception):
    """Base exception for all message broker errors."""
    
    def __init__(
        self,
        message: str,
        context: Optional[ErrorContext] = None,
        cause: Optional[BaseException] = None,
        **kwargs
    ):
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext(**kwargs)
        self.cause = cause
    
    def __str__(self) -> str:
        """String representation of the error."""
        base_msg = self.message
        if self.context.destination:
            base_msg += f" (destination: {self.context.destination})"
        if self.context.correlation_id:
            base_msg += f" (correlation_id: {self.context.correlation_id})"
        return base_msg
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for serialization."""
        return {
            'error_type': self.__class__.__name__,
            'message': self.message,
            'context': self.context.to_dict(),
            'cause': str(self.cause) if self.cause else None
        }


class BrokerConnectionError(BrokerError):
    """Exception raised when connecting to (or staying connected to) the broker fails."""
    pass


class BrokerConfigurationError(BrokerError):
    """Exception raised for invalid broker configuration."""
    pass


class InvalidPayloadError(BrokerError, TypeError):
    """Exception raised when a value that is not a message payload is about to be published."""
    pass


class InvalidReplyError(BrokerError):
    """Exception raised when a reply does not conform to the message payload shape."""
    pass


class ReplyTimeoutError(BrokerError):
    """Exception raised when no matching reply arrives within the requested window."""
    pass


class ContentTypeMismatchError(BrokerError):
    """Exception raised when an inbound delivery declares an unexpected content type."""
    pass


class HandlerFailureError(BrokerError):
    """Exception raised when a consume handler fails while processing a delivery."""
    pass


class MessageSerializationError(BrokerError):
    """Exception raised when message serialization/deserialization fails."""
    pass


class RemoteError(BrokerError):
    """
    An error envelope received from a remote peer, turned back into an exception.
    
    The original error name and stack are kept so callers can tell what failed
    on the other side.
    """
    
    def __init__(
        self,
        message: str,
        name: str = "Error",
        stack: str = "",
        extra: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.name = name
        self.stack = stack
        self.extra = extra or {}
    
    def __str__(self) -> str:
        return f"{self.name}: {self.message}"


# Utility functions for common error scenarios
def create_timeout_error(
    destination: str,
    timeout_ms: float,
    correlation_id: Optional[str] = None
) -> ReplyTimeoutError:
    """Create a reply timeout error with standard context."""
    context = ErrorContext(
        destination=destination,
        operation="await_reply",
        correlation_id=correlation_id,
        details={'timeout_ms': timeout_ms}
    )
    return ReplyTimeoutError(
        "Timed out while waiting for response from consumer",
        context=context
    )


def create_connection_error(
    url: str,
    cause: BaseException
) -> BrokerConnectionError:
    """Create a connection error with standard context."""
    context = ErrorContext(
        destination=url,
        operation="connect",
        details={'cause': str(cause)}
    )
    return BrokerConnectionError(
        f"Unable to connect to {url}",
        context=context,
        cause=cause
    )


def create_content_type_error(
    destination: str,
    content_type: Optional[str],
    expected: str,
    correlation_id: Optional[str] = None
) -> ContentTypeMismatchError:
    """Create a content type mismatch error with standard context."""
    context = ErrorContext(
        destination=destination,
        operation="consume",
        correlation_id=correlation_id,
        details={'content_type': content_type, 'expected': expected}
    )
    return ContentTypeMismatchError(
        f"The message content type must be {expected}, got {content_type!r}",
        context=context
    )
