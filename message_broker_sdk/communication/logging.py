"""
Broker Logging for Message Broker SDK.

This module provides structured logging for the connection manager and the
publish/consume operations, with correlation ID tracking.
"""

import json
import logging
import uuid
from typing import Dict, Any, Optional, List, Callable
from datetime import datetime, timezone
from dataclasses import dataclass, field, asdict
from enum import Enum
from contextvars import ContextVar


class BrokerEventType(str, Enum):
    """Types of broker events."""
    CONNECTION = "connection"
    CHANNEL = "channel"
    MESSAGE_PUBLISH = "message_publish"
    MESSAGE_CONSUME = "message_consume"
    REPLY = "reply"
    ERROR = "error"


class LogLevel(str, Enum):
    """Log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class BrokerEvent:
    """Broker event for structured logging."""
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    event_type: BrokerEventType = BrokerEventType.CONNECTION
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    correlation_id: Optional[str] = None
    component: Optional[str] = None
    operation: Optional[str] = None
    status: Optional[str] = None
    duration_ms: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary."""
        data = asdict(self)
        data['timestamp'] = self.timestamp.isoformat()
        return data

    def to_json(self) -> str:
        """Convert event to JSON string."""
        return json.dumps(self.to_dict(), default=str)


# Context variable for correlation tracking
correlation_id_context: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)


class BrokerLogger:
    """
    Structured logger for broker events.

    Wraps a standard library logger named ``message_broker.<name>``. Every
    record carries a ``broker_event`` extra with the structured event, so a
    JSON formatter can emit it as-is.
    """

    def __init__(self, name: str = "broker", level: Optional[LogLevel] = None):
        """
        Initialize broker logger.

        Args:
            name: Component name
            level: Optional log level; the logging configuration decides when omitted
        """
        self.name = name
        self.logger = logging.getLogger(f"message_broker.{name}")
        if level is not None:
            self.logger.setLevel(getattr(logging, level.value))

        self._event_handlers: List[Callable[[BrokerEvent], None]] = []

    def _create_event(
        self,
        event_type: BrokerEventType,
        message: str,
        **kwargs
    ) -> BrokerEvent:
        """Create broker event."""
        return BrokerEvent(
            event_type=event_type,
            correlation_id=kwargs.get('correlation_id') or correlation_id_context.get(),
            component=self.name,
            operation=kwargs.get('operation'),
            status=kwargs.get('status'),
            duration_ms=kwargs.get('duration_ms'),
            metadata={
                'message': message,
                **kwargs.get('metadata', {})
            }
        )

    def _log_event(self, event: BrokerEvent, level: LogLevel, exc_info: bool = False) -> None:
        """Log broker event."""
        if self.logger.isEnabledFor(getattr(logging, level.value)):
            prefix = f"[{event.correlation_id}] " if event.correlation_id else ""
            self.logger.log(
                getattr(logging, level.value),
                f"{prefix}{event.metadata.get('message', '')}",
                extra={'broker_event': event.to_dict()},
                exc_info=exc_info
            )

        for handler in self._event_handlers:
            try:
                handler(event)
            except Exception as e:
                self.logger.error(f"Event handler error: {e}")

    def debug(self, message: str, event_type: BrokerEventType = BrokerEventType.CONNECTION, **kwargs):
        """Log debug message."""
        exc_info = kwargs.pop('exc_info', False)
        self._log_event(self._create_event(event_type, message, **kwargs), LogLevel.DEBUG, exc_info)

    def info(self, message: str, event_type: BrokerEventType = BrokerEventType.CONNECTION, **kwargs):
        """Log info message."""
        exc_info = kwargs.pop('exc_info', False)
        self._log_event(self._create_event(event_type, message, **kwargs), LogLevel.INFO, exc_info)

    def warning(self, message: str, event_type: BrokerEventType = BrokerEventType.ERROR, **kwargs):
        """Log warning message."""
        exc_info = kwargs.pop('exc_info', False)
        self._log_event(self._create_event(event_type, message, **kwargs), LogLevel.WARNING, exc_info)

    def error(self, message: str, event_type: BrokerEventType = BrokerEventType.ERROR, **kwargs):
        """Log error message."""
        exc_info = kwargs.pop('exc_info', False)
        self._log_event(self._create_event(event_type, message, **kwargs), LogLevel.ERROR, exc_info)

    def log_connection(self, state: str, url: str, **kwargs):
        """Log a connection state change."""
        self.info(
            f"Connection {state}: {url}",
            event_type=BrokerEventType.CONNECTION,
            operation=f"connection:{state}",
            status="success",
            metadata={'state': state, 'url': url, **kwargs}
        )

    def log_message_publish(
        self,
        destination: str,
        correlation_id: str,
        message_size: Optional[int] = None,
        **kwargs
    ):
        """Log message publish."""
        self.debug(
            f"Published message to {destination}",
            event_type=BrokerEventType.MESSAGE_PUBLISH,
            operation=f"publish:{destination}",
            status="success",
            correlation_id=correlation_id,
            metadata={
                'destination': destination,
                'message_size': message_size,
                **kwargs
            }
        )

    def log_message_consume(
        self,
        source: str,
        correlation_id: Optional[str] = None,
        status: str = "success",
        processing_time_ms: Optional[float] = None,
        **kwargs
    ):
        """Log message consumption."""
        log = self.debug if status == "success" else self.warning
        log(
            f"Consumed message from {source} ({status})",
            event_type=BrokerEventType.MESSAGE_CONSUME,
            operation=f"consume:{source}",
            status=status,
            correlation_id=correlation_id,
            duration_ms=processing_time_ms,
            metadata={'source': source, **kwargs}
        )

    def log_reply(self, reply_to: str, correlation_id: Optional[str], is_error: bool = False, **kwargs):
        """Log a reply sent back to a requester."""
        self.debug(
            f"Sending {'error' if is_error else 'success'} response to {reply_to}",
            event_type=BrokerEventType.REPLY,
            operation=f"reply:{reply_to}",
            status="failure" if is_error else "success",
            correlation_id=correlation_id,
            metadata={'reply_to': reply_to, **kwargs}
        )

    def add_event_handler(self, handler: Callable[[BrokerEvent], None]) -> None:
        """Add event handler."""
        self._event_handlers.append(handler)

    def remove_event_handler(self, handler: Callable[[BrokerEvent], None]) -> None:
        """Remove event handler."""
        if handler in self._event_handlers:
            self._event_handlers.remove(handler)


class CorrelationContext:
    """Context manager for correlation ID tracking."""

    def __init__(self, correlation_id: Optional[str] = None):
        self.correlation_id = correlation_id or str(uuid.uuid4())
        self._token = None

    def __enter__(self):
        self._token = correlation_id_context.set(self.correlation_id)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        correlation_id_context.reset(self._token)


def get_correlation_id() -> Optional[str]:
    """Get current correlation ID from context."""
    return correlation_id_context.get()


def set_correlation_id(correlation_id: str) -> None:
    """Set correlation ID in context."""
    correlation_id_context.set(correlation_id)
