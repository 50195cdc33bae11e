"""
Broker Configuration for Message Broker SDK.

This module provides configuration management for the connection manager and
the publish/consume protocol layered on top of it.
"""

import os
from typing import Dict, Any, Optional
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, field_validator


# Pseudo-queue reserved by RabbitMQ for the direct reply-to pattern.
DEFAULT_REPLY_TO_QUEUE = "amq.rabbitmq.reply-to"

# Content type every envelope is published and consumed with.
PAYLOAD_CONTENT_TYPE = "application/json"

DEFAULT_BROKER_URL = "amqp://localhost:5672"


class ExchangeType(str, Enum):
    """Exchange types supported by the publish/consume operations."""
    FANOUT = "fanout"
    TOPIC = "topic"
    DIRECT = "direct"


class BrokerConfig(BaseModel):
    """Message broker connection configuration."""

    model_config = ConfigDict(frozen=True)

    url: str = Field(default=DEFAULT_BROKER_URL, description="Broker URL (a bare host:port is accepted)")
    heartbeat: float = Field(
        default=3.0,
        description="Seconds to wait before reconnecting after a failed attempt; 0 disables auto-reconnect"
    )
    connection_name: Optional[str] = Field(default=None, description="Connection name reported to the broker")
    reply_to_queue: str = Field(default=DEFAULT_REPLY_TO_QUEUE, description="Queue used when reply_to=True")
    content_type: str = Field(default=PAYLOAD_CONTENT_TYPE, description="Envelope content type")

    @field_validator('url')
    @classmethod
    def normalize_url(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Broker URL must not be empty")
        if "://" not in v:
            v = f"amqp://{v}"
        return v

    @field_validator('heartbeat')
    @classmethod
    def validate_heartbeat(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Heartbeat must be non-negative")
        return v

    @property
    def auto_reconnect(self) -> bool:
        """Whether lost or failed connections are retried automatically."""
        return self.heartbeat > 0

    @property
    def sanitized_url(self) -> str:
        """Broker URL with the password masked, for logging."""
        try:
            protocol, rest = self.url.split("://", 1)
            if "@" in rest:
                credentials, host_part = rest.split("@", 1)
                if ":" in credentials:
                    username, _ = credentials.split(":", 1)
                    return f"{protocol}://{username}:***@{host_part}"
            return self.url
        except ValueError:
            return "***"

    @classmethod
    def from_env(cls) -> 'BrokerConfig':
        """Create configuration from environment variables."""
        config_data: Dict[str, Any] = {}

        if os.getenv('MQ_HOST'):
            config_data['url'] = os.getenv('MQ_HOST')

        if os.getenv('MQ_HEARTBEAT'):
            config_data['heartbeat'] = float(os.getenv('MQ_HEARTBEAT'))

        if os.getenv('MQ_CONNECTION_NAME'):
            config_data['connection_name'] = os.getenv('MQ_CONNECTION_NAME')

        return cls(**config_data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return self.model_dump()


DEFAULT_BROKER_CONFIG = BrokerConfig()
