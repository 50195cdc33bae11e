"""
Message payload codec for Message Broker SDK.

Every message travels as a JSON envelope ``{"data": ..., "error"?: {...}}``.
The ``error`` member is the discriminant: an envelope carrying it is a failure,
one without it is a success, whatever ``data`` happens to contain.
"""

import json
import traceback
import uuid
from collections.abc import Mapping
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from ..exceptions import (
    BrokerError,
    InvalidPayloadError,
    MessageSerializationError,
    RemoteError
)


class SerializedError(BaseModel):
    """Machine-parsable representation of an exception."""

    model_config = ConfigDict(frozen=True, extra='allow')

    name: str
    message: str
    stack: str = ""

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v:
            raise ValueError("Error name must not be empty")
        return v


class MessagePayload(BaseModel):
    """Immutable message envelope."""

    model_config = ConfigDict(frozen=True, extra='forbid')

    data: Any
    error: Optional[SerializedError] = None

    @property
    def is_error(self) -> bool:
        """True if this envelope carries an error."""
        return self.error is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert payload to its wire dictionary."""
        result: Dict[str, Any] = {'data': self.data}
        if self.error is not None:
            result['error'] = self.error.model_dump()
        return result

    def raise_for_error(self) -> None:
        """Raise the carried error as a ``RemoteError``, if any."""
        if self.error is not None:
            raise deserialize_error(self.error)


def serialize_error(error: BaseException) -> SerializedError:
    """
    Serialize an exception into a ``SerializedError``.

    ``RemoteError`` instances keep the name and stack of the error they were
    created from, so errors relayed across several hops stay recognizable.
    """
    if isinstance(error, RemoteError):
        return SerializedError(
            name=error.name,
            message=error.message,
            stack=error.stack,
            **error.extra
        )

    stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
    extra: Dict[str, Any] = {}

    if isinstance(error, BrokerError):
        extra['context'] = error.context.to_dict()

    code = getattr(error, 'code', None)
    if isinstance(code, (str, int)):
        extra['code'] = code

    return SerializedError(
        name=type(error).__name__,
        message=str(error),
        stack=stack,
        **extra
    )


def deserialize_error(error: SerializedError) -> RemoteError:
    """Turn a ``SerializedError`` back into an exception."""
    extra = dict(error.model_extra or {})
    return RemoteError(error.message, name=error.name, stack=error.stack, extra=extra)


def make_payload(value: Any = None) -> MessagePayload:
    """
    Wrap a value into a message payload.

    ``None`` gives an empty success envelope, an exception gives an error
    envelope with ``data`` set to ``None``, and any other value becomes the
    envelope's data. An existing payload is returned unchanged.
    """
    if isinstance(value, MessagePayload):
        return value
    if value is None:
        return MessagePayload(data=None)
    if isinstance(value, BaseException):
        return MessagePayload(data=None, error=serialize_error(value))
    return MessagePayload(data=value)


def to_message_payload(value: Any) -> MessagePayload:
    """
    Validate a value against the envelope shape.

    Accepts ``MessagePayload`` instances and mappings holding ``data`` and,
    optionally, ``error``.

    Raises:
        InvalidPayloadError: If the value is not a well-formed envelope
    """
    if isinstance(value, MessagePayload):
        return value

    if not isinstance(value, Mapping):
        raise InvalidPayloadError(f"Invalid payload format: expected an envelope, got {type(value).__name__}")

    keys = set(value.keys())
    if 'data' not in keys or not keys <= {'data', 'error'}:
        raise InvalidPayloadError(f"Invalid payload format: unexpected keys {sorted(map(str, keys))}")

    try:
        return MessagePayload.model_validate(dict(value))
    except ValidationError as e:
        raise InvalidPayloadError(f"Invalid payload format: {e}", cause=e) from e


def is_message_payload(value: Any) -> bool:
    """Check whether a value is a well-formed message payload."""
    try:
        to_message_payload(value)
    except InvalidPayloadError:
        return False
    return True


def encode_payload(payload: MessagePayload) -> bytes:
    """
    Serialize a payload to its JSON byte representation.

    Raises:
        MessageSerializationError: If the payload holds values JSON cannot
            represent, such as datetimes, sets or NaN
    """
    try:
        return json.dumps(payload.to_dict(), allow_nan=False).encode('utf-8')
    except (TypeError, ValueError) as e:
        raise MessageSerializationError(f"Failed to serialize payload: {e}", cause=e) from e


def decode_body(body: bytes) -> Any:
    """Deserialize a JSON message body without checking its shape."""
    try:
        return json.loads(body.decode('utf-8'))
    except (UnicodeDecodeError, ValueError) as e:
        raise MessageSerializationError(f"Failed to deserialize payload: {e}", cause=e) from e


def decode_payload(body: bytes) -> MessagePayload:
    """Deserialize a JSON message body into a payload."""
    value = decode_body(body)
    try:
        return to_message_payload(value)
    except InvalidPayloadError as e:
        raise MessageSerializationError(e.message, cause=e) from e


def create_correlation_id() -> str:
    """Create a random correlation ID."""
    return str(uuid.uuid4())


def is_correlation_id(value: Any) -> bool:
    """Check whether a value looks like a correlation ID."""
    return isinstance(value, str) and bool(value)
