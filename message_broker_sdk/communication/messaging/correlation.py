"""
Correlation registry for Message Broker SDK.

Maps correlation IDs to the requests waiting on a reply. Each pending request
owns a future that is settled exactly once: by the first matching reply, or by
its timeout, whichever comes first.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..exceptions import BrokerError, create_timeout_error
from ..logging import BrokerLogger, BrokerEventType


@dataclass
class PendingRequest:
    """A request waiting for its reply."""

    correlation_id: str
    future: asyncio.Future
    destination: str = ""
    timeout_ms: float = 0
    timeout_handle: Optional[asyncio.TimerHandle] = None

    @property
    def done(self) -> bool:
        return self.future.done()

    def disarm(self) -> None:
        """Cancel the timeout timer, if armed."""
        if self.timeout_handle is not None:
            self.timeout_handle.cancel()
            self.timeout_handle = None


class CorrelationRegistry:
    """
    Registry of pending requests keyed by correlation ID.

    A correlation ID maps to at most one pending request. Settling a request
    removes it, so any later delivery bearing the same ID is ignored.
    """

    def __init__(self, logger: Optional[BrokerLogger] = None):
        self._pending: Dict[str, PendingRequest] = {}
        self.logger = logger or BrokerLogger("correlation_registry")

    def __contains__(self, correlation_id: str) -> bool:
        return correlation_id in self._pending

    def __len__(self) -> int:
        return len(self._pending)

    def register(
        self,
        correlation_id: str,
        destination: str = "",
        timeout_ms: float = 0
    ) -> PendingRequest:
        """
        Register a request waiting for a reply.

        Args:
            correlation_id: Correlation ID of the request
            destination: Queue or exchange the request was sent to (for errors and logs)
            timeout_ms: Milliseconds to wait before rejecting; 0 waits forever

        Returns:
            The pending request

        Raises:
            BrokerError: If a request with the same correlation ID is already pending
        """
        if correlation_id in self._pending:
            raise BrokerError(
                "A request with this correlation ID is already pending",
                correlation_id=correlation_id,
                destination=destination
            )

        loop = asyncio.get_running_loop()
        pending = PendingRequest(
            correlation_id=correlation_id,
            future=loop.create_future(),
            destination=destination,
            timeout_ms=timeout_ms
        )

        if timeout_ms and timeout_ms > 0:
            pending.timeout_handle = loop.call_later(timeout_ms / 1000, self._expire, correlation_id)

        self._pending[correlation_id] = pending
        return pending

    def resolve(self, correlation_id: Optional[str], value: Any) -> bool:
        """
        Resolve the request waiting on ``correlation_id``.

        Returns:
            True if a pending request was resolved, False if none was waiting
        """
        pending = self._pending.pop(correlation_id, None) if correlation_id else None
        if pending is None:
            return False

        pending.disarm()
        if not pending.future.done():
            pending.future.set_result(value)
        return True

    def reject(self, correlation_id: Optional[str], error: BaseException) -> bool:
        """
        Reject the request waiting on ``correlation_id``.

        Returns:
            True if a pending request was rejected, False if none was waiting
        """
        pending = self._pending.pop(correlation_id, None) if correlation_id else None
        if pending is None:
            return False

        pending.disarm()
        if not pending.future.done():
            pending.future.set_exception(error)
        return True

    def discard(self, correlation_id: str) -> None:
        """Forget a pending request without settling it."""
        pending = self._pending.pop(correlation_id, None)
        if pending is not None:
            pending.disarm()

    def _expire(self, correlation_id: str) -> None:
        pending = self._pending.get(correlation_id)
        if pending is None:
            return

        pending.timeout_handle = None
        self.logger.warning(
            f"Timed out after {pending.timeout_ms}ms waiting for a reply from {pending.destination}",
            event_type=BrokerEventType.REPLY,
            operation="await_reply",
            status="timeout",
            correlation_id=correlation_id
        )
        self.reject(
            correlation_id,
            create_timeout_error(pending.destination, pending.timeout_ms, correlation_id)
        )
