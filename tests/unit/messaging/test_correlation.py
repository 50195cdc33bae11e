"""
Tests for CorrelationRegistry.
"""

import asyncio

import pytest

from message_broker_sdk.communication.exceptions import BrokerError, ReplyTimeoutError
from message_broker_sdk.communication.messaging.correlation import CorrelationRegistry


class TestCorrelationRegistry:
    """Test cases for CorrelationRegistry."""

    @pytest.fixture
    def registry(self):
        return CorrelationRegistry()

    @pytest.mark.asyncio
    async def test_resolve(self, registry):
        pending = registry.register("abc", destination="tasks")

        assert "abc" in registry
        assert registry.resolve("abc", "reply") is True
        assert await pending.future == "reply"
        assert "abc" not in registry

    @pytest.mark.asyncio
    async def test_settles_only_once(self, registry):
        pending = registry.register("abc")

        assert registry.resolve("abc", 1) is True
        assert registry.resolve("abc", 2) is False
        assert registry.reject("abc", RuntimeError()) is False
        assert await pending.future == 1

    @pytest.mark.asyncio
    async def test_unknown_ids_are_ignored(self, registry):
        assert registry.resolve("unknown", 1) is False
        assert registry.resolve(None, 1) is False
        assert registry.reject(None, RuntimeError()) is False

    @pytest.mark.asyncio
    async def test_duplicate_registration(self, registry):
        registry.register("abc")

        with pytest.raises(BrokerError):
            registry.register("abc")

        assert len(registry) == 1

    @pytest.mark.asyncio
    async def test_reject(self, registry):
        pending = registry.register("abc")
        registry.reject("abc", RuntimeError("nope"))

        with pytest.raises(RuntimeError, match="nope"):
            await pending.future

    @pytest.mark.asyncio
    async def test_timeout(self, registry):
        pending = registry.register("abc", destination="tasks", timeout_ms=20)

        with pytest.raises(ReplyTimeoutError) as exc_info:
            await pending.future

        assert exc_info.value.context.destination == "tasks"
        assert exc_info.value.context.correlation_id == "abc"
        assert exc_info.value.message == "Timed out while waiting for response from consumer"
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_resolution_disarms_timeout(self, registry):
        pending = registry.register("abc", timeout_ms=30)
        registry.resolve("abc", "reply")

        await asyncio.sleep(0.06)

        assert pending.future.result() == "reply"
        assert pending.timeout_handle is None

    @pytest.mark.asyncio
    async def test_discard(self, registry):
        pending = registry.register("abc", timeout_ms=20)
        registry.discard("abc")

        await asyncio.sleep(0.04)

        assert "abc" not in registry
        assert not pending.done
