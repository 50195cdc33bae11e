"""
Channel lifecycle for Message Broker SDK.

Each publish or consume operation runs on a channel of its own. The registry
hands those channels out, keeps track of the ones still open and forgets them
as soon as they close.
"""

from typing import Any, List, Optional

from aio_pika.abc import AbstractChannel

from ..logging import BrokerLogger, BrokerEventType
from .connection import ConnectionEvent, ConnectionManager


class ChannelRegistry:
    """
    Registry of the channels opened on a connection manager.

    Channels requested while the manager is disconnected wait for the next
    ``connect`` event and are then created on the fresh connection.
    """

    def __init__(self, manager: ConnectionManager, logger: Optional[BrokerLogger] = None):
        """
        Initialize channel registry.

        Args:
            manager: Connection manager the channels are opened on
            logger: Broker logger
        """
        self.manager = manager
        self.logger = logger or BrokerLogger("channel_registry")
        self._channels: List[AbstractChannel] = []

        manager.events.add_listener(ConnectionEvent.DISCONNECT, self._on_disconnect)

    @property
    def channels(self) -> List[AbstractChannel]:
        """Snapshot of the open channels."""
        return list(self._channels)

    def __len__(self) -> int:
        return len(self._channels)

    async def create_channel(self) -> AbstractChannel:
        """
        Open a channel on the current connection.

        Suspends until the next successful connection when the manager is
        disconnected.
        """
        while True:
            connection = self.manager.connection
            if connection is None:
                self.logger.debug(
                    "No connection available, waiting for the next connect event",
                    event_type=BrokerEventType.CHANNEL
                )
                await self.manager.wait_until_connected()
                continue

            channel = await connection.channel()
            self._channels.append(channel)
            channel.close_callbacks.add(self._on_channel_closed)

            self.logger.debug(
                f"Channel opened ({len(self._channels)} open)",
                event_type=BrokerEventType.CHANNEL,
                operation="channel:open"
            )
            return channel

    async def close_channel(self, channel: AbstractChannel) -> None:
        """Close a channel, logging instead of raising if that fails."""
        self._forget(channel)
        try:
            if not channel.is_closed:
                await channel.close()
        except Exception as e:
            self.logger.warning(f"Failed to close channel because: {e}", event_type=BrokerEventType.CHANNEL)

    async def close_all(self) -> None:
        """Close every open channel."""
        for channel in self.channels:
            await self.close_channel(channel)

    def _on_channel_closed(self, sender: Any, exc: Optional[BaseException] = None) -> None:
        self._forget(sender)
        self.logger.debug("Channel closed", event_type=BrokerEventType.CHANNEL, operation="channel:close")

    def _on_disconnect(self) -> None:
        self._channels = [c for c in self._channels if not c.is_closed]

    def _forget(self, channel: AbstractChannel) -> None:
        if channel in self._channels:
            self._channels.remove(channel)
