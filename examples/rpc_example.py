"""
Message Broker SDK Example.

This example demonstrates:
- Connecting to RabbitMQ with automatic reconnection
- Request/reply over the direct reply-to queue with a timeout
- Broadcasting to every listener of a fanout exchange
- Topic routing with action adapters
- Error envelopes sent back by failing handlers

Requires a broker listening on ``MQ_HOST`` (``amqp://localhost:5672`` by default).
"""

import asyncio
import logging

from message_broker_sdk import (
    BrokerConfig,
    ConnectionEvent,
    MessageBroker,
    RPCClient,
    RPCServer,
    RemoteError,
    ReplyTimeoutError,
    invoke_action_with_payload,
    invoke_action_with_routing_key_and_payload,
    make_payload
)


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def create_order(params):
    """Example action creating an order."""
    if params.get('amount', 0) <= 0:
        raise ValueError("Order amount must be positive")
    return {'order_id': f"order-{params['customer_id']}", 'amount': params['amount']}


def record_event(params):
    logger.info(f"Audit event {params['event']}: {params['data']}")


async def setup_consumers(server: RPCServer):
    """Setup message consumers."""
    await server.receive_from_queue("orders.create", invoke_action_with_payload(create_order), prefetch=10)

    await server.receive_from_topic(
        "audit",
        "order.#",
        invoke_action_with_routing_key_and_payload(
            record_event,
            parser=lambda key, payload: {'event': key, 'data': payload.data}
        )
    )

    for i in range(3):
        await server.listen("announcements", lambda payload, i=i: logger.info(f"Listener {i} heard: {payload.data}"))


async def main():
    """Main example function."""
    broker = MessageBroker(BrokerConfig.from_env())
    broker.on(ConnectionEvent.CONNECT, lambda connection: logger.info("Connected to broker"))
    broker.on(ConnectionEvent.DISCONNECT, lambda: logger.warning("Disconnected from broker"))

    async with broker:
        client = RPCClient(broker)
        await setup_consumers(RPCServer(broker))

        reply = await client.request("orders.create", {'data': {'customer_id': 42, 'amount': 99.5}}, timeout=5000)
        logger.info(f"Created order: {reply.data}")

        reply = await client.request("orders.create", {'data': {'customer_id': 42, 'amount': 0}}, timeout=5000)
        try:
            reply.raise_for_error()
        except RemoteError as e:
            logger.info(f"Order rejected by consumer: {e}")

        await broker.send_to_topic("audit", "order.created", make_payload({'customer_id': 42}))
        await broker.broadcast("announcements", make_payload("maintenance at 22:00"))

        try:
            await client.request("nobody.listens", timeout=500)
        except ReplyTimeoutError as e:
            logger.info(f"Request timed out as expected: {e}")

        await asyncio.sleep(0.5)
        logger.info(f"Connection info: {broker.get_connection_info()}")


if __name__ == "__main__":
    asyncio.run(main())
