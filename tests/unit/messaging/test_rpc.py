"""
Tests for RPCClient and RPCServer.
"""

import aio_pika
import pytest

from message_broker_sdk.communication.exceptions import InvalidReplyError, ReplyTimeoutError
from message_broker_sdk.communication.messaging.payload import MessagePayload, make_payload
from message_broker_sdk.communication.messaging.rpc import RPCClient, RPCServer


class TestRPC:
    """Test cases for the RPC wrappers."""

    @pytest.fixture
    def client(self, broker):
        return RPCClient(broker)

    @pytest.fixture
    def server(self, broker):
        return RPCServer(broker)

    @pytest.mark.asyncio
    async def test_send_to_queue_waits_for_reply(self, client, server, broker, amqp):
        await server.receive_from_queue("square", lambda payload: make_payload(payload.data ** 2))

        reply = await client.send_to_queue("square", {'data': 9})

        assert isinstance(reply, MessagePayload)
        assert reply.data == 81
        assert amqp.published[0]['message'].reply_to == "amq.rabbitmq.reply-to"
        await broker.close()

    @pytest.mark.asyncio
    async def test_request(self, client, server, broker):
        await server.receive_from_queue("greet", lambda payload: make_payload(f"hello {payload.data}"))

        reply = await client.request("greet", {'data': "world"}, timeout=1000)

        assert reply.data == "hello world"
        await broker.close()

    @pytest.mark.asyncio
    async def test_request_timeout(self, client, broker):
        with pytest.raises(ReplyTimeoutError):
            await client.request("nobody", {'data': 1}, timeout=20)

        await broker.close()

    @pytest.mark.asyncio
    async def test_exchange_variants(self, client, server, broker):
        await server.receive_from_direct_exchange("jobs", "resize", lambda payload: make_payload("resized"))
        await server.receive_from_topic("events", "user.*", lambda key, payload: make_payload(key))
        await server.listen("broadcasts", lambda payload: make_payload("heard"))

        assert (await client.send_to_direct_exchange("jobs", "resize", {'data': 1})).data == "resized"
        assert (await client.send_to_topic("events", "user.created", {'data': 1})).data == "user.created"
        assert (await client.send_to_exchange("broadcasts", {'data': 1})).data == "heard"
        await broker.close()

    @pytest.mark.asyncio
    async def test_receive_from_exchange(self, client, server, broker):
        await server.receive_from_exchange(
            "math",
            lambda key, payload: make_payload(sum(payload.data)),
            exchange_type="direct",
            keys="sum"
        )

        reply = await client.send_to_direct_exchange("math", "sum", {'data': [1, 2, 3]})

        assert reply.data == 6
        await broker.close()

    @pytest.mark.asyncio
    async def test_invalid_reply(self, client, broker, amqp):
        await broker.connect()
        channel = await amqp.live_connections[0].channel()
        queue = await channel.declare_queue("legacy")

        async def reply_with_plain_json(message):
            await channel.default_exchange.publish(
                aio_pika.Message(b'"not an envelope"', content_type="application/json",
                                 correlation_id=message.correlation_id),
                routing_key=message.reply_to
            )

        await queue.consume(reply_with_plain_json, no_ack=True)

        assert await broker.send_to_queue("legacy", reply_to=True) == "not an envelope"
        with pytest.raises(InvalidReplyError):
            await client.send_to_queue("legacy")

        await broker.close()

    @pytest.mark.asyncio
    async def test_undecodable_reply(self, client, broker, amqp):
        await broker.connect()
        channel = await amqp.live_connections[0].channel()
        queue = await channel.declare_queue("legacy")

        async def reply_with_html(message):
            await channel.default_exchange.publish(
                aio_pika.Message(b'<html>oops', content_type="application/json",
                                 correlation_id=message.correlation_id),
                routing_key=message.reply_to
            )

        await queue.consume(reply_with_html, no_ack=True)

        with pytest.raises(InvalidReplyError) as exc_info:
            await client.send_to_queue("legacy", timeout=1000)

        assert exc_info.value.context.operation == "await_reply"
        assert broker.channels.channels == []
        await broker.close()
