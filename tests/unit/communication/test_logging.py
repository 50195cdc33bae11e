"""
Tests for BrokerLogger.
"""

import logging

from message_broker_sdk.communication.logging import (
    BrokerEventType,
    BrokerLogger,
    CorrelationContext,
    LogLevel,
    get_correlation_id,
    set_correlation_id
)


class TestBrokerLogger:
    """Test cases for BrokerLogger."""

    def test_records_carry_structured_events(self, caplog):
        logger = BrokerLogger("test", level=LogLevel.DEBUG)

        with caplog.at_level(logging.DEBUG, logger="message_broker.test"):
            logger.log_message_publish("tasks", "abc", message_size=12)

        record = caplog.records[0]
        assert record.name == "message_broker.test"
        assert record.getMessage() == "[abc] Published message to tasks"
        assert record.broker_event['event_type'] == BrokerEventType.MESSAGE_PUBLISH
        assert record.broker_event['metadata']['message_size'] == 12

    def test_event_handlers(self):
        logger = BrokerLogger("test")
        events = []
        logger.add_event_handler(events.append)

        logger.log_connection("established", "amqp://localhost:5672")
        logger.remove_event_handler(events.append)
        logger.info("not recorded")

        assert len(events) == 1
        assert events[0].operation == "connection:established"
        assert events[0].metadata['url'] == "amqp://localhost:5672"

    def test_failing_consume_is_logged_as_warning(self, caplog):
        logger = BrokerLogger("test")

        with caplog.at_level(logging.DEBUG, logger="message_broker.test"):
            logger.log_message_consume("tasks", status="failure")

        assert caplog.records[0].levelno == logging.WARNING

    def test_correlation_context(self):
        logger = BrokerLogger("test")
        events = []
        logger.add_event_handler(events.append)

        with CorrelationContext("abc") as context:
            assert get_correlation_id() == "abc"
            logger.info("inside")

        assert context.correlation_id == "abc"
        assert get_correlation_id() is None
        assert events[0].correlation_id == "abc"

    def test_set_correlation_id(self):
        with CorrelationContext():
            set_correlation_id("xyz")
            assert get_correlation_id() == "xyz"
