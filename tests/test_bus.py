"""
Tests for the kombu bus transport, run against the in-memory transport.
"""
import threading

import pytest

from offerflow.core.bus import BusTransport, QueueConsumer, decode_body, durable_queue
from offerflow.core.errors import TransportError
from tests.conftest import BUS_SETTINGS, collect_messages


class TestBusTransport:
    """Tests for connection handling and publishing."""

    def test_connect_is_idempotent(self, memory_bus):
        connection = memory_bus._connection
        memory_bus.connect()
        assert memory_bus._connection is connection
        assert memory_bus.is_connected()

    def test_publishes_are_confirmed(self, memory_bus):
        """The connection asks the transport to wait for broker acks on publish."""
        assert memory_bus._connection.transport_options["confirm_publish"] is True

    def test_consumer_connection_keeps_options(self, memory_bus, queue_name):
        consumer = memory_bus.consumer(queue_name, lambda body: None)
        assert consumer.connection.transport_options["confirm_publish"] is True
        consumer.connection.release()

    def test_not_connected_initially(self):
        bus = BusTransport(BUS_SETTINGS, transport="memory")
        assert not bus.is_connected()

    def test_get_queue_without_connection(self):
        bus = BusTransport(BUS_SETTINGS, transport="memory")
        with pytest.raises(TransportError, match="No connection"):
            bus.get_queue("OfferInput")

    def test_publish_without_connection(self):
        bus = BusTransport(BUS_SETTINGS, transport="memory")
        with pytest.raises(TransportError, match="closed"):
            bus.publish("OfferInput", "{}")

    def test_publish_after_close(self, memory_bus, queue_name):
        memory_bus.close()
        with pytest.raises(TransportError):
            memory_bus.publish(queue_name, "{}")

    def test_close_twice(self, memory_bus):
        memory_bus.close()
        memory_bus.close()
        assert not memory_bus.is_connected()

    def test_close_without_connect(self):
        BusTransport(BUS_SETTINGS, transport="memory").close()

    def test_declare_is_repeatable(self, memory_bus, queue_name):
        memory_bus.declare_queue(queue_name)
        memory_bus.declare_queue(queue_name)


class TestPublishConsume:
    """Round trips through declared queues."""

    def test_messages_arrive_in_order(self, memory_bus, queue_name):
        memory_bus.declare_queue(queue_name)
        for i in range(5):
            memory_bus.publish(queue_name, f'{{"n": {i}}}')

        assert collect_messages(memory_bus, queue_name, 5) == [f'{{"n": {i}}}' for i in range(5)]

    def test_unicode_body(self, memory_bus, queue_name):
        memory_bus.declare_queue(queue_name)
        memory_bus.publish(queue_name, '{"city": "Düsseldorf"}')
        assert collect_messages(memory_bus, queue_name, 1) == ['{"city": "Düsseldorf"}']

    def test_queue_handle(self, memory_bus, queue_name):
        handle = memory_bus.get_queue(queue_name)
        handle.send_message("one")
        handle.send_message("two")

        received = []
        done = threading.Event()

        def on_message(body):
            received.append(body)
            if len(received) == 2:
                done.set()

        consumer = handle.consumer(on_message)
        assert isinstance(consumer, QueueConsumer)
        consumer.start()
        try:
            assert done.wait(10)
        finally:
            handle.close()
            consumer.join(5)

        assert received == ["one", "two"]
        assert not consumer.running

    def test_failing_callback_does_not_stop_consumer(self, memory_bus, queue_name):
        memory_bus.declare_queue(queue_name)
        received = []
        done = threading.Event()

        def on_message(body):
            if body == "bad":
                raise ValueError("cannot handle")
            received.append(body)
            done.set()

        memory_bus.publish(queue_name, "bad")
        memory_bus.publish(queue_name, "good")

        consumer = memory_bus.consumer(queue_name, on_message)
        consumer.start()
        try:
            assert done.wait(10)
        finally:
            consumer.stop()
            consumer.join(5)

        assert received == ["good"]


class TestHelpers:
    """Tests for small transport helpers."""

    def test_durable_queue(self):
        q = durable_queue("ProcessedOffers")
        assert q.name == "ProcessedOffers"
        assert q.routing_key == "ProcessedOffers"
        assert q.durable
        assert not q.exclusive
        assert not q.auto_delete

    def test_decode_body(self):
        assert decode_body("Grüße".encode("utf-8")) == "Grüße"
        assert decode_body("plain") == "plain"
