"""
Message bus transport built on kombu (AMQP / RabbitMQ).

BusTransport owns the one process-wide broker connection. It is created
at service startup and handed to every component that publishes or
consumes; nothing else opens connections of its own. Consumers run on
cloned connections via kombu's ConsumerMixin, so a slow callback never
shares a socket with publishers.
"""
import logging
import threading
from typing import Callable, Optional, Union

from kombu import Connection, Producer, Queue
from kombu.mixins import ConsumerMixin

from .config import BusSettings
from .errors import TransportError
from .lifecycle import Worker

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT_SECONDS = 30
CONNECT_MAX_RETRIES = 3

# kombu retry policy applied to each publish; reconnects between attempts
PUBLISH_RETRY_POLICY = {
    "interval_start": 0,
    "interval_step": 1,
    "interval_max": 5,
    "max_retries": 3,
}


def durable_queue(name: str) -> Queue:
    """Durable, non-exclusive, non-auto-delete queue bound to the default exchange."""
    return Queue(name, routing_key=name, durable=True, exclusive=False, auto_delete=False)


def decode_body(body: Union[bytes, str]) -> str:
    if isinstance(body, bytes):
        return body.decode("utf-8")
    return body


class BusTransport:
    """Connection, channel and queue declarations for one broker."""

    def __init__(self, settings: BusSettings, transport: str = "pyamqp"):
        self.settings = settings
        self.transport = transport
        self._connection: Optional[Connection] = None
        self._channel = None
        self._producer: Optional[Producer] = None
        self._declared: set[str] = set()
        self._lock = threading.RLock()

    def connect(self):
        """Open the connection and channel. Does nothing when already connected."""
        with self._lock:
            if self.is_connected():
                return

            s = self.settings
            connection = Connection(
                hostname=s.host,
                port=s.port,
                userid=s.username,
                password=s.password,
                virtual_host="/",
                connect_timeout=CONNECT_TIMEOUT_SECONDS,
                transport=self.transport,
                # publish() blocks until the broker acks and raises on a nack
                transport_options={"confirm_publish": True},
            )
            try:
                connection.ensure_connection(
                    errback=self._on_connection_error,
                    max_retries=CONNECT_MAX_RETRIES,
                )
                channel = connection.channel()
            except Exception as e:
                connection.release()
                raise TransportError(f"Could not connect to broker at {s.host}:{s.port}: {e}") from e

            self._connection = connection
            self._channel = channel
            self._producer = Producer(channel)
            self._declared.clear()
            logger.info(f"Connected to broker at {s.host}:{s.port}")

    def is_connected(self) -> bool:
        return self._connection is not None and self._connection.connected

    def declare_queue(self, name: str):
        """Declare a durable queue. Safe to call repeatedly."""
        with self._lock:
            self._ensure_channel_open()
            try:
                durable_queue(name)(self._channel).declare()
            except self._connection.connection_errors + self._connection.channel_errors as e:
                raise TransportError(f"Failed to declare queue {name}: {e}") from e
            if name not in self._declared:
                self._declared.add(name)
                logger.info(f"Queue declared: {name}")

    def publish(self, queue: str, message: str):
        """Publish a UTF-8 JSON message to a queue via the default exchange."""
        with self._lock:
            self._ensure_channel_open()
            try:
                self._producer.publish(
                    message.encode("utf-8"),
                    exchange="",
                    routing_key=queue,
                    content_type="application/json",
                    content_encoding="utf-8",
                    delivery_mode=2,
                    retry=True,
                    retry_policy=PUBLISH_RETRY_POLICY,
                )
            except self._connection.connection_errors + self._connection.channel_errors as e:
                raise TransportError(f"Failed to publish to {queue}: {e}") from e
        logger.debug(f"Published message to {queue}")

    def get_queue(self, name: str) -> "QueueHandle":
        if not self.is_connected():
            raise TransportError("No connection")
        return QueueHandle(self, name)

    def consumer(self, queue: str, on_message: Callable[[str], None]) -> "QueueConsumer":
        if self._connection is None:
            raise TransportError("No connection")
        return QueueConsumer(self._connection.clone(), queue, on_message)

    def enable_confirms(self):
        """
        Put the channel into confirm mode where the transport supports it.

        The waiting on broker acks itself happens in publish(), through the
        connection's confirm_publish transport option.
        """
        with self._lock:
            self._ensure_channel_open()
            confirm_select = getattr(self._channel, "confirm_select", None)
            if confirm_select is not None:
                confirm_select()

    def close(self):
        """Close channel and connection. Does nothing without a connection."""
        with self._lock:
            if self._connection is None:
                return
            try:
                if self._channel is not None:
                    self._channel.close()
            finally:
                self._connection.release()
                self._connection = None
                self._channel = None
                self._producer = None
                logger.info("Broker connection closed")

    def _ensure_channel_open(self):
        if self._connection is None or self._channel is None:
            raise TransportError("Broker channel is closed")

    def _on_connection_error(self, exc, interval):
        logger.warning(f"Broker connection failed: {exc}. Retrying in {interval}s")


class QueueHandle:
    """A publisher/consumer bound to one named queue."""

    def __init__(self, bus: BusTransport, name: str):
        self.bus = bus
        self.name = name
        self._consumers: list[QueueConsumer] = []
        bus.declare_queue(name)
        bus.enable_confirms()

    def send_message(self, message: str):
        self.bus.publish(self.name, message)

    def consumer(self, on_message: Callable[[str], None]) -> "QueueConsumer":
        consumer = self.bus.consumer(self.name, on_message)
        self._consumers.append(consumer)
        return consumer

    def close(self):
        """Stop every consumer created through this handle."""
        for consumer in self._consumers:
            consumer.stop()
        self._consumers.clear()


class QueueConsumer(ConsumerMixin, Worker):
    """
    Auto-acknowledging consumer thread for one queue.

    Each delivery body is decoded and handed to on_message. Errors from the
    callback are logged and the delivery is dropped. Connection loss is
    handled by ConsumerMixin, which reconnects and re-registers.
    """

    def __init__(self, connection: Connection, queue: str, on_message: Callable[[str], None]):
        Worker.__init__(self, f"consumer-{queue}")
        self.connection = connection
        self.queue = queue
        self.on_message = on_message

    def get_consumers(self, Consumer_, channel):
        return [
            Consumer_(
                queues=[durable_queue(self.queue)],
                on_message=self._handle_message,
                no_ack=True,
            )
        ]

    @property
    def should_stop(self) -> bool:
        return self.stopped

    @should_stop.setter
    def should_stop(self, value: bool):
        if value:
            self._stop_event.set()

    def on_connection_error(self, exc, interval):
        logger.warning(f"{self.name}: broker connection lost ({exc}), reconnecting in {interval}s")

    def run(self):
        logger.info(f"Consuming from {self.queue}")
        try:
            ConsumerMixin.run(self)
        finally:
            self.connection.release()

    def _handle_message(self, message):
        try:
            self.on_message(decode_body(message.body))
        except Exception:
            logger.exception(f"Failed to handle message from {self.queue}")
