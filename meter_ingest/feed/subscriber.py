"""
MQTT feed subscriber for meter telemetry.

Keeps a persistent subscription to the meter topic (``meter/data`` by
default) and feeds every message to the ingestion writer. Two kinds of
asyncio task cooperate through a bounded ``asyncio.Queue``:

1. **Receive task**: owns the aiomqtt client. Connects, subscribes, and
   puts raw payloads on the queue. A payload arriving while the queue
   holds ``queue_max`` messages is logged and dropped. When the link
   drops it goes back to ``CONNECTING``, waits ``reconnect_interval_s``
   and starts over.
2. **Dispatch tasks**: take payloads off the queue, decode them as JSON
   and call ``IngestionWriter.write_payload``.

A message that fails to decode, validate or store is logged and dropped;
the subscription keeps running. Delivery is at-least-once with no
deduplication, so a redelivered message is stored as a new row.

CHANGELOG:
- 2026-10-15: Initial creation (STORY-004)
- 2026-10-16: Drain queued messages on shutdown (STORY-009)
- 2026-10-18: Bound the dispatch queue, drop on overflow (STORY-011)

TODO:
- None
"""

import asyncio
import enum
import json
import logging
import ssl
from collections.abc import Callable
from contextlib import suppress
from typing import Any

import aiomqtt

from meter_ingest.config import BrokerEndpoint, Settings
from meter_ingest.db.models import MeterReading
from meter_ingest.errors import DecodeError, ReadingValidationError, StoreError
from meter_ingest.services.ingestion import IngestionWriter

logger = logging.getLogger(__name__)

DEFAULT_TOPIC = "meter/data"


class FeedState(enum.Enum):
    """Subscription lifecycle states."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"


def decode_payload(payload: Any) -> dict[str, Any]:
    """Decode a raw MQTT payload into a JSON object.

    Args:
        payload: Message payload, normally ``bytes``.

    Returns:
        dict: The decoded JSON object.

    Raises:
        DecodeError: If the payload is not UTF-8 JSON or not an object.
    """
    if isinstance(payload, (bytes, bytearray)):
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError as err:
            raise DecodeError(f"Payload is not UTF-8: {err}") from err
    if not isinstance(payload, str):
        raise DecodeError(f"Unsupported payload type {type(payload).__name__}")
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as err:
        raise DecodeError(f"Payload is not valid JSON: {err}") from err
    if not isinstance(data, dict):
        raise DecodeError("Payload is not a JSON object")
    return data


class FeedSubscriber:
    """Persistent MQTT subscription feeding the ingestion writer.

    Args:
        writer: Ingestion writer shared with the HTTP API.
        endpoint: Broker connection parameters.
        topic: Topic to subscribe to.
        qos: Subscription QoS.
        client_id: MQTT client identifier; random when empty.
        reconnect_interval_s: Delay before reconnecting after link loss.
        workers: Number of concurrent dispatch tasks.
        queue_max: Payloads held for dispatch before new ones are dropped.
        client_factory: Builds a fresh aiomqtt client per connection
            attempt. Defaults to one built from *endpoint*.
    """

    def __init__(
        self,
        writer: IngestionWriter,
        endpoint: BrokerEndpoint,
        *,
        topic: str = DEFAULT_TOPIC,
        qos: int = 1,
        client_id: str = "",
        reconnect_interval_s: float = 5.0,
        workers: int = 1,
        queue_max: int = 1000,
        client_factory: Callable[[], Any] | None = None,
    ) -> None:
        self._writer = writer
        self._endpoint = endpoint
        self._topic = topic
        self._qos = qos
        self._client_id = client_id
        self._reconnect_interval_s = reconnect_interval_s
        self._workers = workers
        self._client_factory = client_factory or self._default_client

        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=queue_max)
        self._state = FeedState.DISCONNECTED
        self._receive_task: asyncio.Task | None = None
        self._dispatch_tasks: list[asyncio.Task] = []

    @classmethod
    def from_settings(cls, settings: Settings, writer: IngestionWriter) -> "FeedSubscriber":
        """Build a subscriber from application settings."""
        return cls(
            writer,
            settings.broker_endpoint(),
            topic=settings.MQTT_TOPIC,
            qos=settings.MQTT_QOS,
            client_id=settings.MQTT_CLIENT_ID,
            reconnect_interval_s=settings.MQTT_RECONNECT_INTERVAL_S,
            workers=settings.MQTT_DISPATCH_WORKERS,
            queue_max=settings.MQTT_QUEUE_MAX,
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> FeedState:
        """Current subscription state."""
        return self._state

    @property
    def connected(self) -> bool:
        """Whether the subscription is live."""
        return self._state is FeedState.SUBSCRIBED

    @property
    def pending(self) -> int:
        """Messages received but not yet dispatched."""
        return self._queue.qsize()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the receive task and the dispatch tasks."""
        if self._receive_task is not None:
            return
        self._dispatch_tasks = [
            asyncio.create_task(self._dispatch_loop(), name=f"feed-dispatch-{i}")
            for i in range(self._workers)
        ]
        self._receive_task = asyncio.create_task(self._receive_loop(), name="feed-receive")

    async def stop(self, drain_timeout_s: float = 5.0) -> None:
        """Stop receiving, give queued messages a chance to land, then stop.

        Args:
            drain_timeout_s: Seconds to wait for queued messages to be
                dispatched before the dispatch tasks are cancelled.
        """
        if self._receive_task is not None:
            self._receive_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._receive_task
            self._receive_task = None
        self._state = FeedState.DISCONNECTED

        if self._dispatch_tasks:
            try:
                await asyncio.wait_for(self._queue.join(), timeout=drain_timeout_s)
            except TimeoutError:
                logger.warning(
                    "Dropping %d undispatched feed messages on shutdown",
                    self._queue.qsize(),
                )
            for task in self._dispatch_tasks:
                task.cancel()
            await asyncio.gather(*self._dispatch_tasks, return_exceptions=True)
            self._dispatch_tasks = []
        logger.info("Feed subscriber stopped")

    # ------------------------------------------------------------------
    # Message handling
    # ------------------------------------------------------------------

    async def handle_payload(self, payload: Any) -> MeterReading | None:
        """Decode one payload and hand it to the writer.

        Never raises for bad input or store failures: the message is logged
        and dropped.

        Returns:
            MeterReading or None: The stored row, or None if dropped.
        """
        try:
            data = decode_payload(payload)
            reading = await self._writer.write_payload(data)
        except (DecodeError, ReadingValidationError) as err:
            logger.warning("Dropping feed message: %s", err)
            return None
        except StoreError:
            logger.error("MQTT processing error: failed to store message", exc_info=True)
            return None

        logger.info(
            "Data saved from MQTT: id=%s meter_id=%s kwh=%s",
            reading.id,
            reading.meter_id,
            reading.kwh,
        )
        return reading

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _default_client(self) -> aiomqtt.Client:
        """Build an aiomqtt client from the broker endpoint."""
        return aiomqtt.Client(
            hostname=self._endpoint.hostname,
            port=self._endpoint.port,
            username=self._endpoint.username,
            password=self._endpoint.password,
            identifier=self._client_id or None,
            tls_context=ssl.create_default_context() if self._endpoint.tls else None,
        )

    async def _receive_loop(self) -> None:
        """Connect, subscribe and enqueue payloads, forever.

        Any link loss returns the state to ``CONNECTING`` and retries after
        ``reconnect_interval_s``.
        """
        while True:
            self._state = FeedState.CONNECTING
            try:
                async with self._client_factory() as client:
                    await client.subscribe(self._topic, qos=self._qos)
                    self._state = FeedState.SUBSCRIBED
                    logger.info(
                        "Connected to MQTT broker %s:%d, subscribed to %s",
                        self._endpoint.hostname,
                        self._endpoint.port,
                        self._topic,
                    )
                    async for message in client.messages:
                        if not message.topic.matches(self._topic):
                            continue
                        try:
                            self._queue.put_nowait(message.payload)
                        except asyncio.QueueFull:
                            logger.warning(
                                "Feed queue full (%d pending), dropping message",
                                self._queue.qsize(),
                            )
            except aiomqtt.MqttError as err:
                logger.warning(
                    "MQTT connection lost (%s), reconnecting in %.1fs",
                    err,
                    self._reconnect_interval_s,
                )
            except Exception:
                logger.exception("Unexpected error in MQTT receive loop")

            self._state = FeedState.CONNECTING
            await asyncio.sleep(self._reconnect_interval_s)

    async def _dispatch_loop(self) -> None:
        """Take payloads off the queue and handle them one at a time."""
        while True:
            payload = await self._queue.get()
            try:
                await self.handle_payload(payload)
            except Exception:
                logger.exception("Unexpected error dispatching feed message")
            finally:
                self._queue.task_done()
