"""
Work item publishers.

BrokerPublisher hands WorkItems to the broker for durable, persistent
delivery. NoOpPublisher keeps the service up when the broker is not
reachable at boot: it drops every item and logs a warning for each one.

Topology:
    exchange  resumegen.tasks (direct, durable)
      └─[resumes.generate]─> queue resumegen.resumes (durable)

Usage:
    from resumegen.queue import create_publisher

    publisher = create_publisher(connection)
    await publisher.publish(WorkItem.from_job(job))
"""

import asyncio
import threading
from abc import ABC, abstractmethod
from typing import Optional, Tuple

from kombu import Connection, Exchange, Producer, Queue
from kombu.exceptions import KombuError

from resumegen.config import config
from resumegen.jobs.errors import PublishError
from resumegen.jobs.models import WorkItem
from resumegen.utils.logging import broker_logger as logger


# AMQP delivery mode 2: message is written to disk by the broker
PERSISTENT_DELIVERY_MODE = 2


def build_topology(
    exchange_name: Optional[str] = None,
    queue_name: Optional[str] = None,
    routing_key: Optional[str] = None
) -> Tuple[Exchange, Queue]:
    """Build the durable exchange and the queue bound to it."""
    exchange = Exchange(exchange_name or config.BROKER_EXCHANGE, type="direct", durable=True)
    queue = Queue(
        queue_name or config.BROKER_QUEUE,
        exchange=exchange,
        routing_key=routing_key or config.BROKER_ROUTING_KEY,
        durable=True,
    )
    return exchange, queue


def declare_topology(connection: Connection, queue: Queue) -> None:
    """
    Declare exchange, queue and binding on the broker.

    Safe to repeat: declaring an existing entity with the same arguments
    is a no-op on the broker.
    """
    channel = connection.channel()
    try:
        queue(channel).declare()
    finally:
        channel.close()


class WorkItemPublisher(ABC):
    """Hands work items to the worker pool."""

    @abstractmethod
    async def publish(self, item: WorkItem) -> None:
        """
        Publish one work item.

        Raises:
            PublishError: If the item could not be handed to the broker
        """

    async def close(self) -> None:
        pass


class BrokerPublisher(WorkItemPublisher):
    """
    Publishes work items through a kombu connection.

    The connection is owned by the caller (see queue.connection); the
    publisher owns one channel on it. kombu channels are not safe for
    concurrent use, so publishes run one at a time in a worker thread.
    """

    def __init__(
        self,
        connection: Connection,
        exchange_name: Optional[str] = None,
        queue_name: Optional[str] = None,
        routing_key: Optional[str] = None,
        publish_timeout: Optional[float] = None
    ):
        self.connection = connection
        self.exchange, self.queue = build_topology(exchange_name, queue_name, routing_key)
        self.routing_key = self.queue.routing_key
        self.publish_timeout = publish_timeout or config.BROKER_PUBLISH_TIMEOUT

        self._lock = threading.Lock()
        self._channel = None
        self._producer: Optional[Producer] = None
        self._errors = (
            tuple(connection.connection_errors)
            + tuple(connection.channel_errors)
            + (KombuError, OSError)
        )

        try:
            self._channel = connection.channel()
            self.queue(self._channel).declare()
            self._producer = Producer(
                self._channel,
                exchange=self.exchange,
                routing_key=self.routing_key,
                serializer="json",
            )
        except self._errors as e:
            self._release_channel()
            raise PublishError(f"Failed to declare broker topology: {e}") from e

        logger.info(
            "Broker topology declared",
            exchange=self.exchange.name,
            queue=self.queue.name,
            routing_key=self.routing_key
        )

    @property
    def is_open(self) -> bool:
        return self._producer is not None

    def _publish_sync(self, item: WorkItem) -> None:
        # A timed-out publish keeps running in its thread and holds the lock
        if not self._lock.acquire(timeout=self.publish_timeout):
            raise PublishError(
                "Broker channel is busy with a stalled publish",
                job_id=item.job_id
            )
        try:
            if self._producer is None:
                raise PublishError("Broker channel is not available", job_id=item.job_id)
            try:
                self._producer.publish(
                    item.to_message(),
                    exchange=self.exchange,
                    routing_key=self.routing_key,
                    serializer="json",
                    delivery_mode=PERSISTENT_DELIVERY_MODE,
                    retry=False,
                )
            except self._errors as e:
                raise PublishError(f"Failed to publish job {item.job_id}: {e}", job_id=item.job_id) from e
        finally:
            self._lock.release()

    async def publish(self, item: WorkItem) -> None:
        try:
            await asyncio.wait_for(
                asyncio.to_thread(self._publish_sync, item),
                timeout=self.publish_timeout
            )
        except asyncio.TimeoutError as e:
            raise PublishError(
                f"Publishing job {item.job_id} timed out after {self.publish_timeout}s",
                job_id=item.job_id
            ) from e

        logger.info(
            "Work item published",
            job_id=item.job_id,
            owner_id=item.owner_id,
            routing_key=self.routing_key
        )

    def _release_channel(self):
        self._producer = None
        if self._channel is not None:
            try:
                self._channel.close()
            except self._errors as e:
                logger.warning("Error closing broker channel", error=str(e))
            self._channel = None

    async def close(self) -> None:
        def _close():
            acquired = self._lock.acquire(timeout=self.publish_timeout)
            if not acquired:
                logger.warning("Closing broker channel while a publish is stalled")
            try:
                self._release_channel()
            finally:
                if acquired:
                    self._lock.release()

        try:
            await asyncio.wait_for(
                asyncio.to_thread(_close),
                timeout=self.publish_timeout * 2
            )
        except asyncio.TimeoutError:
            # Channel close hung on the broker; the connection release at shutdown drops it
            self._producer = None
            logger.warning("Timed out closing broker channel")


class NoOpPublisher(WorkItemPublisher):
    """
    Degraded-mode publisher: accepts every item and delivers none.

    Jobs submitted while this publisher is installed stay Pending and are
    never picked up by a worker. Each dropped item is logged at WARNING.
    """

    async def publish(self, item: WorkItem) -> None:
        logger.warning(
            "Broker publisher is not available, job will not be queued",
            job_id=item.job_id,
            owner_id=item.owner_id
        )


def create_publisher(connection: Optional[Connection]) -> WorkItemPublisher:
    """
    Build the publisher for this process.

    Falls back to NoOpPublisher when there is no broker connection or the
    topology cannot be declared, so the service can still start.
    """
    if connection is None:
        logger.warning("No broker connection, using no-op publisher (jobs will not be queued)")
        return NoOpPublisher()

    try:
        return BrokerPublisher(connection)
    except PublishError as e:
        logger.warning(
            "Failed to initialize broker publisher, using no-op publisher (jobs will not be queued)",
            error=str(e)
        )
        return NoOpPublisher()
