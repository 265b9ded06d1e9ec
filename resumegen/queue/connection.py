"""
Broker connection management for the generation job queue.

Provides a singleton kombu connection (AMQP or Redis transport), opened
once at process start and released at shutdown.
"""

from typing import Optional

from kombu import Connection, Queue

from resumegen.config import config
from resumegen.utils.logging import broker_logger as logger

# Singleton connection
_broker_connection: Optional[Connection] = None


def _display_url(url: str) -> str:
    # Never log credentials
    return url.split("@")[-1] if "@" in url else url


def open_broker_connection(
    url: str,
    connect_timeout: Optional[float] = None
) -> Connection:
    """
    Open and verify a broker connection.

    Raises:
        ConnectionError: If the broker cannot be reached
    """
    connection = Connection(
        url,
        connect_timeout=connect_timeout or config.BROKER_CONNECT_TIMEOUT,
    )
    try:
        connection.ensure_connection(max_retries=1)
    except Exception as e:
        connection.release()
        raise ConnectionError(f"Failed to connect to broker at {_display_url(url)}: {e}") from e

    logger.info("Broker connected", broker=_display_url(url))
    return connection


def get_broker_connection() -> Connection:
    """
    Get the broker connection singleton.

    Raises:
        ValueError: If BROKER_URL is not configured
        ConnectionError: If the broker cannot be reached
    """
    global _broker_connection

    if _broker_connection is None:
        broker_url = config.BROKER_URL
        if not broker_url:
            raise ValueError(
                "BROKER_URL environment variable is required to queue generation jobs. "
                "Point it at RabbitMQ (amqp://) or Redis (redis://)."
            )
        _broker_connection = open_broker_connection(broker_url)

    return _broker_connection


def close_broker_connection():
    """Close the broker connection (for cleanup)."""
    global _broker_connection
    if _broker_connection is not None:
        _broker_connection.release()
        _broker_connection = None


def broker_health_check(connection: Optional[Connection] = None) -> dict:
    """
    Check broker connection health.

    Uses a cloned connection so the check never shares a channel with the
    publisher.

    Returns:
        Dict with health status and queue depth
    """
    if connection is None:
        connection = _broker_connection
    if connection is None:
        return {
            "status": "degraded",
            "connected": False,
            "error": "no broker connection; jobs are not being queued",
        }

    probe = connection.clone()
    try:
        probe.ensure_connection(max_retries=1)
        channel = probe.channel()
        try:
            _, message_count, consumer_count = Queue(config.BROKER_QUEUE).bind(channel).queue_declare(
                passive=True
            )
        finally:
            channel.close()
        return {
            "status": "healthy",
            "connected": True,
            "queue": config.BROKER_QUEUE,
            "messages": message_count,
            "consumers": consumer_count,
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "connected": False,
            "error": str(e)
        }
    finally:
        probe.release()
