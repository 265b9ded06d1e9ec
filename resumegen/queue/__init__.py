"""
Broker layer for resume generation jobs.

Uses kombu over RabbitMQ (amqp://) or Redis (redis://). Workers consume
the durable queue and report back through the job service callbacks.
"""

from .connection import (
    get_broker_connection,
    open_broker_connection,
    close_broker_connection,
    broker_health_check,
)
from .publisher import (
    WorkItemPublisher,
    BrokerPublisher,
    NoOpPublisher,
    create_publisher,
    build_topology,
    declare_topology,
    PERSISTENT_DELIVERY_MODE,
)

__all__ = [
    "get_broker_connection",
    "open_broker_connection",
    "close_broker_connection",
    "broker_health_check",
    "WorkItemPublisher",
    "BrokerPublisher",
    "NoOpPublisher",
    "create_publisher",
    "build_topology",
    "declare_topology",
    "PERSISTENT_DELIVERY_MODE",
]
