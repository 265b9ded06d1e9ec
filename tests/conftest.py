"""Shared fixtures: in-memory job store, recording/failing publishers, log buffer reset."""
from __future__ import annotations

import uuid
from typing import List

import pytest
import pytest_asyncio
from kombu import Connection

from resumegen.jobs.database import SQLiteJobStore
from resumegen.jobs.errors import PublishError
from resumegen.jobs.models import WorkItem
from resumegen.jobs.service import GenerationJobService
from resumegen.queue.publisher import WorkItemPublisher
from resumegen.utils.logging import get_log_buffer


class RecordingPublisher(WorkItemPublisher):
    """Publisher that keeps every item in memory."""

    def __init__(self) -> None:
        self.items: List[WorkItem] = []
        self.closed = False

    async def publish(self, item: WorkItem) -> None:
        self.items.append(item)

    async def close(self) -> None:
        self.closed = True


class FailingPublisher(WorkItemPublisher):
    """Publisher whose broker is always down."""

    def __init__(self) -> None:
        self.attempts = 0

    async def publish(self, item: WorkItem) -> None:
        self.attempts += 1
        raise PublishError("connection refused", job_id=item.job_id)


@pytest.fixture(autouse=True)
def clear_log_buffer():
    get_log_buffer().clear()
    yield
    get_log_buffer().clear()


@pytest_asyncio.fixture
async def store():
    s = SQLiteJobStore(":memory:")
    await s.connect()
    yield s
    await s.close()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def service(store: SQLiteJobStore, publisher: RecordingPublisher) -> GenerationJobService:
    return GenerationJobService(store, publisher)


@pytest.fixture
def memory_connection():
    """kombu in-memory transport; broker state is process-global, so use unique names."""
    conn = Connection("memory://")
    yield conn
    conn.release()


@pytest.fixture
def unique_name() -> str:
    return uuid.uuid4().hex[:10]
