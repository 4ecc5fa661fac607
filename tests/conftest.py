"""Shared fixtures: the real catalog, a controllable clock, and in-memory edges."""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from packet_pipeline.catalog import CatalogStore
from packet_pipeline.interfaces import Notifier, PacketSink
from packet_pipeline.models.job import AnswerSnapshot
from packet_pipeline.queue import InMemoryJobStore, JobQueue, RetryPolicy

CATALOG_DIR = Path(__file__).resolve().parents[1] / "v1"

START = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


class RecordingNotifier(Notifier):
    """Captures notifications for assertions."""

    def __init__(self) -> None:
        self.ready: list[tuple[str, str]] = []
        self.escalations = []

    async def packet_ready(self, job, output_ref):
        self.ready.append((job.id, output_ref))

    async def escalate(self, payload):
        self.escalations.append(payload)


class RecordingSink(PacketSink):
    """Stores packets in a dict; fails the first ``fail_times`` saves."""

    def __init__(self, fail_times: int = 0) -> None:
        self.fail_times = fail_times
        self.calls = 0
        self.packets = {}

    async def save(self, job, packet):
        self.calls += 1
        if self.calls <= self.fail_times:
            raise RuntimeError(f"storage unavailable (call {self.calls})")
        ref = f"test://{job.id}"
        self.packets[ref] = packet
        return ref


def make_snapshot(answers=None, *, client_type="NUTRITION_ONLY", hidden=None, at=START):
    return AnswerSnapshot(
        client_type=client_type,
        answers=answers if answers is not None else {"full-name": "Jane Doe"},
        hidden_answers=hidden or {},
        submitted_at=at,
    )


# =====================================================================
# Fixtures
# =====================================================================

@pytest.fixture(scope="session")
def catalog():
    """Load the real v1/ catalog once for the whole test session."""
    c = CatalogStore(CATALOG_DIR)
    c.load()
    return c


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryJobStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def queue(store, notifier, clock):
    """JobQueue with a 3-attempt policy: 5s, 10s backoff."""
    policy = RetryPolicy(max_attempts=3, base_delay=5, factor=2, max_delay=300)
    return JobQueue(store, retry_policy=policy, notifier=notifier, clock=clock)
