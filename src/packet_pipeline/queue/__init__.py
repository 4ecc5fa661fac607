"""Job queue, worker pool, and queue monitor for packet generation."""

from packet_pipeline.queue.monitor import MonitorThresholds, QueueMonitor
from packet_pipeline.queue.queue import JobQueue, escalation_payload, utcnow
from packet_pipeline.queue.retry import RetryPolicy
from packet_pipeline.queue.store import AddResult, InMemoryJobStore, JobStore
from packet_pipeline.queue.worker import WorkerPool

__all__ = [
    "AddResult",
    "InMemoryJobStore",
    "JobQueue",
    "JobStore",
    "MonitorThresholds",
    "QueueMonitor",
    "RetryPolicy",
    "WorkerPool",
    "escalation_payload",
    "utcnow",
]
