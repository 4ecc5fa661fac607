"""packet_pipeline — Personalized coaching packet generation SDK.

Public API:
    CatalogStore         — loads YAML question blocks, intake paths, templates
    IntakeService        — visibility, validation and submission of intakes
    ConditionalEvaluator — evaluates branching rules and visible_when predicates
    QuestionValidator    — required-ness and type checks for answers
    TemplateRenderer     — substitutes {{scope.path}} placeholders into packets
    TemplateContext      — typed resolver over client/calculated/responses scopes
    PacketGenerator      — job snapshot -> template -> rendered packet
    PacketExporter       — rendered packet -> markdown

Job pipeline:
    JobQueue             — enqueue with dedup, retry with backoff, escalation
    JobStore             — ABC for atomic job persistence
    InMemoryJobStore     — process-local JobStore
    WorkerPool           — asyncio workers that drain the queue
    QueueMonitor         — backlog / failure-rate / stall health checks
    RetryPolicy          — attempt limit and backoff schedule

Edge interfaces:
    PacketSink           — ABC: where rendered packets go
    Notifier             — ABC: packet-ready and escalation notifications
    ProgressStore        — ABC: where unsubmitted answers are parked
"""

from packet_pipeline.adapters import InMemoryProgressStore, LoggingNotifier, MemoryPacketSink
from packet_pipeline.autosave import ProgressAutosaver
from packet_pipeline.catalog import CatalogStore
from packet_pipeline.context import TemplateContext
from packet_pipeline.errors import (
    DataSourceError,
    IntakeValidationError,
    InvalidTransitionError,
    JobError,
    JobNotFoundError,
    JobTimeoutError,
    MissingPlaceholderError,
    PlaceholderSyntaxError,
    RenderError,
    TemplateNotFoundError,
    UnknownClientTypeError,
)
from packet_pipeline.evaluator import ConditionalEvaluator
from packet_pipeline.export import PacketExporter
from packet_pipeline.generator import PacketGenerator
from packet_pipeline.intake import (
    HiddenAnswerPolicy,
    IntakeProgress,
    IntakeService,
    SubmissionResult,
)
from packet_pipeline.interfaces import Notifier, PacketSink, ProgressStore
from packet_pipeline.queue import (
    InMemoryJobStore,
    JobQueue,
    JobStore,
    MonitorThresholds,
    QueueMonitor,
    RetryPolicy,
    WorkerPool,
)
from packet_pipeline.renderer import TemplateRenderer
from packet_pipeline.routing import ClientType, PacketType, determine_required_packets
from packet_pipeline.validator import QuestionValidator

__all__ = [
    # Intake
    "CatalogStore",
    "ClientType",
    "ConditionalEvaluator",
    "HiddenAnswerPolicy",
    "IntakeProgress",
    "IntakeService",
    "ProgressAutosaver",
    "QuestionValidator",
    "SubmissionResult",
    # Rendering
    "PacketExporter",
    "PacketGenerator",
    "PacketType",
    "TemplateContext",
    "TemplateRenderer",
    "determine_required_packets",
    # Job pipeline
    "InMemoryJobStore",
    "JobQueue",
    "JobStore",
    "MonitorThresholds",
    "QueueMonitor",
    "RetryPolicy",
    "WorkerPool",
    # Edge interfaces & adapters
    "InMemoryProgressStore",
    "LoggingNotifier",
    "MemoryPacketSink",
    "Notifier",
    "PacketSink",
    "ProgressStore",
    # Errors
    "DataSourceError",
    "IntakeValidationError",
    "InvalidTransitionError",
    "JobError",
    "JobNotFoundError",
    "JobTimeoutError",
    "MissingPlaceholderError",
    "PlaceholderSyntaxError",
    "RenderError",
    "TemplateNotFoundError",
    "UnknownClientTypeError",
]
