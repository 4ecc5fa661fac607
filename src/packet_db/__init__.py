"""packet_db — PostgreSQL persistence for generation jobs and packets.

Provides the ORM models, async engine factory, and the ``SqlJobStore`` /
``SqlPacketSink`` implementations of the pipeline's storage interfaces.
Optional: the server uses it only when ``SERVER_JOB_STORE=sql``.
"""

from packet_db.engine import dispose_engine, get_engine, get_session_factory
from packet_db.models.job import GenerationJob
from packet_db.models.packet import RenderedPacketRow
from packet_db.repository import SqlJobStore, SqlPacketSink

__all__ = [
    "GenerationJob",
    "RenderedPacketRow",
    "SqlJobStore",
    "SqlPacketSink",
    "dispose_engine",
    "get_engine",
    "get_session_factory",
]
