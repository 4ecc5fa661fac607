"""Exception hierarchy for the packet pipeline.

  - Intake errors subclass ``ValueError`` so the server's global
    ``ValueError`` handler maps them without per-route try/except.
  - Render errors subclass ``RenderError``; the worker pool treats them as
    ordinary job failures and routes them through the retry policy.
  - Queue errors subclass ``JobError``.  ``JobTimeoutError`` covers both
    an attempt that overran inside a live worker and an ACTIVE job whose
    worker vanished and was reclaimed by the queue.
"""

from __future__ import annotations


# --- Intake ---

class IntakeValidationError(ValueError):
    """Raised on submission when one or more visible answers are invalid.

    Attributes:
        errors: first error message per failing question id
        first_error_block_id: block containing the first failing question,
            so the caller can navigate back to it
    """

    def __init__(
        self,
        errors: dict[str, str],
        first_error_block_id: str | None = None,
    ) -> None:
        self.errors = errors
        self.first_error_block_id = first_error_block_id
        super().__init__(
            f"Intake validation failed for {len(errors)} question(s): "
            f"{', '.join(sorted(errors))}"
        )


class UnknownClientTypeError(ValueError):
    """No intake path is configured for the requested client type."""

    def __init__(self, client_type: str) -> None:
        self.client_type = client_type
        super().__init__(f"No intake path configured for client type '{client_type}'")


class UnknownPacketTypeError(ValueError):
    """The packet type is not one the catalog can render."""

    def __init__(self, packet_type: str, client_type: str | None = None) -> None:
        self.packet_type = packet_type
        self.client_type = client_type
        super().__init__(
            f"No template for packet type '{packet_type}' (client type '{client_type}')"
        )


# --- Rendering ---

class RenderError(Exception):
    """Base class for template rendering failures."""


class MissingPlaceholderError(RenderError):
    """A required placeholder path resolved to nothing."""

    def __init__(self, path: str, block_id: str | None = None) -> None:
        self.path = path
        self.block_id = block_id
        where = f" in block '{block_id}'" if block_id else ""
        super().__init__(f"Missing value for required placeholder '{path}'{where}")


class PlaceholderSyntaxError(RenderError):
    """A placeholder does not name a ``scope.path``."""

    def __init__(self, raw: str, block_id: str | None = None) -> None:
        self.raw = raw
        self.block_id = block_id
        super().__init__(f"Malformed placeholder '{{{{{raw}}}}}' in block '{block_id}'")


class DataSourceError(RenderError):
    """A structured block's data source resolved to the wrong shape."""

    def __init__(self, path: str, kind: str, got: str) -> None:
        self.path = path
        super().__init__(
            f"Data source '{path}' for {kind} block must be a list or mapping, got {got}"
        )


class TemplateNotFoundError(LookupError):
    """No template (segment-specific or default) exists for a packet type."""

    def __init__(self, packet_type: str, client_type: str | None = None) -> None:
        self.packet_type = packet_type
        self.client_type = client_type
        super().__init__(
            f"Template for packet type '{packet_type}' "
            f"(client type '{client_type}') not found"
        )


# --- Queue ---

class JobError(Exception):
    """Base class for job queue failures."""


class JobNotFoundError(JobError, ValueError):
    """A job id does not exist in the store."""

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        super().__init__(f"Job '{job_id}' not found")


class InvalidTransitionError(JobError, ValueError):
    """A state change is not allowed from the job's current state."""

    def __init__(self, job_id: str, current: str, target: str) -> None:
        self.job_id = job_id
        self.current = current
        self.target = target
        super().__init__(
            f"Job '{job_id}' cannot move from {current} to {target}: "
            f"transition is only valid during an allowed source state"
        )


class JobTimeoutError(JobError):
    """A generation attempt exceeded the configured timeout."""

    def __init__(self, job_id: str, timeout: float) -> None:
        self.job_id = job_id
        self.timeout = timeout
        super().__init__(f"Job '{job_id}' timed out after {timeout:g}s")
