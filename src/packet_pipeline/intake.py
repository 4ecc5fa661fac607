"""IntakeService — visibility, validation and submission of client intakes.

Ties the catalog, evaluator, validator, packet routing and job queue
together.  Every method except ``submit`` is a pure function of the
catalog and the responses passed in; the service holds no per-client
state.

Submission flow:
  1. Sanitize responses (trim strings, drop ``None``)
  2. Compute visible blocks and questions for the client's intake path
  3. Validate every visible question; on failure raise
     ``IntakeValidationError`` naming each bad field and the first block
  4. Freeze the answers into an ``AnswerSnapshot`` (hidden answers kept or
     purged per ``HiddenAnswerPolicy``)
  5. Enqueue one generation job per required packet type
"""

from __future__ import annotations

import enum
import logging
from typing import Any, Mapping

from pydantic import BaseModel, Field

from packet_pipeline import constants
from packet_pipeline.catalog import CatalogStore
from packet_pipeline.errors import (
    IntakeValidationError,
    TemplateNotFoundError,
    UnknownPacketTypeError,
)
from packet_pipeline.evaluator import ConditionalEvaluator, is_missing
from packet_pipeline.models.job import AnswerSnapshot
from packet_pipeline.models.question import Question
from packet_pipeline.queue.queue import Clock, JobQueue
from packet_pipeline.routing import PacketType, determine_required_packets
from packet_pipeline.validator import (
    IntakeValidation,
    QuestionValidator,
    sanitize_responses,
)

logger = logging.getLogger(__name__)


class HiddenAnswerPolicy(str, enum.Enum):
    """Fate of answers to questions that are hidden at submission."""

    RETAIN = "retain"
    PURGE = "purge"


class IntakeProgress(BaseModel):
    """How far through the visible intake a client is."""

    answered: int
    total: int
    percent: int
    visible_block_ids: list[str]
    completed_block_ids: list[str]


class SubmissionResult(BaseModel):
    """Jobs created (or found in flight) for a submitted intake."""

    client_id: str
    client_type: str
    # packet type -> job id, in routing order
    job_ids: dict[str, str] = Field(default_factory=dict)
    hidden_answer_count: int = 0


class IntakeService:
    """Drives an intake path for any client type in the catalog.

    Args:
        catalog: a loaded :class:`CatalogStore`
        queue: job queue that receives generation jobs on submission
        evaluator: predicate evaluator (default instance if omitted)
        validator: answer validator (default instance if omitted)
        hidden_answer_policy: keep or drop answers to hidden questions;
            defaults to ``HIDDEN_ANSWER_POLICY`` from the environment
        clock: submission timestamp source; defaults to the queue's clock
    """

    def __init__(
        self,
        catalog: CatalogStore,
        queue: JobQueue,
        *,
        evaluator: ConditionalEvaluator | None = None,
        validator: QuestionValidator | None = None,
        hidden_answer_policy: HiddenAnswerPolicy | str | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._catalog = catalog
        self._queue = queue
        self._evaluator = evaluator or ConditionalEvaluator()
        self._validator = validator or QuestionValidator()
        self.hidden_answer_policy = HiddenAnswerPolicy(
            hidden_answer_policy or constants.HIDDEN_ANSWER_POLICY
        )
        self._clock = clock or queue.clock

    # ------------------------------------------------------------------
    # Visibility
    # ------------------------------------------------------------------

    def visible_blocks(self, client_type: str, responses: Mapping[str, Any]) -> list[str]:
        """Ids of blocks shown to this client right now, in path order."""
        path = self._catalog.get_path(client_type)
        return self._evaluator.visible_blocks(
            self._catalog.blocks_for_path(path), path.rules, responses,
        )

    def visible_questions_by_block(
        self, client_type: str, responses: Mapping[str, Any]
    ) -> dict[str, list[Question]]:
        """Visible questions grouped by visible block id, in display order."""
        path = self._catalog.get_path(client_type)
        out: dict[str, list[Question]] = {}
        for block_id in self.visible_blocks(client_type, responses):
            block = self._catalog.blocks[block_id]
            out[block_id] = self._evaluator.visible_questions(
                block.questions, responses, path.rules,
            )
        return out

    def progress(self, client_type: str, responses: Mapping[str, Any]) -> IntakeProgress:
        visible = self.visible_questions_by_block(client_type, responses)
        total = 0
        answered = 0
        completed: list[str] = []
        for block_id, questions in visible.items():
            block_answered = sum(1 for q in questions if not is_missing(responses.get(q.id)))
            total += len(questions)
            answered += block_answered
            required_done = all(
                not is_missing(responses.get(q.id)) for q in questions if q.required
            )
            if required_done:
                completed.append(block_id)
        percent = round(100 * answered / total) if total else 100
        return IntakeProgress(
            answered=answered,
            total=total,
            percent=percent,
            visible_block_ids=list(visible),
            completed_block_ids=completed,
        )

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_block(
        self, client_type: str, block_id: str, responses: Mapping[str, Any]
    ) -> IntakeValidation:
        """Validate one block's visible questions (the "Next" button).

        A block that is not currently visible validates trivially.

        Raises:
            KeyError: *block_id* is not on the client's intake path
        """
        path = self._catalog.get_path(client_type)
        if block_id not in path.block_ids:
            raise KeyError(f"Block '{block_id}' is not part of intake path '{path.id}'")
        clean = sanitize_responses(responses)
        visible = self.visible_questions_by_block(client_type, clean)
        if block_id not in visible:
            return IntakeValidation(valid=True)
        return self._validator.validate_blocks({block_id: visible[block_id]}, clean)

    def validate_intake(
        self, client_type: str, responses: Mapping[str, Any]
    ) -> IntakeValidation:
        clean = sanitize_responses(responses)
        return self._validator.validate_blocks(
            self.visible_questions_by_block(client_type, clean), clean,
        )

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def freeze(
        self,
        client_id: str,
        client_type: str,
        responses: Mapping[str, Any],
    ) -> AnswerSnapshot:
        """Validate *responses* and freeze them into an ``AnswerSnapshot``.

        Answers to visible questions go to ``answers``; the rest are kept as
        ``hidden_answers`` or dropped per the hidden answer policy.

        Raises:
            UnknownClientTypeError: no intake path for *client_type*
            IntakeValidationError: at least one visible answer is invalid
        """
        clean = sanitize_responses(responses)
        visible = self.visible_questions_by_block(client_type, clean)
        outcome = self._validator.validate_blocks(visible, clean)
        if not outcome.valid:
            logger.info(
                "Intake for client %s rejected: %d invalid answer(s)",
                client_id, len(outcome.errors),
            )
            raise IntakeValidationError(outcome.errors, outcome.first_error_block_id)

        visible_ids = {q.id for questions in visible.values() for q in questions}
        answers = {
            k: v for k, v in clean.items() if k in visible_ids and not is_missing(v)
        }
        hidden = {k: v for k, v in clean.items() if k not in visible_ids}
        if self.hidden_answer_policy == HiddenAnswerPolicy.PURGE:
            if hidden:
                logger.debug("Purging %d hidden answer(s) for client %s", len(hidden), client_id)
            hidden = {}

        return AnswerSnapshot(
            client_type=client_type,
            answers=answers,
            hidden_answers=hidden,
            submitted_at=self._clock(),
        )

    async def submit(
        self,
        client_id: str,
        client_type: str,
        responses: Mapping[str, Any],
    ) -> SubmissionResult:
        """Validate and freeze the intake, then queue its packets.

        Raises:
            UnknownClientTypeError: no intake path for *client_type*
            IntakeValidationError: at least one visible answer is invalid
        """
        snapshot = self.freeze(client_id, client_type, responses)
        result = SubmissionResult(
            client_id=client_id,
            client_type=client_type,
            hidden_answer_count=len(snapshot.hidden_answers),
        )
        for packet_type in determine_required_packets(client_type, snapshot.answers):
            result.job_ids[packet_type.value] = await self._queue.enqueue_generation(
                client_id, packet_type.value, snapshot,
            )
        logger.info(
            "Intake submitted for client %s (%s): packets=%s",
            client_id, client_type, list(result.job_ids),
        )
        return result

    async def queue_packet(
        self,
        client_id: str,
        packet_type: str,
        client_type: str,
        responses: Mapping[str, Any],
    ) -> str:
        """Queue one packet outside normal routing; return the job id.

        The responses go through the same validation and freezing as
        ``submit``, and the packet type must have a template for the
        client type, so a job that could never render is never queued.

        Raises:
            UnknownClientTypeError: no intake path for *client_type*
            UnknownPacketTypeError: no template for *packet_type*
            IntakeValidationError: at least one visible answer is invalid
        """
        self._catalog.get_path(client_type)
        try:
            PacketType(packet_type)
            self._catalog.select_template(packet_type, client_type)
        except (ValueError, TemplateNotFoundError) as exc:
            raise UnknownPacketTypeError(packet_type, client_type) from exc
        snapshot = self.freeze(client_id, client_type, responses)
        return await self._queue.enqueue_generation(client_id, packet_type, snapshot)
