"""Intake endpoints — catalog, visibility, validation, submission.

Visibility and validation are stateless: the client sends its current
responses and gets back what to show or what is wrong.  Submission freezes
the answers and queues generation; the caller must be the client
(``X-User-ID``).
"""

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from packet_pipeline.catalog import CatalogStore
from packet_pipeline.intake import IntakeProgress, IntakeService, SubmissionResult
from packet_pipeline.models.question import QuestionBlock
from packet_pipeline.models.rule import IntakePath
from packet_pipeline.validator import IntakeValidation

from packet_server.dependencies import get_catalog, get_intake, get_user_id

router = APIRouter(prefix="/intake", tags=["intake"])


# ------------------------------------------------------------------
# Request / response models
# ------------------------------------------------------------------

class ResponsesBody(BaseModel):
    """Current answers keyed by question id."""
    responses: dict[str, Any] = Field(default_factory=dict)


class ValidateBody(ResponsesBody):
    # Validate only this block (the "Next" button) instead of the whole intake
    block_id: str | None = None


class PathSummary(BaseModel):
    client_type: str
    name: str
    description: str
    estimated_time: str | None = None
    block_ids: list[str]


class PathDetail(BaseModel):
    path: IntakePath
    blocks: list[QuestionBlock]


class VisibilityResult(BaseModel):
    # block id -> visible question ids, in display order
    visible: dict[str, list[str]]
    progress: IntakeProgress


# ------------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------------

@router.get("/paths")
async def list_paths(catalog: CatalogStore = Depends(get_catalog)) -> list[PathSummary]:
    """All configured intake paths, one per client type."""
    return [
        PathSummary(
            client_type=p.client_type,
            name=p.name,
            description=p.description,
            estimated_time=p.estimated_time,
            block_ids=p.block_ids,
        )
        for p in catalog.paths.values()
    ]


@router.get("/paths/{client_type}")
async def get_path(
    client_type: str,
    catalog: CatalogStore = Depends(get_catalog),
) -> PathDetail:
    """Full definition of one intake path, including its question blocks."""
    path = catalog.get_path(client_type)
    return PathDetail(path=path, blocks=catalog.blocks_for_path(path))


@router.post("/{client_type}/visibility")
async def visibility(
    client_type: str,
    body: ResponsesBody,
    intake: IntakeService = Depends(get_intake),
) -> VisibilityResult:
    """Which blocks and questions to show for the given responses."""
    by_block = intake.visible_questions_by_block(client_type, body.responses)
    return VisibilityResult(
        visible={bid: [q.id for q in qs] for bid, qs in by_block.items()},
        progress=intake.progress(client_type, body.responses),
    )


@router.post("/{client_type}/validate")
async def validate(
    client_type: str,
    body: ValidateBody,
    intake: IntakeService = Depends(get_intake),
) -> IntakeValidation:
    """Validate one block or the whole intake without submitting."""
    if body.block_id is not None:
        return intake.validate_block(client_type, body.block_id, body.responses)
    return intake.validate_intake(client_type, body.responses)


@router.post("/{client_type}/submit", status_code=202)
async def submit(
    client_type: str,
    body: ResponsesBody,
    user_id: str = Depends(get_user_id),
    intake: IntakeService = Depends(get_intake),
) -> SubmissionResult:
    """Submit the intake for the calling client and queue its packets.

    Returns 202 with one job id per packet type.  Invalid answers give 422
    with a message per question and the first block to revisit.
    """
    return await intake.submit(user_id, client_type, body.responses)
