"""Content type discovery and batch tagging routes."""

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from autotranslate.db.models import TaggingCursor
from autotranslate.db.session import get_db
from autotranslate.dependencies import get_orchestrator, get_schema_discovery
from autotranslate.middleware.rate_limit import rate_limit_general
from autotranslate.schemas.schemas import (
    FieldSchemaResponse,
    RelationshipInfo,
    SecondaryTableInfo,
    TaggingCursorResponse,
    TaggingRunRequest,
    TaggingRunResponse,
)
from autotranslate.services.discovery import SchemaDiscovery
from autotranslate.services.orchestrator import TaggingOrchestrator
from autotranslate.worker import enqueue_tagging_run

router = APIRouter(prefix="/v1", tags=["Tagging"])


@router.get(
    "/content-types/{name}/schema",
    response_model=FieldSchemaResponse,
    summary="Discover translatable fields",
    description="Tables and fields of a content type that are tagged.",
)
async def get_content_type_schema(
    name: str,
    discovery: SchemaDiscovery = Depends(get_schema_discovery),
):
    """Get the discovered field schema of a content type."""
    schema = await discovery.discover(name)
    return FieldSchemaResponse(
        content_type=schema.content_type,
        policy_version=schema.policy_version,
        scope_level=int(schema.scope_level),
        scope_field=schema.scope_field,
        primary_table=schema.primary.table,
        primary_fields=list(schema.primary.fields),
        secondary=[
            SecondaryTableInfo(
                table=s.table,
                fields=list(s.fields),
                relationship=RelationshipInfo.model_validate(s.relationship),
            )
            for s in schema.secondary
        ],
    )


@router.post(
    "/tagging/runs",
    response_model=TaggingRunResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start a tagging run",
    description="Queue batch tagging of a content type, or run one batch inline.",
)
@rate_limit_general()
async def start_tagging_run(
    request: Request,
    body: TaggingRunRequest,
    db: AsyncSession = Depends(get_db),
    discovery: SchemaDiscovery = Depends(get_schema_discovery),
    orchestrator: TaggingOrchestrator = Depends(get_orchestrator),
):
    """
    Start tagging a content type.

    - **content_type**: primary table name, e.g. "book"
    - **batch_size**: records per batch (defaults to the configured size)
    - **inline**: run a single batch in this request and return its result
    """
    # Fail fast on unknown content types
    await discovery.discover(body.content_type)

    if body.inline:
        result = await orchestrator.run(db, body.content_type, body.batch_size)
        return TaggingRunResponse(status="completed", **result.as_dict())

    task_id = enqueue_tagging_run(body.content_type, body.batch_size)
    return TaggingRunResponse(
        content_type=body.content_type,
        status="queued",
        task_id=task_id,
    )


@router.get(
    "/tagging/cursors",
    response_model=list[TaggingCursorResponse],
    summary="Tagging progress",
    description="Saved position of the batch run of every content type.",
)
async def list_tagging_cursors(db: AsyncSession = Depends(get_db)):
    """List tagging cursors."""
    result = await db.execute(select(TaggingCursor).order_by(TaggingCursor.content_type))
    return [TaggingCursorResponse.model_validate(c) for c in result.scalars().all()]
