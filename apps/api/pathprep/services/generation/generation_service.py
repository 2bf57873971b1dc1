from datetime import timedelta
from functools import lru_cache

from fastapi import HTTPException

from pathprep.core.config import get_settings
from pathprep.domain.ai import build_ai_service
from pathprep.domain.models import Entity, EntityKind, GenerationRequest
from pathprep.services.generation.error_policy import build_structured_error_detail, http_exception_from_error
from pathprep.services.generation.orchestrator import CacheMergeOrchestrator
from pathprep.services.generation.pipeline_runtime import GenerationError
from pathprep.storage.document_store import InMemoryDocumentStore


settings = get_settings()


@lru_cache(maxsize=1)
def _get_ai_service():
    return build_ai_service(settings)


@lru_cache(maxsize=1)
def _get_store():
    return InMemoryDocumentStore()


@lru_cache(maxsize=1)
def _get_orchestrator() -> CacheMergeOrchestrator:
    return CacheMergeOrchestrator(
        ai_service=_get_ai_service(),
        store=_get_store(),
        staleness=timedelta(days=settings.staleness_days),
        store_timeout_sec=settings.store_timeout_sec,
    )


def _raise_generation_http_exception(kind: EntityKind, operation: str, error: GenerationError) -> None:
    raise http_exception_from_error(f"{kind}_{operation}", error) from error


def _require_skill_name(request: GenerationRequest) -> None:
    if not (request.skillName or "").strip():
        raise HTTPException(
            status_code=422,
            detail=build_structured_error_detail(
                error_code="validation_error",
                message="skillName: Field required",
                retryable=False,
                detail="request_validation_failed:skillName",
            ),
        )


async def generate_entity(kind: EntityKind, request: GenerationRequest) -> Entity:
    if kind == "skill_resources":
        _require_skill_name(request)
    try:
        return await _get_orchestrator().get_or_generate(kind, request)
    except GenerationError as error:
        _raise_generation_http_exception(kind, "generate", error)


async def get_entity(kind: EntityKind, entity_id: str) -> Entity:
    try:
        return await _get_orchestrator().get_by_id(kind, entity_id)
    except GenerationError as error:
        _raise_generation_http_exception(kind, "get", error)


async def delete_entity(kind: EntityKind, entity_id: str) -> None:
    try:
        await _get_orchestrator().delete_by_id(kind, entity_id)
    except GenerationError as error:
        _raise_generation_http_exception(kind, "delete", error)


async def refresh_entity(kind: EntityKind, entity_id: str) -> Entity:
    try:
        return await _get_orchestrator().refresh_by_id(kind, entity_id)
    except GenerationError as error:
        _raise_generation_http_exception(kind, "refresh", error)


async def get_entity_by_key(kind: EntityKind, composite_key: str) -> Entity:
    try:
        return await _get_orchestrator().get_by_key(kind, composite_key)
    except GenerationError as error:
        _raise_generation_http_exception(kind, "get_by_key", error)


async def list_recent_entities(kind: EntityKind, limit: int) -> list[Entity]:
    try:
        return await _get_orchestrator().list_recent(kind, limit)
    except GenerationError as error:
        _raise_generation_http_exception(kind, "list_recent", error)
