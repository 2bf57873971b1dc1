"""Cache-then-generate orchestration for every generated entity kind.

Lookup by composite key decides between serving the stored entity,
regenerating and merging a stale one, or generating from scratch. Failures
at the model or the store degrade to the best available answer: the stored
entity when there is one, otherwise a fallback entity. The generate-or-
retrieve path therefore always returns content.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Awaitable, Callable
import uuid

from pydantic import BaseModel, ValidationError

from pathprep.domain.models import (
    Entity,
    EntityKind,
    MAX_TIMELINE_WEEKS,
    MIN_TIMELINE_WEEKS,
    GenerationRequest,
    QuestionSet,
    Roadmap,
    SkillResourceBundle,
    utc_now,
)
from pathprep.services.generation.fallback import FallbackPolicy
from pathprep.services.generation.mapper import map_response
from pathprep.services.generation.merge import merge_entities
from pathprep.services.generation.normalizer import normalize_response_text
from pathprep.services.generation.pipeline_runtime import (
    GenerationError,
    MappingFailure,
    ModelUnavailable,
    NotFound,
    PersistenceFailure,
    ai_error_detail,
    classify_store_failure,
)
from pathprep.services.generation.prompt_builder import build_prompt
from pathprep.storage.document_store import COLLECTIONS, DocumentStore, DuplicateKeyError


logger = logging.getLogger(__name__)

DEFAULT_STALENESS = timedelta(days=30)


@dataclass(frozen=True)
class EntityBinding:
    kind: EntityKind
    collection: str
    model: type[BaseModel]


ENTITY_BINDINGS: dict[str, EntityBinding] = {
    "roadmap": EntityBinding("roadmap", COLLECTIONS["roadmap"], Roadmap),
    "questions": EntityBinding("questions", COLLECTIONS["questions"], QuestionSet),
    "skill_resources": EntityBinding("skill_resources", COLLECTIONS["skill_resources"], SkillResourceBundle),
}


def _binding_for(kind: str) -> EntityBinding:
    try:
        return ENTITY_BINDINGS[kind]
    except KeyError as exc:
        raise ValueError(f"unsupported_entity_kind:{kind}") from exc


def _as_aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def is_stale(entity: Entity, *, now: datetime, window: timedelta = DEFAULT_STALENESS) -> bool:
    updated_at = entity.updatedAt
    if updated_at is None:
        return True
    return _as_aware(now) - _as_aware(updated_at) > window


def _log_detached_failure(task: asyncio.Task) -> None:
    # 호출자가 떠난 뒤의 실패는 여기서만 관측된다.
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("detached pipeline failed after caller cancelled: %s", exc)


def request_from_entity(kind: EntityKind, entity: Entity) -> GenerationRequest:
    """Rebuild the generation request that identifies a stored entity."""
    fields: dict[str, Any] = {
        "role": entity.role or "general",
        "experienceLevel": entity.experienceLevel or "beginner",
    }
    if isinstance(entity, Roadmap):
        weeks = entity.estimatedWeeks or 0
        fields["timelineWeeks"] = max(MIN_TIMELINE_WEEKS, min(MAX_TIMELINE_WEEKS, weeks)) if weeks > 0 else None
    elif isinstance(entity, QuestionSet):
        fields["count"] = max(1, min(100, len(entity.questions) or 10))
    elif isinstance(entity, SkillResourceBundle):
        fields["skillName"] = entity.skillName
    return GenerationRequest(**fields)


class CacheMergeOrchestrator:
    def __init__(
        self,
        *,
        ai_service: Any,
        store: DocumentStore,
        fallback: FallbackPolicy | None = None,
        staleness: timedelta = DEFAULT_STALENESS,
        store_timeout_sec: float = 10.0,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.ai_service = ai_service
        self.store = store
        self.fallback = fallback or FallbackPolicy()
        self.staleness = staleness
        self.store_timeout_sec = store_timeout_sec
        self._clock = clock
        self._inflight: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # public operations
    # ------------------------------------------------------------------

    async def get_or_generate(self, kind: EntityKind, request: GenerationRequest) -> Entity:
        return await self._detached(self._get_or_generate(kind, request))

    async def get_by_id(self, kind: EntityKind, entity_id: str) -> Entity:
        binding = _binding_for(kind)
        document = await self._store_call("find_by_id", self.store.find_by_id(binding.collection, entity_id))
        if document is None:
            raise NotFound(entity_id=entity_id)
        return self._load_document(binding, document)

    async def get_by_key(self, kind: EntityKind, key: str) -> Entity:
        """Retrieve-only lookup by composite key; never generates."""
        entity = await self._find_by_key(_binding_for(kind), key)
        if entity is None:
            raise NotFound(f"entity_not_found:{key}")
        return entity

    async def list_recent(self, kind: EntityKind, limit: int = 10) -> list[Entity]:
        binding = _binding_for(kind)
        documents = await self._store_call("list_recent", self.store.list_recent(binding.collection, limit))
        entities: list[Entity] = []
        for document in documents:
            try:
                entities.append(self._load_document(binding, document))
            except PersistenceFailure as exc:
                logger.warning("skipping unreadable %s %s: %s", kind, document.get("id"), exc.reason)
        return entities

    async def delete_by_id(self, kind: EntityKind, entity_id: str) -> None:
        binding = _binding_for(kind)
        deleted = await self._store_call("delete", self.store.delete(binding.collection, entity_id))
        if not deleted:
            raise NotFound(entity_id=entity_id)
        logger.info("deleted %s %s", kind, entity_id)

    async def refresh_by_id(self, kind: EntityKind, entity_id: str) -> Entity:
        return await self._detached(self._refresh_by_id(kind, entity_id))

    async def generate(self, kind: EntityKind, request: GenerationRequest) -> Entity:
        """Run prompt -> model -> normalize -> map and stamp identity fields."""
        prompt = build_prompt(kind, request)
        raw = await self.ai_service.generate(prompt)
        text = normalize_response_text(raw)

        try:
            result = map_response(kind, text, prompt=prompt)
        except (TypeError, ValueError, ArithmeticError) as exc:
            raise MappingFailure(ai_error_detail(exc), stage="map") from exc

        if result.report.skipped_elements:
            logger.warning(
                "mapping %s skipped %d element(s), defaulted %d field(s)",
                kind,
                result.report.skipped_elements,
                result.report.defaulted_fields,
            )
        entity = result.entity
        if not entity.has_content():
            raise ModelUnavailable("empty_output", cause="empty_output")

        now = self._clock()
        update: dict[str, Any] = {
            "id": str(uuid.uuid4()),
            "compositeKey": request.composite_key(kind),
            "role": request.role,
            "experienceLevel": request.experienceLevel,
            "fallback": False,
            "createdAt": now,
            "updatedAt": now,
        }
        if isinstance(entity, SkillResourceBundle) and request.skillName:
            update["skillName"] = request.skillName
        return entity.model_copy(update=update)

    # ------------------------------------------------------------------
    # pipeline
    # ------------------------------------------------------------------

    async def _detached(self, awaitable: Awaitable[Entity]) -> Entity:
        # 호출자가 취소되어도 생성/저장은 끝까지 진행된다.
        task = asyncio.ensure_future(awaitable)
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            task.add_done_callback(_log_detached_failure)
            raise

    async def _get_or_generate(self, kind: EntityKind, request: GenerationRequest) -> Entity:
        binding = _binding_for(kind)
        key = request.composite_key(kind)

        stored: Entity | None = None
        try:
            stored = await self._find_by_key(binding, key)
        except PersistenceFailure as exc:
            logger.warning("lookup for %s failed, treating as not found: %s", key, exc.reason)

        if stored is not None and not request.forceRefresh and not is_stale(
            stored, now=self._clock(), window=self.staleness
        ):
            logger.info("serving fresh %s %s for key %s", kind, stored.id, key)
            return stored

        if stored is None:
            logger.info("no stored %s for key %s, generating", kind, key)
        else:
            logger.info(
                "stored %s %s is %s, regenerating",
                kind,
                stored.id,
                "force-refreshed" if request.forceRefresh else "stale",
            )

        try:
            generated = await self.generate(kind, request)
        except GenerationError as exc:
            if stored is not None:
                logger.warning("generation for %s failed, serving stored %s: %s", key, stored.id, exc)
                return stored
            return self.fallback.build(kind, request, exc)

        if stored is None:
            return await self._insert_or_return(binding, generated)
        merged = merge_entities(stored, generated, now=self._clock())
        return await self._replace_or_return(binding, merged)

    async def _refresh_by_id(self, kind: EntityKind, entity_id: str) -> Entity:
        binding = _binding_for(kind)
        stored = await self.get_by_id(kind, entity_id)
        try:
            request = request_from_entity(kind, stored)
        except ValidationError as exc:
            raise PersistenceFailure(f"corrupt_document:{exc.error_count()}", operation="load") from exc
        try:
            generated = await self.generate(kind, request)
        except GenerationError as exc:
            logger.warning("refresh of %s %s failed, keeping stored entity: %s", kind, entity_id, exc)
            return stored
        merged = merge_entities(stored, generated, now=self._clock())
        document = await self._store_call(
            "replace", self.store.replace(binding.collection, entity_id, merged.model_dump())
        )
        logger.info("refreshed %s %s", kind, entity_id)
        return self._load_document(binding, document)

    # ------------------------------------------------------------------
    # persistence
    # ------------------------------------------------------------------

    async def _store_call(self, operation: str, awaitable: Awaitable[Any]) -> Any:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.store_timeout_sec)
        except asyncio.TimeoutError:
            raise PersistenceFailure(f"store_timeout:{self.store_timeout_sec}s", operation=operation) from None
        except DuplicateKeyError:
            raise
        except Exception as exc:
            raise PersistenceFailure(
                f"{classify_store_failure(exc)}:{ai_error_detail(exc)}", operation=operation
            ) from exc

    def _load_document(self, binding: EntityBinding, document: dict[str, Any]) -> Entity:
        try:
            return binding.model.model_validate(document)
        except ValidationError as exc:
            raise PersistenceFailure(f"corrupt_document:{exc.error_count()}", operation="load") from exc

    async def _find_by_key(self, binding: EntityBinding, key: str) -> Entity | None:
        document = await self._store_call("find_by_key", self.store.find_by_key(binding.collection, key))
        if document is None:
            return None
        return self._load_document(binding, document)

    async def _insert_or_return(self, binding: EntityBinding, generated: Entity) -> Entity:
        try:
            await self._store_call("insert", self.store.insert(binding.collection, generated.model_dump()))
        except DuplicateKeyError:
            # 동시 생성 경합: 먼저 저장된 문서와 병합해 덮어쓴다 (last write wins).
            logger.info("key %s was inserted concurrently, merging into existing", generated.compositeKey)
            try:
                existing = await self._find_by_key(binding, generated.compositeKey or "")
                if existing is None:
                    return generated
                merged = merge_entities(existing, generated, now=self._clock())
                return await self._replace_or_return(binding, merged)
            except PersistenceFailure as exc:
                logger.error("persisting %s %s failed: %s", binding.kind, generated.id, exc.reason)
                return generated
        except PersistenceFailure as exc:
            logger.error("persisting %s %s failed, returning unsaved: %s", binding.kind, generated.id, exc.reason)
            return generated

        logger.info("stored new %s %s", binding.kind, generated.id)
        return generated

    async def _replace_or_return(self, binding: EntityBinding, merged: Entity) -> Entity:
        try:
            await self._store_call(
                "replace", self.store.replace(binding.collection, merged.id or "", merged.model_dump())
            )
        except (PersistenceFailure, DuplicateKeyError) as exc:
            logger.error("updating %s %s failed, returning unsaved: %s", binding.kind, merged.id, exc)
            return merged

        logger.info("merged and updated %s %s", binding.kind, merged.id)
        return merged
