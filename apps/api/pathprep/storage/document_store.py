"""Document persistence used by the generation orchestrator.

The orchestrator only talks to the ``DocumentStore`` protocol. The bundled
``InMemoryDocumentStore`` keeps one dict per collection and enforces the
unique ``compositeKey`` index the way a real document database would.
"""

import asyncio
import copy
from datetime import datetime, timezone
import logging
from typing import Any, Protocol


logger = logging.getLogger(__name__)

ROADMAP_COLLECTION = "detailed_roadmaps"
QUESTIONS_COLLECTION = "interview_questions"
SKILL_RESOURCES_COLLECTION = "skill_resources"

COLLECTIONS = {
    "roadmap": ROADMAP_COLLECTION,
    "questions": QUESTIONS_COLLECTION,
    "skill_resources": SKILL_RESOURCES_COLLECTION,
}

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class DuplicateKeyError(RuntimeError):
    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"duplicate_composite_key:{key}")


class DocumentStore(Protocol):
    async def find_by_key(self, collection: str, key: str) -> dict[str, Any] | None:
        ...

    async def find_by_id(self, collection: str, entity_id: str) -> dict[str, Any] | None:
        ...

    async def insert(self, collection: str, document: dict[str, Any]) -> dict[str, Any]:
        ...

    async def replace(self, collection: str, entity_id: str, document: dict[str, Any]) -> dict[str, Any]:
        ...

    async def delete(self, collection: str, entity_id: str) -> bool:
        ...

    async def list_recent(self, collection: str, limit: int) -> list[dict[str, Any]]:
        ...


def _created_at(document: dict[str, Any]) -> datetime:
    value = document.get("createdAt")
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return _EPOCH


class InMemoryDocumentStore:
    """Async in-process store; returns deep copies so callers never share state."""

    def __init__(self, *, latency_sec: float = 0.0) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._latency_sec = latency_sec

    def _collection(self, name: str) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault(name, {})

    async def _tick(self) -> None:
        # 실제 드라이버처럼 이벤트 루프에 제어권을 넘긴다.
        await asyncio.sleep(self._latency_sec)

    async def find_by_key(self, collection: str, key: str) -> dict[str, Any] | None:
        await self._tick()
        matches = [doc for doc in self._collection(collection).values() if doc.get("compositeKey") == key]
        if not matches:
            return None
        if len(matches) > 1:
            logger.warning("found %d documents for key %s in %s, using most recent", len(matches), key, collection)
        return copy.deepcopy(max(matches, key=_created_at))

    async def find_by_id(self, collection: str, entity_id: str) -> dict[str, Any] | None:
        await self._tick()
        document = self._collection(collection).get(entity_id)
        return copy.deepcopy(document) if document is not None else None

    async def insert(self, collection: str, document: dict[str, Any]) -> dict[str, Any]:
        await self._tick()
        entity_id = document.get("id")
        if not entity_id:
            raise ValueError("document_id_missing")
        documents = self._collection(collection)
        key = document.get("compositeKey")
        if key and any(doc.get("compositeKey") == key for doc in documents.values()):
            raise DuplicateKeyError(key)
        documents[entity_id] = copy.deepcopy(document)
        return copy.deepcopy(document)

    async def replace(self, collection: str, entity_id: str, document: dict[str, Any]) -> dict[str, Any]:
        await self._tick()
        documents = self._collection(collection)
        if entity_id not in documents:
            raise KeyError(f"document_not_found:{entity_id}")
        key = document.get("compositeKey")
        if key and any(
            doc.get("compositeKey") == key for doc_id, doc in documents.items() if doc_id != entity_id
        ):
            raise DuplicateKeyError(key)
        stored = copy.deepcopy(document)
        stored["id"] = entity_id
        documents[entity_id] = stored
        return copy.deepcopy(stored)

    async def delete(self, collection: str, entity_id: str) -> bool:
        await self._tick()
        return self._collection(collection).pop(entity_id, None) is not None

    async def list_recent(self, collection: str, limit: int) -> list[dict[str, Any]]:
        await self._tick()
        documents = sorted(self._collection(collection).values(), key=_created_at, reverse=True)
        return [copy.deepcopy(doc) for doc in documents[: max(0, limit)]]

    def count(self, collection: str) -> int:
        return len(self._collection(collection))
