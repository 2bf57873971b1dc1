"""Union-with-dedup merge of a stored entity and a freshly generated one.

Stored items come first and win ties on the natural key; generated items only
add what is missing. All functions are pure and return new entities.
"""

from datetime import datetime
from typing import Any, Callable, Iterable, TypeVar

from pathprep.domain.models import (
    RESOURCE_CATEGORIES,
    Entity,
    Phase,
    QuestionItem,
    QuestionSet,
    ResourceItem,
    Roadmap,
    SkillResourceBundle,
    utc_now,
)


T = TypeVar("T")
E = TypeVar("E", Roadmap, QuestionSet, SkillResourceBundle)


def _fold(value: Any) -> str:
    return " ".join(str(value or "").split()).casefold()


def phase_key(phase: Phase) -> str:
    return _fold(phase.phaseName)


def question_key(item: QuestionItem) -> str:
    return _fold(item.question)


def resource_key(item: ResourceItem) -> str:
    url = str(item.url or "").strip()
    if url:
        return url.rstrip("/").lower()
    return f"title:{_fold(item.title)}"


def _rebuild(stored: E, update: dict[str, Any]) -> E:
    # update 값은 model_copy 가 복사하지 않는다.
    return stored.model_copy(update=update).model_copy(deep=True)


def union_by_key(stored: Iterable[T], generated: Iterable[T], key: Callable[[T], str]) -> list[T]:
    merged: list[T] = []
    seen: set[str] = set()
    for item in [*stored, *generated]:
        item_key = key(item)
        if item_key in seen:
            continue
        seen.add(item_key)
        merged.append(item)
    return merged


def merge_roadmaps(stored: Roadmap, generated: Roadmap, *, now: datetime | None = None) -> Roadmap:
    phases = union_by_key(stored.phases, generated.phases, phase_key)
    phases.sort(key=lambda phase: phase.weekNumber)
    return _rebuild(
        stored,
        {
            "phases": phases,
            "estimatedWeeks": max((phase.weekNumber for phase in phases), default=1),
            "fallback": False,
            "updatedAt": now or utc_now(),
        },
    )


def merge_question_sets(stored: QuestionSet, generated: QuestionSet, *, now: datetime | None = None) -> QuestionSet:
    questions = union_by_key(
        (item for item in stored.questions if item.question.strip()),
        (item for item in generated.questions if item.question.strip()),
        question_key,
    )
    return _rebuild(stored, {"questions": questions, "fallback": False, "updatedAt": now or utc_now()})


def merge_skill_resources(
    stored: SkillResourceBundle,
    generated: SkillResourceBundle,
    *,
    now: datetime | None = None,
) -> SkillResourceBundle:
    update: dict[str, Any] = {
        category: union_by_key(getattr(stored, category), getattr(generated, category), resource_key)
        for category in RESOURCE_CATEGORIES
    }
    update["fallback"] = False
    update["updatedAt"] = now or utc_now()
    if not stored.skillName and generated.skillName:
        update["skillName"] = generated.skillName
    return _rebuild(stored, update)


def merge_entities(stored: Entity, generated: Entity, *, now: datetime | None = None) -> Entity:
    if isinstance(stored, Roadmap) and isinstance(generated, Roadmap):
        return merge_roadmaps(stored, generated, now=now)
    if isinstance(stored, QuestionSet) and isinstance(generated, QuestionSet):
        return merge_question_sets(stored, generated, now=now)
    if isinstance(stored, SkillResourceBundle) and isinstance(generated, SkillResourceBundle):
        return merge_skill_resources(stored, generated, now=now)
    raise TypeError(f"cannot_merge:{type(stored).__name__}:{type(generated).__name__}")
