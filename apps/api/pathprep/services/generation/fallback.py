import logging
import uuid

from pathprep.domain.models import (
    Entity,
    EntityKind,
    GenerationRequest,
    QuestionSet,
    Roadmap,
    SkillResourceBundle,
    utc_now,
)
from pathprep.services.generation.pipeline_runtime import ModelUnavailable, classify_store_failure


logger = logging.getLogger(__name__)


def fallback_id() -> str:
    return f"fallback-{uuid.uuid4()}"


def classify_fallback_error(error: BaseException) -> str:
    if isinstance(error, ModelUnavailable) and error.cause == "timeout":
        return "timeout"
    return classify_store_failure(error)


class FallbackPolicy:
    """Builds the degraded, empty entity served when nothing better exists."""

    def build(self, kind: EntityKind, request: GenerationRequest, error: BaseException) -> Entity:
        classification = classify_fallback_error(error)
        logger.warning(
            "serving fallback %s for key %s (%s error): %s",
            kind,
            request.composite_key(kind),
            classification,
            error,
        )

        now = utc_now()
        common = {
            "id": fallback_id(),
            "role": request.role,
            "experienceLevel": request.experienceLevel,
            "compositeKey": request.composite_key(kind),
            "fallback": True,
            "createdAt": now,
            "updatedAt": now,
        }
        if kind == "roadmap":
            return Roadmap(estimatedWeeks=1, phases=[], **common)
        if kind == "questions":
            return QuestionSet(questions=[], **common)
        if kind == "skill_resources":
            return SkillResourceBundle(skillName=request.skillName, **common)
        raise ValueError(f"unsupported_entity_kind:{kind}")
