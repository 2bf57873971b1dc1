"""Domain entities produced by the generation pipeline and stored as documents."""

from __future__ import annotations

from datetime import datetime, timezone
import re
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


EntityKind = Literal["roadmap", "questions", "skill_resources"]

EXPERIENCE_LEVELS = ("beginner", "intermediate", "advanced")
MIN_TIMELINE_WEEKS = 1
MAX_TIMELINE_WEEKS = 104

_WHITESPACE = re.compile(r"\s+")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_key_part(value: object) -> str:
    text = _WHITESPACE.sub(" ", "" if value is None else str(value)).strip().lower()
    return text.replace(" ", "_")


def build_composite_key(*parts: object) -> str:
    return "_".join(normalize_key_part(part) for part in parts)


class _Document(BaseModel):
    model_config = ConfigDict(extra="ignore", validate_assignment=False)


class GenerationRequest(BaseModel):
    role: str
    experienceLevel: str = "beginner"
    skills: list[str] = Field(default_factory=list)
    timelineWeeks: int | None = Field(default=None, ge=MIN_TIMELINE_WEEKS, le=MAX_TIMELINE_WEEKS)
    focusArea: str | None = None
    topics: str | None = None
    skillName: str | None = None
    forceRefresh: bool = False
    count: int = 10
    includeLearningPaths: bool = True
    includeProjects: bool = True
    includeCertifications: bool = True
    includeCommunities: bool = True

    @field_validator("role")
    @classmethod
    def _role_not_blank(cls, value: str) -> str:
        stripped = _WHITESPACE.sub(" ", value).strip()
        if not stripped:
            raise ValueError("role_required")
        return stripped

    @field_validator("experienceLevel")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        level = _WHITESPACE.sub(" ", str(value or "")).strip().lower() or "beginner"
        if level not in EXPERIENCE_LEVELS:
            raise ValueError(f"experienceLevel must be one of {', '.join(EXPERIENCE_LEVELS)}")
        return level

    def composite_key(self, kind: EntityKind = "roadmap") -> str:
        if kind == "roadmap":
            return build_composite_key(self.role, self.experienceLevel, self.timelineWeeks or 0)
        if kind == "questions":
            if self.topics and self.topics.strip():
                topics = ",".join(sorted(part.strip().lower() for part in self.topics.split(",") if part.strip()))
                return build_composite_key(self.role, self.experienceLevel, topics)
            return build_composite_key(self.role, self.experienceLevel)
        if kind == "skill_resources":
            return build_composite_key(self.skillName, self.role, self.experienceLevel)
        raise ValueError(f"unsupported_entity_kind:{kind}")

    def question_count(self) -> int:
        return max(1, min(100, int(self.count or 0)))


class LearningResource(_Document):
    title: str = ""
    url: str = ""
    type: str = ""
    description: str = ""


class Subtopic(_Document):
    name: str = ""
    description: str = ""
    resources: list[LearningResource] = Field(default_factory=list)


class Topic(_Document):
    topicName: str = ""
    description: str = ""
    estimatedHours: int = Field(default=2, ge=1)
    difficulty: str = "Beginner"
    subtopics: list[Subtopic] = Field(default_factory=list)


class Phase(_Document):
    phaseName: str
    weekNumber: int = Field(default=1, ge=1)
    objective: str | None = None
    topics: list[Topic] = Field(default_factory=list)
    deliverables: list[str] = Field(default_factory=list)


class Roadmap(_Document):
    id: str | None = None
    role: str | None = None
    experienceLevel: str | None = None
    compositeKey: str | None = None
    estimatedWeeks: int = Field(default=1, ge=1)
    phases: list[Phase] = Field(default_factory=list)
    fallback: bool = False
    createdAt: datetime | None = None
    updatedAt: datetime | None = None

    def has_content(self) -> bool:
        return bool(self.phases)


class QuestionItem(_Document):
    question: str
    answer: str = ""
    category: str = "General"
    difficulty: str = "Medium"


class QuestionSet(_Document):
    id: str | None = None
    role: str | None = None
    experienceLevel: str | None = None
    compositeKey: str | None = None
    questions: list[QuestionItem] = Field(default_factory=list)
    fallback: bool = False
    createdAt: datetime | None = None
    updatedAt: datetime | None = None

    def has_content(self) -> bool:
        return bool(self.questions)


class ResourceItem(_Document):
    title: str = ""
    url: str = ""
    description: str = ""
    type: str = ""
    level: str = ""
    rating: float | None = None
    estimatedHours: int | None = None


RESOURCE_CATEGORIES = ("learningPaths", "projects", "certifications", "communities")


class SkillResourceBundle(_Document):
    id: str | None = None
    skillName: str | None = None
    role: str | None = None
    experienceLevel: str | None = None
    compositeKey: str | None = None
    learningPaths: list[ResourceItem] = Field(default_factory=list)
    projects: list[ResourceItem] = Field(default_factory=list)
    certifications: list[ResourceItem] = Field(default_factory=list)
    communities: list[ResourceItem] = Field(default_factory=list)
    fallback: bool = False
    createdAt: datetime | None = None
    updatedAt: datetime | None = None

    def has_content(self) -> bool:
        return any(getattr(self, category) for category in RESOURCE_CATEGORIES)


Entity = Roadmap | QuestionSet | SkillResourceBundle

ENTITY_TYPES: dict[str, type[BaseModel]] = {
    "roadmap": Roadmap,
    "questions": QuestionSet,
    "skill_resources": SkillResourceBundle,
}
