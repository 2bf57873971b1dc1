"""Map normalized model JSON onto the domain entities.

The model's output is untrusted along three axes: how it is wrapped (bare
array, ``data`` wrapper, plain object), what each field is called, and how
values are encoded. Each logical field is described by a ``FieldRule`` whose
aliases are tried in order; the first alias whose value survives the
extractor wins, otherwise the rule's default is used and counted in the
``MappingReport``.

Collection elements are parsed one by one. An element that cannot be parsed
is logged and skipped instead of failing the whole response.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import json
import logging
import math
import re
from typing import Any, Callable

from pathprep.domain.models import (
    RESOURCE_CATEGORIES,
    EntityKind,
    LearningResource,
    Phase,
    QuestionItem,
    QuestionSet,
    ResourceItem,
    Roadmap,
    SkillResourceBundle,
    Subtopic,
    Topic,
)
from pathprep.services.generation.pipeline_runtime import MappingFailure
from pathprep.services.generation.prompt_builder import extract_prompt_value


logger = logging.getLogger(__name__)

_MISSING = object()

DEFAULT_TOPIC_HOURS = 2
DEFAULT_DIFFICULTY = "Beginner"
NAME_PREFIX_LIMIT = 50

_WEEK_VALUE = re.compile(
    r"^\s*(?:weeks?|phase)?\s*#?\s*(\d+)(?:\s*(?:-|–|to)\s*\d+)?\s*$",
    re.IGNORECASE,
)
_WEEK_IN_NAME = re.compile(r"(?:week|phase)\s*(\d+)", re.IGNORECASE)
_HOURS_RANGE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(?:-|–|to)\s*(\d+(?:\.\d+)?)", re.IGNORECASE)
_HOURS_SINGLE = re.compile(r"^\s*(\d+(?:\.\d+)?)")
_URL_LIKE = re.compile(r"^https?://", re.IGNORECASE)

_DIFFICULTY_PREFIXES = (
    (("beginner", "easy"), "Beginner"),
    (("intermediate", "medium"), "Intermediate"),
    (("advanced", "hard"), "Advanced"),
)


@dataclass
class MappingReport:
    shape: str = "object"
    parse_failed: bool = False
    defaulted_fields: int = 0
    skipped_elements: int = 0
    defaulted: list[str] = field(default_factory=list)

    def record_default(self, name: str) -> None:
        self.defaulted_fields += 1
        if len(self.defaulted) < 50:
            self.defaulted.append(name)


@dataclass
class MappingResult:
    entity: Roadmap | QuestionSet | SkillResourceBundle
    report: MappingReport


@dataclass(frozen=True)
class FieldRule:
    name: str
    aliases: tuple[str, ...]
    extractor: Callable[[Any], Any]
    default: Any = None


# ---------------------------------------------------------------------------
# value extractors: return the coerced value or _MISSING
# ---------------------------------------------------------------------------


def extract_text(value: Any) -> Any:
    if isinstance(value, str):
        stripped = value.strip()
        if stripped:
            return stripped
    return _MISSING


def extract_scalar_text(value: Any) -> Any:
    if isinstance(value, bool):
        return _MISSING
    if isinstance(value, (int, float)):
        return str(value)
    return extract_text(value)


def extract_week_number(value: Any) -> Any:
    if isinstance(value, bool):
        return _MISSING
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return _MISSING
        number = int(value)
        return number if number >= 1 else _MISSING
    if isinstance(value, str):
        match = _WEEK_VALUE.match(value)
        if match:
            number = int(match.group(1))
            return number if number >= 1 else _MISSING
    return _MISSING


def extract_hours(value: Any) -> Any:
    if isinstance(value, bool):
        return _MISSING
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return _MISSING
        hours = math.ceil(value)
        return hours if hours >= 1 else _MISSING
    if isinstance(value, str):
        ranged = _HOURS_RANGE.match(value)
        if ranged:
            low, high = float(ranged.group(1)), float(ranged.group(2))
            if not (math.isfinite(low) and math.isfinite(high)):
                return _MISSING
            hours = math.ceil((low + high) / 2)
        else:
            single = _HOURS_SINGLE.match(value)
            if not single:
                return _MISSING
            number = float(single.group(1))
            if not math.isfinite(number):
                return _MISSING
            hours = math.ceil(number)
        return hours if hours >= 1 else _MISSING
    return _MISSING


def normalize_difficulty(value: Any) -> Any:
    text = extract_text(value)
    if text is _MISSING:
        return _MISSING
    lowered = text.lower()
    for prefixes, canonical in _DIFFICULTY_PREFIXES:
        if lowered.startswith(prefixes):
            return canonical
    return lowered[0].upper() + lowered[1:]


def extract_string_list(value: Any) -> Any:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return _MISSING
    items = [item.strip() for item in value if isinstance(item, str) and item.strip()]
    return items or _MISSING


def extract_rating(value: Any) -> Any:
    if isinstance(value, bool):
        return _MISSING
    if isinstance(value, str):
        single = _HOURS_SINGLE.match(value)
        if not single:
            return _MISSING
        value = float(single.group(1))
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return _MISSING
        return max(0.0, min(5.0, float(value)))
    return _MISSING


def resolve(node: dict[str, Any], rule: FieldRule, report: MappingReport | None = None) -> Any:
    for alias in rule.aliases:
        if alias not in node:
            continue
        value = rule.extractor(node[alias])
        if value is not _MISSING:
            return value
    if report is not None:
        report.record_default(rule.name)
    return rule.default


def _name_from_description(description: str | None) -> str | None:
    if not description:
        return None
    if len(description) <= NAME_PREFIX_LIMIT:
        return description
    return description[:NAME_PREFIX_LIMIT] + "..."


# ---------------------------------------------------------------------------
# roadmap
# ---------------------------------------------------------------------------

PHASE_COLLECTION_ALIASES = ("phases", "learningPhases", "roadmapPhases", "stages")
PHASE_DIAGNOSTIC_FIELDS = ("phaseName", "title", "weekNumber", "objective", "topics")

PHASE_NAME = FieldRule("phase.phaseName", ("phaseName", "title", "name", "phase", "week"), extract_text)
PHASE_WEEK = FieldRule("phase.weekNumber", ("weekNumber", "week", "weekNum", "phaseNumber"), extract_week_number)
PHASE_OBJECTIVE = FieldRule("phase.objective", ("objective", "description", "summary"), extract_text)
PHASE_DELIVERABLES = FieldRule(
    "phase.deliverables", ("deliverables", "outcomes", "results"), extract_string_list, default=()
)
TOPIC_COLLECTION_ALIASES = ("topics", "learningTopics", "subjects")

TOPIC_NAME = FieldRule("topic.topicName", ("topicName", "name", "title", "skill", "concept"), extract_text)
TOPIC_DESCRIPTION = FieldRule("topic.description", ("description", "desc", "details", "summary"), extract_text, "")
TOPIC_HOURS = FieldRule(
    "topic.estimatedHours", ("estimatedHours", "hours", "timeRequired", "duration"), extract_hours, DEFAULT_TOPIC_HOURS
)
TOPIC_DIFFICULTY = FieldRule(
    "topic.difficulty", ("difficulty", "level", "complexity"), normalize_difficulty, DEFAULT_DIFFICULTY
)
SUBTOPIC_COLLECTION_ALIASES = ("subtopics", "subTopics", "subsections", "details")

SUBTOPIC_NAME = FieldRule("subtopic.name", ("name", "title", "subtopicName", "concept"), extract_text)
SUBTOPIC_DESCRIPTION = FieldRule("subtopic.description", ("description", "desc", "details", "summary"), extract_text, "")
LEARNING_RESOURCE_ALIASES = ("resources", "learningResources", "links")
LINK_TITLE = FieldRule("link.title", ("title", "name"), extract_text, "")
LINK_URL = FieldRule("link.url", ("url", "link", "href"), extract_text, "")
LINK_TYPE = FieldRule("link.type", ("type", "kind", "format"), extract_text, "")
LINK_DESCRIPTION = FieldRule("link.description", ("description", "summary"), extract_text, "")

ROADMAP_ROLE = FieldRule("roadmap.role", ("role", "targetRole", "jobRole"), extract_text)
ROADMAP_LEVEL = FieldRule("roadmap.experienceLevel", ("experienceLevel", "level", "experience"), extract_text)


def is_phase_like(node: Any) -> bool:
    return isinstance(node, dict) and any(name in node for name in PHASE_DIAGNOSTIC_FIELDS)


def parse_collection(
    items: Any,
    parse_element: Callable[[Any, MappingReport], Any],
    report: MappingReport,
    label: str,
) -> list[Any]:
    if isinstance(items, dict):
        items = [items]
    if not isinstance(items, list):
        return []

    parsed: list[Any] = []
    for index, item in enumerate(items):
        try:
            parsed.append(parse_element(item, report))
        except MappingFailure as exc:
            report.skipped_elements += 1
            logger.warning("skipping %s[%d]: %s", label, index, exc.reason)
        except (TypeError, ValueError, ArithmeticError) as exc:
            report.skipped_elements += 1
            logger.warning("skipping %s[%d]: %s", label, index, exc)
    return parsed


def _first_collection(
    node: dict[str, Any],
    aliases: tuple[str, ...],
    parse_element: Callable[[Any, MappingReport], Any],
    report: MappingReport,
    label: str,
) -> list[Any]:
    for alias in aliases:
        if alias not in node:
            continue
        value = node[alias]
        if isinstance(value, str):
            # "details" 같은 별칭은 설명 문자열일 수도 있다.
            continue
        parsed = parse_collection(value, parse_element, report, f"{label}.{alias}")
        if parsed:
            return parsed
    return []


def parse_learning_resource(item: Any, report: MappingReport) -> LearningResource:
    if isinstance(item, str) and item.strip():
        text = item.strip()
        if _URL_LIKE.match(text):
            return LearningResource(title=text, url=text)
        return LearningResource(title=text)
    if not isinstance(item, dict):
        raise MappingFailure(f"resource_not_object:{type(item).__name__}")
    title = resolve(item, LINK_TITLE)
    url = resolve(item, LINK_URL)
    if not title and not url:
        raise MappingFailure("resource_without_title_or_url")
    return LearningResource(
        title=title or url,
        url=url,
        type=resolve(item, LINK_TYPE),
        description=resolve(item, LINK_DESCRIPTION),
    )


def parse_subtopic(item: Any, report: MappingReport) -> Subtopic:
    if isinstance(item, str) and item.strip():
        return Subtopic(name=item.strip())
    if not isinstance(item, dict):
        raise MappingFailure(f"subtopic_not_object:{type(item).__name__}")

    description = resolve(item, SUBTOPIC_DESCRIPTION, report)
    name = resolve(item, SUBTOPIC_NAME, report) or _name_from_description(description)
    if not name:
        raise MappingFailure("subtopic_without_name")
    resources = _first_collection(item, LEARNING_RESOURCE_ALIASES, parse_learning_resource, report, "resources")
    return Subtopic(name=name, description=description, resources=resources)


def parse_topic(item: Any, report: MappingReport) -> Topic:
    if isinstance(item, str) and item.strip():
        report.record_default("topic.estimatedHours")
        report.record_default("topic.difficulty")
        return Topic(topicName=item.strip())
    if not isinstance(item, dict):
        raise MappingFailure(f"topic_not_object:{type(item).__name__}")

    description = resolve(item, TOPIC_DESCRIPTION, report)
    name = resolve(item, TOPIC_NAME, report) or _name_from_description(description)
    if not name:
        raise MappingFailure("topic_without_name")
    return Topic(
        topicName=name,
        description=description,
        estimatedHours=resolve(item, TOPIC_HOURS, report),
        difficulty=resolve(item, TOPIC_DIFFICULTY, report),
        subtopics=_first_collection(item, SUBTOPIC_COLLECTION_ALIASES, parse_subtopic, report, "subtopics"),
    )


def infer_week_from_name(name: str | None) -> int | None:
    if not name:
        return None
    match = _WEEK_IN_NAME.search(name)
    if not match:
        return None
    number = int(match.group(1))
    return number if number >= 1 else None


def parse_phase(item: Any, report: MappingReport, *, fallback_name: str | None = None) -> Phase:
    if isinstance(item, str) and item.strip():
        name = item.strip()
        return Phase(phaseName=name, weekNumber=infer_week_from_name(name) or 1)
    if not isinstance(item, dict):
        raise MappingFailure(f"phase_not_object:{type(item).__name__}")

    name = resolve(item, PHASE_NAME, report) or fallback_name
    week = resolve(item, PHASE_WEEK)
    if week is None:
        week = infer_week_from_name(name)
    if week is None:
        report.record_default(PHASE_WEEK.name)
        week = 1
    if not name:
        name = f"Week {week}"

    return Phase(
        phaseName=name,
        weekNumber=week,
        objective=resolve(item, PHASE_OBJECTIVE),
        topics=_first_collection(item, TOPIC_COLLECTION_ALIASES, parse_topic, report, "topics"),
        deliverables=list(resolve(item, PHASE_DELIVERABLES)),
    )


def _phases_from_fields(node: dict[str, Any], report: MappingReport) -> list[Phase]:
    phases: list[Phase] = []
    for key, value in node.items():
        if is_phase_like(value):
            try:
                phases.append(parse_phase(value, report, fallback_name=key))
            except MappingFailure as exc:
                report.skipped_elements += 1
                logger.warning("skipping phase field %s: %s", key, exc.reason)
        elif isinstance(value, list):
            phase_items = [element for element in value if is_phase_like(element)]
            phases.extend(parse_collection(phase_items, parse_phase, report, key))
    return phases


def extract_phases(node: Any, report: MappingReport) -> list[Phase]:
    if isinstance(node, list):
        report.shape = "array"
        return parse_collection(node, parse_phase, report, "root")
    if not isinstance(node, dict):
        return []

    phases = _first_collection(node, PHASE_COLLECTION_ALIASES, parse_phase, report, "roadmap")
    if phases:
        return phases
    if is_phase_like(node):
        report.shape = "single"
        return parse_collection([node], parse_phase, report, "root")
    return _phases_from_fields(node, report)


def _unwrap(parsed: Any, report: MappingReport, *wrappers: str) -> Any:
    if isinstance(parsed, dict):
        for wrapper in wrappers:
            inner = parsed.get(wrapper)
            if isinstance(inner, (dict, list)):
                report.shape = "wrapped"
                return inner
    return parsed


def _load(text: str | None, report: MappingReport) -> Any:
    try:
        return json.loads(text or "{}")
    except ValueError as exc:
        report.parse_failed = True
        report.shape = "empty"
        logger.warning("mapper received unparseable text: %s", exc)
        return {}


def map_roadmap(text: str | None, *, prompt: str | None = None) -> MappingResult:
    report = MappingReport()
    parsed = _unwrap(_load(text, report), report, "data", "roadmap")

    phases = extract_phases(parsed, report)
    phases.sort(key=lambda phase: phase.weekNumber)
    if not phases:
        logger.warning("no valid phases found in model response")

    header = parsed if isinstance(parsed, dict) else {}
    role = resolve(header, ROADMAP_ROLE) or extract_prompt_value(prompt, "role")
    level = resolve(header, ROADMAP_LEVEL) or extract_prompt_value(prompt, "experienceLevel")

    roadmap = Roadmap(
        role=role,
        experienceLevel=level.lower() if level else None,
        phases=phases,
        estimatedWeeks=max((phase.weekNumber for phase in phases), default=1),
    )
    return MappingResult(entity=roadmap, report=report)


# ---------------------------------------------------------------------------
# interview questions
# ---------------------------------------------------------------------------

QUESTION_COLLECTION_ALIASES = ("questions", "data", "items", "interviewQuestions")
QUESTION_TEXT = FieldRule("question.question", ("question", "q", "prompt", "title"), extract_text)
QUESTION_ANSWER = FieldRule("question.answer", ("answer", "a", "response", "solution"), extract_text, "")
QUESTION_CATEGORY = FieldRule("question.category", ("category", "topic", "type"), extract_text, "General")
QUESTION_DIFFICULTY = FieldRule("question.difficulty", ("difficulty", "level"), extract_text, "Medium")


def parse_question(item: Any, report: MappingReport) -> QuestionItem:
    if not isinstance(item, dict):
        raise MappingFailure(f"question_not_object:{type(item).__name__}")
    question = resolve(item, QUESTION_TEXT)
    if not question:
        raise MappingFailure("question_text_missing")
    difficulty = resolve(item, QUESTION_DIFFICULTY, report)
    return QuestionItem(
        question=question,
        answer=resolve(item, QUESTION_ANSWER, report),
        category=resolve(item, QUESTION_CATEGORY, report),
        difficulty=difficulty[0].upper() + difficulty[1:],
    )


def map_question_set(text: str | None, *, prompt: str | None = None) -> MappingResult:
    report = MappingReport()
    parsed = _load(text, report)

    if isinstance(parsed, list):
        report.shape = "array"
        questions = parse_collection(parsed, parse_question, report, "root")
        header: dict[str, Any] = {}
    elif isinstance(parsed, dict):
        header = parsed
        questions = _first_collection(parsed, QUESTION_COLLECTION_ALIASES, parse_question, report, "questions")
        if not questions and any(alias in parsed for alias in QUESTION_TEXT.aliases):
            report.shape = "single"
            questions = parse_collection([parsed], parse_question, report, "root")
    else:
        header, questions = {}, []

    role = resolve(header, ROADMAP_ROLE) or extract_prompt_value(prompt, "role")
    level = resolve(header, ROADMAP_LEVEL) or extract_prompt_value(prompt, "experienceLevel")
    question_set = QuestionSet(
        role=role,
        experienceLevel=level.lower() if level else None,
        questions=questions,
    )
    return MappingResult(entity=question_set, report=report)


# ---------------------------------------------------------------------------
# skill resources
# ---------------------------------------------------------------------------

RESOURCE_CATEGORY_ALIASES: dict[str, tuple[str, ...]] = {
    "learningPaths": ("learningPaths", "learning_paths", "learningPath", "courses", "tutorials"),
    "projects": ("projects", "projectIdeas", "project_ideas"),
    "certifications": ("certifications", "certificates", "certs"),
    "communities": ("communities", "community", "forums"),
}

_CATEGORY_HINTS = (
    ("project", "projects"),
    ("cert", "certifications"),
    ("communit", "communities"),
    ("forum", "communities"),
)

RESOURCE_TITLE = FieldRule("resource.title", ("title", "name"), extract_text, "")
RESOURCE_URL = FieldRule("resource.url", ("url", "link", "href"), extract_text, "")
RESOURCE_DESCRIPTION = FieldRule("resource.description", ("description", "summary", "details"), extract_text, "")
RESOURCE_TYPE = FieldRule("resource.type", ("type", "cost", "pricing"), extract_text, "")
RESOURCE_LEVEL = FieldRule("resource.level", ("level", "difficulty"), extract_text, "")
RESOURCE_RATING = FieldRule("resource.rating", ("rating", "score", "stars"), extract_rating)
RESOURCE_HOURS = FieldRule("resource.estimatedHours", ("estimatedHours", "hours", "duration"), extract_hours)

SKILL_NAME = FieldRule("bundle.skillName", ("skillName", "skill"), extract_text)


def parse_resource_item(item: Any, report: MappingReport) -> ResourceItem:
    if isinstance(item, str) and item.strip():
        text = item.strip()
        return ResourceItem(title=text, url=text if _URL_LIKE.match(text) else "")
    if not isinstance(item, dict):
        raise MappingFailure(f"resource_not_object:{type(item).__name__}")
    title = resolve(item, RESOURCE_TITLE)
    url = resolve(item, RESOURCE_URL)
    if not title and not url:
        raise MappingFailure("resource_without_title_or_url")
    return ResourceItem(
        title=title or url,
        url=url,
        description=resolve(item, RESOURCE_DESCRIPTION, report),
        type=resolve(item, RESOURCE_TYPE, report).upper(),
        level=resolve(item, RESOURCE_LEVEL, report).upper(),
        rating=resolve(item, RESOURCE_RATING),
        estimatedHours=resolve(item, RESOURCE_HOURS),
    )


def _category_for(item: Any) -> str:
    if isinstance(item, dict):
        hint = str(item.get("category") or item.get("section") or "").lower()
        for token, category in _CATEGORY_HINTS:
            if token in hint:
                return category
    return "learningPaths"


def map_skill_resources(text: str | None, *, prompt: str | None = None) -> MappingResult:
    report = MappingReport()
    parsed = _unwrap(_load(text, report), report, "data")

    buckets: dict[str, list[ResourceItem]] = {category: [] for category in RESOURCE_CATEGORIES}
    header: dict[str, Any] = {}

    if isinstance(parsed, list):
        # 배열 응답은 learningPaths 로 취급한다.
        report.shape = "array"
        buckets["learningPaths"] = parse_collection(parsed, parse_resource_item, report, "root")
    elif isinstance(parsed, dict):
        header = parsed
        for category, aliases in RESOURCE_CATEGORY_ALIASES.items():
            buckets[category] = _first_collection(parsed, aliases, parse_resource_item, report, category)
        mixed = parsed.get("resources")
        if isinstance(mixed, list):
            for index, item in enumerate(mixed):
                parsed_items = parse_collection([item], parse_resource_item, report, f"resources[{index}]")
                buckets[_category_for(item)].extend(parsed_items)

    skill_name = resolve(header, SKILL_NAME) or extract_prompt_value(prompt, "skillName")
    role = resolve(header, ROADMAP_ROLE) or extract_prompt_value(prompt, "role")
    level = resolve(header, ROADMAP_LEVEL) or extract_prompt_value(prompt, "experienceLevel")
    bundle = SkillResourceBundle(
        skillName=skill_name,
        role=role,
        experienceLevel=level.lower() if level else None,
        **buckets,
    )
    return MappingResult(entity=bundle, report=report)


_MAPPERS: dict[str, Callable[..., MappingResult]] = {
    "roadmap": map_roadmap,
    "questions": map_question_set,
    "skill_resources": map_skill_resources,
}


def map_response(kind: EntityKind, text: str | None, *, prompt: str | None = None) -> MappingResult:
    try:
        mapper = _MAPPERS[kind]
    except KeyError as exc:
        raise ValueError(f"unsupported_entity_kind:{kind}") from exc
    return mapper(text, prompt=prompt)
