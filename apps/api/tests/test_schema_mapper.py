import json
import unittest

from pathprep.domain.models import QuestionSet, Roadmap, SkillResourceBundle
from pathprep.services.generation import mapper
from pathprep.services.generation.mapper import (
    extract_hours,
    extract_rating,
    extract_week_number,
    map_question_set,
    map_response,
    map_roadmap,
    map_skill_resources,
    normalize_difficulty,
)
from pathprep.services.generation.normalizer import normalize_response_text


_MISSING = mapper._MISSING


class ValueExtractorTests(unittest.TestCase):
    def test_week_number_encodings(self) -> None:
        self.assertEqual(extract_week_number(3), 3)
        self.assertEqual(extract_week_number(2.0), 2)
        self.assertEqual(extract_week_number("3"), 3)
        self.assertEqual(extract_week_number("Week 4"), 4)
        self.assertEqual(extract_week_number("6-7"), 6)
        self.assertEqual(extract_week_number("weeks 2-3"), 2)
        self.assertEqual(extract_week_number("Week 1 to 2"), 1)

    def test_invalid_week_numbers_are_missing(self) -> None:
        self.assertIs(extract_week_number(0), _MISSING)
        self.assertIs(extract_week_number(-2), _MISSING)
        self.assertIs(extract_week_number("abc"), _MISSING)
        self.assertIs(extract_week_number(True), _MISSING)
        self.assertIs(extract_week_number(None), _MISSING)

    def test_difficulty_is_normalized_by_prefix(self) -> None:
        self.assertEqual(normalize_difficulty("easy"), "Beginner")
        self.assertEqual(normalize_difficulty("Beginner-friendly"), "Beginner")
        self.assertEqual(normalize_difficulty("MEDIUM"), "Intermediate")
        self.assertEqual(normalize_difficulty("hard"), "Advanced")
        self.assertEqual(normalize_difficulty("advanced"), "Advanced")
        self.assertEqual(normalize_difficulty("EXPERT"), "Expert")
        self.assertIs(normalize_difficulty(""), _MISSING)

    def test_hours_accept_ranges_and_units(self) -> None:
        self.assertEqual(extract_hours(5), 5)
        self.assertEqual(extract_hours(2.5), 3)
        self.assertEqual(extract_hours("10-15"), 13)
        self.assertEqual(extract_hours("8 hours"), 8)
        self.assertIs(extract_hours(0), _MISSING)
        self.assertIs(extract_hours("a while"), _MISSING)

    def test_non_finite_numbers_are_missing(self) -> None:
        for value in (float("inf"), float("-inf"), float("nan")):
            with self.subTest(value=value):
                self.assertIs(extract_week_number(value), _MISSING)
                self.assertIs(extract_hours(value), _MISSING)
                self.assertIs(extract_rating(value), _MISSING)
        self.assertIs(extract_hours("9" * 400), _MISSING)
        self.assertEqual(extract_rating(7), 5.0)


class RoadmapMapperTests(unittest.TestCase):
    def test_fenced_array_with_week_range_maps_to_single_phase(self) -> None:
        raw = '```json\n[{"phaseName":"Intro","weekNumber":"1-2"}]\n```'
        result = map_roadmap(normalize_response_text(raw))

        self.assertIsInstance(result.entity, Roadmap)
        self.assertEqual(len(result.entity.phases), 1)
        self.assertEqual(result.entity.phases[0].phaseName, "Intro")
        self.assertEqual(result.entity.phases[0].weekNumber, 1)
        self.assertEqual(result.entity.estimatedWeeks, 1)
        self.assertEqual(result.report.shape, "array")

    def test_alias_fields_are_resolved(self) -> None:
        payload = {
            "learningPhases": [
                {
                    "title": "Basics",
                    "week": "Week 2",
                    "summary": "Get comfortable with syntax",
                    "outcomes": ["Hello world", ""],
                    "learningTopics": [
                        {"name": "Syntax", "level": "easy", "hours": "3-5", "subTopics": ["Variables"]},
                    ],
                }
            ]
        }
        roadmap = map_roadmap(json.dumps(payload)).entity

        phase = roadmap.phases[0]
        self.assertEqual(phase.phaseName, "Basics")
        self.assertEqual(phase.weekNumber, 2)
        self.assertEqual(phase.objective, "Get comfortable with syntax")
        self.assertEqual(phase.deliverables, ["Hello world"])
        topic = phase.topics[0]
        self.assertEqual(topic.topicName, "Syntax")
        self.assertEqual(topic.difficulty, "Beginner")
        self.assertEqual(topic.estimatedHours, 4)
        self.assertEqual(topic.subtopics[0].name, "Variables")
        self.assertEqual(roadmap.estimatedWeeks, 2)

    def test_phases_are_sorted_and_estimated_weeks_is_max(self) -> None:
        payload = {
            "phases": [
                {"phaseName": "Advanced", "weekNumber": 3},
                {"phaseName": "Intro", "weekNumber": 1},
                {"phaseName": "Core", "weekNumber": "2"},
            ]
        }
        roadmap = map_roadmap(json.dumps(payload)).entity

        self.assertEqual([phase.weekNumber for phase in roadmap.phases], [1, 2, 3])
        self.assertEqual(roadmap.estimatedWeeks, 3)

    def test_week_is_inferred_from_name_then_defaults_to_one(self) -> None:
        payload = {"phases": [{"phaseName": "Week 5: Deployment"}, {"phaseName": "Wrap up"}]}
        result = map_roadmap(json.dumps(payload))

        weeks = {phase.phaseName: phase.weekNumber for phase in result.entity.phases}
        self.assertEqual(weeks["Week 5: Deployment"], 5)
        self.assertEqual(weeks["Wrap up"], 1)
        self.assertIn("phase.weekNumber", result.report.defaulted)

    def test_data_wrapper_is_unwrapped(self) -> None:
        payload = {"data": {"phases": [{"phaseName": "Intro", "weekNumber": 1}]}}
        result = map_roadmap(json.dumps(payload))

        self.assertEqual(result.report.shape, "wrapped")
        self.assertEqual(result.entity.phases[0].phaseName, "Intro")

    def test_phase_like_fields_of_root_become_phases(self) -> None:
        payload = {
            "Foundations": {"weekNumber": 1, "topics": ["HTML"]},
            "Frameworks": {"weekNumber": 3, "objective": "Pick a framework"},
            "notes": "ignored",
        }
        roadmap = map_roadmap(json.dumps(payload)).entity

        self.assertEqual([phase.phaseName for phase in roadmap.phases], ["Foundations", "Frameworks"])
        self.assertEqual(roadmap.phases[0].topics[0].topicName, "HTML")
        self.assertEqual(roadmap.phases[0].topics[0].estimatedHours, 2)

    def test_single_phase_object_at_root(self) -> None:
        roadmap = map_roadmap('{"phaseName": "Only", "weekNumber": 4}').entity

        self.assertEqual(len(roadmap.phases), 1)
        self.assertEqual(roadmap.estimatedWeeks, 4)

    def test_invalid_elements_are_skipped_not_fatal(self) -> None:
        payload = {"phases": [{"phaseName": "A", "weekNumber": 1}, 42, {"phaseName": "B", "weekNumber": 2}]}
        with self.assertLogs(mapper.logger, level="WARNING"):
            result = map_roadmap(json.dumps(payload))

        self.assertEqual([phase.phaseName for phase in result.entity.phases], ["A", "B"])
        self.assertEqual(result.report.skipped_elements, 1)

    def test_infinite_numbers_from_the_model_fall_back_to_defaults(self) -> None:
        raw = (
            '{"phases": [{"phaseName": "Intro", "weekNumber": 1e999,'
            ' "topics": [{"topicName": "Syntax", "estimatedHours": Infinity}]},'
            ' {"phaseName": "OOP", "weekNumber": 3}]}'
        )
        roadmap = map_roadmap(normalize_response_text(raw)).entity

        self.assertEqual([phase.phaseName for phase in roadmap.phases], ["Intro", "OOP"])
        self.assertEqual(roadmap.phases[0].weekNumber, 1)
        self.assertEqual(roadmap.phases[0].topics[0].estimatedHours, 2)
        self.assertEqual(roadmap.estimatedWeeks, 3)

    def test_topic_defaults_are_applied(self) -> None:
        payload = {"phases": [{"phaseName": "A", "topics": [{"topicName": "T", "estimatedHours": 0}]}]}
        topic = map_roadmap(json.dumps(payload)).entity.phases[0].topics[0]

        self.assertEqual(topic.estimatedHours, 2)
        self.assertEqual(topic.difficulty, "Beginner")

    def test_subtopic_name_is_derived_from_long_description(self) -> None:
        description = "Understand how the garbage collector reclaims unreachable objects in the heap"
        payload = {
            "phases": [
                {
                    "phaseName": "A",
                    "topics": [{"topicName": "GC", "subtopics": [{"description": description}]}],
                }
            ]
        }
        subtopic = map_roadmap(json.dumps(payload)).entity.phases[0].topics[0].subtopics[0]

        self.assertEqual(subtopic.name, description[:50] + "...")
        self.assertEqual(subtopic.description, description)

    def test_unparseable_text_maps_to_empty_roadmap(self) -> None:
        with self.assertLogs(mapper.logger, level="WARNING"):
            result = map_roadmap("not json")

        self.assertTrue(result.report.parse_failed)
        self.assertEqual(result.entity.phases, [])
        self.assertFalse(result.entity.has_content())

    def test_identity_is_backfilled_from_prompt(self) -> None:
        prompt = "Generate...\nRequest context:\nrole: Java Developer\nexperienceLevel: Beginner\n"
        roadmap = map_roadmap('[{"phaseName": "A"}]', prompt=prompt).entity

        self.assertEqual(roadmap.role, "Java Developer")
        self.assertEqual(roadmap.experienceLevel, "beginner")


class QuestionMapperTests(unittest.TestCase):
    def test_array_with_short_aliases(self) -> None:
        raw = '[{"q": "What is the JVM?", "a": "A virtual machine"}, {"answer": "orphan answer"}]'
        with self.assertLogs(mapper.logger, level="WARNING"):
            result = map_question_set(raw)

        self.assertIsInstance(result.entity, QuestionSet)
        self.assertEqual(len(result.entity.questions), 1)
        item = result.entity.questions[0]
        self.assertEqual(item.question, "What is the JVM?")
        self.assertEqual(item.answer, "A virtual machine")
        self.assertEqual(item.category, "General")
        self.assertEqual(item.difficulty, "Medium")
        self.assertEqual(result.report.skipped_elements, 1)

    def test_questions_under_data_key(self) -> None:
        raw = '{"data": [{"question": "Explain REST", "difficulty": "hard", "category": "APIs"}]}'
        item = map_question_set(raw).entity.questions[0]

        self.assertEqual(item.question, "Explain REST")
        self.assertEqual(item.difficulty, "Hard")
        self.assertEqual(item.category, "APIs")

    def test_single_question_object(self) -> None:
        result = map_question_set('{"question": "Explain GC", "answer": "It frees memory"}')

        self.assertEqual(result.report.shape, "single")
        self.assertEqual(len(result.entity.questions), 1)


class SkillResourceMapperTests(unittest.TestCase):
    def test_bare_array_becomes_learning_paths(self) -> None:
        raw = '[{"title": "Docker docs", "url": "https://docs.docker.com", "type": "free", "rating": 9}]'
        bundle = map_skill_resources(raw).entity

        self.assertIsInstance(bundle, SkillResourceBundle)
        self.assertEqual(len(bundle.learningPaths), 1)
        item = bundle.learningPaths[0]
        self.assertEqual(item.type, "FREE")
        self.assertEqual(item.rating, 5.0)

    def test_categories_and_mixed_resources(self) -> None:
        payload = {
            "skillName": "Docker",
            "projects": [{"name": "Containerize an app", "link": "https://example.com/p1"}],
            "certificates": [{"title": "DCA", "url": "https://example.com/dca", "level": "intermediate"}],
            "resources": [
                {"title": "Docker forum", "url": "https://forums.docker.com", "category": "Community"},
                {"title": "Course", "url": "https://example.com/course"},
            ],
        }
        bundle = map_skill_resources(json.dumps(payload)).entity

        self.assertEqual(bundle.skillName, "Docker")
        self.assertEqual(bundle.projects[0].title, "Containerize an app")
        self.assertEqual(bundle.projects[0].url, "https://example.com/p1")
        self.assertEqual(bundle.certifications[0].level, "INTERMEDIATE")
        self.assertEqual(bundle.communities[0].title, "Docker forum")
        self.assertEqual(bundle.learningPaths[0].title, "Course")

    def test_skill_name_backfilled_from_prompt(self) -> None:
        prompt = "Request context:\nskillName: Kubernetes\nrole: DevOps Engineer\nexperienceLevel: advanced"
        bundle = map_response("skill_resources", "{}", prompt=prompt).entity

        self.assertEqual(bundle.skillName, "Kubernetes")
        self.assertEqual(bundle.role, "DevOps Engineer")
        self.assertFalse(bundle.has_content())

    def test_unknown_kind_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            map_response("courses", "{}")  # type: ignore[arg-type]


if __name__ == "__main__":
    unittest.main()
