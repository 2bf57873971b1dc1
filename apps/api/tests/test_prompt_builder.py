import unittest

from pydantic import ValidationError

from pathprep.domain.models import GenerationRequest, build_composite_key
from pathprep.services.generation.prompt_builder import (
    build_prompt,
    build_questions_prompt,
    build_roadmap_prompt,
    build_skill_resources_prompt,
    default_timeline_weeks,
    extract_prompt_value,
)


class PromptBuilderTests(unittest.TestCase):
    def test_roadmap_prompt_carries_request_context(self) -> None:
        request = GenerationRequest(role="Java Developer", experienceLevel="Beginner", skills=["Git", "SQL"])
        prompt = build_roadmap_prompt(request)

        self.assertIn("Generate a detailed learning roadmap for a beginner Java Developer.", prompt)
        self.assertIn("currentSkills: Git, SQL", prompt)
        self.assertIn("timelineWeeks: 16", prompt)
        self.assertEqual(extract_prompt_value(prompt, "role"), "Java Developer")
        self.assertEqual(extract_prompt_value(prompt, "experienceLevel"), "beginner")

    def test_default_timeline_depends_on_level(self) -> None:
        self.assertEqual(default_timeline_weeks("beginner"), 16)
        self.assertEqual(default_timeline_weeks("Intermediate"), 12)
        self.assertEqual(default_timeline_weeks("advanced"), 8)
        self.assertEqual(default_timeline_weeks("guru"), 12)
        self.assertEqual(default_timeline_weeks(None), 12)

    def test_explicit_timeline_wins(self) -> None:
        request = GenerationRequest(role="Data Engineer", experienceLevel="advanced", timelineWeeks=20)
        self.assertIn("timelineWeeks: 20", build_roadmap_prompt(request))

    def test_questions_prompt_clamps_count_and_folds_skill(self) -> None:
        request = GenerationRequest(role="Backend Developer", count=500, topics="Spring, JPA", skillName="Java")
        prompt = build_questions_prompt(request)

        self.assertIn("Generate exactly 100 unique interview questions", prompt)
        self.assertIn("topics: Java (Spring, JPA)", prompt)

    def test_questions_prompt_defaults_to_general_topics(self) -> None:
        prompt = build_questions_prompt(GenerationRequest(role="QA Engineer", count=0))

        self.assertIn("Generate exactly 1 unique interview questions", prompt)
        self.assertEqual(extract_prompt_value(prompt, "topics"), "general")

    def test_skill_resources_prompt_honours_category_flags(self) -> None:
        request = GenerationRequest(role="DevOps Engineer", skillName="Docker", includeProjects=False)
        prompt = build_skill_resources_prompt(request)

        self.assertIn("- Learning Paths: Include", prompt)
        self.assertIn("- Projects: Exclude", prompt)
        self.assertEqual(extract_prompt_value(prompt, "skillName"), "Docker")

    def test_prompt_json_examples_render_braces(self) -> None:
        prompt = build_prompt("roadmap", GenerationRequest(role="Dev"))
        self.assertIn('"phases": [', prompt)
        self.assertNotIn("{{", prompt)

    def test_unknown_kind_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            build_prompt("courses", GenerationRequest(role="Dev"))  # type: ignore[arg-type]

    def test_extract_prompt_value_missing_key(self) -> None:
        self.assertIsNone(extract_prompt_value("role: Dev", "skillName"))
        self.assertIsNone(extract_prompt_value(None, "role"))


class CompositeKeyTests(unittest.TestCase):
    def test_roadmap_key_is_case_and_whitespace_insensitive(self) -> None:
        first = GenerationRequest(role="  Java   Developer ", experienceLevel="Beginner")
        second = GenerationRequest(role="java developer", experienceLevel="beginner")

        self.assertEqual(first.composite_key("roadmap"), "java_developer_beginner_0")
        self.assertEqual(first.composite_key("roadmap"), second.composite_key("roadmap"))

    def test_roadmap_key_includes_timeline(self) -> None:
        request = GenerationRequest(role="Java Developer", timelineWeeks=12)
        self.assertEqual(request.composite_key("roadmap"), "java_developer_beginner_12")

    def test_roadmap_key_without_timeline_ends_with_zero(self) -> None:
        request = GenerationRequest(role="Java Developer", experienceLevel="beginner")

        self.assertEqual(request.composite_key("roadmap"), "java_developer_beginner_0")
        self.assertEqual(build_composite_key("dev", 0), "dev_0")
        self.assertEqual(build_composite_key("dev", None), "dev_")

    def test_question_key_ignores_topic_order(self) -> None:
        first = GenerationRequest(role="Dev", topics="Spring,  JAVA")
        second = GenerationRequest(role="dev", topics="java, spring")

        self.assertEqual(first.composite_key("questions"), second.composite_key("questions"))
        self.assertEqual(GenerationRequest(role="Dev").composite_key("questions"), "dev_beginner")

    def test_skill_resources_key(self) -> None:
        request = GenerationRequest(role="DevOps Engineer", experienceLevel="Advanced", skillName="Docker")
        self.assertEqual(request.composite_key("skill_resources"), "docker_devops_engineer_advanced")

    def test_build_composite_key_is_pure(self) -> None:
        self.assertEqual(build_composite_key("A  B", "C"), build_composite_key("a b", "c"))

    def test_blank_role_is_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            GenerationRequest(role="   ")

    def test_experience_level_must_be_known(self) -> None:
        self.assertEqual(GenerationRequest(role="Dev", experienceLevel=" ADVANCED ").experienceLevel, "advanced")
        self.assertEqual(GenerationRequest(role="Dev", experienceLevel="").experienceLevel, "beginner")
        with self.assertRaises(ValidationError):
            GenerationRequest(role="Dev", experienceLevel="senior")


if __name__ == "__main__":
    unittest.main()
