import re

from pathprep.domain.models import EntityKind, GenerationRequest


DEFAULT_TIMELINE_WEEKS = {"beginner": 16, "intermediate": 12, "advanced": 8}

_JSON_RULES = """Guidelines:
1. Use double quotes for all strings
2. Do not use trailing commas
3. Escape any special characters in strings with backslashes
4. Ensure all opening brackets have matching closing brackets
5. Only include the JSON object in your response, no other text"""

ROADMAP_TEMPLATE = """Generate a detailed learning roadmap for a {level} {role}.

IMPORTANT: Your response must be a valid JSON object without any markdown formatting, extra text, or code blocks.
Do not include any explanations or notes outside the JSON structure.

Required JSON structure:
{{
  "role": "{role}",
  "experienceLevel": "{level}",
  "phases": [
    {{
      "phaseName": "Phase title",
      "weekNumber": 1,
      "objective": "What the learner achieves in this phase",
      "topics": [
        {{
          "topicName": "Topic title",
          "description": "Topic description",
          "estimatedHours": 10,
          "difficulty": "Beginner|Intermediate|Advanced",
          "subtopics": [
            {{
              "name": "Subtopic title",
              "description": "Subtopic description",
              "resources": [
                {{"title": "Resource title", "url": "https://example.com/resource", "type": "ARTICLE|VIDEO|COURSE|DOCUMENTATION|PRACTICE"}}
              ]
            }}
          ]
        }}
      ],
      "deliverables": ["Deliverable 1"]
    }}
  ]
}}

weekNumber must be a single integer (the week the phase starts), never a range.

{rules}

Request context:
role: {role}
experienceLevel: {level}
currentSkills: {skills}
timelineWeeks: {weeks}
focusArea: {focus}

Make the roadmap practical with hands-on exercises, real-world projects and suggested resources for each topic.
Now generate the roadmap for a {level} {role}:"""

QUESTIONS_TEMPLATE = """Generate exactly {count} unique interview questions for a {role} position at the {level} level.
Focus on these topics: {topics}

IMPORTANT: You MUST return exactly {count} questions. Do not return fewer or more questions than requested.

Return the response as a JSON object with a 'questions' array containing objects with these fields:
- question: The interview question (required)
- answer: A detailed answer (at least 2-3 sentences)
- category: The category of the question (e.g., 'Core', 'Frameworks', 'System Design')
- difficulty: The difficulty level ('Easy', 'Medium', 'Hard')

Example response format:
{{
  "role": "{role}",
  "experienceLevel": "{level}",
  "questions": [
    {{"question": "...", "answer": "...", "category": "Core", "difficulty": "Easy"}}
  ]
}}

{rules}

Request context:
role: {role}
experienceLevel: {level}
topics: {topics}"""

SKILL_RESOURCES_TEMPLATE = """Generate a comprehensive list of learning resources for the skill: {skill}
Target role: {role}
Experience level: {level}

Please provide resources in the following categories:
- Learning Paths: {learning_paths}
- Projects: {projects}
- Certifications: {certifications}
- Communities: {communities}

For each resource, include:
- title
- url
- description (brief)
- type (FREE/PAID/COMMUNITY)
- level (BEGINNER/INTERMEDIATE/ADVANCED)
- estimatedHours (if applicable)
- rating (1-5, if available)

Return a JSON object with the keys "learningPaths", "projects", "certifications" and "communities",
each holding an array of resources. Use an empty array for excluded categories.

{rules}

Request context:
skillName: {skill}
role: {role}
experienceLevel: {level}"""


def default_timeline_weeks(experience_level: str | None) -> int:
    return DEFAULT_TIMELINE_WEEKS.get(str(experience_level or "").strip().lower(), 12)


def _include(flag: bool) -> str:
    return "Include" if flag else "Exclude"


def build_roadmap_prompt(request: GenerationRequest) -> str:
    return ROADMAP_TEMPLATE.format(
        role=request.role,
        level=request.experienceLevel,
        skills=", ".join(request.skills) if request.skills else "None specified",
        weeks=request.timelineWeeks or default_timeline_weeks(request.experienceLevel),
        focus=request.focusArea or "General",
        rules=_JSON_RULES,
    )


def build_questions_prompt(request: GenerationRequest) -> str:
    topics = request.topics.strip() if request.topics and request.topics.strip() else "general"
    if request.skillName:
        topics = f"{request.skillName} ({topics})" if topics != "general" else request.skillName
    return QUESTIONS_TEMPLATE.format(
        count=request.question_count(),
        role=request.role,
        level=request.experienceLevel,
        topics=topics,
        rules=_JSON_RULES,
    )


def build_skill_resources_prompt(request: GenerationRequest) -> str:
    return SKILL_RESOURCES_TEMPLATE.format(
        skill=request.skillName or request.role,
        role=request.role,
        level=request.experienceLevel,
        learning_paths=_include(request.includeLearningPaths),
        projects=_include(request.includeProjects),
        certifications=_include(request.includeCertifications),
        communities=_include(request.includeCommunities),
        rules=_JSON_RULES,
    )


_BUILDERS = {
    "roadmap": build_roadmap_prompt,
    "questions": build_questions_prompt,
    "skill_resources": build_skill_resources_prompt,
}


def build_prompt(kind: EntityKind, request: GenerationRequest) -> str:
    try:
        builder = _BUILDERS[kind]
    except KeyError as exc:
        raise ValueError(f"unsupported_entity_kind:{kind}") from exc
    return builder(request)


def extract_prompt_value(prompt: str | None, key: str) -> str | None:
    """Read a ``key: value`` line back out of a rendered prompt."""
    if not prompt or not key:
        return None
    match = re.search(rf"(?im)^\s*{re.escape(key)}\s*:\s*([^\n\r]+?)\s*$", prompt)
    if not match:
        return None
    return match.group(1).strip() or None
