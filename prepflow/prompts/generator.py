"""
Question generation prompt templates

Builds the single completion request that asks for a whole question set
with an exact per-type distribution.
"""

from prepflow.models.question import QuestionType
from prepflow.models.session import SessionConfig


class QuestionPrompts:
    """
    Prompt templates for generating a session's question set.

    Key principles:
    - Exact count and per-type distribution
    - Every question distinct in wording and concept
    - Machine-parseable JSON only
    """

    SYSTEM_CONTEXT = (
        "You are an expert technical interviewer. Generate UNIQUE, DIVERSE "
        "interview questions. Each question must be completely different from "
        "the others. Use proper formatting with \\n for line breaks in JSON "
        "strings. Return only valid JSON, no additional text."
    )

    VARIETY_EXAMPLES = """For technical-coding: array manipulation, string processing, tree traversal, dynamic programming, sorting algorithms
For system-design: database design, API architecture, caching strategies, microservices, load balancing
For behavioral: conflict resolution, leadership, project management, learning experiences, teamwork
For technical-concepts: OOP principles, design patterns, data structures, algorithms complexity, best practices"""

    def generate_questions_prompt(
        self,
        config: SessionConfig,
        distribution: list[tuple[QuestionType, int]],
    ) -> str:
        """Generate the prompt for a full question set."""
        n = config.number_of_questions
        level = config.proficiency_level.value

        distribution_lines = "\n".join(
            f"- {qtype.value} ({qtype.label}): {count} questions covering {qtype.description}"
            for qtype, count in distribution
            if count > 0
        )

        return f"""You are generating interview questions for a {config.role} position at {config.company}.

REQUIREMENTS:
- Generate exactly {n} COMPLETELY DIFFERENT and UNIQUE questions
- Each question must be distinct and cover different aspects
- No two questions should be similar or test the same concept
- Proficiency level: {level}
- Skills focus: {', '.join(config.skills)}

QUESTION DISTRIBUTION:
{distribution_lines}

FORMATTING REQUIREMENTS:
- For coding questions: Include properly formatted code with \\n for line breaks
- Use markdown formatting: **bold**, `code`, bullet points
- Structure answers with clear sections and proper spacing

QUESTION VARIETY EXAMPLES:
{self.VARIETY_EXAMPLES}

Generate exactly {n} questions following this distribution. Each question must be completely unique.

Return a JSON object of the form {{"questions": [...]}} where each element has this exact structure:
{{
  "question": "unique question text",
  "type": "question-type",
  "category": "skill category",
  "difficulty": "{level}",
  "answer": "comprehensive formatted answer with proper \\n line breaks",
  "explanation": "what this question tests",
  "links": ["url1", "url2"]
}}"""
