"""
AI Evaluator Prompt Templates

Contains the structured prompt for scoring a finished session. The model
sees every question, its reference answer and the candidate's answer, and
returns one score object.
"""

from prepflow.models.question import Question
from prepflow.models.session import SessionConfig, UserAnswer


class EvaluatorPrompts:
    """
    Prompt templates for AI evaluation of a session.

    Key principles:
    - Fair, rubric-based scoring on a 0-100 scale
    - Technical accuracy and communication both count
    - Breakdown keys fixed in advance so the result is reconcilable
    """

    SYSTEM_CONTEXT = (
        "You are an expert technical interviewer. Provide fair and constructive "
        "evaluation of interview answers, considering both technical accuracy "
        "and communication skills. You must respond with valid JSON only, no "
        "additional text or explanations."
    )

    NO_ANSWER = "No answer provided"

    def generate_evaluation_prompt(
        self,
        questions: list[Question],
        answers: dict[str, UserAnswer],
        config: SessionConfig,
    ) -> str:
        """Generate prompt for evaluating a finished session."""
        blocks = []
        for i, question in enumerate(questions, start=1):
            answer = answers.get(question.id)
            answer_text = answer.answer_text.strip() if answer else ""
            blocks.append(
                f"Question {i} (Type: {question.type.value}, Category: {question.category}): {question.text}\n"
                f"Expected Answer: {question.sample_answer or 'Not provided'}\n"
                f"User Answer: {answer_text or self.NO_ANSWER}\n"
                f"Time Spent: {answer.time_spent_seconds if answer else 0} seconds"
            )

        categories = list(dict.fromkeys(q.category for q in questions))
        types = list(dict.fromkeys(q.type.value for q in questions))

        qa_section = "\n\n".join(blocks)
        category_example = ", ".join(f'"{c}": 0' for c in categories)
        type_example = ", ".join(f'"{t}": 0' for t in types)
        category_keys = ", ".join(categories)
        type_keys = ", ".join(types)

        return f"""Evaluate the following interview answers for a {config.role} position at {config.company}.
Target proficiency: {config.proficiency_level.value}

=== QUESTIONS AND ANSWERS ===
{qa_section}

=== YOUR TASK ===
Return ONLY a valid JSON object with this exact structure:
{{
  "score": 85,
  "assessedProficiency": "advanced",
  "categoryScores": {{{category_example}}},
  "typeScores": {{{type_example}}},
  "feedback": "Overall feedback text",
  "recommendations": ["recommendation 1", "recommendation 2"]
}}

Rules:
- Every score is a number from 0 to 100.
- Unanswered questions score 0.
- assessedProficiency is one of: beginner, intermediate, advanced, expert.
- categoryScores must have exactly these keys: {category_keys}
- typeScores must have exactly these keys: {type_keys}"""
