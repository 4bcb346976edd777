"""
AI prompt templates for prepflow

Contains structured prompts for:
- Question set generation
- Session evaluation
"""

from prepflow.prompts.generator import QuestionPrompts
from prepflow.prompts.evaluator import EvaluatorPrompts

__all__ = [
    "QuestionPrompts",
    "EvaluatorPrompts",
]
