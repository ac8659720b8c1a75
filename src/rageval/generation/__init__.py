"""
Answer generation used during evaluation runs.
"""

from rageval.generation.answer import AnswerGenerator

__all__ = ["AnswerGenerator"]
