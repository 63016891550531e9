"""Mock agent for replies and feature artifacts without LLM calls.

This module provides a MockAgent that produces templated chat replies and
fixed-shape study artifacts (flashcards, mind maps, quizzes). It simulates
the behavior of a real completion-backed generator so the real-time protocol
can be exercised end to end.

Replies open with one of four templated lines quoting the prompt, followed by
a fixed body. The opening is chosen with an injectable ``random.Random`` so
tests can make it deterministic.

Future LLM Integration:
    Implement ReplyGenerator against a completion service and pass it to the
    ReplyScheduler in place of ``mock_agent``.
"""
import random
from typing import Callable, Dict, Optional

from .base import ReplyGenerator
from .schemas import (
    FeatureResult,
    FeatureType,
    Flashcard,
    FlashcardsResult,
    MindmapBranch,
    MindmapResult,
    QuizQuestion,
    QuizResult,
    UnsupportedResult,
)

REPLY_OPENINGS = (
    'Thank you for your question about "{prompt}". Here\'s a comprehensive '
    "response with detailed analysis and examples.",
    'That\'s an interesting point about "{prompt}". Let me break this down for '
    "you with relevant information and context.",
    'I understand you\'re asking about "{prompt}". Here are the key insights and '
    "explanations you need to know.",
    'Great question regarding "{prompt}". Let me provide you with a thorough '
    "explanation and practical examples.",
)

REPLY_BODY = """

Key points to consider:
• Detailed analysis of the core concepts
• Practical applications and real-world examples
• Step-by-step breakdown of complex ideas
• Connections to related topics and concepts

This is a placeholder response that demonstrates the real-time chat functionality. The actual AI integration will provide comprehensive, context-aware responses based on your specific questions and uploaded content.

Feel free to ask follow-up questions for further clarification!"""

PLACEHOLDER_ANSWER = "Placeholder answer - AI will generate specific content"


def _flashcards(content: str) -> FlashcardsResult:
    return FlashcardsResult(cards=[
        Flashcard(front=f"What is {content}?", back=PLACEHOLDER_ANSWER),
        Flashcard(front=f"Key characteristics of {content}?", back=PLACEHOLDER_ANSWER),
        Flashcard(front=f"Applications of {content}?", back=PLACEHOLDER_ANSWER),
    ])


def _mindmap(content: str) -> MindmapResult:
    return MindmapResult(
        central=content,
        branches=[
            MindmapBranch(name="Core Concepts", items=["Concept A", "Concept B", "Concept C"]),
            MindmapBranch(name="Applications", items=["Use Case 1", "Use Case 2", "Use Case 3"]),
            MindmapBranch(name="Related Topics", items=["Related A", "Related B", "Related C"]),
        ],
    )


def _quiz(content: str) -> QuizResult:
    return QuizResult(questions=[
        QuizQuestion(
            question=f"What is the main focus of {content}?",
            type="multiple-choice",
            options=["Option A", "Option B", "Option C", "Option D"],
            correct=0,
        ),
        QuizQuestion(
            question=f"{content} is a fundamental concept.",
            type="true-false",
            correct=True,
        ),
        QuizQuestion(
            question=f"Explain the key principles of {content}.",
            type="short-answer",
        ),
    ])


# One builder per FeatureType member
FEATURE_BUILDERS: Dict[FeatureType, Callable[[str], FeatureResult]] = {
    FeatureType.FLASHCARDS: _flashcards,
    FeatureType.MINDMAP: _mindmap,
    FeatureType.QUIZ: _quiz,
}


class MockAgent(ReplyGenerator):
    """Templated generator that never calls an external service."""

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.Random()

    def generate_reply(self, prompt: str) -> str:
        """Build a placeholder reply quoting ``prompt``."""
        opening = self._rng.choice(REPLY_OPENINGS).format(prompt=prompt)
        return opening + REPLY_BODY

    def generate_feature(self, kind: Optional[FeatureType], content: str) -> FeatureResult:
        """Build the artifact for ``kind``; unknown kinds get UnsupportedResult."""
        if kind is None:
            return UnsupportedResult()
        return FEATURE_BUILDERS[kind](content)


# Global instance used by the scheduler
mock_agent = MockAgent()
