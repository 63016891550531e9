"""Structured results for AI feature requests.

A feature result is a closed tagged union discriminated by ``kind``:

    flashcards   -> FlashcardsResult{cards}
    mindmap      -> MindmapResult{central, branches}
    quiz         -> QuizResult{questions}
    unsupported  -> UnsupportedResult{message}

``to_payload()`` drops the tag so the wire ``result`` field keeps the shape
clients already render (e.g. ``{"cards": [...]}``); the feature type travels
next to it in the ``type`` field of the event.
"""
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field


class FeatureType(str, Enum):
    """Feature types the generator knows how to build."""
    FLASHCARDS = "flashcards"
    MINDMAP = "mindmap"
    QUIZ = "quiz"

    @classmethod
    def parse(cls, value: str) -> Optional["FeatureType"]:
        """Map a client-supplied string to a FeatureType, or None if unknown."""
        try:
            return cls(value)
        except ValueError:
            return None


class Flashcard(BaseModel):
    front: str
    back: str


class MindmapBranch(BaseModel):
    name: str
    items: List[str]


class QuizQuestion(BaseModel):
    question: str
    type: Literal["multiple-choice", "true-false", "short-answer"]
    options: Optional[List[str]] = None
    correct: Optional[Union[bool, int]] = None


class _FeatureResultBase(BaseModel):
    def to_payload(self) -> dict:
        return self.model_dump(mode="json", exclude={"kind"}, exclude_none=True)


class FlashcardsResult(_FeatureResultBase):
    kind: Literal["flashcards"] = "flashcards"
    cards: List[Flashcard]


class MindmapResult(_FeatureResultBase):
    kind: Literal["mindmap"] = "mindmap"
    central: str
    branches: List[MindmapBranch]


class QuizResult(_FeatureResultBase):
    kind: Literal["quiz"] = "quiz"
    questions: List[QuizQuestion]


class UnsupportedResult(_FeatureResultBase):
    kind: Literal["unsupported"] = "unsupported"
    message: str = "Feature not implemented yet"


FeatureResult = Annotated[
    Union[FlashcardsResult, MindmapResult, QuizResult, UnsupportedResult],
    Field(discriminator="kind"),
]
