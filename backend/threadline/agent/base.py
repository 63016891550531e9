"""ReplyGenerator abstract interface.

The scheduler talks to content generation only through this narrow interface,
so the templated MockAgent can be swapped for a client of a real completion
service without touching the protocol code.
"""
from abc import ABC, abstractmethod
from typing import Optional

from .schemas import FeatureResult, FeatureType


class ReplyGenerator(ABC):
    """Produces AI reply text and structured feature artifacts."""

    @abstractmethod
    def generate_reply(self, prompt: str) -> str:
        """Return the reply text for a user message.

        Raises:
            GenerationError: If no reply could be produced.
        """

    @abstractmethod
    def generate_feature(self, kind: Optional[FeatureType], content: str) -> FeatureResult:
        """Build a feature artifact for ``content``.

        Args:
            kind: Parsed feature type, or None for an unknown request type.
            content: Free text the artifact is about.
        """
