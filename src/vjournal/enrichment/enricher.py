"""Topic extraction and cluster labeling via the Claude API.

Both collaborators are best-effort: a failed call degrades to an empty
topic list or a placeholder label instead of raising.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any

from ..models import UNTITLED_TOPIC
from .prompts import (
    CLUSTER_LABEL_PROMPT,
    CLUSTER_LABEL_SYSTEM,
    TOPIC_EXTRACTION_PROMPT,
    TOPIC_EXTRACTION_SYSTEM,
)

logger = logging.getLogger(__name__)


class TopicExtractor(ABC):
    """Produces a short list of keywords from text."""

    @abstractmethod
    def extract(self, text: str) -> list[str]:
        """Return topics, or [] on failure."""


class Labeler(ABC):
    """Names a cluster from a few sample texts."""

    @abstractmethod
    def label(self, sample_texts: list[str]) -> str:
        """Return a short label, or UNTITLED_TOPIC on failure."""


def parse_topics(text: str) -> list[str]:
    """Split a comma-separated model reply into clean topics."""
    return [t.strip().lower() for t in text.split(",") if t.strip()]


def clean_label(text: str) -> str:
    """Strip quotes and trailing punctuation a model tends to add."""
    label = text.strip().splitlines()[0] if text.strip() else ""
    return label.strip().strip('"\'').rstrip(".").strip()


class _ClaudeClient:
    """Shared Anthropic client setup."""

    def __init__(self, config: dict[str, Any]):
        api_key = config.get("claude_api_key")
        if not api_key:
            raise ValueError("Claude API key required for enrichment. Set ANTHROPIC_API_KEY or claude_api_key in config.")

        import anthropic
        self.client = anthropic.Anthropic(api_key=api_key)
        self.model = config.get("claude_model", "claude-sonnet-4-20250514")

    def _complete(self, system: str, prompt: str, max_tokens: int, temperature: float) -> str:
        response = self.client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=temperature,
            system=system,
            messages=[{"role": "user", "content": prompt}],
        )
        return response.content[0].text


class ClaudeTopicExtractor(_ClaudeClient, TopicExtractor):
    """Extracts 3-5 lowercase topics from a journal entry."""

    def extract(self, text: str) -> list[str]:
        if not text or not text.strip():
            return []
        try:
            reply = self._complete(
                TOPIC_EXTRACTION_SYSTEM,
                TOPIC_EXTRACTION_PROMPT.format(text=text),
                max_tokens=100,
                temperature=0.3,
            )
            return parse_topics(reply)
        except Exception as e:
            logger.warning(f"Topic extraction failed: {e}")
            return []


class ClaudeLabeler(_ClaudeClient, Labeler):
    """Generates a 2-4 word label for a cluster."""

    def label(self, sample_texts: list[str]) -> str:
        samples = [s for s in sample_texts if s and s.strip()][:3]
        if not samples:
            return UNTITLED_TOPIC

        formatted = "\n\n".join(f"Entry {i}: {s}" for i, s in enumerate(samples, 1))
        try:
            reply = self._complete(
                CLUSTER_LABEL_SYSTEM,
                CLUSTER_LABEL_PROMPT.format(samples=formatted),
                max_tokens=20,
                temperature=0.5,
            )
        except Exception as e:
            logger.warning(f"Cluster labeling failed: {e}")
            return UNTITLED_TOPIC
        return clean_label(reply) or UNTITLED_TOPIC


class NullTopicExtractor(TopicExtractor):
    """Used when no API key is configured."""

    def extract(self, text: str) -> list[str]:
        return []


class NullLabeler(Labeler):
    """Used when no API key is configured."""

    def label(self, sample_texts: list[str]) -> str:
        return UNTITLED_TOPIC


def get_collaborators(config: dict[str, Any]) -> tuple[TopicExtractor, Labeler]:
    """Claude-backed extractor and labeler, or null versions without an API key.

    Topic extraction and labeling tolerate a missing key; they degrade to
    empty topics and placeholder labels.
    """
    if not config.get("claude_api_key"):
        logger.info("No Claude API key configured; topics and cluster labels disabled")
        return NullTopicExtractor(), NullLabeler()
    return ClaudeTopicExtractor(config), ClaudeLabeler(config)
