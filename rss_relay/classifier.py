"""Topical relevance checks backed by an LLM."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from google import genai
from google.genai import types
from openai import OpenAI

from .models import Article, CategoryConfig

logger = logging.getLogger(__name__)

DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "gemini": "gemini-flash-latest",
}

SYSTEM_PROMPT = (
    "You screen news articles for a team channel. "
    "Answer with a single word: yes or no."
)


class ClassificationBackend(Protocol):
    """Minimal protocol for a yes/no text oracle."""

    def ask(self, prompt: str) -> str:
        """Return the raw answer text for the prompt."""


@dataclass
class OpenAIClassificationBackend:
    """OpenAI chat-completions implementation of the oracle."""

    client: OpenAI
    model: str
    max_tokens: int = 3

    def ask(self, prompt: str) -> str:
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            max_tokens=self.max_tokens,
            temperature=0,
        )
        return response.choices[0].message.content or ""


@dataclass
class GeminiClassificationBackend:
    """Google Gemini implementation of the oracle."""

    client: genai.Client
    model: str
    max_tokens: int = 5

    def ask(self, prompt: str) -> str:
        response = self.client.models.generate_content(
            model=self.model,
            contents=prompt,
            config=types.GenerateContentConfig(
                system_instruction=SYSTEM_PROMPT,
                max_output_tokens=self.max_tokens,
                temperature=0,
                thinking_config=types.ThinkingConfig(thinking_budget=0),
            ),
        )
        reason = _finish_reason(response)
        if response.text is None or reason == "MAX_TOKENS":
            raise RuntimeError(
                f"Gemini returned no usable answer (finish reason {reason})"
            )
        return response.text


def _finish_reason(response) -> Optional[str]:
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return None
    reason = getattr(candidates[0], "finish_reason", None)
    return getattr(reason, "name", reason)


def build_backend(
    provider: str, api_key: Optional[str], model: Optional[str] = None
) -> Optional[ClassificationBackend]:
    """Create the oracle for ``provider``; ``None`` when no API key is set."""
    if not api_key:
        logger.info("No classification API key configured; relevance checks disabled")
        return None

    provider = provider.lower()
    if provider not in DEFAULT_MODELS:
        raise ValueError(f"Unsupported classifier provider: {provider}")

    model_name = model or DEFAULT_MODELS[provider]
    logger.info("Using %s classifier with model %s", provider, model_name)
    if provider == "gemini":
        return GeminiClassificationBackend(
            client=genai.Client(api_key=api_key), model=model_name
        )
    return OpenAIClassificationBackend(client=OpenAI(api_key=api_key), model=model_name)


def build_prompt(article: Article, policy: str) -> str:
    return (
        f"{policy.strip()}\n\n"
        f"Title: {article.title}\n"
        f"Summary: {article.summary or '(none)'}\n\n"
        "Is this article relevant? Answer yes or no."
    )


def is_affirmative(answer: Optional[str]) -> bool:
    """Return True only when the answer is the word "yes"."""
    if not answer:
        return False
    return answer.strip().rstrip(".!").strip().lower() == "yes"


class RelevanceClassifier:
    """Decides whether an article belongs in a category's channel.

    Without a backend every article is relevant. Backend errors are logged
    and also treated as relevant, so an outage never suppresses content.
    """

    def __init__(self, backend: Optional[ClassificationBackend] = None):
        self.backend = backend

    @property
    def enabled(self) -> bool:
        return self.backend is not None

    def classify(self, article: Article, category: CategoryConfig) -> bool:
        if self.backend is None:
            return True

        prompt = build_prompt(article, category.policy)
        try:
            answer = self.backend.ask(prompt)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Classification failed for %s in %s; passing it through: %s",
                article.link,
                category.name,
                exc,
            )
            return True

        relevant = is_affirmative(answer)
        logger.debug(
            "Classifier answered %r for %s (%s)", answer, article.link, category.name
        )
        return relevant
