"""Map messages onto the run's category set using an LLM."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor

from ..core.errors import ClassificationError
from ..core.models import Category, CategorySet, Message
from .llm import LLMClient, LLMError
from .prompts import CLASSIFICATION_SYSTEM, build_classification_prompt

LOGGER = logging.getLogger(__name__)

MIN_EXCERPT_CHARS = 200
MAX_EXCERPT_CHARS = 1500
# Quotes and punctuation that models wrap around a bare label.
_LABEL_TRIM = " \t\r\n\"'`*.:;!"


class ClassifierGateway:
    """Assign one category per message, falling back when unsure.

    ``classify`` never raises: provider failures, unknown labels and empty
    answers all resolve to the fallback category of the supplied set.
    """

    def __init__(
        self,
        llm_client: LLMClient | None,
        *,
        excerpt_chars: int = 1000,
        batch_size: int = 5,
        batch_delay_seconds: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self._llm_client = llm_client
        self._excerpt_chars = min(
            max(excerpt_chars, MIN_EXCERPT_CHARS), MAX_EXCERPT_CHARS
        )
        self._batch_size = batch_size
        self._batch_delay = max(batch_delay_seconds, 0.0)
        self._sleep = sleep

    def classify(self, message: Message, categories: CategorySet) -> str:
        """Return the category name for ``message``."""
        fallback = categories.fallback.name
        try:
            category = self._ask(message, categories)
        except ClassificationError as exc:
            LOGGER.warning(
                "Classifying message #%s in %s fell back to '%s': %s",
                message.seq,
                message.folder_path,
                fallback,
                exc,
            )
            return fallback
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.error(
                "Unexpected error classifying message #%s: %s",
                message.seq,
                exc,
                exc_info=True,
            )
            return fallback
        return category.name

    def classify_many(
        self, messages: Sequence[Message], categories: CategorySet
    ) -> list[Message]:
        """Classify ``messages`` in concurrent batches, preserving order.

        Sets ``assigned_category`` on every message and returns them.
        """
        total = len(messages)
        for start in range(0, total, self._batch_size):
            if start and self._batch_delay:
                self._sleep(self._batch_delay)
            batch = messages[start : start + self._batch_size]
            with ThreadPoolExecutor(max_workers=len(batch)) as pool:
                labels = list(
                    pool.map(lambda item: self.classify(item, categories), batch)
                )
            for message, label in zip(batch, labels, strict=True):
                message.assigned_category = label
            LOGGER.info(
                "Classified %s/%s message(s)", min(start + len(batch), total), total
            )
        return list(messages)

    def excerpt(self, message: Message) -> str:
        """Bounded slice of the body sent to the provider."""
        return message.body_text.strip()[: self._excerpt_chars]

    def _ask(self, message: Message, categories: CategorySet) -> Category:
        if self._llm_client is None:
            raise ClassificationError("no classifier configured")
        prompt = build_classification_prompt(
            message, categories.names(), excerpt=self.excerpt(message)
        )
        try:
            raw_output = self._llm_client.generate(prompt, system=CLASSIFICATION_SYSTEM)
        except LLMError as exc:
            raise ClassificationError(f"provider error: {exc}") from exc

        label = normalise_label(raw_output)
        if not label:
            raise ClassificationError("empty answer")
        category = categories.resolve(label)
        if category is None:
            raise ClassificationError(f"unknown label {label!r}")
        LOGGER.debug("Message #%s classified as '%s'", message.seq, category.name)
        return category


def normalise_label(raw_output: str) -> str:
    """Reduce a model answer to the bare label on its first line."""
    lines = [line for line in raw_output.strip().splitlines() if line.strip()]
    if not lines:
        return ""
    return lines[0].strip(_LABEL_TRIM)


__all__ = ["ClassifierGateway", "normalise_label"]
