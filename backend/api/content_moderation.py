"""
OpenAI moderation endpoint client used to classify lyrics text.
"""

import logging
from dataclasses import dataclass, field

import requests

from backend.services.errors import ExternalServiceDegraded
from backend.services.intake import sanitize_text


logger = logging.getLogger(__name__)

OPENAI_MODERATIONS_URL = "https://api.openai.com/v1/moderations"
MODERATION_MODEL = "omni-moderation-latest"
CLASSIFIER_TIMEOUT_SECONDS = 3.2
CHUNK_LENGTH = 1200
MAX_CHUNKS = 2


@dataclass
class ClassifierResult:
    available: bool = False
    flagged: bool = False
    categories: frozenset = field(default_factory=frozenset)
    failed: bool = False

    def has_category(self, prefix):
        """True for an exact category or any of its sub-categories (e.g. 'hate/threatening')"""
        prefix = prefix.lower()
        return any(key.lower() == prefix or key.lower().startswith(f"{prefix}/") for key in self.categories)


def split_text_by_length(text, max_chunk_length=240, max_chunks=8):
    safe_text = sanitize_text(text, 30000)
    return [
        safe_text[start:start + max_chunk_length]
        for start in range(0, len(safe_text), max_chunk_length)
    ][:max_chunks]


class ContentClassifier:
    """Submits up to two lyric chunks and OR-merges the per-category flags"""

    def __init__(self, api_key=None, timeout=CLASSIFIER_TIMEOUT_SECONDS, model=MODERATION_MODEL):
        self.api_key = sanitize_text(api_key or "", 300)
        self.timeout = timeout
        self.model = model

    @property
    def available(self):
        return bool(self.api_key)

    def _moderate_chunk(self, chunk):
        try:
            response = requests.post(
                OPENAI_MODERATIONS_URL,
                json={"model": self.model, "input": chunk},
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            raise ExternalServiceDegraded("openai", f"timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise ExternalServiceDegraded("openai", str(e)) from e

        if response.status_code != 200:
            raise ExternalServiceDegraded("openai", f"HTTP {response.status_code}")

        try:
            results = response.json().get("results") or []
        except (ValueError, AttributeError) as e:
            raise ExternalServiceDegraded("openai", "invalid JSON body") from e

        if not results or not isinstance(results[0], dict):
            raise ExternalServiceDegraded("openai", "empty moderation result")
        return results[0]

    def classify(self, text):
        if not self.available:
            return ClassifierResult(available=False)

        chunks = split_text_by_length(text, CHUNK_LENGTH)[:MAX_CHUNKS]
        if not chunks:
            return ClassifierResult(available=True)

        flagged = False
        any_success = False
        categories = set()

        for chunk in chunks:
            try:
                moderation = self._moderate_chunk(chunk)
            except ExternalServiceDegraded as e:
                logger.warning(f"Content classifier degraded: {e}")
                continue

            any_success = True
            if moderation.get("flagged") is True:
                flagged = True
            raw_categories = moderation.get("categories") or {}
            if isinstance(raw_categories, dict):
                categories.update(
                    sanitize_text(key, 64) for key, value in raw_categories.items() if value is True
                )

        return ClassifierResult(
            available=True,
            flagged=flagged,
            categories=frozenset(categories),
            failed=not any_success,
        )
