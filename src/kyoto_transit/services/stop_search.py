"""Substring search over stops and landmarks."""

import logging
import threading
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ..budget.limiter import ResponseBudgeter
from ..core.exceptions import ValidationError
from ..core.models import Language, StopCandidate, StopSearchRequest
from ..core.reference import ReferenceDataStore
from ..utils.japanese_text import get_converter, is_hiragana_only, normalize_search_term

logger = logging.getLogger(__name__)

SECONDARY_LANGUAGE_WEIGHT = 0.8
READING_WEIGHT = 0.9


def relevance_score(query: str, target: str) -> float:
    """Score 0-100 of a normalized query against a normalized name.

    Exact match 100, prefix 80, suffix 70; other substring matches score at
    most 60, higher when the match is early and covers more of the name.
    """
    if not query or query not in target:
        return 0
    if query == target:
        return 100
    if target.startswith(query):
        return 80
    if target.endswith(query):
        return 70
    position = target.index(query)
    position_score = max(0, 50 - position * 5)
    length_score = len(query) / len(target) * 30
    return min(60, position_score + length_score)


class StopSearchService:
    """Finds stops and landmarks whose names contain a query."""

    def __init__(self, store: ReferenceDataStore, budgeter: ResponseBudgeter):
        self.store = store
        self.budgeter = budgeter
        self._readings: dict[str, str] = {}
        self._readings_lock = threading.Lock()

    def search(self, query: str, language: Language, max_tokens: int) -> dict[str, Any]:
        """Search and budget the candidate list.

        Returns:
            ``{"candidates": [...], "truncated": bool}``, best match first

        Raises:
            ValidationError: If the request is malformed
            ConfigurationError: If reference data is unavailable
        """
        try:
            request = StopSearchRequest(query=query, language=language, max_tokens=max_tokens)
        except PydanticValidationError as e:
            raise ValidationError.from_pydantic(e) from e

        candidates = self.find(request.query, request.language)
        budgeted = self.budgeter.limit(
            {"candidates": [c.model_dump() for c in candidates]}, request.max_tokens
        )
        return {
            "candidates": budgeted.payload.get("candidates", []),
            "truncated": budgeted.truncated,
        }

    def find(self, query: str, language: Language) -> list[StopCandidate]:
        """All matching candidates, sorted by descending relevance."""
        normalized = normalize_search_term(query)
        if not normalized:
            return []
        by_reading = language == "ja" and is_hiragana_only(normalized)

        scored: list[tuple[float, StopCandidate]] = []
        for stop in self.store.stops(language):
            score = self._score(normalized, stop.name_ja, stop.name_en, language)
            if by_reading and score < 100:
                score = max(score, self._reading_score(normalized, stop.id, stop.name_ja))
            if score > 0:
                name = stop.name_ja if language == "ja" else stop.name_en
                scored.append((score, StopCandidate(name=name, kind=stop.kind, id=stop.id)))

        for landmark in self.store.landmarks(language):
            score = self._score(normalized, landmark.name_ja, landmark.name_en, language)
            if by_reading and score < 100:
                score = max(
                    score, self._reading_score(normalized, landmark.id, landmark.name_ja)
                )
            if score > 0:
                name = landmark.name_ja if language == "ja" else landmark.name_en
                scored.append((score, StopCandidate(name=name, kind="landmark", id=landmark.id)))

        # sort is stable: equal scores keep reference table order
        scored.sort(key=lambda item: item[0], reverse=True)
        logger.debug(f"'{query}' matched {len(scored)} stops and landmarks")
        return [candidate for _, candidate in scored]

    @staticmethod
    def _score(query: str, name_ja: str, name_en: str, language: Language) -> float:
        primary, secondary = (name_ja, name_en) if language == "ja" else (name_en, name_ja)
        return max(
            relevance_score(query, normalize_search_term(primary)),
            relevance_score(query, normalize_search_term(secondary)) * SECONDARY_LANGUAGE_WEIGHT,
        )

    def _reading_score(self, query: str, key: str, name_ja: str) -> float:
        reading = self._readings.get(key)
        if reading is None:
            reading = get_converter().reading(name_ja)
            with self._readings_lock:
                self._readings[key] = reading
        return relevance_score(query, reading) * READING_WEIGHT
