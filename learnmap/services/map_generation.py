"""
Learning map generation use case.

Composes the prompt, calls the completion collaborator, parses the raw
text and maps every failure onto the domain taxonomy before it leaves this
boundary. A parse failure is terminal: retrying would only re-run a
non-deterministic generator.
"""

from __future__ import annotations

import time
from typing import Any, Dict, List, Optional, Union

import structlog

from learnmap.domain.errors import DomainError, ErrorCode, domain_error, invalid_data
from learnmap.domain.ports import (
    ICompletionClient,
    ILearningMapRepository,
    MalformedIdentifierError,
    RecordValidationError,
)
from learnmap.domain.schemas import LearningLevel
from learnmap.services.prompts import build_learning_map_prompt
from learnmap.services.response_parser import ParseError, parse_branches

logger = structlog.get_logger(__name__)

_API_KEY_MARKERS = ("api key", "api_key")
_QUOTA_MARKERS = ("quota", "resource has been exhausted", "resource_exhausted")
_NETWORK_MARKERS = ("network", "fetch", "connect")
_TIMEOUT_MARKERS = ("timeout", "timed out", "deadline")


def classify_completion_failure(exc: BaseException) -> DomainError:
    """Map an exception raised by the completion collaborator to a domain error."""
    if isinstance(exc, DomainError):
        return exc

    raw_message = str(exc)
    text = f"{type(exc).__name__}: {raw_message}".lower()

    if any(marker in text for marker in _API_KEY_MARKERS):
        return domain_error(ErrorCode.EXTERNAL_SERVICE_ERROR, "Google Gemini API key not configured or invalid")
    if any(marker in text for marker in _QUOTA_MARKERS):
        return domain_error(ErrorCode.TOO_MANY_REQUESTS, "API quota exceeded. Please try again later")
    if any(marker in text for marker in _NETWORK_MARKERS):
        return domain_error(ErrorCode.NETWORK_ERROR, "Network error. Please check your connection")
    if any(marker in text for marker in _TIMEOUT_MARKERS):
        return domain_error(ErrorCode.EXTERNAL_SERVICE_TIMEOUT, "Request timed out. Please try again")
    return domain_error(
        ErrorCode.EXTERNAL_SERVICE_ERROR,
        raw_message or "Unknown error occurred while generating learning map",
    )


class MapGenerationOrchestrator:
    def __init__(
        self,
        completion_client: ICompletionClient,
        repository: ILearningMapRepository,
        model: str,
        log: Any = None,
    ):
        self.completion_client = completion_client
        self.repository = repository
        self.model = model
        self._log = log or logger

    async def generate(
        self,
        topic: str,
        level: Union[LearningLevel, str],
        persist: bool = True,
    ) -> Dict[str, Any]:
        """
        Generate a learning map and optionally store it.

        When storing fails, the generated map is still available to the
        caller under ``error.details["learningMap"]``.
        """
        try:
            level_value = LearningLevel(level).value
        except ValueError as exc:
            raise domain_error(ErrorCode.INVALID_INPUT, f"Invalid learning level: {level}") from exc
        if not str(topic or "").strip():
            raise invalid_data("Topic is required")

        self._log.debug("learning_map_generation_started", topic=topic, level=level_value, persist=persist)

        branches = await self._generate_branches(topic, level_value)
        learning_map: Dict[str, Any] = {"topic": topic, "level": level_value, "branches": branches}

        if persist:
            return await self._persist(learning_map)
        return learning_map

    async def _generate_branches(self, topic: str, level: str) -> List[Dict[str, Any]]:
        if not self.completion_client.is_configured:
            self._log.error("gemini_api_key_missing")
            raise domain_error(ErrorCode.EXTERNAL_SERVICE_ERROR, "GEMINI_API_KEY environment variable is not set")

        prompt = build_learning_map_prompt(topic, level)
        started = time.perf_counter()
        try:
            self._log.debug("gemini_request", model=self.model, prompt_preview=prompt[:100] + "...")
            candidates = await self.completion_client.generate(self.model, prompt)
        except DomainError:
            raise
        except Exception as exc:
            error = classify_completion_failure(exc)
            self._log.error(
                "gemini_request_failed",
                code=error.code.value,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise error from exc

        text = candidates[0] if candidates else ""
        if not str(text or "").strip():
            self._log.error("gemini_empty_response", model=self.model)
            raise domain_error(ErrorCode.EXTERNAL_SERVICE_ERROR, "Gemini API returned empty response")

        try:
            branches = parse_branches(text)
        except ParseError as exc:
            self._log.error("gemini_response_unparseable", reason=exc.reason, detail=exc.detail)
            raise domain_error(ErrorCode.EXTERNAL_SERVICE_ERROR, str(exc)) from exc

        self._log.info(
            "learning_map_generated",
            topic=topic,
            level=level,
            branches=len(branches),
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return branches

    async def _persist(self, learning_map: Dict[str, Any]) -> Dict[str, Any]:
        try:
            saved = await self.repository.create(learning_map)
        except RecordValidationError as exc:
            self._log.error("learning_map_save_invalid", errors=exc.errors)
            raise domain_error(
                ErrorCode.VALIDATION_ERROR,
                "Failed to save learning map: validation error",
                {"databaseError": exc.errors, "learningMap": learning_map},
            ) from exc
        except Exception as exc:
            self._log.error("learning_map_save_failed", error=str(exc), error_type=type(exc).__name__)
            raise domain_error(
                ErrorCode.DATABASE_QUERY_ERROR,
                "Failed to save learning map to database",
                {"learningMap": learning_map},
            ) from exc

        self._log.info("learning_map_saved", map_id=saved.get("id"))
        return saved

    async def get_by_id(self, map_id: str) -> Optional[Dict[str, Any]]:
        if not str(map_id or "").strip():
            raise invalid_data("Map ID is required")
        try:
            found = await self.repository.get_by_id(map_id)
        except MalformedIdentifierError as exc:
            raise domain_error(ErrorCode.INVALID_INPUT, f"Invalid learning map ID format: {map_id}") from exc
        except Exception as exc:
            self._log.error("learning_map_lookup_failed", map_id=map_id, error=str(exc))
            raise domain_error(
                ErrorCode.DATABASE_QUERY_ERROR, "Failed to retrieve learning map from database"
            ) from exc

        if found is not None:
            self._log.debug("learning_map_loaded", map_id=map_id)
        return found

    async def list_recent(self, limit: int = 50, skip: int = 0) -> List[Dict[str, Any]]:
        try:
            return await self.repository.list_recent(limit=limit, skip=skip)
        except Exception as exc:
            self._log.error("learning_map_list_failed", error=str(exc))
            raise domain_error(
                ErrorCode.DATABASE_QUERY_ERROR, "Failed to retrieve learning maps from database"
            ) from exc
