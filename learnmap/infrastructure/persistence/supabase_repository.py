"""
Supabase-backed learning map store.

Rows live in ``settings.LEARNING_MAP_TABLE`` with the columns
``id uuid primary key, topic text, level text, branches jsonb, created_at timestamptz``.
Transport hiccups (HTTP/2 resets, gateway errors) are retried with
exponential backoff; anything else propagates to the caller.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

import structlog
from pydantic import ValidationError
from supabase import AsyncClient
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from learnmap.domain.ports import DuplicateKeyError, PersistenceError
from learnmap.domain.schemas import LearningMap
from learnmap.infrastructure.persistence.documents import build_record, parse_identifier, validation_errors
from learnmap.infrastructure.supabase.client import (
    get_async_supabase_client,
    reset_async_supabase_client,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")

_TRANSIENT_MARKERS = (
    "readerror",
    "connecterror",
    "remoteprotocolerror",
    "timeouterror",
    "pooltimeout",
    "temporarily unavailable",
    "connection reset",
    "broken pipe",
    "502",
    "503",
    "504",
    "bad gateway",
    "json could not be generated",
    "supabase_empty_response",
)

_UNIQUE_VIOLATION = "23505"


def is_transient_store_error(exc: BaseException) -> bool:
    name = exc.__class__.__name__.lower()
    text = str(exc or "").lower()
    return any(marker in name or marker in text for marker in _TRANSIENT_MARKERS)


def _row_to_map(row: Dict[str, Any]) -> Dict[str, Any]:
    try:
        return LearningMap.model_validate(row).to_wire()
    except ValidationError as exc:
        raise PersistenceError(f"Stored learning map is corrupt: {validation_errors(exc)}") from exc


class SupabaseLearningMapRepository:
    def __init__(
        self,
        table: str = "learning_maps",
        max_retries: int = 3,
        base_delay_seconds: float = 0.4,
        client_getter: Callable[[], Awaitable[AsyncClient]] = get_async_supabase_client,
    ):
        self.table = table
        self.max_retries = max(0, int(max_retries))
        self.base_delay_seconds = max(0.05, float(base_delay_seconds))
        self._client_getter = client_getter

    def _on_transient_retry(self, retry_state) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "supabase_transient_error_retry",
            attempt=retry_state.attempt_number,
            max_attempts=self.max_retries + 1,
            error=str(exc),
            error_type=type(exc).__name__ if exc else None,
        )
        reset_async_supabase_client()

    async def _with_retries(self, operation: str, call: Callable[[AsyncClient], Awaitable[T]]) -> T:
        async for attempt in AsyncRetrying(
            retry=retry_if_exception(is_transient_store_error),
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.base_delay_seconds, max=3.0),
            before_sleep=self._on_transient_retry,
            reraise=True,
        ):
            with attempt:
                client = await self._client_getter()
                response = await call(client)
                if response is None:
                    raise RuntimeError(f"supabase_empty_response:{operation}")
                return response
        raise RuntimeError(f"supabase_retry_exhausted:{operation}")  # pragma: no cover

    async def create(self, learning_map: Dict[str, Any]) -> Dict[str, Any]:
        record = build_record(learning_map)
        row = record.model_dump(mode="json", by_alias=True, exclude_none=True)

        async def _insert(client: AsyncClient):
            return await client.table(self.table).insert(row).execute()

        try:
            response = await self._with_retries("insert_learning_map", _insert)
        except Exception as exc:
            if getattr(exc, "code", None) == _UNIQUE_VIOLATION:
                raise DuplicateKeyError("id") from exc
            raise

        rows = response.data if isinstance(response.data, list) else []
        return _row_to_map(rows[0]) if rows and isinstance(rows[0], dict) else record.to_wire()

    async def get_by_id(self, map_id: str) -> Optional[Dict[str, Any]]:
        key = parse_identifier(map_id)

        async def _select(client: AsyncClient):
            return await client.table(self.table).select("*").eq("id", key).limit(1).execute()

        response = await self._with_retries("load_learning_map", _select)
        rows = response.data if isinstance(response.data, list) else []
        return _row_to_map(rows[0]) if rows and isinstance(rows[0], dict) else None

    async def list_recent(self, limit: int = 50, skip: int = 0) -> List[Dict[str, Any]]:
        start = max(0, int(skip))
        end = start + max(1, int(limit)) - 1

        async def _select(client: AsyncClient):
            return (
                await client.table(self.table)
                .select("*")
                .order("created_at", desc=True)
                .range(start, end)
                .execute()
            )

        response = await self._with_retries("list_learning_maps", _select)
        rows = response.data if isinstance(response.data, list) else []
        return [_row_to_map(row) for row in rows if isinstance(row, dict)]
