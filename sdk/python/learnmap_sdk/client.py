from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Literal, Optional
from urllib.parse import quote

import httpx
from pydantic import BaseModel, Field, ValidationError, field_validator

from learnmap_sdk.errors import ErrorKind, NormalizedError, log_error, normalize
from learnmap_sdk.resilient import RequestResult, RequestState, ResilientRequestClient
from learnmap_sdk.retry_policy import COLD_START_PROFILE, RetryProfile


class GenerateMapRequest(BaseModel):
    topic: str = Field(min_length=3, max_length=200)
    level: Literal["Beginner", "Intermediate", "Advanced"]

    @field_validator("topic", mode="before")
    @classmethod
    def _strip_topic(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value


@dataclass
class LearnMapApiError(Exception):
    status_code: int
    message: str
    errors: Any = None
    body: Any = None

    def __str__(self) -> str:
        return self.message


def _raise_from_http_error(status_code: int, payload: Any) -> None:
    body = payload if isinstance(payload, dict) else None
    message = str((body or {}).get("message") or "")
    raise LearnMapApiError(
        status_code=status_code,
        message=message,
        errors=(body or {}).get("errors"),
        body=body,
    )


def _unwrap_envelope(payload: Any, fallback_message: str) -> Dict[str, Any]:
    envelope = payload if isinstance(payload, dict) else {}
    data = envelope.get("data")
    if envelope.get("success") and isinstance(data, dict):
        return data
    raise ValueError(str(envelope.get("error") or envelope.get("message") or fallback_message))


class AsyncLearnMapClient:
    """
    Async client for the learning map API.

    Every call runs through ``ResilientRequestClient`` and resolves to a
    ``RequestResult``: either the unwrapped payload or a ``NormalizedError``.
    Transport exceptions never escape.
    """

    def __init__(
        self,
        base_url: str,
        profile: RetryProfile = COLD_START_PROFILE,
        timeout_seconds: float = 30.0,
        default_headers: Optional[Dict[str, str]] = None,
        client: Optional[httpx.AsyncClient] = None,
        resilient: Optional[ResilientRequestClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.default_headers = {"Content-Type": "application/json", **(default_headers or {})}
        self._managed_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self.resilient = resilient or ResilientRequestClient(profile)

    async def __aenter__(self) -> "AsyncLearnMapClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._managed_client:
            await self.client.aclose()

    async def generate_learning_map(
        self,
        topic: str,
        level: str,
        *,
        abort: Optional[asyncio.Event] = None,
    ) -> RequestResult[Dict[str, Any]]:
        try:
            body = GenerateMapRequest(topic=topic, level=level)
        except ValidationError as exc:
            error = normalize(exc)
            log_error(error)
            return RequestResult(state=RequestState.FAILED, error=error)

        async def _call() -> Dict[str, Any]:
            payload = await self._request("POST", "/map/generate", json_body=body.model_dump())
            return _unwrap_envelope(payload, "Failed to generate map")

        return await self.resilient.execute(_call, abort=abort)

    async def get_learning_map(
        self,
        map_id: str,
        *,
        abort: Optional[asyncio.Event] = None,
    ) -> RequestResult[Dict[str, Any]]:
        if not str(map_id or "").strip():
            error = NormalizedError(kind=ErrorKind.VALIDATION, message="id: Map ID is required")
            return RequestResult(state=RequestState.FAILED, error=error)

        async def _call() -> Dict[str, Any]:
            payload = await self._request("GET", f"/map/{quote(str(map_id), safe='')}")
            return _unwrap_envelope(payload, "Map not found")

        return await self.resilient.execute(_call, abort=abort)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        response = await self.client.request(
            method=method,
            url=url,
            headers=self.default_headers,
            json=json_body,
        )

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.is_success:
            return payload
        _raise_from_http_error(response.status_code, payload)
