"""
Resilient request execution.

Wraps a single request coroutine factory in a sequential retry loop:

    attempting -> succeeded
    attempting -> failed                       (non-retryable, or attempts exhausted)
    attempting -> retry_wait -> attempting     (retryable, attempts remaining)

Waits are cooperative ``asyncio`` suspensions, so unrelated requests keep
running. Each ``execute`` call owns its state; the client itself holds only
configuration and can be shared between concurrent callers.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

import structlog

from learnmap_sdk.errors import ErrorKind, NormalizedError, log_error, normalize
from learnmap_sdk.retry_policy import GENERIC_PROFILE, RetryProfile, should_retry

logger = structlog.get_logger(__name__)

T = TypeVar("T")

CANCELLED_MESSAGE = "Request cancelled"


class RequestState(str, Enum):
    ATTEMPTING = "attempting"
    RETRY_WAIT = "retry_wait"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class RequestResult(Generic[T]):
    state: RequestState
    payload: Optional[T] = None
    error: Optional[NormalizedError] = None
    attempts: int = 0
    waits: list[float] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.state is RequestState.SUCCEEDED

    def unwrap(self) -> T:
        if self.ok:
            return self.payload  # type: ignore[return-value]
        raise RequestFailed(self.error or NormalizedError(kind=ErrorKind.UNKNOWN, message=CANCELLED_MESSAGE))


class RequestFailed(Exception):
    """Raised by ``RequestResult.unwrap`` for a failed request."""

    def __init__(self, error: NormalizedError):
        super().__init__(error.message)
        self.error = error


def _retryable_kind(error: NormalizedError) -> bool:
    return should_retry(error, attempt=0, max_attempts=1)


class ResilientRequestClient:
    def __init__(
        self,
        profile: RetryProfile = GENERIC_PROFILE,
        *,
        max_attempts: Optional[int] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        log: Any = None,
    ):
        self.profile = profile
        self.max_attempts = int(profile.max_attempts if max_attempts is None else max_attempts)
        self._sleep = sleep
        self._log = log or logger

    async def execute(
        self,
        request_fn: Callable[[], Awaitable[T]],
        *,
        abort: Optional[asyncio.Event] = None,
    ) -> RequestResult[T]:
        attempt = 0
        result: RequestResult[T] = RequestResult(state=RequestState.ATTEMPTING)

        while True:
            if abort is not None and abort.is_set():
                return self._cancelled(result)

            result.state = RequestState.ATTEMPTING
            result.attempts += 1
            try:
                payload = await request_fn()
            except Exception as exc:
                error = normalize(exc)
            else:
                result.state = RequestState.SUCCEEDED
                result.payload = payload
                result.error = None
                return result

            result.error = error
            if not should_retry(error, attempt, self.max_attempts):
                if attempt >= self.max_attempts and _retryable_kind(error):
                    error = error.with_message(f"{error.message} (Failed after {self.max_attempts} retries)")
                return self._failed(result, error)

            delay = self.profile.delay_for(attempt)
            self._log.debug(
                "learnmap_request_retry",
                attempt=attempt + 1,
                max_attempts=self.max_attempts + 1,
                delay_seconds=delay,
                kind=error.kind.value,
                error_message=error.message,
            )
            result.state = RequestState.RETRY_WAIT
            result.waits.append(delay)
            if not await self._wait(delay, abort):
                return self._cancelled(result)
            attempt += 1

    async def _wait(self, delay: float, abort: Optional[asyncio.Event]) -> bool:
        """Suspend for ``delay`` seconds. Returns False when aborted mid-wait."""
        if abort is None:
            await self._sleep(delay)
            return True

        sleeper = asyncio.ensure_future(self._sleep(delay))
        aborter = asyncio.ensure_future(abort.wait())
        try:
            await asyncio.wait({sleeper, aborter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, aborter):
                if not task.done():
                    task.cancel()
        return not abort.is_set()

    def _failed(self, result: RequestResult[T], error: NormalizedError) -> RequestResult[T]:
        result.state = RequestState.FAILED
        result.error = error
        log_error(error, self._log)
        return result

    def _cancelled(self, result: RequestResult[T]) -> RequestResult[T]:
        self._log.info("learnmap_request_cancelled", attempts=result.attempts)
        result.state = RequestState.FAILED
        result.error = NormalizedError(
            kind=ErrorKind.UNKNOWN,
            message=CANCELLED_MESSAGE,
            cause=result.error,
        )
        return result
