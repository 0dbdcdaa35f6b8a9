from __future__ import annotations

from dataclasses import dataclass

from learnmap_sdk.errors import ErrorKind, NormalizedError


def should_retry(error: NormalizedError, attempt: int, max_attempts: int) -> bool:
    """
    Retry network failures and upstream 5xx responses while attempts remain.
    4xx, validation and unknown errors are terminal.
    """
    if attempt >= max_attempts:
        return False

    if error.kind is ErrorKind.NETWORK:
        return True

    if error.kind is ErrorKind.UPSTREAM_API:
        status = error.status
        return status is not None and 500 <= status < 600

    return False


@dataclass(frozen=True)
class RetryProfile:
    """Backoff schedule. ``exponential=False`` waits ``base_delay_seconds`` every time."""

    name: str
    max_attempts: int
    base_delay_seconds: float
    exponential: bool = False

    def delay_for(self, attempt: int) -> float:
        if self.exponential:
            return self.base_delay_seconds * (2 ** max(0, attempt))
        return self.base_delay_seconds


# Sleeping backends can take ~50s to answer the first request.
COLD_START_PROFILE = RetryProfile(name="cold-start", max_attempts=10, base_delay_seconds=5.0)
GENERIC_PROFILE = RetryProfile(name="generic", max_attempts=3, base_delay_seconds=1.0, exponential=True)

PROFILES = {profile.name: profile for profile in (COLD_START_PROFILE, GENERIC_PROFILE)}


def get_profile(name: str) -> RetryProfile:
    try:
        return PROFILES[str(name or "").strip().lower()]
    except KeyError:
        raise ValueError(f"Unknown retry profile: {name!r}. Expected one of {sorted(PROFILES)}") from None
