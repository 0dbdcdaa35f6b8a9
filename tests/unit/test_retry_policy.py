import pytest

from learnmap_sdk.errors import ErrorKind, NormalizedError
from learnmap_sdk.retry_policy import COLD_START_PROFILE, GENERIC_PROFILE, get_profile, should_retry


def _error(kind: ErrorKind, code=None) -> NormalizedError:
    return NormalizedError(kind=kind, message="x", code=code)


def test_network_and_server_errors_retry_while_attempts_remain() -> None:
    assert should_retry(_error(ErrorKind.NETWORK), attempt=0, max_attempts=3) is True
    assert should_retry(_error(ErrorKind.UPSTREAM_API, 503), attempt=2, max_attempts=3) is True
    assert should_retry(_error(ErrorKind.UPSTREAM_API, "500"), attempt=0, max_attempts=3) is True


def test_exhausted_attempts_never_retry() -> None:
    assert should_retry(_error(ErrorKind.NETWORK), attempt=3, max_attempts=3) is False
    assert should_retry(_error(ErrorKind.UPSTREAM_API, 503), attempt=5, max_attempts=3) is False
    assert should_retry(_error(ErrorKind.NETWORK), attempt=0, max_attempts=0) is False


@pytest.mark.parametrize("code", [400, 404, 429, None])
def test_client_errors_are_terminal(code) -> None:
    assert should_retry(_error(ErrorKind.UPSTREAM_API, code), attempt=0, max_attempts=10) is False


def test_validation_and_unknown_are_terminal() -> None:
    assert should_retry(_error(ErrorKind.VALIDATION), attempt=0, max_attempts=10) is False
    assert should_retry(_error(ErrorKind.UNKNOWN), attempt=0, max_attempts=10) is False


def test_profiles_backoff_schedule() -> None:
    assert [GENERIC_PROFILE.delay_for(attempt) for attempt in range(3)] == [1.0, 2.0, 4.0]
    assert {COLD_START_PROFILE.delay_for(attempt) for attempt in range(10)} == {5.0}
    assert COLD_START_PROFILE.max_attempts == 10


def test_get_profile_lookup() -> None:
    assert get_profile(" Cold-Start ") is COLD_START_PROFILE
    assert get_profile("generic") is GENERIC_PROFILE
    with pytest.raises(ValueError):
        get_profile("aggressive")
