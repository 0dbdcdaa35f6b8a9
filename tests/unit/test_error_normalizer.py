import httpx
from pydantic import ValidationError

from learnmap_sdk.client import GenerateMapRequest, LearnMapApiError
from learnmap_sdk.errors import (
    DEFAULT_ERROR_MESSAGE,
    NETWORK_ERROR_MESSAGE,
    ErrorKind,
    NormalizedError,
    clean_error_message,
    get_error_message,
    log_error,
    normalize,
    should_log,
)


class _Unprintable(Exception):
    def __str__(self) -> str:
        raise RuntimeError("cannot render")


class _CaptureLog:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict]] = []

    def error(self, event: str, **kwargs) -> None:
        self.events.append((event, kwargs))


def _validation_error() -> ValidationError:
    try:
        GenerateMapRequest(topic="", level="Beginner")
    except ValidationError as exc:
        return exc
    raise AssertionError("expected a validation error")


def test_transport_errors_are_network_with_fixed_message() -> None:
    error = normalize(httpx.ConnectError("All connection attempts failed"))

    assert error.kind is ErrorKind.NETWORK
    assert error.message == NETWORK_ERROR_MESSAGE
    assert error.code is None


def test_network_code_and_fetch_message_are_network() -> None:
    assert normalize({"code": "ECONNABORTED", "message": "timeout of 30000ms exceeded"}).kind is ErrorKind.NETWORK
    assert normalize("TypeError: Failed to fetch").kind is ErrorKind.NETWORK


def test_network_wins_over_http_status() -> None:
    error = normalize({"status": 503, "message": "fetch failed"})

    assert error.kind is ErrorKind.NETWORK
    assert error.code is None


def test_status_default_messages_when_body_is_silent() -> None:
    assert normalize({"status": 404}).message == "Resource not found."
    assert normalize({"status": 429}).message == "Too many requests. Please try again later."
    assert normalize({"status": 502}).message == "Server error. Please try again later."
    assert normalize({"status": 418}).message == DEFAULT_ERROR_MESSAGE


def test_body_message_wins_and_prefixes_are_stripped() -> None:
    error = normalize({"status": 500, "data": {"message": "Error: Failed to save learning map to database"}})

    assert error.kind is ErrorKind.UPSTREAM_API
    assert error.code == 500
    assert error.message == "Failed to save learning map to database"


def test_http_response_and_status_error_shapes() -> None:
    response = httpx.Response(422, json={"success": False, "message": "ValueError: bad level"})
    request = httpx.Request("GET", "http://test/api/v1/map/1")
    failing = httpx.Response(500, text="<html>upstream crashed</html>", request=request)

    assert normalize(response).message == "bad level"
    assert normalize(response).status == 422

    error = normalize(httpx.HTTPStatusError("boom", request=request, response=failing))
    assert error.kind is ErrorKind.UPSTREAM_API
    assert error.message == "Server error. Please try again later."


def test_sdk_api_error_carries_status_and_body() -> None:
    raw = LearnMapApiError(status_code=400, message="", body={"success": False, "message": "Invalid request data"})

    error = normalize(raw)

    assert error.kind is ErrorKind.UPSTREAM_API
    assert error.code == 400
    assert error.message == "Invalid request data"


def test_status_outside_error_range_is_not_upstream() -> None:
    assert normalize({"status": 302, "message": "moved"}).kind is ErrorKind.UNKNOWN


def test_validation_issues_are_joined() -> None:
    issues = normalize([{"path": "topic", "message": "Too short"}, {"loc": ["level"], "msg": "Invalid"}])
    from_pydantic = normalize(_validation_error())

    assert issues.kind is ErrorKind.VALIDATION
    assert issues.message == "topic: Too short; level: Invalid"
    assert from_pydantic.kind is ErrorKind.VALIDATION
    assert from_pydantic.message.startswith("topic: ")


def test_normalize_is_total() -> None:
    for raw in (None, 42, object(), b"bytes", [], {}, _Unprintable()):
        error = normalize(raw)
        assert isinstance(error, NormalizedError)
        assert error.message

    assert normalize(None).message == DEFAULT_ERROR_MESSAGE
    assert normalize(_Unprintable()).kind is ErrorKind.UNKNOWN


def test_normalize_is_idempotent() -> None:
    error = normalize(RuntimeError("RuntimeError: boom"))

    assert normalize(error) is error
    assert error.message == "boom"


def test_clean_error_message_strips_stacked_prefixes() -> None:
    assert clean_error_message("TypeError: Error: boom") == "boom"
    assert clean_error_message("error:   spaced") == "spaced"
    assert clean_error_message("plain message") == "plain message"
    assert get_error_message("SyntaxError: Unexpected token") == "Unexpected token"


def test_only_reportable_kinds_are_logged() -> None:
    log = _CaptureLog()

    log_error(normalize(_validation_error()), log)
    log_error(normalize({"status": 500}), log)

    assert should_log(normalize("boom")) is True
    assert [event for event, _ in log.events] == ["learnmap_request_failed"]
    assert log.events[0][1]["kind"] == "upstream_api"
