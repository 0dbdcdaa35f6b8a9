import asyncio
import json
from typing import Any, Dict, List, Optional

import pytest

from learnmap.domain.errors import DomainError, ErrorCode
from learnmap.domain.ports import RecordValidationError
from learnmap.infrastructure.persistence.memory_repository import InMemoryLearningMapRepository
from learnmap.services.map_generation import MapGenerationOrchestrator, classify_completion_failure

_VALID_COMPLETION = json.dumps(
    {
        "branches": [
            {
                "title": "Foundations",
                "description": "Core ideas",
                "subtopics": [
                    {
                        "title": "Ownership",
                        "description": "Who frees memory",
                        "resources": [{"type": "book", "title": "The Book", "url": "https://doc.rust-lang.org/book/"}],
                    }
                ],
            }
        ]
    }
)


class _FakeCompletionClient:
    def __init__(
        self,
        responses: Optional[List[str]] = None,
        error: Optional[BaseException] = None,
        configured: bool = True,
    ) -> None:
        self.responses = [_VALID_COMPLETION] if responses is None else responses
        self.error = error
        self.configured = configured
        self.calls: List[tuple[str, str]] = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    async def generate(self, model: str, prompt: str) -> List[str]:
        self.calls.append((model, prompt))
        if self.error is not None:
            raise self.error
        return list(self.responses)


class _FailingRepository:
    def __init__(self, error: BaseException) -> None:
        self.error = error
        self.created: List[Dict[str, Any]] = []

    async def create(self, learning_map: Dict[str, Any]) -> Dict[str, Any]:
        self.created.append(learning_map)
        raise self.error

    async def get_by_id(self, map_id: str) -> Optional[Dict[str, Any]]:
        raise self.error

    async def list_recent(self, limit: int = 50, skip: int = 0) -> List[Dict[str, Any]]:
        raise self.error


def _orchestrator(completion=None, repository=None) -> MapGenerationOrchestrator:
    return MapGenerationOrchestrator(
        completion_client=completion or _FakeCompletionClient(),
        repository=repository or InMemoryLearningMapRepository(),
        model="gemini-test",
    )


def _generate_error(orchestrator: MapGenerationOrchestrator, **kwargs) -> DomainError:
    with pytest.raises(DomainError) as excinfo:
        asyncio.run(orchestrator.generate(kwargs.pop("topic", "Rust"), kwargs.pop("level", "Beginner"), **kwargs))
    return excinfo.value


def test_generate_persists_and_returns_saved_map() -> None:
    completion = _FakeCompletionClient()
    orchestrator = _orchestrator(completion=completion)

    saved = asyncio.run(orchestrator.generate("Rust", "Intermediate"))
    loaded = asyncio.run(orchestrator.get_by_id(saved["id"]))

    assert saved["topic"] == "Rust"
    assert saved["level"] == "Intermediate"
    assert saved["branches"][0]["subtopics"][0]["title"] == "Ownership"
    assert "createdAt" in saved
    assert loaded == saved
    model, prompt = completion.calls[0]
    assert model == "gemini-test"
    assert "Rust" in prompt and "Intermediate" in prompt


def test_generate_without_persist_skips_repository() -> None:
    repository = _FailingRepository(RuntimeError("should not be called"))
    orchestrator = _orchestrator(repository=repository)

    learning_map = asyncio.run(orchestrator.generate("Rust", "Advanced", persist=False))

    assert repository.created == []
    assert "id" not in learning_map
    assert learning_map["branches"][0]["title"] == "Foundations"


def test_missing_api_key_is_external_service_error() -> None:
    completion = _FakeCompletionClient(configured=False)

    error = _generate_error(_orchestrator(completion=completion))

    assert error.code is ErrorCode.EXTERNAL_SERVICE_ERROR
    assert error.status_code == 502
    assert error.message == "GEMINI_API_KEY environment variable is not set"
    assert completion.calls == []


@pytest.mark.parametrize(
    ("exc", "code", "status"),
    [
        (RuntimeError("429 Resource has been exhausted (e.g. check quota)."), ErrorCode.TOO_MANY_REQUESTS, 429),
        (ValueError("API key not valid. Please pass a valid API key."), ErrorCode.EXTERNAL_SERVICE_ERROR, 502),
        (ConnectionError("fetch failed"), ErrorCode.NETWORK_ERROR, 503),
        (TimeoutError(), ErrorCode.EXTERNAL_SERVICE_TIMEOUT, 504),
        (RuntimeError("504 Deadline Exceeded"), ErrorCode.EXTERNAL_SERVICE_TIMEOUT, 504),
    ],
)
def test_completion_failures_are_classified(exc: BaseException, code: ErrorCode, status: int) -> None:
    error = _generate_error(_orchestrator(completion=_FakeCompletionClient(error=exc)))

    assert error.code is code
    assert error.status_code == status
    assert isinstance(error.__cause__, type(exc))


def test_unrecognized_completion_failure_keeps_message() -> None:
    assert classify_completion_failure(RuntimeError("model overloaded")).message == "model overloaded"
    assert (
        classify_completion_failure(RuntimeError()).message
        == "Unknown error occurred while generating learning map"
    )


def test_empty_completion_is_external_service_error() -> None:
    error = _generate_error(_orchestrator(completion=_FakeCompletionClient(responses=["   "])))

    assert error.code is ErrorCode.EXTERNAL_SERVICE_ERROR
    assert error.message == "Gemini API returned empty response"


def test_no_candidates_is_external_service_error() -> None:
    error = _generate_error(_orchestrator(completion=_FakeCompletionClient(responses=[])))

    assert error.message == "Gemini API returned empty response"


def test_unparseable_completion_is_terminal() -> None:
    completion = _FakeCompletionClient(responses=["I cannot help with that."])

    error = _generate_error(_orchestrator(completion=completion))

    assert error.code is ErrorCode.EXTERNAL_SERVICE_ERROR
    assert error.message.startswith("Failed to parse Gemini response: invalid JSON")
    assert len(completion.calls) == 1


def test_schema_rejection_on_save_is_validation_error() -> None:
    missing_description = '{"branches":[{"title":"B1","subtopics":[{"title":"S1","description":"d"}]}]}'
    orchestrator = _orchestrator(completion=_FakeCompletionClient(responses=[missing_description]))

    error = _generate_error(orchestrator)

    assert error.code is ErrorCode.VALIDATION_ERROR
    assert error.message == "Failed to save learning map: validation error"
    assert error.details["databaseError"] == {"branches.0.description": "Field required"}
    assert error.details["learningMap"]["branches"][0]["title"] == "B1"


def test_repository_validation_error_is_mapped() -> None:
    repository = _FailingRepository(RecordValidationError("bad", {"level": "Input should be 'Beginner'"}))

    error = _generate_error(_orchestrator(repository=repository))

    assert error.code is ErrorCode.VALIDATION_ERROR
    assert error.details["databaseError"] == {"level": "Input should be 'Beginner'"}


def test_storage_failure_returns_map_in_details() -> None:
    repository = _FailingRepository(RuntimeError("connection refused by database"))

    error = _generate_error(_orchestrator(repository=repository))

    assert error.code is ErrorCode.DATABASE_QUERY_ERROR
    assert error.status_code == 500
    assert error.message == "Failed to save learning map to database"
    assert error.details["learningMap"]["topic"] == "Rust"


def test_invalid_level_and_blank_topic_are_invalid_input() -> None:
    assert _generate_error(_orchestrator(), level="Expert").code is ErrorCode.INVALID_INPUT
    assert _generate_error(_orchestrator(), topic="   ").code is ErrorCode.INVALID_INPUT


def test_get_by_id_errors() -> None:
    orchestrator = _orchestrator()

    with pytest.raises(DomainError) as malformed:
        asyncio.run(orchestrator.get_by_id("not-a-uuid"))
    assert malformed.value.code is ErrorCode.INVALID_INPUT
    assert malformed.value.message == "Invalid learning map ID format: not-a-uuid"

    missing = asyncio.run(orchestrator.get_by_id("1b4e28ba-2fa1-11d2-883f-0016d3cca427"))
    assert missing is None

    broken = _orchestrator(repository=_FailingRepository(RuntimeError("socket closed")))
    with pytest.raises(DomainError) as failure:
        asyncio.run(broken.get_by_id("1b4e28ba-2fa1-11d2-883f-0016d3cca427"))
    assert failure.value.code is ErrorCode.DATABASE_QUERY_ERROR


def test_list_recent_failure_is_database_error() -> None:
    broken = _orchestrator(repository=_FailingRepository(RuntimeError("socket closed")))

    with pytest.raises(DomainError) as excinfo:
        asyncio.run(broken.list_recent())

    assert excinfo.value.message == "Failed to retrieve learning maps from database"


@pytest.mark.parametrize(
    "completion",
    [
        '{"branches": ' + "1" * 5000 + "}",
        "[" * 100000 + "]" * 100000,
    ],
)
def test_decoder_limit_failures_stay_in_taxonomy(completion: str) -> None:
    error = _generate_error(_orchestrator(completion=_FakeCompletionClient(responses=[completion])))

    assert error.code is ErrorCode.EXTERNAL_SERVICE_ERROR
    assert error.status_code == 502
    assert error.message.startswith("Failed to parse Gemini response: invalid JSON")
