from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol


class PersistenceError(Exception):
    """Generic storage failure."""


class RecordValidationError(PersistenceError):
    """The document did not satisfy the stored schema."""

    def __init__(self, message: str, errors: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.errors = errors or {}


class MalformedIdentifierError(PersistenceError):
    def __init__(self, value: str):
        super().__init__(f"Malformed identifier: {value}")
        self.value = value


class DuplicateKeyError(PersistenceError):
    def __init__(self, field: str):
        super().__init__(f"Duplicate value for {field}")
        self.field = field


class ICompletionClient(Protocol):
    """
    AI completion collaborator. Returns the candidate texts for a prompt;
    the first candidate is the generation used.
    """

    @property
    def is_configured(self) -> bool: ...

    async def generate(self, model: str, prompt: str) -> List[str]: ...


class ILearningMapRepository(Protocol):
    async def create(self, learning_map: Dict[str, Any]) -> Dict[str, Any]: ...

    async def get_by_id(self, map_id: str) -> Optional[Dict[str, Any]]: ...

    async def list_recent(self, limit: int = 50, skip: int = 0) -> List[Dict[str, Any]]: ...
