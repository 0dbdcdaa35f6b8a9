from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict

from pydantic import ValidationError

from learnmap.domain.ports import MalformedIdentifierError, RecordValidationError
from learnmap.domain.schemas import LearningMap


def validation_errors(exc: ValidationError) -> Dict[str, str]:
    """Flatten pydantic errors into ``{"branches.0.title": "Field required"}``."""
    return {".".join(str(part) for part in item["loc"]) or "document": item["msg"] for item in exc.errors()}


def build_record(learning_map: Dict[str, Any]) -> LearningMap:
    """Validate a generated map against the stored schema and stamp id/createdAt."""
    payload = dict(learning_map)
    payload.setdefault("id", str(uuid.uuid4()))
    payload.setdefault("createdAt", datetime.now(timezone.utc))
    try:
        return LearningMap.model_validate(payload)
    except ValidationError as exc:
        raise RecordValidationError("Learning map failed schema validation", validation_errors(exc)) from exc


def parse_identifier(map_id: str) -> str:
    try:
        return str(uuid.UUID(str(map_id).strip()))
    except (ValueError, AttributeError, TypeError) as exc:
        raise MalformedIdentifierError(str(map_id)) from exc
