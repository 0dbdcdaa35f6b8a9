from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

from learnmap.domain.ports import DuplicateKeyError
from learnmap.domain.schemas import LearningMap
from learnmap.infrastructure.persistence.documents import build_record, parse_identifier


class InMemoryLearningMapRepository:
    """Process-local store for development and tests."""

    def __init__(self):
        self._lock = asyncio.Lock()
        self._maps: dict[str, LearningMap] = {}

    async def create(self, learning_map: Dict[str, Any]) -> Dict[str, Any]:
        record = build_record(learning_map)
        async with self._lock:
            if record.id in self._maps:
                raise DuplicateKeyError("id")
            self._maps[str(record.id)] = record
        return record.to_wire()

    async def get_by_id(self, map_id: str) -> Optional[Dict[str, Any]]:
        key = parse_identifier(map_id)
        async with self._lock:
            record = self._maps.get(key)
        return record.to_wire() if record else None

    async def list_recent(self, limit: int = 50, skip: int = 0) -> List[Dict[str, Any]]:
        async with self._lock:
            records = sorted(self._maps.values(), key=lambda item: item.createdAt, reverse=True)
        return [record.to_wire() for record in records[skip : skip + limit]]
