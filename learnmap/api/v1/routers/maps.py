import re
from urllib.parse import quote
from typing import Any, Dict, Literal

import structlog
from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

from learnmap.api.v1.errors import ERROR_RESPONSES
from learnmap.domain.errors import not_found
from learnmap.infrastructure.container import AppContainer

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/map", tags=["learning-maps"], responses=ERROR_RESPONSES)


class GenerateMapRequest(BaseModel):
    topic: str = Field(min_length=1, max_length=200)
    level: Literal["Beginner", "Intermediate", "Advanced"]

    @field_validator("topic", mode="before")
    @classmethod
    def _strip_topic(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value


def export_filename(topic: str) -> str:
    return re.sub(r"\s+", "-", str(topic or "learning-map")) + "-learning-map.json"


async def _load_or_404(map_id: str) -> Dict[str, Any]:
    container = AppContainer.get_instance()
    found = await container.orchestrator.get_by_id(map_id)
    if found is None:
        raise not_found("Learning map")
    return found


@router.post("/generate", response_model=Dict[str, Any])
async def generate_learning_map(request: GenerateMapRequest):
    container = AppContainer.get_instance()
    learning_map = await container.orchestrator.generate(request.topic, request.level, persist=True)
    logger.info("learning_map_generate_ok", map_id=learning_map.get("id"), topic=request.topic)
    return {"success": True, "data": learning_map}


@router.get("", response_model=Dict[str, Any])
async def list_learning_maps(
    limit: int = Query(50, ge=1, le=200),
    skip: int = Query(0, ge=0),
):
    container = AppContainer.get_instance()
    maps = await container.orchestrator.list_recent(limit=limit, skip=skip)
    return {"success": True, "data": maps}


@router.get("/{map_id}", response_model=Dict[str, Any])
async def get_learning_map(map_id: str):
    return {"success": True, "data": await _load_or_404(map_id)}


@router.get("/{map_id}/export")
async def export_learning_map(map_id: str):
    learning_map = await _load_or_404(map_id)
    filename = export_filename(learning_map.get("topic", ""))
    return JSONResponse(
        content=learning_map,
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}"},
    )
