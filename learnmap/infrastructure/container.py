"""
Application container.

Centralizes service instantiation. Routers resolve collaborators through
``AppContainer.get_instance()`` so tests can swap the whole graph.
"""

from __future__ import annotations

from typing import Optional

import structlog

from learnmap.core.settings import Settings, settings
from learnmap.domain.ports import ICompletionClient, ILearningMapRepository
from learnmap.infrastructure.ai.gemini_client import GeminiCompletionClient
from learnmap.infrastructure.persistence.memory_repository import InMemoryLearningMapRepository
from learnmap.infrastructure.persistence.supabase_repository import SupabaseLearningMapRepository
from learnmap.infrastructure.supabase.client import reset_async_supabase_client
from learnmap.services.map_generation import MapGenerationOrchestrator

logger = structlog.get_logger(__name__)


class AppContainer:
    _instance: Optional["AppContainer"] = None

    def __init__(self, config: Settings = settings):
        self.config = config
        self._completion_client = None
        self._repository = None
        self._orchestrator = None

    @classmethod
    def get_instance(cls) -> "AppContainer":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        cls._instance = None

    @property
    def completion_client(self) -> ICompletionClient:
        if self._completion_client is None:
            self._completion_client = GeminiCompletionClient(
                api_key=self.config.GEMINI_API_KEY,
                temperature=self.config.GEMINI_TEMPERATURE,
                timeout_seconds=self.config.GEMINI_TIMEOUT_SECONDS,
            )
        return self._completion_client

    @property
    def repository(self) -> ILearningMapRepository:
        if self._repository is None:
            if self.config.MAP_STORE == "supabase":
                self._repository = SupabaseLearningMapRepository(
                    table=self.config.LEARNING_MAP_TABLE,
                    max_retries=self.config.STORE_TRANSIENT_MAX_RETRIES,
                    base_delay_seconds=self.config.STORE_TRANSIENT_BASE_DELAY_SECONDS,
                )
            else:
                self._repository = InMemoryLearningMapRepository()
            logger.info("map_store_selected", store=self.config.MAP_STORE)
        return self._repository

    @property
    def orchestrator(self) -> MapGenerationOrchestrator:
        if self._orchestrator is None:
            self._orchestrator = MapGenerationOrchestrator(
                completion_client=self.completion_client,
                repository=self.repository,
                model=self.config.GEMINI_MODEL,
            )
        return self._orchestrator

    async def startup(self) -> None:
        _ = self.orchestrator
        if not self.completion_client.is_configured:
            logger.warning("gemini_api_key_missing", hint="map generation will fail until GEMINI_API_KEY is set")

    async def shutdown(self) -> None:
        if self.config.MAP_STORE == "supabase":
            reset_async_supabase_client()
