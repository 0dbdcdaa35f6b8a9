from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

import structlog
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import HumanMessage
from langchain_google_genai import ChatGoogleGenerativeAI

logger = structlog.get_logger(__name__)


def _content_text(content: Any) -> str:
    """Gemini may answer with a list of content blocks instead of a string."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and isinstance(block.get("text"), str):
                parts.append(block["text"])
        return "".join(parts)
    return ""


def _candidate_text(candidate: Any) -> str:
    message = getattr(candidate, "message", None)
    if message is not None:
        text = _content_text(message.content)
        if text:
            return text
    return str(getattr(candidate, "text", "") or "")


class GeminiCompletionClient:
    """
    Completion collaborator backed by Google Gemini through LangChain.
    One chat model is built lazily per model name.
    """

    def __init__(
        self,
        api_key: Optional[str],
        temperature: float = 0.2,
        timeout_seconds: float = 60.0,
        max_retries: int = 0,
        chat_model_factory: Optional[Callable[[str], BaseChatModel]] = None,
    ):
        self.api_key = api_key
        self.temperature = temperature
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self._chat_model_factory = chat_model_factory or self._build_gemini
        self._models: Dict[str, BaseChatModel] = {}

    @property
    def is_configured(self) -> bool:
        return bool(str(self.api_key or "").strip())

    def _build_gemini(self, model: str) -> BaseChatModel:
        return ChatGoogleGenerativeAI(
            model=model,
            temperature=self.temperature,
            google_api_key=self.api_key,
            timeout=self.timeout_seconds,
            max_retries=self.max_retries,
        )

    def _chat_model(self, model: str) -> BaseChatModel:
        if model not in self._models:
            self._models[model] = self._chat_model_factory(model)
            logger.info("gemini_chat_model_initialized", model=model)
        return self._models[model]

    async def generate(self, model: str, prompt: str) -> List[str]:
        result = await self._chat_model(model).agenerate([[HumanMessage(content=prompt)]])
        candidates = result.generations[0] if result.generations else []
        return [_candidate_text(candidate) for candidate in candidates]
