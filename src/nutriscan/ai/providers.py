from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

from ..http_client import HttpRequestError, post_json
from .errors import ProviderError
from .responses import MalformedEnvelopeError, completion_text

logger = logging.getLogger(__name__)


class CompletionProvider(Protocol):
    name: str

    async def complete(self, system_prompt: str, text: str) -> str: ...


@dataclass(frozen=True, slots=True)
class HttpCompletionProvider:
    """OpenAI-compatible chat endpoint (local LLM servers, LM Studio, hosted)."""

    name: str
    url: str
    model: str
    api_key: str | None = None
    temperature: float = 0.1
    timeout_s: float = 45.0

    def _payload(self, system_prompt: str, text: str) -> dict:
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": text},
            ],
            "temperature": self.temperature,
        }

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}

    async def complete(self, system_prompt: str, text: str) -> str:
        try:
            payload = await asyncio.to_thread(
                post_json,
                self.url,
                self._payload(system_prompt, text),
                timeout_s=self.timeout_s,
                headers=self._headers(),
            )
        except HttpRequestError as exc:
            raise ProviderError(self.name, str(exc)) from exc
        try:
            return completion_text(payload)
        except MalformedEnvelopeError as exc:
            raise ProviderError(self.name, str(exc)) from exc
