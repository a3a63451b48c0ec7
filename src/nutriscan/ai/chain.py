"""Ordered fallback over completion providers.

Providers are tried strictly in order. A provider that raises, times out or
returns an unknown envelope is recorded and the next one is tried; the first
usable envelope ends the chain. When every provider fails, the collected
messages are raised together as ``ProviderChainError``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from ..models import CategoryMapping, ProcessedReceipt
from .errors import ProviderChainError, ProviderError
from .prompts import CATEGORY_CLASSIFICATION_PROMPT, RECEIPT_EXTRACTION_PROMPT
from .providers import CompletionProvider
from .responses import parse_category_content, parse_receipt_content

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT_S = 45.0


@dataclass(frozen=True, slots=True)
class Pending:
    index: int = 0
    errors: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Succeeded(Generic[T]):
    provider: str
    value: T
    errors: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Exhausted:
    errors: dict[str, str] = field(default_factory=dict)


ChainState = Pending | Succeeded | Exhausted


@dataclass(frozen=True, slots=True)
class ChainResult(Generic[T]):
    value: T
    provider: str
    errors: dict[str, str] = field(default_factory=dict)


def to_processed_receipt(text: str) -> ProcessedReceipt:
    content = parse_receipt_content(text)
    items = content.items
    if not items:
        logger.info("AI response yielded no usable items (%s)", content.kind)
    total = round(sum(item.price for item in items), 2) if items else None
    return ProcessedReceipt(items=items, total=total)


class ProviderChain:
    def __init__(self, providers: Sequence[CompletionProvider], *, timeout_s: float = DEFAULT_TIMEOUT_S) -> None:
        self.providers = list(providers)
        self.timeout_s = timeout_s

    @property
    def provider_names(self) -> list[str]:
        return [p.name for p in self.providers]

    async def _step(self, state: Pending, system_prompt: str, text: str, convert: Callable[[str], T]) -> ChainState:
        if state.index >= len(self.providers):
            return Exhausted(state.errors)

        provider = self.providers[state.index]
        try:
            raw = await asyncio.wait_for(provider.complete(system_prompt, text), timeout=self.timeout_s)
        except TimeoutError:
            message = f"timed out after {self.timeout_s:g}s"
        except ProviderError as exc:
            message = exc.reason
        except Exception as exc:  # noqa: BLE001
            message = f"{type(exc).__name__}: {exc}"
        else:
            logger.info("AI provider %s answered", provider.name)
            return Succeeded(provider=provider.name, value=convert(raw), errors=state.errors)

        logger.warning("AI provider %s failed: %s", provider.name, message)
        return Pending(index=state.index + 1, errors={**state.errors, provider.name: message})

    async def run(self, system_prompt: str, text: str, convert: Callable[[str], T]) -> ChainResult[T]:
        state: ChainState = Pending()
        while isinstance(state, Pending):
            state = await self._step(state, system_prompt, text, convert)

        if isinstance(state, Exhausted):
            raise ProviderChainError(state.errors)
        return ChainResult(value=state.value, provider=state.provider, errors=state.errors)

    async def extract(
        self, receipt_text: str, *, system_prompt: str = RECEIPT_EXTRACTION_PROMPT
    ) -> ChainResult[ProcessedReceipt]:
        return await self.run(system_prompt, receipt_text, to_processed_receipt)

    async def classify(self, text: str) -> ChainResult[list[CategoryMapping]]:
        return await self.run(CATEGORY_CLASSIFICATION_PROMPT, text, parse_category_content)
