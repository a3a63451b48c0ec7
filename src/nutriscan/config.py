from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

import yaml

from .ai.chain import DEFAULT_TIMEOUT_S
from .ai.providers import HttpCompletionProvider
from .rules.categorization import SubstringPolicy

logger = logging.getLogger(__name__)

DEFAULT_MAX_AI_ATTEMPTS = 3


@dataclass(frozen=True, slots=True)
class ProviderConfig:
    name: str
    url: str
    model: str
    api_key_env: str | None = None
    temperature: float = 0.1

    def build(self, timeout_s: float) -> HttpCompletionProvider:
        api_key = os.getenv(self.api_key_env) if self.api_key_env else None
        if self.api_key_env and not api_key:
            logger.debug("Provider %s: %s is not set, sending no Authorization header", self.name, self.api_key_env)
        return HttpCompletionProvider(
            name=self.name,
            url=self.url,
            model=self.model,
            api_key=api_key,
            temperature=self.temperature,
            timeout_s=timeout_s,
        )


DEFAULT_PROVIDERS = (
    ProviderConfig(
        name="locallm",
        url="http://localhost:3005/api/v1/chat/completions",
        model="llama-3.2-1b-instruct:q4_k_m",
    ),
    ProviderConfig(
        name="lmstudio",
        url="http://localhost:1234/v1/chat/completions",
        model="qwen2.5-coder-14b",
    ),
    ProviderConfig(
        name="glhf",
        url="https://glhf.chat/api/openai/v1/chat/completions",
        model="hf:meta-llama/Llama-3.3-70B-Instruct",
        api_key_env="GLHF_API_KEY",
    ),
)


@dataclass(frozen=True, slots=True)
class AppConfig:
    providers: tuple[ProviderConfig, ...] = DEFAULT_PROVIDERS
    timeout_s: float = DEFAULT_TIMEOUT_S
    substring_policy: SubstringPolicy = SubstringPolicy.FIRST_INSERTED
    max_ai_attempts: int = DEFAULT_MAX_AI_ATTEMPTS
    log_level: str = "INFO"

    @classmethod
    def load(cls, path: Path) -> "AppConfig":
        if not path.exists():
            logger.info("No config file at %s, using defaults", path)
            return cls(log_level=os.getenv("NUTRISCAN_LOG_LEVEL", "INFO"))

        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Expected a YAML mapping at {path}, got {type(data).__name__}.")

        ai = data.get("ai") or {}
        providers = tuple(
            ProviderConfig(
                name=str(p["name"]),
                url=str(p["url"]),
                model=str(p.get("model") or ""),
                api_key_env=p.get("api_key_env"),
                temperature=float(p.get("temperature", 0.1)),
            )
            for p in (ai.get("providers") or [])
        )
        max_attempts = int(ai.get("max_attempts", DEFAULT_MAX_AI_ATTEMPTS))
        if max_attempts < 1:
            raise ValueError(f"ai.max_attempts must be at least 1 in {path}")

        return cls(
            providers=providers if "providers" in ai else DEFAULT_PROVIDERS,
            timeout_s=float(ai.get("timeout_s", DEFAULT_TIMEOUT_S)),
            substring_policy=SubstringPolicy(
                (data.get("categories") or {}).get("substring_policy", SubstringPolicy.FIRST_INSERTED.value)
            ),
            max_ai_attempts=max_attempts,
            log_level=os.getenv("NUTRISCAN_LOG_LEVEL", str(data.get("log_level", "INFO"))),
        )

    def build_providers(self) -> list[HttpCompletionProvider]:
        return [p.build(self.timeout_s) for p in self.providers]


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or os.getenv("NUTRISCAN_LOG_LEVEL", "INFO")).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
