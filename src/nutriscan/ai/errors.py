from __future__ import annotations


class ProviderError(RuntimeError):
    """A single completion provider failed (transport, timeout, auth, envelope)."""

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.reason = message


class ProviderChainError(RuntimeError):
    """Every provider in the chain failed; carries each provider's message."""

    def __init__(self, errors: dict[str, str]) -> None:
        self.errors = dict(errors)
        if errors:
            details = "; ".join(f"{name}: {message}" for name, message in errors.items())
            super().__init__(f"All AI providers failed ({details})")
        else:
            super().__init__("No AI providers are configured")
