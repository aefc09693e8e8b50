"""Provider identifier -> (backend, model) resolution."""

from dataclasses import dataclass


@dataclass(frozen=True)
class ModelSpec:
    backend: str
    model: str

    def __str__(self) -> str:
        return f"{self.backend}:{self.model}"


PROVIDER_MODELS: dict[str, ModelSpec] = {
    "openai": ModelSpec("openai", "gpt-4o-mini"),
    "anthropic": ModelSpec("anthropic", "claude-3-5-sonnet-20241022"),
    "google": ModelSpec("google", "gemini-1.5-pro"),
}

FALLBACK_PROVIDER = "openai"


def resolve_model_spec(provider: str | None, default_provider: str = FALLBACK_PROVIDER) -> ModelSpec:
    """Resolve a provider identifier to a model spec.

    Known provider names map to their pinned model. Identifiers that already
    contain ``:`` are taken as ``backend:model`` verbatim. Anything else,
    including empty input, resolves ``default_provider`` instead.
    """
    ident = (provider or "").strip()
    if ":" in ident:
        backend, _, model = ident.partition(":")
        return ModelSpec(backend, model)

    spec = PROVIDER_MODELS.get(ident.lower())
    if spec is not None:
        return spec

    if default_provider and default_provider != ident:
        return resolve_model_spec(default_provider, FALLBACK_PROVIDER)
    return PROVIDER_MODELS[FALLBACK_PROVIDER]
