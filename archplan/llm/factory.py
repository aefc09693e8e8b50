"""LLM factory: builds a chat model for a resolved model spec.

OpenAI models are called directly. Every other backend goes through
OpenRouter, which addresses models as ``<backend>/<model>``.
"""

from langchain_openai import ChatOpenAI
import structlog

from archplan.config import Settings

from .providers import ModelSpec

logger = structlog.get_logger()

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


class LLMFactory:
    """Factory for creating LLM instances based on provider configuration."""

    @staticmethod
    def create_llm(spec: ModelSpec, settings: Settings, max_tokens: int) -> ChatOpenAI:
        """Create an LLM instance for ``spec``.

        Raises:
            KeyError: If the API key required by the backend is not configured
        """
        logger.debug(
            "creating_llm",
            backend=spec.backend,
            model=spec.model,
            max_tokens=max_tokens,
        )

        if spec.backend == "openai":
            return LLMFactory._create_openai_llm(spec, settings, max_tokens)
        return LLMFactory._create_openrouter_llm(spec, settings, max_tokens)

    @staticmethod
    def _create_openrouter_llm(spec: ModelSpec, settings: Settings, max_tokens: int) -> ChatOpenAI:
        if not settings.open_router_key:
            raise KeyError(
                f"OPEN_ROUTER_KEY is not set; it is required for the {spec.backend} backend"
            )

        return ChatOpenAI(
            base_url=OPENROUTER_BASE_URL,
            api_key=settings.open_router_key,
            model=f"{spec.backend}/{spec.model}",
            temperature=settings.llm_temperature,
            max_tokens=max_tokens,
            timeout=settings.llm_timeout_seconds,
            max_retries=0,
            default_headers={"X-Title": settings.openrouter_app_name},
        )

    @staticmethod
    def _create_openai_llm(spec: ModelSpec, settings: Settings, max_tokens: int) -> ChatOpenAI:
        if not settings.openai_api_key:
            raise KeyError("OPENAI_API_KEY is not set; it is required for the openai backend")

        return ChatOpenAI(
            api_key=settings.openai_api_key,
            model=spec.model,
            temperature=settings.llm_temperature,
            max_tokens=max_tokens,
            timeout=settings.llm_timeout_seconds,
            max_retries=0,
        )
