"""Generation client: the single boundary to the external text-generation service.

Every call returns a ``GenerationResult``. Provider errors, timeouts and
missing credentials are soft failures carried in ``error``; they never raise.
"""

import asyncio
from dataclasses import dataclass

from langchain_core.messages import HumanMessage, SystemMessage
import structlog

from archplan.artifacts import ArtifactRecorder, ArtifactSpec
from archplan.config import Settings

from .factory import LLMFactory
from .prompts import ENHANCEMENT_SYSTEM_PROMPT, PLAN_SYSTEM_PROMPT, conversion_system_prompt
from .providers import resolve_model_spec

logger = structlog.get_logger()


@dataclass(frozen=True)
class GenerationResult:
    """Generated text, or the reason there is none."""

    text: str | None = None
    error: str | None = None
    model: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.text is not None


def _response_text(response) -> str:
    content = getattr(response, "content", response)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and isinstance(part.get("text"), str):
                parts.append(part["text"])
        return "\n".join(parts)
    return ""


class GenerationClient:
    """Sends system/user prompt pairs to the configured provider.

    Stateless apart from configuration; one instance is shared by all jobs.
    """

    def __init__(
        self,
        settings: Settings,
        recorder: ArtifactRecorder | None = None,
        llm_factory: type[LLMFactory] = LLMFactory,
    ):
        self.settings = settings
        self.recorder = recorder
        self.llm_factory = llm_factory

    async def generate(
        self,
        system_prompt: str,
        user_content: str,
        *,
        provider: str | None = None,
        max_tokens: int | None = None,
        artifact: ArtifactSpec | None = None,
    ) -> GenerationResult:
        spec = resolve_model_spec(provider, self.settings.default_llm_provider)
        max_tokens = max_tokens or self.settings.enhance_max_tokens
        log = logger.bind(model=str(spec), max_tokens=max_tokens)

        log.info("llm_call_started")
        try:
            llm = self.llm_factory.create_llm(spec, self.settings, max_tokens=max_tokens)
            response = await asyncio.wait_for(
                llm.ainvoke(
                    [SystemMessage(content=system_prompt), HumanMessage(content=user_content)]
                ),
                timeout=self.settings.llm_timeout_seconds,
            )
            text = _response_text(response)
            if text.strip():
                result = GenerationResult(text=text, model=str(spec))
                log.info("llm_call_succeeded", chars=len(text))
            else:
                result = GenerationResult(error="empty response", model=str(spec))
                log.warning("llm_call_failed", error=result.error)
        except KeyError as e:
            result = GenerationResult(error=f"missing credentials: {e.args[0]}", model=str(spec))
            log.warning("llm_call_failed", error=result.error)
        except TimeoutError:
            result = GenerationResult(
                error=f"timed out after {self.settings.llm_timeout_seconds}s", model=str(spec)
            )
            log.warning("llm_call_failed", error=result.error)
        except Exception as e:
            result = GenerationResult(error=f"{type(e).__name__}: {e}", model=str(spec))
            log.error("llm_call_failed", error=result.error)

        if artifact is not None and self.recorder is not None and self.settings.record_artifacts:
            await self.recorder.record(
                artifact,
                prompt=f"{system_prompt}\n\n{user_content}",
                content=result.text,
            )

        return result

    async def enhance_parsed_text(
        self,
        parsed_text: str,
        *,
        provider: str | None = None,
        artifact: ArtifactSpec | None = None,
    ) -> GenerationResult:
        """Restructure already-extracted text into a canonical BRD."""
        return await self.generate(
            ENHANCEMENT_SYSTEM_PROMPT,
            parsed_text,
            provider=provider,
            max_tokens=self.settings.enhance_max_tokens,
            artifact=artifact,
        )

    async def convert_document(
        self,
        data: bytes,
        filename: str,
        *,
        provider: str | None = None,
        artifact: ArtifactSpec | None = None,
    ) -> GenerationResult:
        """Convert raw file bytes into a canonical BRD.

        Only the first ``raw_conversion_byte_limit`` bytes are sent.
        """
        preview = data[: self.settings.raw_conversion_byte_limit].decode("utf-8", errors="replace")
        return await self.generate(
            conversion_system_prompt(filename),
            preview,
            provider=provider,
            max_tokens=self.settings.enhance_max_tokens,
            artifact=artifact,
        )

    async def generate_plan(
        self,
        context: str,
        *,
        provider: str | None = None,
        artifact: ArtifactSpec | None = None,
    ) -> GenerationResult:
        return await self.generate(
            PLAN_SYSTEM_PROMPT,
            context,
            provider=provider,
            max_tokens=self.settings.plan_max_tokens,
            artifact=artifact,
        )
