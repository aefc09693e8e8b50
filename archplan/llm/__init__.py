from .client import GenerationClient, GenerationResult
from .factory import LLMFactory
from .providers import ModelSpec, resolve_model_spec

__all__ = [
    "GenerationClient",
    "GenerationResult",
    "LLMFactory",
    "ModelSpec",
    "resolve_model_spec",
]
