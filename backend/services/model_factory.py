"""Model factory using the LiteLLM provider system."""

from __future__ import annotations

from typing import Any, Optional, Tuple

from agno.agent import Agent
from agno.models.litellm import LiteLLM

from ..config import ApiConfig

# provider name -> LiteLLM route prefix
PROVIDER_PREFIXES = {
    "openai": "openai",
    "anthropic": "anthropic",
    "google": "gemini",
    "gemini": "gemini",
    "groq": "groq",
    "mistral": "mistral",
    "ollama": "ollama",
    "openrouter": "openrouter",
}


class ModelResolutionError(ValueError):
    """Raised when a model string or credentials cannot be resolved."""


def parse_model_string(model_str: str) -> Tuple[str, str]:
    if ":" not in model_str:
        raise ModelResolutionError(
            f"Invalid model format '{model_str}' — expected 'provider:model_id'"
        )
    provider, model_id = model_str.split(":", 1)
    if not provider or not model_id:
        raise ModelResolutionError(f"Invalid model format '{model_str}'")
    return provider.strip().lower(), model_id.strip()


def get_model(provider: str, model_id: str, api: ApiConfig, **kwargs: Any) -> LiteLLM:
    """Create a LiteLLM model instance for provider."""
    prefix = PROVIDER_PREFIXES.get(provider)
    if prefix is None:
        raise ModelResolutionError(f"Unsupported provider '{provider}'")
    if not api.llm_api_key and provider != "ollama":
        raise ModelResolutionError("LLM API key is not configured")

    return LiteLLM(
        id=f"{prefix}/{model_id}",
        api_key=api.llm_api_key,
        api_base=api.llm_base_url,
        **kwargs,
    )


def resolve_model(model_str: Optional[str], api: ApiConfig, **kwargs: Any) -> LiteLLM:
    provider, model_id = parse_model_string(model_str or api.default_model)
    return get_model(provider, model_id, api, **kwargs)


async def generate_text(
    model: LiteLLM, prompt: str, system_prompt: Optional[str] = None
) -> Tuple[str, dict]:
    """Single non-streaming completion. Returns (text, metrics)."""
    agent = Agent(model=model, instructions=system_prompt or None, markdown=False)
    run = await agent.arun(prompt)
    content = getattr(run, "content", None)
    metrics = getattr(run, "metrics", None)
    usage = metrics.to_dict() if hasattr(metrics, "to_dict") else {}
    return ("" if content is None else str(content)), usage
