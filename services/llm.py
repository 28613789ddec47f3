"""Settings-backed LLM factory for the designer assistant."""

from __future__ import annotations

from langchain_core.language_models import BaseChatModel

from config import settings

PROVIDERS = ("openai", "anthropic", "openai_compatible")


def create_llm(
    provider: str | None = None,
    model_name: str | None = None,
    *,
    api_key: str | None = None,
    base_url: str | None = None,
    temperature: float | None = None,
    max_tokens: int | None = None,
    streaming: bool = True,
) -> BaseChatModel:
    provider = provider or settings.LLM_PROVIDER
    api_key = api_key or settings.LLM_API_KEY or None
    base_url = base_url or settings.LLM_BASE_URL or None
    temperature = settings.LLM_TEMPERATURE if temperature is None else temperature
    max_tokens = settings.LLM_MAX_TOKENS if max_tokens is None else max_tokens

    kwargs: dict = {
        "model": model_name or settings.LLM_MODEL,
        "temperature": temperature,
        "max_tokens": max_tokens,
        "streaming": streaming,
    }

    if provider == "openai":
        from langchain_openai import ChatOpenAI
        return ChatOpenAI(api_key=api_key, **kwargs)

    if provider == "anthropic":
        from langchain_anthropic import ChatAnthropic
        return ChatAnthropic(api_key=api_key, **kwargs)

    if provider == "openai_compatible":
        from langchain_openai import ChatOpenAI
        if not base_url:
            raise ValueError("LLM_BASE_URL is required for the openai_compatible provider")
        return ChatOpenAI(api_key=api_key, base_url=base_url, **kwargs)

    raise ValueError(f"Unsupported provider type: {provider}")
