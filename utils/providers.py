"""
Intelligence provider client factory
OpenAI and OpenRouter share the OpenAI chat completions API, so one client type serves both
"""

from openai import OpenAI
from typing import Dict, Optional
from utils.config import (
    load_api_key, get_current_provider, get_provider_config,
    SUPPORTED_PROVIDERS, APP_TITLE, APP_URL, INTELLIGENCE_TIMEOUT
)


class ProviderError(Exception):
    """Provider is unsupported, unconfigured or lacks a model for the task"""
    pass


def _resolve_provider(provider: Optional[str]) -> str:
    provider = provider or get_current_provider()
    if provider not in SUPPORTED_PROVIDERS:
        raise ProviderError(f"Unsupported provider: {provider}. Supported: {SUPPORTED_PROVIDERS}")
    return provider


def create_client(provider: str = None, **kwargs) -> OpenAI:
    """
    Create a client for the intelligence provider.

    Requests are bounded by INTELLIGENCE_TIMEOUT and the client itself never
    retries; retrying belongs to the caller.

    Raises:
        ProviderError: If the provider is unsupported or has no API key
    """
    provider = _resolve_provider(provider)

    api_key = load_api_key(provider)
    if not api_key:
        raise ProviderError(f"No API key found for provider: {provider}")

    client_kwargs = {
        "api_key": api_key,
        "timeout": INTELLIGENCE_TIMEOUT,
        "max_retries": 0,
    }

    base_url = get_provider_config(provider).get("base_url")
    if base_url:
        client_kwargs["base_url"] = base_url

    # OpenRouter attributes traffic by these headers
    if provider == "openrouter":
        client_kwargs["default_headers"] = {"HTTP-Referer": APP_URL, "X-Title": APP_TITLE}

    client_kwargs.update(kwargs)
    return OpenAI(**client_kwargs)


def is_provider_configured(provider: str = None) -> bool:
    """True when the provider is supported and has an API key"""
    provider = provider or get_current_provider()
    return provider in SUPPORTED_PROVIDERS and bool(load_api_key(provider))


def get_model_for_task(task: str, provider: str = None) -> str:
    """Model name the provider uses for a task such as "chat" """
    provider = _resolve_provider(provider)
    models = get_provider_config(provider)
    if not models.get(task):
        raise ProviderError(f"Task '{task}' not supported for provider '{provider}'")
    return models[task]


def get_api_call_params(model: str, messages: list, temperature: Optional[float] = None,
                        response_format: Optional[Dict] = None, **kwargs) -> Dict:
    """Chat completion keyword arguments; options left as None are omitted"""
    params = {"model": model, "messages": messages}
    if temperature is not None:
        params["temperature"] = temperature
    if response_format is not None:
        params["response_format"] = response_format
    params.update(kwargs)
    return params
