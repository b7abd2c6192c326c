"""Centralized model factory for the slide and outline generation backends.

Supports Gemini and Azure OpenAI based on configuration. Models are created
on demand; the application builds its backends once at startup and passes
them down, so nothing here is cached.

Usage:
    from services.ai.model_factory import get_outline_model, get_slides_model

    model = get_slides_model()  # Returns pydantic-ai Model
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, cast

from pydantic_ai.models import Model
from pydantic_ai.models.google import GoogleModel
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.google import GoogleProvider
from pydantic_ai.providers.openai import OpenAIProvider

from core.config import Settings, get_settings


if TYPE_CHECKING:
    from httpx import AsyncClient

logger = logging.getLogger(__name__)

# OpenAI reasoning models that accept a reasoning_effort setting
REASONING_MODELS = {
    "gpt-5-mini",
    "gpt-5-nano",
    "o1-mini",
    "o1",
    "o3-mini",
}


def _normalize_azure_endpoint(endpoint: str) -> str:
    """Strip trailing slashes; Azure answers 404 for ``//openai/...`` paths."""
    return endpoint.rstrip("/")


def _has_azure_credentials(settings: Settings) -> bool:
    if (
        not settings.AZURE_OPENAI_ENDPOINT
        or not settings.AZURE_OPENAI_API_KEY
        or not settings.AZURE_OPENAI_API_VERSION
    ):
        logger.warning(
            "LLM_PROVIDER=azure_openai but credentials missing, falling back to Gemini"
        )
        return False
    return True


def _create_azure_model(
    settings: Settings,
    model_name: str,
    http_client: AsyncClient | None = None,
) -> Model:
    """Create an Azure OpenAI chat model for a deployment name."""
    from openai import AsyncAzureOpenAI

    azure_client = AsyncAzureOpenAI(
        azure_endpoint=_normalize_azure_endpoint(settings.AZURE_OPENAI_ENDPOINT or ""),
        api_key=settings.AZURE_OPENAI_API_KEY,
        api_version=settings.AZURE_OPENAI_API_VERSION,
        http_client=http_client,
    )
    provider = OpenAIProvider(openai_client=azure_client)

    if model_name in REASONING_MODELS:
        logger.info("Applying low reasoning effort for reasoning model: %s", model_name)
        return OpenAIChatModel(
            model_name,
            provider=provider,
            settings={"openai_reasoning_effort": "low"},
        )
    return OpenAIChatModel(model_name, provider=provider)


def _create_gemini_model(
    settings: Settings,
    model_name: str,
    http_client: AsyncClient | None = None,
) -> Model:
    provider = GoogleProvider(api_key=settings.GEMINI_API_KEY, http_client=http_client)
    return cast(Model, GoogleModel(model_name, provider=provider))


def _create_model(
    model_name: str,
    http_client: AsyncClient | None = None,
    settings: Settings | None = None,
) -> Model:
    settings = settings or get_settings()

    if settings.LLM_PROVIDER == "azure_openai" and _has_azure_credentials(settings):
        logger.info("Using Azure OpenAI model: %s", model_name)
        return _create_azure_model(settings, model_name, http_client)

    if not settings.GEMINI_API_KEY:
        raise ValueError(
            "No valid LLM provider configured. Either set Azure OpenAI "
            "credentials (AZURE_OPENAI_ENDPOINT + AZURE_OPENAI_API_KEY) "
            "or Gemini credentials (GEMINI_API_KEY)."
        )

    logger.info("Using Gemini model: %s", model_name)
    return _create_gemini_model(settings, model_name, http_client)


def get_slides_model(
    http_client: AsyncClient | None = None, settings: Settings | None = None
) -> Model:
    """Model used to stream per-slide JSON content."""
    settings = settings or get_settings()
    return _create_model(settings.SLIDES_MODEL, http_client, settings)


def get_outline_model(
    http_client: AsyncClient | None = None, settings: Settings | None = None
) -> Model:
    """Model used to stream the outline list for a whole deck."""
    settings = settings or get_settings()
    return _create_model(settings.OUTLINE_MODEL, http_client, settings)
