"""LLM configuration for the OpenAI-compatible model endpoint.

Per-caller model settings:
  Conversation chain  → higher temperature (varied dialogue)
  Prescription chain  → lower temperature (stable structured output)

Credentials are always supplied by the caller (request header or stored
configuration); no key is ever embedded here.
"""

from langchain_openai import ChatOpenAI
from langchain_core.language_models import BaseChatModel
from docongo.config.settings import settings
from typing import Optional
from pydantic import BaseModel, SecretStr
import logging

logger = logging.getLogger(__name__)


class ModelConfig(BaseModel):
    """Explicit configuration for one gateway instance."""

    api_key: Optional[SecretStr] = None
    model_name: str
    temperature: float
    endpoint: str
    max_tokens: int
    timeout: float


def conversation_config(api_key: Optional[str]) -> ModelConfig:
    """Configuration for conversational turns."""
    return ModelConfig(
        api_key=SecretStr(api_key) if api_key else None,
        model_name=settings.model_name,
        temperature=settings.conversation_temperature,
        endpoint=settings.llm_endpoint,
        max_tokens=settings.model_max_tokens,
        timeout=settings.llm_invoke_timeout,
    )


def prescription_config(api_key: Optional[str]) -> ModelConfig:
    """Configuration for prescription synthesis."""
    return ModelConfig(
        api_key=SecretStr(api_key) if api_key else None,
        model_name=settings.model_name,
        temperature=settings.prescription_temperature,
        endpoint=settings.llm_endpoint,
        max_tokens=settings.model_max_tokens,
        timeout=settings.llm_invoke_timeout,
    )


def create_chat_model(config: ModelConfig) -> BaseChatModel:
    """Instantiate a ChatOpenAI client for one configuration."""
    if config.api_key is None:
        raise ValueError("create_chat_model requires an API key")
    logger.info(
        f"Creating model client: {config.model_name} (temperature={config.temperature})"
    )
    return ChatOpenAI(
        base_url=config.endpoint,
        api_key=config.api_key,
        model=config.model_name,
        temperature=config.temperature,
        max_completion_tokens=config.max_tokens,
        max_retries=0,
    )
