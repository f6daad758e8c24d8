"""FastAPI dependencies for identity, model credentials and services.

The JWTAuthMiddleware (registered in main.py) verifies the bearer token and
stores the caller in ``request.state.user``:

    {"user_id": str}   # authenticated
    None               # anonymous

The model API key comes from the ``X-LLM-Api-Key`` header (configurable),
falling back to ``settings.llm_api_key``.
"""

from typing import Dict, Any, Optional

from fastapi import Depends, Request
import logging

from docongo.config.llm_config import conversation_config, prescription_config
from docongo.config.settings import settings
from docongo.errors import AuthError
from docongo.services.model_gateway import ModelGateway
from docongo.services.session_service import SessionService, get_session_service

logger = logging.getLogger(__name__)


async def get_optional_user(request: Request) -> Optional[Dict[str, Any]]:
    """Return the caller attached by JWTAuthMiddleware, or None when anonymous."""
    return getattr(request.state, "user", None)


async def get_current_user(
    user: Optional[Dict[str, Any]] = Depends(get_optional_user),
) -> Dict[str, Any]:
    """Return the authenticated caller.

    Raises:
        AuthError (401) – if no valid bearer token was supplied
    """
    if not user or not user.get("user_id"):
        raise AuthError("Not authenticated. Provide a valid bearer token.")

    logger.debug("Authenticated user: %s", user.get("user_id"))
    return user


async def get_optional_model_api_key(request: Request) -> Optional[str]:
    """Model API key from the request header, else from configuration."""
    header_key = request.headers.get(settings.api_key_header)
    if header_key and header_key.strip():
        return header_key.strip()
    return settings.llm_api_key or None


async def get_model_api_key(
    api_key: Optional[str] = Depends(get_optional_model_api_key),
) -> str:
    """
    Raises:
        AuthError (401) – if no API key is available
    """
    if not api_key:
        raise AuthError("Model API key is required. Please add your API key.")
    return api_key


async def get_sessions() -> SessionService:
    return get_session_service()


async def get_conversation_gateway(
    api_key: Optional[str] = Depends(get_optional_model_api_key),
) -> Optional[ModelGateway]:
    """Gateway for conversational turns; None when no key is available."""
    if not api_key:
        return None
    return ModelGateway(conversation_config(api_key))


async def get_prescription_gateway(
    api_key: str = Depends(get_model_api_key),
) -> ModelGateway:
    """Gateway for prescription synthesis."""
    return ModelGateway(prescription_config(api_key))
