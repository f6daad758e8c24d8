"""Boundary adapter to the external chat model.

A gateway is built per request from an explicit ``ModelConfig``; there is no
shared client. Provider failures of any kind surface as
``ModelTransportError`` so callers can tell them apart from unparseable
content, which is handled by the output repair strategies.
"""

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from pydantic import BaseModel
from typing import List, Optional, Sequence
from docongo.config.llm_config import ModelConfig, create_chat_model
from docongo.errors import AuthError, ModelTransportError
from docongo.models.stages import Role
from docongo.utils.llm_helpers import content_to_text, invoke_llm_with_timeout
import asyncio
import logging

logger = logging.getLogger(__name__)


class ChatTurn(BaseModel):
    """Role-tagged message sent to the model."""

    role: Role
    text: str


def to_langchain_messages(turns: Sequence[ChatTurn]) -> List[BaseMessage]:
    converted: List[BaseMessage] = []
    for turn in turns:
        if turn.role == Role.SYSTEM:
            converted.append(SystemMessage(content=turn.text))
        elif turn.role == Role.USER:
            converted.append(HumanMessage(content=turn.text))
        else:
            converted.append(AIMessage(content=turn.text))
    return converted


class ModelGateway:
    """Sends role-tagged messages to the model and returns its raw text."""

    def __init__(self, config: ModelConfig, llm: Optional[BaseChatModel] = None):
        if config.api_key is None or not config.api_key.get_secret_value().strip():
            raise AuthError("Model API key is required. Please add your API key.")
        self.config = config
        self._llm = llm if llm is not None else create_chat_model(config)

    async def invoke(self, messages: Sequence[ChatTurn]) -> str:
        """
        Single blocking, non-streaming model call.

        Returns:
            The primary text output

        Raises:
            ModelTransportError: on any provider, network, auth, quota or timeout failure
        """
        try:
            response = await invoke_llm_with_timeout(
                self._llm,
                to_langchain_messages(messages),
                timeout=self.config.timeout,
            )
        except asyncio.TimeoutError as e:
            raise ModelTransportError(
                f"Model call timed out after {self.config.timeout}s"
            ) from e
        except Exception as e:
            raise ModelTransportError(f"Model call failed: {e}") from e

        return content_to_text(getattr(response, "content", response))
