"""
Tutor chat: a short conversation grounded in whatever page the student is on.
"""
from typing import AsyncIterator, Dict, List

from core.config import settings
from core.logging import get_logger
from schemas.generation import ChatRequest
from services.ai_manager import AIManager
from services.prompts import load_prompt

logger = get_logger("llm")

CHAT_TEMPERATURE = 0.3
CHAT_MAX_TOKENS = 600


def build_chat_messages(system: str, request: ChatRequest) -> List[Dict[str, str]]:
    """System prompt, then the page and its context as the first user turn, then the conversation."""
    messages = [
        {"role": "system", "content": system},
        {"role": "user", "content": f"Current page: {request.path}\n\nCONTEXT:\n{request.context}"},
    ]
    messages.extend({"role": m.role, "content": m.content} for m in request.messages)
    return messages


class ChatService:
    """
    Service for the assistant chat, as one reply or as a stream.
    """

    def __init__(self, ai_manager: AIManager):
        self.ai_manager = ai_manager

    async def reply(self, request: ChatRequest) -> str:
        logger.info("Chat reply", turns=len(request.messages), path=request.path)
        return await self.ai_manager.chat_text(
            build_chat_messages(load_prompt("chat/assistant_instruction"), request),
            model=settings.openai_fast_model,
            temperature=CHAT_TEMPERATURE,
            max_tokens=CHAT_MAX_TOKENS,
        )

    def stream(self, request: ChatRequest) -> AsyncIterator[str]:
        """Text deltas of the tutor's reply; the client is built before the response starts."""
        self.ai_manager.ensure_configured()
        logger.info("Streaming chat reply", turns=len(request.messages), path=request.path)
        return self.ai_manager.stream_chat(
            build_chat_messages(load_prompt("chat/tutor_instruction"), request),
            model=settings.openai_fast_model,
            temperature=CHAT_TEMPERATURE,
            max_tokens=CHAT_MAX_TOKENS,
        )
