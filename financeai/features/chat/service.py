import asyncio
import datetime
import logging
import time
from typing import List, Optional

from fastapi import Request

from financeai.core.ids import timestamped_id
from financeai.core.llm import LLMService, LLMConfigurationError
from financeai.core.resilience import (
    ErrorType,
    ERROR_MESSAGES,
    RetryOutcome,
    RetryPolicy,
    call_with_retry,
    categorize_error,
)
from financeai.features.chat.prompts import build_chat_prompt
from financeai.features.chat.schemas import (
    ChatConversation,
    ChatMessage,
    ChatOptions,
    ChatResponse,
    ChatResponseMetadata,
)
from financeai.features.chat.store import ConversationStore
from financeai.features.chat.suggestions import generate_suggested_questions
from financeai.features.context.schemas import FinancialContext

logger = logging.getLogger(__name__)

EMPTY_MESSAGE_REPLY = "Please ask me a question about your finances, and I'll be happy to help!"
DEFAULT_TITLE = "New Conversation"
TITLE_MAX_LENGTH = 50

def _now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def generate_conversation_title(messages: List[ChatMessage]) -> str:
    first_user_message = next((m for m in messages if m.is_user), None)
    if first_user_message is None:
        return DEFAULT_TITLE
    content = first_user_message.content
    if len(content) <= TITLE_MAX_LENGTH:
        return content
    return content[:47] + "..."


class AIChatService:
    """
    Financial assistant chat: prompt assembly, the guarded LLM call and
    conversation memory. ``generate_response`` never raises; every failure
    becomes a ChatResponse with ``is_error`` set.
    """

    def __init__(
        self,
        llm: LLMService,
        store: ConversationStore,
        retry_policy: Optional[RetryPolicy] = None,
        sleep=asyncio.sleep
    ):
        self.llm = llm
        self.store = store
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep

    @property
    def model_name(self) -> str:
        return getattr(self.llm, "model", "unknown")

    def _elapsed_ms(self, started: float) -> int:
        return int((time.perf_counter() - started) * 1000)

    def _error_response(
        self,
        error_type: ErrorType,
        message: str,
        started: float,
        attempts: int = 0
    ) -> ChatResponse:
        return ChatResponse(
            message=message,
            timestamp=_now(),
            is_error=True,
            error_type=error_type,
            metadata=ChatResponseMetadata(
                processing_time=self._elapsed_ms(started),
                model=self.model_name,
                context_used=False,
                attempts=attempts,
            ),
        )

    async def generate_response(
        self,
        user_message: Optional[str],
        financial_context: FinancialContext,
        options: Optional[ChatOptions] = None,
        user_id: Optional[str] = None
    ) -> ChatResponse:
        started = time.perf_counter()
        options = options or ChatOptions()

        if not user_message or not user_message.strip():
            return self._error_response(ErrorType.VALIDATION_ERROR, EMPTY_MESSAGE_REPLY, started)

        outcome = RetryOutcome()
        try:
            history = await self.get_conversation_history(
                options.conversation_id, options.max_context_messages, user_id=user_id
            )
            prompt = build_chat_prompt(
                user_message,
                financial_context if options.include_financial_context else None,
                options.response_style,
                history,
            )
            text = await call_with_retry(
                lambda: self.llm.generate_response(prompt, timeout=self.retry_policy.timeout),
                self.retry_policy,
                sleep=self._sleep,
                outcome=outcome,
            )
        except Exception as e:
            error_type = categorize_error(e)
            logger.error(
                f"Chat generation failed after {outcome.attempts} attempt(s) "
                f"[{error_type.value}]: {type(e).__name__}: {e}"
            )
            return self._error_response(error_type, ERROR_MESSAGES[error_type], started, outcome.attempts)

        return ChatResponse(
            message=text.strip(),
            timestamp=_now(),
            is_error=False,
            metadata=ChatResponseMetadata(
                processing_time=self._elapsed_ms(started),
                model=self.model_name,
                context_used=options.include_financial_context,
                suggested_questions=generate_suggested_questions(financial_context),
                attempts=outcome.attempts,
            ),
        )

    def _owned_by(self, conversation: ChatConversation, user_id: Optional[str]) -> bool:
        if user_id is None or conversation.user_id is None:
            return True
        return conversation.user_id == user_id

    async def get_conversation(
        self,
        conversation_id: Optional[str],
        user_id: Optional[str] = None
    ) -> Optional[ChatConversation]:
        if not conversation_id:
            return None
        conversation = await self.store.get(conversation_id)
        if conversation is None or not self._owned_by(conversation, user_id):
            return None
        return conversation

    async def get_conversation_history(
        self,
        conversation_id: Optional[str],
        max_messages: int = 5,
        user_id: Optional[str] = None
    ) -> Optional[str]:
        """The last ``max_messages`` exchanges as ``User:`` / ``Assistant:`` lines."""
        if max_messages <= 0:
            return None
        conversation = await self.get_conversation(conversation_id, user_id)
        if conversation is None:
            return None

        recent = conversation.messages[-max_messages * 2:]
        return "\n".join(
            f"{'User' if msg.is_user else 'Assistant'}: {msg.content}" for msg in recent
        )

    async def save_conversation(
        self,
        conversation_id: str,
        messages: List[ChatMessage],
        user_id: Optional[str] = None
    ) -> ChatConversation:
        existing = await self.store.get(conversation_id)
        now = _now()

        if existing is not None:
            existing.messages = list(messages)
            existing.updated_at = now
            if existing.user_id is None:
                existing.user_id = user_id
            conversation = existing
        else:
            conversation = ChatConversation(
                id=conversation_id,
                title=generate_conversation_title(messages),
                messages=list(messages),
                created_at=now,
                updated_at=now,
                user_id=user_id,
            )

        await self.store.put(conversation)
        return conversation

    async def record_exchange(
        self,
        conversation_id: str,
        user_message: str,
        response: ChatResponse,
        user_id: Optional[str] = None
    ) -> ChatConversation:
        """Append the user's question and the assistant's answer to the conversation."""
        existing = await self.get_conversation(conversation_id, user_id)
        messages = list(existing.messages) if existing else []

        messages.append(ChatMessage(
            id=timestamped_id("msg"),
            content=user_message,
            is_user=True,
            timestamp=_now(),
        ))
        messages.append(ChatMessage(
            id=timestamped_id("msg"),
            content=response.message,
            is_user=False,
            timestamp=response.timestamp,
            is_error=response.is_error,
            error_type=response.error_type,
            metadata=response.metadata.model_dump(mode="json"),
        ))
        return await self.save_conversation(conversation_id, messages, user_id=user_id)

    async def get_conversations(self, user_id: Optional[str] = None) -> List[ChatConversation]:
        conversations = [c for c in await self.store.list_all() if self._owned_by(c, user_id)]
        return sorted(conversations, key=lambda c: c.updated_at, reverse=True)

    async def delete_conversation(self, conversation_id: str, user_id: Optional[str] = None) -> bool:
        if await self.get_conversation(conversation_id, user_id) is None:
            return False
        return await self.store.delete(conversation_id)

    async def health_check(self) -> bool:
        return await self.llm.health_check()

    @staticmethod
    def generate_conversation_id() -> str:
        return timestamped_id("chat")


def get_chat_service(request: Request) -> AIChatService:
    service = getattr(request.app.state, "chat_service", None)
    if service is None:
        raise LLMConfigurationError("AI chat service is not configured")
    return service
