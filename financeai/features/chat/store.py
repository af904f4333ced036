"""
Conversation memory backends.

The chat service only talks to the ``ConversationStore`` interface; which
backend it gets is decided once at startup. Writes are last-writer-wins.
"""
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from financeai.core.config import Settings
from financeai.features.chat.models import ConversationRecord
from financeai.features.chat.schemas import ChatConversation, ChatMessage

logger = logging.getLogger(__name__)


class ConversationStore(ABC):

    @abstractmethod
    async def get(self, conversation_id: str) -> Optional[ChatConversation]:
        ...

    @abstractmethod
    async def put(self, conversation: ChatConversation) -> None:
        ...

    @abstractmethod
    async def delete(self, conversation_id: str) -> bool:
        ...

    @abstractmethod
    async def list_all(self) -> List[ChatConversation]:
        ...


class InMemoryConversationStore(ConversationStore):
    """Process-local store. Contents are lost on restart."""

    def __init__(self):
        self._conversations: Dict[str, ChatConversation] = {}

    async def get(self, conversation_id: str) -> Optional[ChatConversation]:
        conversation = self._conversations.get(conversation_id)
        return conversation.model_copy(deep=True) if conversation else None

    async def put(self, conversation: ChatConversation) -> None:
        self._conversations[conversation.id] = conversation.model_copy(deep=True)

    async def delete(self, conversation_id: str) -> bool:
        return self._conversations.pop(conversation_id, None) is not None

    async def list_all(self) -> List[ChatConversation]:
        return [c.model_copy(deep=True) for c in self._conversations.values()]

    def clear(self) -> None:
        self._conversations.clear()


class DatabaseConversationStore(ConversationStore):
    """Keeps conversations in the ``chat_conversations`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    @staticmethod
    def _to_schema(record: ConversationRecord) -> ChatConversation:
        return ChatConversation(
            id=record.id,
            title=record.title,
            messages=[ChatMessage.model_validate(m) for m in record.messages or []],
            created_at=record.created_at,
            updated_at=record.updated_at,
            user_id=record.user_id,
        )

    async def get(self, conversation_id: str) -> Optional[ChatConversation]:
        async with self.session_factory() as db:
            record = await db.get(ConversationRecord, conversation_id)
            return self._to_schema(record) if record else None

    async def put(self, conversation: ChatConversation) -> None:
        messages = [m.model_dump(mode="json") for m in conversation.messages]
        async with self.session_factory() as db:
            record = await db.get(ConversationRecord, conversation.id)
            if record is None:
                record = ConversationRecord(id=conversation.id, created_at=conversation.created_at)
                db.add(record)
            record.user_id = conversation.user_id
            record.title = conversation.title
            record.messages = messages
            record.updated_at = conversation.updated_at
            await db.commit()

    async def delete(self, conversation_id: str) -> bool:
        async with self.session_factory() as db:
            record = await db.get(ConversationRecord, conversation_id)
            if record is None:
                return False
            await db.delete(record)
            await db.commit()
            return True

    async def list_all(self) -> List[ChatConversation]:
        async with self.session_factory() as db:
            result = await db.execute(select(ConversationRecord))
            return [self._to_schema(r) for r in result.scalars().all()]


def create_conversation_store(settings: Settings, session_factory: async_sessionmaker[AsyncSession]) -> ConversationStore:
    if settings.CONVERSATION_STORE == "database":
        logger.info("Conversation memory: database")
        return DatabaseConversationStore(session_factory)
    if settings.CONVERSATION_STORE != "memory":
        raise ValueError(f"Unknown CONVERSATION_STORE: {settings.CONVERSATION_STORE}")
    logger.info("Conversation memory: in-process (not durable)")
    return InMemoryConversationStore()
