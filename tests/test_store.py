import datetime

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from financeai.core.config import Settings
from financeai.core.database import Base
from financeai.features.chat.schemas import ChatConversation, ChatMessage
from financeai.features.chat.store import (
    DatabaseConversationStore,
    InMemoryConversationStore,
    create_conversation_store,
)


def conversation(conversation_id="c1", title="Budget help", user_id="u1"):
    now = datetime.datetime(2024, 5, 1, 12, 0)
    return ChatConversation(
        id=conversation_id,
        title=title,
        messages=[ChatMessage(id="m1", content="How do I save?", is_user=True, timestamp=now)],
        created_at=now,
        updated_at=now,
        user_id=user_id,
    )


async def test_in_memory_store_returns_copies():
    store = InMemoryConversationStore()
    original = conversation()
    await store.put(original)

    fetched = await store.get("c1")
    fetched.messages.clear()
    assert len((await store.get("c1")).messages) == 1

    assert await store.delete("c1") is True
    assert await store.get("c1") is None
    assert await store.delete("c1") is False


async def test_database_store_round_trip():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    store = DatabaseConversationStore(async_sessionmaker(engine, expire_on_commit=False))

    try:
        await store.put(conversation())
        fetched = await store.get("c1")
        assert fetched.title == "Budget help"
        assert fetched.user_id == "u1"
        assert [m.content for m in fetched.messages] == ["How do I save?"]

        fetched.messages.append(ChatMessage(
            id="m2", content="Spend less.", is_user=False, timestamp=datetime.datetime(2024, 5, 1, 12, 1)
        ))
        await store.put(fetched)
        assert len((await store.get("c1")).messages) == 2

        await store.put(conversation("c2", "Other"))
        assert sorted(c.id for c in await store.list_all()) == ["c1", "c2"]

        assert await store.delete("c1") is True
        assert await store.delete("c1") is False
        assert await store.get("c1") is None
    finally:
        await engine.dispose()


def test_store_selection():
    assert isinstance(create_conversation_store(Settings(CONVERSATION_STORE="memory"), None), InMemoryConversationStore)
    assert isinstance(create_conversation_store(Settings(CONVERSATION_STORE="database"), None), DatabaseConversationStore)
    with pytest.raises(ValueError):
        create_conversation_store(Settings(CONVERSATION_STORE="redis"), None)
