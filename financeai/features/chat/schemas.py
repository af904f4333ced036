import datetime
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from financeai.core.resilience import ErrorType

ResponseStyle = Literal["concise", "detailed", "comprehensive"]


class CamelModel(BaseModel):
    """Chat payloads use camelCase on the wire; snake_case names are also accepted."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChatOptions(CamelModel):
    include_financial_context: bool = True
    response_style: ResponseStyle = "detailed"
    max_context_messages: int = Field(5, ge=0, le=50)
    conversation_id: Optional[str] = Field(None, max_length=100)


class ChatRequest(CamelModel):
    # Presence and length are checked by the endpoint so it can answer 400
    message: Optional[str] = None
    conversation_id: Optional[str] = Field(None, max_length=100)
    options: ChatOptions = Field(default_factory=ChatOptions)


class ChatResponseMetadata(CamelModel):
    processing_time: int
    model: str
    context_used: bool
    suggested_questions: Optional[List[str]] = None
    attempts: int = 0


class ChatResponse(CamelModel):
    message: str
    timestamp: datetime.datetime
    is_error: bool = False
    error_type: Optional[ErrorType] = None
    metadata: ChatResponseMetadata


class ChatApiResponse(ChatResponse):
    conversation_id: str


class ChatMessage(CamelModel):
    id: str
    content: str
    is_user: bool
    timestamp: datetime.datetime
    is_error: Optional[bool] = None
    error_type: Optional[ErrorType] = None
    metadata: Optional[Dict[str, Any]] = None


class ChatConversation(CamelModel):
    id: str
    title: str
    messages: List[ChatMessage] = []
    created_at: datetime.datetime
    updated_at: datetime.datetime
    user_id: Optional[str] = None


class ConversationSummary(CamelModel):
    id: str
    title: str
    message_count: int
    created_at: datetime.datetime
    updated_at: datetime.datetime
