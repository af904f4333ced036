import datetime
import logging
from typing import Annotated, List

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from financeai.core.config import get_settings
from financeai.core.database import get_db
from financeai.core.llm import LLMConfigurationError
from financeai.features.auth.deps import get_current_user
from financeai.features.auth.schemas import CurrentUser
from financeai.features.budgets.schemas import BudgetResponse
from financeai.features.budgets.service import BudgetService
from financeai.features.chat.schemas import (
    ChatApiResponse,
    ChatConversation,
    ChatRequest,
    ConversationSummary,
)
from financeai.features.chat.service import AIChatService, get_chat_service
from financeai.features.context.service import build_financial_context
from financeai.features.transactions.schemas import TransactionResponse
from financeai.features.transactions.service import TransactionService

router = APIRouter()
settings = get_settings()
logger = logging.getLogger(__name__)

SERVICE_NAME = "enhanced-ai-chat"


def _is_rate_limited(error: Exception) -> bool:
    return "rate limit" in str(error).lower() or getattr(error, "status_code", None) == 429


def _is_configuration_error(error: Exception) -> bool:
    message = str(error).lower()
    return isinstance(error, LLMConfigurationError) or "api key" in message or "authentication" in message


@router.post("", response_model=ChatApiResponse)
async def chat(
    payload: ChatRequest,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    chat_service: Annotated[AIChatService, Depends(get_chat_service)],
    txn_service: Annotated[TransactionService, Depends()],
    budget_service: Annotated[BudgetService, Depends()]
):
    """
    Ask the financial assistant a question.

    Degraded AI failures still answer 200 with ``isError`` set; only failures
    that escape the chat service map to 429/500.
    """
    message = payload.message
    if not message or not message.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Message is required")
    if len(message) > settings.CHAT_MAX_MESSAGE_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Message is too long. Please keep it under {settings.CHAT_MAX_MESSAGE_LENGTH} characters."
        )

    try:
        transactions = await txn_service.get_user_transactions(
            db, current_user.id, limit=settings.CHAT_TRANSACTION_LIMIT
        )
        budgets = await budget_service.get_user_budgets(db, current_user.id)
    except SQLAlchemyError as e:
        logger.error(f"Failed to fetch financial data for user {current_user.id}: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to fetch financial data")

    context = build_financial_context(
        [TransactionResponse.model_validate(t) for t in transactions],
        [BudgetResponse.model_validate(b) for b in budgets],
    )

    conversation_id = (
        payload.conversation_id
        or payload.options.conversation_id
        or chat_service.generate_conversation_id()
    )
    options = payload.options.model_copy(update={"conversation_id": conversation_id})
    user_id = str(current_user.id)

    try:
        response = await chat_service.generate_response(message, context, options, user_id=user_id)
        await chat_service.record_exchange(conversation_id, message, response, user_id=user_id)
    except Exception as e:
        if _is_rate_limited(e):
            logger.warning(f"Chat rate limited for user {current_user.id}: {e}")
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="AI service is currently busy. Please try again in a moment."
            )
        if _is_configuration_error(e):
            logger.error(f"AI service configuration error: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="AI service configuration error"
            )
        logger.exception(f"Unexpected chat error for user {current_user.id}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An unexpected error occurred. Please try again."
        )

    return ChatApiResponse(**response.model_dump(), conversation_id=conversation_id)


@router.get("")
async def chat_health(chat_service: Annotated[AIChatService, Depends(get_chat_service)]):
    """Health check for the AI backend (one trivial completion)."""
    timestamp = datetime.datetime.now(datetime.timezone.utc).isoformat()
    try:
        healthy = await chat_service.health_check()
    except Exception as e:
        logger.error(f"Chat health check crashed: {e}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"status": "unhealthy", "service": SERVICE_NAME, "timestamp": timestamp},
        )
    return {
        "status": "healthy" if healthy else "unhealthy",
        "service": SERVICE_NAME,
        "timestamp": timestamp,
    }


@router.get("/conversations", response_model=List[ConversationSummary])
async def list_conversations(
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    chat_service: Annotated[AIChatService, Depends(get_chat_service)]
):
    conversations = await chat_service.get_conversations(user_id=str(current_user.id))
    return [
        ConversationSummary(
            id=c.id,
            title=c.title,
            message_count=len(c.messages),
            created_at=c.created_at,
            updated_at=c.updated_at,
        )
        for c in conversations
    ]


@router.get("/conversations/{conversation_id}", response_model=ChatConversation)
async def get_conversation(
    conversation_id: str,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    chat_service: Annotated[AIChatService, Depends(get_chat_service)]
):
    conversation = await chat_service.get_conversation(conversation_id, user_id=str(current_user.id))
    if not conversation:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")
    return conversation


@router.delete("/conversations/{conversation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_conversation(
    conversation_id: str,
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    chat_service: Annotated[AIChatService, Depends(get_chat_service)]
):
    deleted = await chat_service.delete_conversation(conversation_id, user_id=str(current_user.id))
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")
