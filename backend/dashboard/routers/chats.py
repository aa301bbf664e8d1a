from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
import logging

from dashboard.core.database import get_db
from dashboard.core.model_pricing import get_available_models
from dashboard.models.user import User
from dashboard.routers.auth import get_current_user
from dashboard.schemas.chat import (
    ChatSummary,
    ConversationCreate,
    ConversationResponse,
    ConversationUpdate,
    ConversationWithMessages,
    SendMessageRequest,
    SendMessageResponse,
)
from dashboard.services.chat_service import ChatService, InsufficientCreditsError

logger = logging.getLogger("uvicorn.error")

router = APIRouter(prefix="/api/chats", tags=["chats"])

@router.get("", response_model=List[ConversationResponse])
async def get_chats(include_archived: bool = False, db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    return await ChatService(db, current_user.id).get_conversations(include_archived=include_archived)

@router.get("/summary", response_model=ChatSummary)
async def get_chat_summary(db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    recent, total = await ChatService(db, current_user.id).get_summary()
    return ChatSummary(recent_conversations=recent, total_conversations=total)

@router.get("/models")
async def list_chat_models(current_user: User = Depends(get_current_user)):
    return get_available_models()

@router.post("", response_model=ConversationResponse)
async def create_chat(data: ConversationCreate, db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    return await ChatService(db, current_user.id).create_conversation(data)

@router.get("/{conversation_id}", response_model=ConversationWithMessages)
async def get_chat(conversation_id: int, db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    try:
        return await ChatService(db, current_user.id).get_conversation(conversation_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))

@router.patch("/{conversation_id}", response_model=ConversationResponse)
async def update_chat(
    conversation_id: int,
    data: ConversationUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        return await ChatService(db, current_user.id).update_conversation(conversation_id, data)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))

@router.post("/{conversation_id}/archive", response_model=ConversationResponse)
async def archive_chat(conversation_id: int, db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    try:
        return await ChatService(db, current_user.id).archive_conversation(conversation_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))

@router.post("/{conversation_id}/unarchive", response_model=ConversationResponse)
async def unarchive_chat(conversation_id: int, db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    try:
        return await ChatService(db, current_user.id).unarchive_conversation(conversation_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))

@router.delete("/{conversation_id}")
async def delete_chat(conversation_id: int, db: AsyncSession = Depends(get_db), current_user: User = Depends(get_current_user)):
    try:
        await ChatService(db, current_user.id).delete_conversation(conversation_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"status": "ok"}

@router.post("/{conversation_id}/messages", response_model=SendMessageResponse)
async def send_message(
    conversation_id: int,
    request: SendMessageRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    try:
        user_message, assistant_message, cost_cents = await ChatService(db, current_user.id).send_message(
            conversation_id, request.message
        )
    except InsufficientCreditsError as e:
        raise HTTPException(status_code=402, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Chat message failed in conversation {conversation_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    return SendMessageResponse(user_message=user_message, assistant_message=assistant_message, cost_cents=cost_cents)
