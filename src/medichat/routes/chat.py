# src/medichat/routes/chat.py
from typing import List, Optional
from uuid import UUID
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from medichat.core.config import settings
from medichat.core.dependencies import CurrentUser, get_current_user, get_chat_service
from medichat.db.database import get_db
from medichat.models.chat import ContextMode
from medichat.schemas.base_schemas import OkResponse
from medichat.schemas.chat_schemas import (
    ChatTurnRequest,
    ChatTurnResponse,
    ChatThreadPublic,
    ChatThreadWithMessages,
)
from medichat.services.chat_service import ChatService
from medichat.utils.logger import setup_logger
from medichat.utils.rate_limiter import limiter

router = APIRouter(prefix="/chat", tags=["chat"])
logger = setup_logger("CHAT_ROUTES")


@router.post(
    "",
    response_model=ChatTurnResponse,
    status_code=status.HTTP_200_OK,
    summary="Send a chat message",
    description=(
        "Run one assistant turn in patient or physician mode. The assistant may "
        "read the record and propose memories or record changes; nothing is "
        "written to the record until a human accepts it."
    ),
)
@limiter.limit(settings.CHAT_RATE_LIMIT)
async def chat_turn(
    request: Request,
    payload: ChatTurnRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    chat_service: ChatService = Depends(get_chat_service),
):
    return await chat_service.run_turn(db, current_user.id, payload)


@router.get(
    "/threads",
    response_model=List[ChatThreadPublic],
    summary="List chat threads",
    description="Threads for the caller (patient mode) or an accessible patient (physician mode)",
)
async def list_threads(
    mode: ContextMode = ContextMode.PATIENT,
    patient_id: Optional[UUID] = None,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    chat_service: ChatService = Depends(get_chat_service),
):
    return await chat_service.list_threads(db, current_user.id, mode, patient_id)


@router.get(
    "/threads/{thread_id}",
    response_model=ChatThreadWithMessages,
    summary="Get thread messages",
    description="The most recent user and assistant messages of one thread, oldest first",
)
async def get_thread(
    thread_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    chat_service: ChatService = Depends(get_chat_service),
):
    return await chat_service.get_thread_messages(db, current_user.id, thread_id)


@router.delete(
    "/threads/{thread_id}",
    response_model=OkResponse,
    summary="Delete a chat thread",
    description="Allowed for the thread's creator and for the patient it belongs to",
)
async def delete_thread(
    thread_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    chat_service: ChatService = Depends(get_chat_service),
):
    await chat_service.delete_thread(db, current_user.id, thread_id)
    return OkResponse()
