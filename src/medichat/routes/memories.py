# src/medichat/routes/memories.py
from typing import List, Optional
from uuid import UUID
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from medichat.core.dependencies import CurrentUser, get_current_user
from medichat.db.database import get_db
from medichat.models.confirmation import ProposalStatus
from medichat.schemas.base_schemas import OkResponse
from medichat.schemas.confirmation_schemas import MemoryPublic
from medichat.services.memory_service import memory_service

router = APIRouter(prefix="/memories", tags=["memories"])


@router.get(
    "",
    response_model=List[MemoryPublic],
    summary="List my memories",
    description="Memories owned by the caller, optionally filtered by status",
)
async def list_memories(
    status: Optional[ProposalStatus] = None,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return await memory_service.list_memories(db, current_user.id, status)


@router.post(
    "/{memory_id}/accept",
    response_model=OkResponse,
    summary="Accept a proposed memory",
)
async def accept_memory(
    memory_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    await memory_service.accept_memory(db, memory_id, current_user.id)
    return OkResponse()


@router.post(
    "/{memory_id}/reject",
    response_model=OkResponse,
    summary="Reject a proposed memory",
)
async def reject_memory(
    memory_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    await memory_service.reject_memory(db, memory_id, current_user.id)
    return OkResponse()
