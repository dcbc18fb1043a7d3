# src/medichat/routes/suggestions.py
from typing import List, Optional
from uuid import UUID
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from medichat.core.dependencies import CurrentUser, get_current_user
from medichat.db.database import get_db
from medichat.models.confirmation import ProposalStatus
from medichat.schemas.base_schemas import OkResponse
from medichat.schemas.confirmation_schemas import SuggestionPublic
from medichat.services.suggestion_service import suggestion_service

router = APIRouter(prefix="/suggestions", tags=["suggestions"])


@router.get(
    "",
    response_model=List[SuggestionPublic],
    summary="List my record suggestions",
    description="Suggestions targeting the calling patient's record",
)
async def list_suggestions(
    status: Optional[ProposalStatus] = None,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return await suggestion_service.list_suggestions(db, current_user.id, status)


@router.post(
    "/{suggestion_id}/accept",
    response_model=OkResponse,
    summary="Accept a record suggestion",
    description="Apply the suggested change to the record and mark it accepted",
)
async def accept_suggestion(
    suggestion_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    await suggestion_service.accept_suggestion(db, suggestion_id, current_user.id)
    return OkResponse()


@router.post(
    "/{suggestion_id}/reject",
    response_model=OkResponse,
    summary="Reject a record suggestion",
)
async def reject_suggestion(
    suggestion_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    await suggestion_service.reject_suggestion(db, suggestion_id, current_user.id)
    return OkResponse()
