# src/medichat/routes/invites.py
from typing import List
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from medichat.core.config import settings
from medichat.core.dependencies import CurrentUser, get_current_user
from medichat.db.database import get_db
from medichat.schemas.base_schemas import OkResponse
from medichat.schemas.invite_schemas import (
    InviteCreate,
    InviteCreated,
    InviteAccept,
    InviteAcceptResult,
    InviteRevoke,
    InvitePublic,
)
from medichat.services.invite_service import invite_service
from medichat.utils.rate_limiter import limiter

router = APIRouter(prefix="/invites", tags=["invites"])


@router.post(
    "",
    response_model=InviteCreated,
    status_code=status.HTTP_201_CREATED,
    summary="Create an access invite",
    description="Returns a single-use token and shareable link, valid for 7 days",
)
async def create_invite(
    payload: InviteCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return await invite_service.create_invite(db, current_user.id, payload.kind)


@router.get(
    "",
    response_model=List[InvitePublic],
    summary="List my invites",
    description="Invites created by the caller with their derived status",
)
async def list_invites(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return await invite_service.list_invites(db, current_user.id)


@router.post(
    "/accept",
    response_model=InviteAcceptResult,
    summary="Accept an invite",
    description="Redeem an invite token and create or re-activate the access grant",
)
@limiter.limit(settings.INVITE_ACCEPT_RATE_LIMIT)
async def accept_invite(
    request: Request,
    payload: InviteAccept,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    return await invite_service.accept_invite(db, payload.token, current_user.id)


@router.post(
    "/revoke",
    response_model=OkResponse,
    summary="Revoke an invite",
    description="Only the inviter may revoke; revoking twice is a no-op",
)
async def revoke_invite(
    payload: InviteRevoke,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    await invite_service.revoke_invite(db, payload.invite_id, current_user.id)
    return OkResponse()
