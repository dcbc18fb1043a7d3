# src/medichat/routes/access.py
from typing import List
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from medichat.core.dependencies import CurrentUser, get_current_user
from medichat.db.database import get_db
from medichat.schemas.base_schemas import OkResponse
from medichat.schemas.invite_schemas import AccessRevoke, AccessGrantPublic
from medichat.services.access_service import access_service

router = APIRouter(prefix="/access", tags=["access"])


@router.get(
    "",
    response_model=List[AccessGrantPublic],
    summary="List live access grants",
    description=(
        "As a patient, the physicians who can see my record; with "
        "as_physician=true, the patients whose records I can see"
    ),
)
async def list_access(
    as_physician: bool = False,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    if as_physician:
        return await access_service.list_patients_for_physician(db, current_user.id)
    return await access_service.list_physicians_for_patient(db, current_user.id)


@router.post(
    "/revoke",
    response_model=OkResponse,
    summary="Revoke a physician's access",
    description="The calling patient revokes a physician's live grant (idempotent)",
)
async def revoke_access(
    payload: AccessRevoke,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    await access_service.revoke_access(db, current_user.id, payload.physician_id)
    return OkResponse()
