# src/medichat/routes/patients.py
from typing import List, Optional
from uuid import UUID
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from medichat.core.dependencies import CurrentUser, get_current_user
from medichat.db.database import get_db
from medichat.schemas.patient_schemas import PatientProfilePublic, PatientProfileVersion
from medichat.services.access_service import access_service
from medichat.services.patient_record_service import patient_record_service

router = APIRouter(prefix="/patients", tags=["patients"])


@router.get(
    "/{patient_id}/profile",
    response_model=Optional[PatientProfilePublic],
    summary="Get patient profile",
)
async def get_profile(
    patient_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    await access_service.assert_patient_access(db, current_user.id, patient_id)
    return await patient_record_service.get_profile(db, patient_id)


@router.get(
    "/{patient_id}/profile/history",
    response_model=List[PatientProfileVersion],
    summary="Get patient profile history",
    description="Profile versions, newest first; the current version has no valid_to",
)
async def get_profile_history(
    patient_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    await access_service.assert_patient_access(db, current_user.id, patient_id)
    return await patient_record_service.list_profile_history(db, patient_id)
