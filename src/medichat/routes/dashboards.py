# src/medichat/routes/dashboards.py
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from medichat.core.dependencies import CurrentUser, get_current_user, get_dashboard_service
from medichat.db.database import get_db
from medichat.schemas.dashboard_schemas import (
    DashboardGenerateRequest,
    DashboardGenerateResponse,
)
from medichat.services.dashboard_service import DashboardService
from medichat.utils.logger import setup_logger

router = APIRouter(prefix="/dashboards", tags=["dashboards"])
logger = setup_logger("DASHBOARD_ROUTES")


@router.post(
    "/generate",
    response_model=DashboardGenerateResponse,
    summary="Generate a daily dashboard",
    description=(
        "Summarize the caller's record, or an accessible patient's, for one day. "
        "An existing dashboard for that day is returned unless `force` is set."
    ),
)
async def generate_dashboard(
    payload: DashboardGenerateRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    dashboard_service: DashboardService = Depends(get_dashboard_service),
):
    dashboard = await dashboard_service.generate_dashboard(
        db,
        current_user.id,
        patient_id=payload.patient_id,
        date=payload.date,
        force=payload.force,
    )
    return {"ok": True, "dashboard": dashboard}
