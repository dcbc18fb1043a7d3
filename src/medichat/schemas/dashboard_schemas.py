# src/medichat/schemas/dashboard_schemas.py
from typing import Any, Dict, List, Optional
from uuid import UUID
from pydantic import AliasChoices, Field
from .base_schemas import BaseSchema, CamelInputSchema, IDMixin, TimestampMixin


class DashboardGenerateRequest(CamelInputSchema):
    patient_id: Optional[UUID] = Field(
        None, validation_alias=AliasChoices("patientId", "patientUserId", "patient_id")
    )
    date: Optional[str] = Field(None, pattern=r"^\d{4}-\d{2}-\d{2}$")
    force: bool = False


class DashboardContent(CamelInputSchema):
    """Shape the model must return; list sections may be omitted"""

    overview: str
    insights: List[str] = []
    recommendations: List[str] = []
    red_flags: List[str] = []
    suggested_follow_ups: List[str] = []


DASHBOARD_JSON_SHAPE = """{
  "overview": "Short paragraph summary for today.",
  "insights": ["Bullet insight 1", "Bullet insight 2"],
  "recommendations": ["Actionable next step 1", "Actionable next step 2"],
  "redFlags": ["If present, urgent warning signs or thresholds to watch"],
  "suggestedFollowUps": ["Questions to clarify or next labs to consider"]
}"""


class DashboardPublic(IDMixin, TimestampMixin):
    patient_id: UUID
    date: str
    model: str
    dashboard_json: Dict[str, Any]
    status: str


class DashboardGenerateResponse(BaseSchema):
    ok: bool = True
    dashboard: DashboardPublic
