# src/medichat/services/dashboard_service.py
from typing import Optional
from uuid import UUID
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from medichat.core.config import settings
from medichat.db.database import dialect_insert
from medichat.models.dashboard import PatientDailyDashboard
from medichat.schemas.dashboard_schemas import DashboardContent, DASHBOARD_JSON_SHAPE
from medichat.utils.datetime_utils import utc_now
from medichat.utils.exceptions import ServiceError, ErrorCode
from medichat.utils.logger import setup_logger
from .access_service import access_service, AccessService
from .extraction_service import parse_json_object
from .llm_client import LLMClient, LLMError
from .patient_context_service import patient_context_service, PatientContextService

logger = setup_logger("DASHBOARD_SERVICE")

DASHBOARD_SYSTEM_PROMPT = f"""You summarize a patient's health record into a daily health dashboard.
Focus on the patient's current health status and notable recent changes, with insights and next steps the patient can act on.
You do not give medical advice; keep insights informational and encourage clinician review where appropriate.
Return ONLY valid JSON with this shape:
{DASHBOARD_JSON_SHAPE}"""


class DashboardService:
    """Generates and caches one LLM-written dashboard per patient and day"""

    def __init__(
        self,
        llm: LLMClient,
        access: AccessService = access_service,
        context: PatientContextService = patient_context_service,
        model: Optional[str] = None,
    ):
        self.llm = llm
        self.access = access
        self.context = context
        self.model = model or settings.AI_MODEL_DASHBOARD

    async def _get_existing(
        self, db: AsyncSession, patient_id: UUID, date: str
    ) -> Optional[PatientDailyDashboard]:
        result = await db.execute(
            select(PatientDailyDashboard)
            .where(
                PatientDailyDashboard.patient_id == patient_id,
                PatientDailyDashboard.date == date,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def generate_dashboard(
        self,
        db: AsyncSession,
        caller_id: UUID,
        patient_id: Optional[UUID] = None,
        date: Optional[str] = None,
        force: bool = False,
    ) -> PatientDailyDashboard:
        """
        Return the patient's dashboard for `date` (default: today, UTC).

        A stored dashboard is reused unless `force` is set; otherwise the model
        is asked for a fresh one, which replaces any row for that day.

        Raises:
            ServiceError: FORBIDDEN_PATIENT_ACCESS, MODEL_NO_RESPONSE,
            DASHBOARD_JSON_NOT_FOUND or DASHBOARD_SCHEMA_INVALID.
        """
        target_patient = patient_id or caller_id
        if target_patient != caller_id:
            await self.access.assert_patient_access(db, caller_id, target_patient)

        date = date or utc_now().date().isoformat()
        existing = await self._get_existing(db, target_patient, date)
        if existing is not None and not force:
            return existing

        patient_context = await self.context.build_context(db, target_patient)
        system = f"{DASHBOARD_SYSTEM_PROMPT}\n\nPatient record snapshot:\n{patient_context}"
        try:
            response = await self.llm.chat_completion(
                messages=[{"role": "system", "content": system}],
                model=self.model,
                temperature=0.2,
            )
        except LLMError as e:
            raise ServiceError(ErrorCode.MODEL_NO_RESPONSE, str(e)) from e

        choices = response.get("choices") or []
        if not choices:
            raise ServiceError(ErrorCode.MODEL_NO_RESPONSE)
        content = (choices[0].get("message") or {}).get("content") or ""

        raw = parse_json_object(content, not_found=ErrorCode.DASHBOARD_JSON_NOT_FOUND)
        try:
            dashboard = DashboardContent.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Dashboard output failed validation: {e.error_count()} errors")
            raise ServiceError(ErrorCode.DASHBOARD_SCHEMA_INVALID) from e

        now = utc_now()
        values = {
            "model": self.model,
            "dashboard_json": dashboard.model_dump(by_alias=True),
            "status": "generated",
            "created_at": now,
        }
        table = PatientDailyDashboard.__table__
        stmt = dialect_insert(db, table).values(patient_id=target_patient, date=date, **values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.patient_id, table.c.date], set_=values
        )
        try:
            await db.execute(stmt)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(f"Generated dashboard for patient {target_patient} on {date}")
        return await self._get_existing(db, target_patient, date)
