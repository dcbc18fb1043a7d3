# src/medichat/services/suggestion_service.py
from typing import Any, Dict, List, Optional
from uuid import UUID
from pydantic import ValidationError
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from medichat.models.confirmation import (
    PatientRecordSuggestion,
    ProposalStatus,
    SuggestionKind,
)
from medichat.models.patient_record import Vital, LabResult, Medication, Condition
from medichat.schemas.confirmation_schemas import (
    SUGGESTION_PAYLOAD_MODELS,
    ProfileUpdatePayload,
    VitalPayload,
    LabPayload,
    MedicationPayload,
    ConditionPayload,
)
from medichat.utils.datetime_utils import utc_now
from medichat.utils.exceptions import ServiceError, ErrorCode
from medichat.utils.logger import setup_logger
from .patient_record_service import patient_record_service, PatientRecordService

logger = setup_logger("SUGGESTION_SERVICE")


class SuggestionService:
    """
    Human-confirmed record mutations proposed by the chat assistant.

    Accepting applies the typed payload to the patient record and flips the
    status in one transaction. Rows written this way never carry a source
    document.
    """

    def __init__(self, records: PatientRecordService = patient_record_service):
        self.records = records

    async def propose_suggestion(
        self,
        db: AsyncSession,
        patient_id: UUID,
        kind: SuggestionKind,
        summary_text: str,
        payload: Dict[str, Any],
        source_thread_id: Optional[UUID] = None,
        source_message_id: Optional[UUID] = None,
    ) -> PatientRecordSuggestion:
        """Adds a proposed suggestion to the session; the caller commits"""
        suggestion = PatientRecordSuggestion(
            patient_id=patient_id,
            kind=SuggestionKind(kind),
            summary_text=summary_text,
            payload_json=payload,
            status=ProposalStatus.PROPOSED,
            source_thread_id=source_thread_id,
            source_message_id=source_message_id,
        )
        db.add(suggestion)
        await db.flush()
        logger.info(f"Proposed {suggestion.kind.value} suggestion {suggestion.id} for {patient_id}")
        return suggestion

    async def _flip_status(
        self,
        db: AsyncSession,
        suggestion_id: UUID,
        patient_id: UUID,
        new_status: ProposalStatus,
    ) -> PatientRecordSuggestion:
        result = await db.execute(
            update(PatientRecordSuggestion)
            .where(
                PatientRecordSuggestion.id == suggestion_id,
                PatientRecordSuggestion.patient_id == patient_id,
                PatientRecordSuggestion.status == ProposalStatus.PROPOSED,
            )
            .values(status=new_status, updated_at=utc_now())
            .returning(PatientRecordSuggestion)
            .execution_options(populate_existing=True)
        )
        suggestion = result.scalar_one_or_none()
        if suggestion is None:
            raise ServiceError(ErrorCode.SUGGESTION_NOT_FOUND)
        return suggestion

    async def _apply(
        self, db: AsyncSession, suggestion: PatientRecordSuggestion
    ) -> None:
        kind = SuggestionKind(suggestion.kind)
        model = SUGGESTION_PAYLOAD_MODELS[kind]
        try:
            payload = model.model_validate(suggestion.payload_json or {})
        except ValidationError as e:
            raise ServiceError(
                ErrorCode.SUGGESTION_PAYLOAD_INVALID,
                f"Invalid {kind.value} payload: {e.error_count()} error(s)",
            ) from e

        now = utc_now()
        patient_id = suggestion.patient_id

        if isinstance(payload, ProfileUpdatePayload):
            fields = payload.model_dump(exclude_none=True)
            if not fields:
                raise ServiceError(
                    ErrorCode.SUGGESTION_PAYLOAD_INVALID, "Profile update has no fields"
                )
            await self.records.upsert_profile_fields(db, patient_id, fields)
        elif isinstance(payload, VitalPayload):
            db.add(
                Vital(
                    patient_id=patient_id,
                    measured_at=payload.measured_at or now,
                    systolic=payload.systolic,
                    diastolic=payload.diastolic,
                    heart_rate=payload.heart_rate,
                    temperature_c=payload.temperature_c,
                    source_document_id=None,
                )
            )
        elif isinstance(payload, LabPayload):
            db.add(
                LabResult(
                    patient_id=patient_id,
                    collected_at=payload.collected_at or now,
                    test_name=payload.test_name,
                    value_text=payload.value_text,
                    value_num=payload.value_num,
                    unit=payload.unit,
                    reference_range=payload.reference_range,
                    flag=payload.flag,
                    source_document_id=None,
                )
            )
        elif isinstance(payload, MedicationPayload):
            db.add(
                Medication(
                    patient_id=patient_id,
                    medication_name=payload.medication_name,
                    dose=payload.dose,
                    frequency=payload.frequency,
                    active=payload.active,
                    noted_at=payload.noted_at or now,
                    source_document_id=None,
                )
            )
        elif isinstance(payload, ConditionPayload):
            db.add(
                Condition(
                    patient_id=patient_id,
                    condition_name=payload.condition_name,
                    status=payload.status,
                    noted_at=payload.noted_at or now,
                    source_document_id=None,
                )
            )
        await db.flush()

    async def accept_suggestion(
        self, db: AsyncSession, suggestion_id: UUID, patient_id: UUID
    ) -> PatientRecordSuggestion:
        try:
            suggestion = await self._flip_status(
                db, suggestion_id, patient_id, ProposalStatus.ACCEPTED
            )
            await self._apply(db, suggestion)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(f"Suggestion {suggestion_id} accepted and applied for {patient_id}")
        return suggestion

    async def reject_suggestion(
        self, db: AsyncSession, suggestion_id: UUID, patient_id: UUID
    ) -> PatientRecordSuggestion:
        try:
            suggestion = await self._flip_status(
                db, suggestion_id, patient_id, ProposalStatus.REJECTED
            )
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(f"Suggestion {suggestion_id} rejected by {patient_id}")
        return suggestion

    async def list_suggestions(
        self,
        db: AsyncSession,
        patient_id: UUID,
        status: Optional[ProposalStatus] = None,
        limit: int = 100,
    ) -> List[PatientRecordSuggestion]:
        stmt = select(PatientRecordSuggestion).where(
            PatientRecordSuggestion.patient_id == patient_id
        )
        if status is not None:
            stmt = stmt.where(PatientRecordSuggestion.status == ProposalStatus(status))
        result = await db.execute(
            stmt.order_by(PatientRecordSuggestion.created_at.desc()).limit(limit)
        )
        return list(result.scalars().all())


suggestion_service = SuggestionService()
