# src/medichat/services/patient_record_service.py
from typing import Any, Dict, List, Optional, Type
from uuid import UUID
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from medichat.db.database import dialect_insert
from medichat.models.patient_record import (
    PatientProfile,
    PatientProfileHistory,
    Vital,
    LabResult,
    Medication,
    Condition,
    PROFILE_FIELDS,
)
from medichat.utils.datetime_utils import utc_now
from medichat.utils.logger import setup_logger

logger = setup_logger("PATIENT_RECORD_SERVICE")

FACT_ORDERING = {
    Vital: Vital.measured_at,
    LabResult: LabResult.collected_at,
    Medication: Medication.noted_at,
    Condition: Condition.noted_at,
}


class PatientRecordService:
    """Profile upserts (with version history) and fact-row reads for one patient"""

    async def upsert_profile_fields(
        self, db: AsyncSession, patient_id: UUID, fields: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        """
        Write only the given profile fields, creating the profile if needed.

        Also closes the open history version and appends the new one. Runs in
        the caller's transaction; never commits. Returns the resulting profile
        values, or None when there was nothing to write.
        """
        fields = {k: v for k, v in fields.items() if k in PROFILE_FIELDS and v is not None}
        if not fields:
            return None

        now = utc_now()
        profile_table = PatientProfile.__table__
        stmt = dialect_insert(db, profile_table).values(
            patient_id=patient_id, created_at=now, updated_at=now, **fields
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[profile_table.c.patient_id],
            set_={**fields, "updated_at": now},
        ).returning(*[profile_table.c[name] for name in PROFILE_FIELDS])

        row = (await db.execute(stmt)).mappings().one()
        snapshot = dict(row)

        await db.execute(
            update(PatientProfileHistory)
            .where(
                PatientProfileHistory.patient_id == patient_id,
                PatientProfileHistory.valid_to.is_(None),
            )
            .values(valid_to=now)
            .execution_options(synchronize_session=False)
        )
        db.add(PatientProfileHistory(patient_id=patient_id, valid_from=now, **snapshot))
        await db.flush()

        logger.info(f"Updated profile fields {sorted(fields)} for patient {patient_id}")
        return snapshot

    async def get_profile(
        self, db: AsyncSession, patient_id: UUID
    ) -> Optional[PatientProfile]:
        return await db.get(PatientProfile, patient_id, populate_existing=True)

    async def list_profile_history(
        self, db: AsyncSession, patient_id: UUID, limit: int = 100
    ) -> List[PatientProfileHistory]:
        result = await db.execute(
            select(PatientProfileHistory)
            .where(PatientProfileHistory.patient_id == patient_id)
            .order_by(PatientProfileHistory.valid_from.desc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def recent_facts(
        self,
        db: AsyncSession,
        model: Type,
        patient_id: UUID,
        limit: int,
        source_document_id: Optional[UUID] = None,
    ) -> List[Any]:
        """Newest-first fact rows, optionally restricted to one source document"""
        stmt = select(model).where(model.patient_id == patient_id)
        if source_document_id is not None:
            stmt = stmt.where(model.source_document_id == source_document_id)
        stmt = stmt.order_by(FACT_ORDERING[model].desc(), model.created_at.desc()).limit(
            limit
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())


patient_record_service = PatientRecordService()
