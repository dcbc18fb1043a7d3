# src/medichat/services/ingestion_service.py
from typing import Any, Dict
from uuid import UUID
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from medichat.models.document import Document, DocumentExtraction, DocumentStatus
from medichat.models.patient_record import Gender, Vital, LabResult, Medication, Condition
from medichat.schemas.document_schemas import ExtractionResult
from medichat.utils.datetime_utils import utc_now, parse_datetime_or_now
from medichat.utils.logger import setup_logger
from .patient_record_service import patient_record_service, PatientRecordService

logger = setup_logger("INGESTION_SERVICE")


def _int_or_none(value):
    return int(value) if value is not None else None


def profile_fields_from_extraction(result: ExtractionResult) -> Dict[str, Any]:
    """Only fields the document actually stated; unrecognized gender is dropped"""
    fields: Dict[str, Any] = {}
    if result.demographics:
        if result.demographics.age_years is not None:
            fields["age_years"] = int(result.demographics.age_years)
        gender = Gender.normalize(result.demographics.gender)
        if gender is not None:
            fields["gender"] = gender
    if result.hpi:
        for name in ("history_of_present_illness", "symptom_onset", "symptom_duration"):
            value = getattr(result.hpi, name)
            if value:
                fields[name] = value
    return fields


class IngestionService:
    def __init__(self, records: PatientRecordService = patient_record_service):
        self.records = records

    async def ingest(
        self,
        db: AsyncSession,
        document: Document,
        model: str,
        result: ExtractionResult,
        raw_json: Dict[str, Any],
    ) -> DocumentExtraction:
        """
        Write one extraction into the patient's record in a single transaction.

        Records the extraction, upserts the stated profile fields, appends one
        row per fact tagged with the source document, and marks the document
        parsed. Nothing is committed if any step fails.
        """
        document_id: UUID = document.id
        patient_id: UUID = document.patient_id
        now = utc_now()

        try:
            extraction = DocumentExtraction(
                document_id=document_id, model=model, extracted_json=raw_json, created_at=now
            )
            db.add(extraction)

            await self.records.upsert_profile_fields(
                db, patient_id, profile_fields_from_extraction(result)
            )

            for v in result.vitals:
                db.add(
                    Vital(
                        patient_id=patient_id,
                        measured_at=parse_datetime_or_now(v.measured_at),
                        systolic=_int_or_none(v.systolic),
                        diastolic=_int_or_none(v.diastolic),
                        heart_rate=_int_or_none(v.heart_rate),
                        temperature_c=v.temperature_c,
                        source_document_id=document_id,
                    )
                )
            for lab in result.labs:
                db.add(
                    LabResult(
                        patient_id=patient_id,
                        collected_at=parse_datetime_or_now(lab.collected_at),
                        test_name=lab.test_name,
                        value_text=lab.value_text,
                        unit=lab.unit,
                        reference_range=lab.reference_range,
                        flag=lab.flag,
                        source_document_id=document_id,
                    )
                )
            for med in result.medications:
                db.add(
                    Medication(
                        patient_id=patient_id,
                        medication_name=med.medication_name,
                        dose=med.dose,
                        frequency=med.frequency,
                        active=med.active if med.active is not None else True,
                        noted_at=now,
                        source_document_id=document_id,
                    )
                )
            for cond in result.conditions:
                db.add(
                    Condition(
                        patient_id=patient_id,
                        condition_name=cond.condition_name,
                        status=cond.status,
                        noted_at=now,
                        source_document_id=document_id,
                    )
                )

            await db.execute(
                update(Document)
                .where(Document.id == document_id)
                .values(status=DocumentStatus.PARSED, parsed_at=now, parse_error=None)
                .execution_options(synchronize_session=False)
            )
            await db.commit()

        except Exception as e:
            await db.rollback()
            logger.error(f"Ingestion failed for document {document_id}: {e}", exc_info=True)
            raise

        await db.refresh(document)
        await db.refresh(extraction)
        logger.info(
            f"Ingested document {document_id}: {len(result.vitals)} vitals, "
            f"{len(result.labs)} labs, {len(result.medications)} medications, "
            f"{len(result.conditions)} conditions"
        )
        return extraction


ingestion_service = IngestionService()
