# src/medichat/services/patient_context_service.py
from typing import List, Optional
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from medichat.models.document import Document
from medichat.models.patient_record import (
    PatientProfile,
    Vital,
    LabResult,
    Medication,
    Condition,
)
from .patient_record_service import patient_record_service, PatientRecordService

CONTEXT_FACT_LIMIT = 8


def _fmt_date(value) -> str:
    return value.date().isoformat() if value is not None else "unknown date"


def _profile_lines(profile: Optional[PatientProfile]) -> List[str]:
    if profile is None:
        return ["Profile: none recorded"]
    return [
        "Profile:",
        f"- age: {profile.age_years if profile.age_years is not None else 'unknown'}",
        f"- gender: {getattr(profile.gender, 'value', profile.gender) or 'unknown'}",
        f"- history of present illness: {profile.history_of_present_illness or 'unknown'}",
        f"- symptom onset: {profile.symptom_onset or 'unknown'}",
        f"- symptom duration: {profile.symptom_duration or 'unknown'}",
    ]


def _vital_line(vital: Optional[Vital]) -> str:
    if vital is None:
        return "Latest vitals: none"
    parts = []
    if vital.systolic is not None and vital.diastolic is not None:
        parts.append(f"BP {vital.systolic}/{vital.diastolic}")
    if vital.heart_rate is not None:
        parts.append(f"HR {vital.heart_rate}")
    if vital.temperature_c is not None:
        parts.append(f"Temp {vital.temperature_c}C")
    return f"Latest vitals ({_fmt_date(vital.measured_at)}): {', '.join(parts) or 'no values'}"


def _section(title: str, lines: List[str]) -> List[str]:
    return [f"{title}:"] + (lines or ["- none"])


class PatientContextService:
    """Compact plain-text snapshot of a patient's record for the chat model"""

    def __init__(self, records: PatientRecordService = patient_record_service):
        self.records = records

    async def build_context(
        self,
        db: AsyncSession,
        patient_id: UUID,
        attached_documents: Optional[List[Document]] = None,
    ) -> str:
        profile = await self.records.get_profile(db, patient_id)
        vitals = await self.records.recent_facts(db, Vital, patient_id, 1)
        labs = await self.records.recent_facts(db, LabResult, patient_id, CONTEXT_FACT_LIMIT)
        meds = await self.records.recent_facts(db, Medication, patient_id, CONTEXT_FACT_LIMIT)
        conditions = await self.records.recent_facts(
            db, Condition, patient_id, CONTEXT_FACT_LIMIT
        )

        lines = _profile_lines(profile)
        lines.append(_vital_line(vitals[0] if vitals else None))
        lines += _section(
            "Recent labs",
            [
                f"- {lab.test_name}: {lab.value_text}{' ' + lab.unit if lab.unit else ''}"
                f"{' (' + lab.flag + ')' if lab.flag else ''} on {_fmt_date(lab.collected_at)}"
                for lab in labs
            ],
        )
        lines += _section(
            "Medications",
            [
                f"- {med.medication_name}"
                f"{' ' + med.dose if med.dose else ''}"
                f"{' ' + med.frequency if med.frequency else ''}"
                f"{'' if med.active else ' (inactive)'}"
                for med in meds
            ],
        )
        lines += _section(
            "Conditions",
            [
                f"- {c.condition_name}{' (' + c.status + ')' if c.status else ''}"
                for c in conditions
            ],
        )

        if attached_documents:
            lines += _section(
                "Attached documents (use getDocumentInsights to read them)",
                [
                    f"- {doc.original_file_name} (id={doc.id}, status="
                    f"{getattr(doc.status, 'value', doc.status)})"
                    for doc in attached_documents
                ],
            )

        return "\n".join(lines)


patient_context_service = PatientContextService()
