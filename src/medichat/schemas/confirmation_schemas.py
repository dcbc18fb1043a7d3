# src/medichat/schemas/confirmation_schemas.py
from datetime import date, datetime
from typing import Any, Dict, Optional, Type
from uuid import UUID
from pydantic import Field, field_validator, model_validator
from medichat.models.chat import ContextMode
from medichat.models.confirmation import ProposalStatus, SuggestionKind
from medichat.models.patient_record import (
    Gender,
    SmokingStatus,
    AlcoholConsumption,
    ActivityLevel,
)
from medichat.utils.datetime_utils import parse_datetime
from .base_schemas import BaseSchema, CamelInputSchema, IDMixin, TimestampMixin


class MemoryPublic(IDMixin, TimestampMixin):
    context_mode: ContextMode
    subject_patient_id: Optional[UUID] = None
    status: ProposalStatus
    memory_text: str
    category: Optional[str] = None
    source_thread_id: Optional[UUID] = None
    accepted_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None


class SuggestionPublic(IDMixin, TimestampMixin):
    patient_id: UUID
    kind: SuggestionKind
    summary_text: str
    payload_json: Dict[str, Any]
    status: ProposalStatus
    source_thread_id: Optional[UUID] = None
    updated_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Per-kind suggestion payloads, validated when a suggestion is accepted
# ---------------------------------------------------------------------------


def _to_int(v):
    if v is None or isinstance(v, bool):
        return None
    try:
        return int(float(v))
    except (TypeError, ValueError):
        return None


class ProfileUpdatePayload(CamelInputSchema):
    date_of_birth: Optional[date] = None
    age_years: Optional[int] = Field(None, ge=0, le=130)
    gender: Optional[Gender] = None
    history_of_present_illness: Optional[str] = None
    symptom_onset: Optional[str] = None
    symptom_duration: Optional[str] = None
    smoking_status: Optional[SmokingStatus] = None
    alcohol_consumption: Optional[AlcoholConsumption] = None
    physical_activity_level: Optional[ActivityLevel] = None

    @field_validator("gender", mode="before")
    def normalize_gender(cls, v):
        if v is None:
            return None
        normalized = Gender.normalize(v)
        if normalized is None:
            raise ValueError(f"Unrecognized gender: {v!r}")
        return normalized

    @field_validator("age_years", mode="before")
    def truncate_age(cls, v):
        return _to_int(v) if v is not None else None


class VitalPayload(CamelInputSchema):
    measured_at: Optional[datetime] = None
    systolic: Optional[int] = None
    diastolic: Optional[int] = None
    heart_rate: Optional[int] = None
    temperature_c: Optional[float] = None

    @field_validator("measured_at", mode="before")
    def parse_measured_at(cls, v):
        return parse_datetime(v)

    @field_validator("systolic", "diastolic", "heart_rate", mode="before")
    def truncate_ints(cls, v):
        return _to_int(v)

    @model_validator(mode="after")
    def require_measurement(self):
        if all(
            value is None
            for value in (self.systolic, self.diastolic, self.heart_rate, self.temperature_c)
        ):
            raise ValueError("A vital needs at least one measurement")
        return self


class LabPayload(CamelInputSchema):
    collected_at: Optional[datetime] = None
    test_name: str = Field(..., min_length=1)
    value_text: str = Field(..., min_length=1)
    value_num: Optional[float] = None
    unit: Optional[str] = None
    reference_range: Optional[str] = None
    flag: Optional[str] = None

    @field_validator("collected_at", mode="before")
    def parse_collected_at(cls, v):
        return parse_datetime(v)

    @field_validator("value_text", mode="before")
    def stringify_value(cls, v):
        return str(v) if isinstance(v, (int, float)) and not isinstance(v, bool) else v


class MedicationPayload(CamelInputSchema):
    medication_name: str = Field(..., min_length=1)
    dose: Optional[str] = None
    frequency: Optional[str] = None
    active: bool = True
    noted_at: Optional[datetime] = None

    @field_validator("noted_at", mode="before")
    def parse_noted_at(cls, v):
        return parse_datetime(v)


class ConditionPayload(CamelInputSchema):
    condition_name: str = Field(..., min_length=1)
    status: Optional[str] = None
    noted_at: Optional[datetime] = None

    @field_validator("noted_at", mode="before")
    def parse_noted_at(cls, v):
        return parse_datetime(v)


SUGGESTION_PAYLOAD_MODELS: Dict[SuggestionKind, Type[CamelInputSchema]] = {
    SuggestionKind.PROFILE_UPDATE: ProfileUpdatePayload,
    SuggestionKind.VITAL: VitalPayload,
    SuggestionKind.LAB: LabPayload,
    SuggestionKind.MEDICATION: MedicationPayload,
    SuggestionKind.CONDITION: ConditionPayload,
}
