# src/medichat/schemas/patient_schemas.py
from datetime import date, datetime
from typing import Optional
from uuid import UUID
from .base_schemas import BaseSchema, IDMixin, TimestampMixin


class PatientProfilePublic(BaseSchema):
    patient_id: UUID
    date_of_birth: Optional[date] = None
    age_years: Optional[int] = None
    gender: str = "unknown"
    history_of_present_illness: Optional[str] = None
    symptom_onset: Optional[str] = None
    symptom_duration: Optional[str] = None
    smoking_status: str = "unknown"
    alcohol_consumption: str = "unknown"
    physical_activity_level: str = "unknown"
    updated_at: Optional[datetime] = None


class PatientProfileVersion(IDMixin):
    date_of_birth: Optional[date] = None
    age_years: Optional[int] = None
    gender: str
    history_of_present_illness: Optional[str] = None
    symptom_onset: Optional[str] = None
    symptom_duration: Optional[str] = None
    smoking_status: str
    alcohol_consumption: str
    physical_activity_level: str
    valid_from: datetime
    valid_to: Optional[datetime] = None


class VitalPublic(IDMixin, TimestampMixin):
    measured_at: datetime
    systolic: Optional[int] = None
    diastolic: Optional[int] = None
    heart_rate: Optional[int] = None
    temperature_c: Optional[float] = None
    source_document_id: Optional[UUID] = None


class LabResultPublic(IDMixin, TimestampMixin):
    collected_at: datetime
    test_name: str
    value_text: str
    value_num: Optional[float] = None
    unit: Optional[str] = None
    reference_range: Optional[str] = None
    flag: Optional[str] = None
    source_document_id: Optional[UUID] = None


class MedicationPublic(IDMixin, TimestampMixin):
    medication_name: str
    dose: Optional[str] = None
    frequency: Optional[str] = None
    active: bool = True
    noted_at: datetime
    source_document_id: Optional[UUID] = None


class ConditionPublic(IDMixin, TimestampMixin):
    condition_name: str
    status: Optional[str] = None
    noted_at: datetime
    source_document_id: Optional[UUID] = None
