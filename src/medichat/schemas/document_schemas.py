# src/medichat/schemas/document_schemas.py
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID
from pydantic import ConfigDict, Field, field_validator
from medichat.models.document import DocumentStatus
from .base_schemas import BaseSchema, CamelInputSchema, IDMixin, TimestampMixin
from .patient_schemas import VitalPublic, LabResultPublic, MedicationPublic, ConditionPublic


class DocumentPublic(IDMixin, TimestampMixin):
    patient_id: UUID
    uploaded_by_user_id: UUID
    original_file_name: str
    content_type: str
    size_bytes: int
    status: DocumentStatus
    parsed_at: Optional[datetime] = None
    parse_error: Optional[str] = None


class DocumentExtractionPublic(IDMixin, TimestampMixin):
    model: str
    extracted_json: Dict[str, Any]


class DocumentInsights(BaseSchema):
    document: DocumentPublic
    extraction: Optional[DocumentExtractionPublic] = None
    vitals: List[VitalPublic] = []
    labs: List[LabResultPublic] = []
    medications: List[MedicationPublic] = []
    conditions: List[ConditionPublic] = []


# ---------------------------------------------------------------------------
# Structured extraction output (what the model must return for a document)
# ---------------------------------------------------------------------------


class _ExtractionItem(CamelInputSchema):
    model_config = ConfigDict(coerce_numbers_to_str=True)


class ExtractedDemographics(_ExtractionItem):
    age_years: Optional[float] = Field(None, ge=0, le=130)
    gender: Optional[str] = None


class ExtractedHpi(_ExtractionItem):
    history_of_present_illness: Optional[str] = None
    symptom_onset: Optional[str] = None
    symptom_duration: Optional[str] = None


class ExtractedVital(_ExtractionItem):
    measured_at: Optional[str] = None
    systolic: Optional[float] = None
    diastolic: Optional[float] = None
    heart_rate: Optional[float] = None
    temperature_c: Optional[float] = None


class ExtractedLab(_ExtractionItem):
    collected_at: Optional[str] = None
    test_name: str = Field(..., min_length=1)
    value_text: str = Field(..., min_length=1)
    unit: Optional[str] = None
    reference_range: Optional[str] = None
    flag: Optional[str] = None


class ExtractedMedication(_ExtractionItem):
    medication_name: str = Field(..., min_length=1)
    dose: Optional[str] = None
    frequency: Optional[str] = None
    active: Optional[bool] = None


class ExtractedCondition(_ExtractionItem):
    condition_name: str = Field(..., min_length=1)
    status: Optional[str] = None


class ExtractionResult(_ExtractionItem):
    demographics: Optional[ExtractedDemographics] = None
    hpi: Optional[ExtractedHpi] = None
    vitals: List[ExtractedVital] = []
    labs: List[ExtractedLab] = []
    medications: List[ExtractedMedication] = []
    conditions: List[ExtractedCondition] = []

    @field_validator("vitals", "labs", "medications", "conditions", mode="before")
    def null_list_is_empty(cls, v):
        return [] if v is None else v


# Shape shown to the model in the extraction instruction
EXTRACTION_JSON_SHAPE = """{
  "demographics": { "ageYears": number|null, "gender": string|null },
  "hpi": {
    "historyOfPresentIllness": string|null,
    "symptomOnset": string|null,
    "symptomDuration": string|null
  },
  "vitals": [
    { "measuredAt": "YYYY-MM-DD"|null, "systolic": number|null, "diastolic": number|null,
      "heartRate": number|null, "temperatureC": number|null }
  ],
  "labs": [
    { "collectedAt": "YYYY-MM-DD"|null, "testName": string, "valueText": string,
      "unit": string|null, "referenceRange": string|null, "flag": string|null }
  ],
  "medications": [
    { "medicationName": string, "dose": string|null, "frequency": string|null, "active": boolean|null }
  ],
  "conditions": [
    { "conditionName": string, "status": string|null }
  ]
}"""
