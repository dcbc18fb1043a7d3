# src/medichat/models/patient_record.py
import uuid
from enum import Enum as PyEnum
from typing import Optional
from sqlalchemy import Column, Date, DateTime, Integer, Float, String, Text, Boolean, Uuid, Index
from medichat.db.database import Base
from medichat.utils.datetime_utils import utc_now
from .types import str_enum


class Gender(str, PyEnum):
    FEMALE = "female"
    MALE = "male"
    NONBINARY = "nonbinary"
    OTHER = "other"
    UNKNOWN = "unknown"

    @classmethod
    def normalize(cls, value) -> Optional["Gender"]:
        """Map free-text gender (f, Female, non-binary...) onto the enum; None if unrecognized"""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        key = value.strip().lower().replace("_", "-")
        aliases = {
            "f": cls.FEMALE,
            "female": cls.FEMALE,
            "woman": cls.FEMALE,
            "m": cls.MALE,
            "male": cls.MALE,
            "man": cls.MALE,
            "non-binary": cls.NONBINARY,
            "nonbinary": cls.NONBINARY,
            "other": cls.OTHER,
            "unknown": cls.UNKNOWN,
        }
        return aliases.get(key)


class SmokingStatus(str, PyEnum):
    NEVER = "never"
    FORMER = "former"
    CURRENT = "current"
    UNKNOWN = "unknown"


class AlcoholConsumption(str, PyEnum):
    NONE = "none"
    OCCASIONAL = "occasional"
    MODERATE = "moderate"
    HEAVY = "heavy"
    UNKNOWN = "unknown"


class ActivityLevel(str, PyEnum):
    SEDENTARY = "sedentary"
    LIGHT = "light"
    MODERATE = "moderate"
    ACTIVE = "active"
    UNKNOWN = "unknown"


# Columns shared by the live profile and each history version
PROFILE_FIELDS = (
    "date_of_birth",
    "age_years",
    "gender",
    "history_of_present_illness",
    "symptom_onset",
    "symptom_duration",
    "smoking_status",
    "alcohol_consumption",
    "physical_activity_level",
)


class PatientProfile(Base):
    __tablename__ = "patient_profiles"

    patient_id = Column(Uuid(as_uuid=True), primary_key=True)

    date_of_birth = Column(Date, nullable=True)
    age_years = Column(Integer, nullable=True)
    gender = Column(str_enum(Gender), nullable=False, default=Gender.UNKNOWN)

    history_of_present_illness = Column(Text, nullable=True)
    symptom_onset = Column(Text, nullable=True)
    symptom_duration = Column(Text, nullable=True)

    smoking_status = Column(
        str_enum(SmokingStatus), nullable=False, default=SmokingStatus.UNKNOWN
    )
    alcohol_consumption = Column(
        str_enum(AlcoholConsumption), nullable=False, default=AlcoholConsumption.UNKNOWN
    )
    physical_activity_level = Column(
        str_enum(ActivityLevel), nullable=False, default=ActivityLevel.UNKNOWN
    )

    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)


class PatientProfileHistory(Base):
    """Append-only profile versions; the open version has valid_to NULL"""

    __tablename__ = "patient_profile_history"
    __table_args__ = (Index("ix_profile_history_patient", "patient_id", "valid_from"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    patient_id = Column(Uuid(as_uuid=True), nullable=False)

    date_of_birth = Column(Date, nullable=True)
    age_years = Column(Integer, nullable=True)
    gender = Column(str_enum(Gender), nullable=False, default=Gender.UNKNOWN)
    history_of_present_illness = Column(Text, nullable=True)
    symptom_onset = Column(Text, nullable=True)
    symptom_duration = Column(Text, nullable=True)
    smoking_status = Column(
        str_enum(SmokingStatus), nullable=False, default=SmokingStatus.UNKNOWN
    )
    alcohol_consumption = Column(
        str_enum(AlcoholConsumption), nullable=False, default=AlcoholConsumption.UNKNOWN
    )
    physical_activity_level = Column(
        str_enum(ActivityLevel), nullable=False, default=ActivityLevel.UNKNOWN
    )

    valid_from = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    valid_to = Column(DateTime(timezone=True), nullable=True)


class Vital(Base):
    __tablename__ = "patient_vitals"
    __table_args__ = (Index("ix_vitals_patient_measured", "patient_id", "measured_at"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    patient_id = Column(Uuid(as_uuid=True), nullable=False)
    measured_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    systolic = Column(Integer, nullable=True)
    diastolic = Column(Integer, nullable=True)
    heart_rate = Column(Integer, nullable=True)
    temperature_c = Column(Float, nullable=True)

    # Set only for rows extracted from a document
    source_document_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)


class LabResult(Base):
    __tablename__ = "patient_lab_results"
    __table_args__ = (Index("ix_labs_patient_collected", "patient_id", "collected_at"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    patient_id = Column(Uuid(as_uuid=True), nullable=False)
    collected_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    test_name = Column(String(255), nullable=False)
    value_text = Column(Text, nullable=False)
    value_num = Column(Float, nullable=True)
    unit = Column(String(64), nullable=True)
    reference_range = Column(String(128), nullable=True)
    flag = Column(String(32), nullable=True)

    source_document_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)


class Medication(Base):
    __tablename__ = "patient_medications"
    __table_args__ = (Index("ix_meds_patient_noted", "patient_id", "noted_at"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    patient_id = Column(Uuid(as_uuid=True), nullable=False)

    medication_name = Column(String(255), nullable=False)
    dose = Column(String(128), nullable=True)
    frequency = Column(String(128), nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    noted_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    source_document_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)


class Condition(Base):
    __tablename__ = "patient_conditions"
    __table_args__ = (Index("ix_conditions_patient_noted", "patient_id", "noted_at"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    patient_id = Column(Uuid(as_uuid=True), nullable=False)

    condition_name = Column(String(255), nullable=False)
    status = Column(String(64), nullable=True)
    noted_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    source_document_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)
