# src/medichat/models/confirmation.py
import uuid
from enum import Enum as PyEnum
from sqlalchemy import Column, DateTime, String, Text, Uuid, JSON, Index
from medichat.db.database import Base
from medichat.utils.datetime_utils import utc_now
from .chat import ContextMode
from .types import str_enum


class ProposalStatus(str, PyEnum):
    PROPOSED = "proposed"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class SuggestionKind(str, PyEnum):
    PROFILE_UPDATE = "profile_update"
    VITAL = "vital"
    LAB = "lab"
    MEDICATION = "medication"
    CONDITION = "condition"


class UserMemory(Base):
    __tablename__ = "user_memories"
    __table_args__ = (
        Index("ix_memories_owner_mode_status", "owner_id", "context_mode", "status"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id = Column(Uuid(as_uuid=True), nullable=False)
    context_mode = Column(str_enum(ContextMode), nullable=False)
    # Only set for physician-mode memories about a specific patient
    subject_patient_id = Column(Uuid(as_uuid=True), nullable=True)

    status = Column(str_enum(ProposalStatus), nullable=False, default=ProposalStatus.PROPOSED)
    memory_text = Column(Text, nullable=False)
    category = Column(String(64), nullable=True)

    source_thread_id = Column(Uuid(as_uuid=True), nullable=True)
    source_message_id = Column(Uuid(as_uuid=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)


class PatientRecordSuggestion(Base):
    __tablename__ = "patient_record_suggestions"
    __table_args__ = (Index("ix_suggestions_patient_status", "patient_id", "status"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    patient_id = Column(Uuid(as_uuid=True), nullable=False)
    kind = Column(str_enum(SuggestionKind), nullable=False)
    summary_text = Column(String(500), nullable=False)
    payload_json = Column(JSON, nullable=False)

    status = Column(str_enum(ProposalStatus), nullable=False, default=ProposalStatus.PROPOSED)

    source_thread_id = Column(Uuid(as_uuid=True), nullable=True)
    source_message_id = Column(Uuid(as_uuid=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)
