# src/medichat/models/document.py
import uuid
from enum import Enum as PyEnum
from sqlalchemy import Column, DateTime, Integer, String, Text, Uuid, JSON, ForeignKey, Index
from medichat.db.database import Base
from medichat.utils.datetime_utils import utc_now
from .types import str_enum


class DocumentStatus(str, PyEnum):
    UPLOADED = "uploaded"
    PARSED = "parsed"
    ERROR = "error"


class Document(Base):
    __tablename__ = "documents"
    __table_args__ = (Index("ix_documents_patient_created", "patient_id", "created_at"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    patient_id = Column(Uuid(as_uuid=True), nullable=False)
    uploaded_by_user_id = Column(Uuid(as_uuid=True), nullable=False)

    original_file_name = Column(String(255), nullable=False)
    content_type = Column(String(128), nullable=False)
    size_bytes = Column(Integer, nullable=False)
    storage_key = Column(String(512), nullable=True)

    status = Column(str_enum(DocumentStatus), nullable=False, default=DocumentStatus.UPLOADED)
    parsed_at = Column(DateTime(timezone=True), nullable=True)
    parse_error = Column(String(128), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now)


class DocumentText(Base):
    __tablename__ = "document_text"

    document_id = Column(
        Uuid(as_uuid=True), ForeignKey("documents.id", ondelete="CASCADE"), primary_key=True
    )
    text = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)


class DocumentExtraction(Base):
    """One row per successful structured-extraction run (append-only)"""

    __tablename__ = "document_extractions"
    __table_args__ = (Index("ix_extractions_document_created", "document_id", "created_at"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    document_id = Column(
        Uuid(as_uuid=True), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False
    )
    model = Column(String(128), nullable=False)
    extracted_json = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now)
