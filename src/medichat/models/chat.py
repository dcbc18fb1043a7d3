# src/medichat/models/chat.py
import uuid
from enum import Enum as PyEnum
from sqlalchemy import Column, DateTime, String, Text, Uuid, ForeignKey, Index
from medichat.db.database import Base
from medichat.utils.datetime_utils import utc_now
from .types import str_enum


class ContextMode(str, PyEnum):
    PATIENT = "patient"
    PHYSICIAN = "physician"


class SenderRole(str, PyEnum):
    USER = "user"
    ASSISTANT = "assistant"


class ChatThread(Base):
    __tablename__ = "chat_threads"
    __table_args__ = (
        Index("ix_threads_patient_mode_updated", "patient_id", "context_mode", "updated_at"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    patient_id = Column(Uuid(as_uuid=True), nullable=False)
    created_by_user_id = Column(Uuid(as_uuid=True), nullable=False)
    context_mode = Column(str_enum(ContextMode), nullable=False)
    title = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now)


class ChatMessage(Base):
    """Persisted user/assistant turns; tool and system messages are never stored"""

    __tablename__ = "chat_messages"
    __table_args__ = (Index("ix_messages_thread_created", "thread_id", "created_at"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    thread_id = Column(
        Uuid(as_uuid=True), ForeignKey("chat_threads.id", ondelete="CASCADE"), nullable=False
    )
    sender_role = Column(str_enum(SenderRole), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now)
