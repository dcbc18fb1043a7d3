# src/medichat/models/access.py
import uuid
from enum import Enum as PyEnum
from sqlalchemy import Column, DateTime, String, Uuid, UniqueConstraint, Index
from medichat.utils.datetime_utils import utc_now
from medichat.db.database import Base
from .types import str_enum


class InviteKind(str, PyEnum):
    PATIENT_INVITES_PHYSICIAN = "patientInvitesPhysician"
    PHYSICIAN_INVITES_PATIENT = "physicianInvitesPatient"


class InviteStatus(str, PyEnum):
    ACTIVE = "active"
    ACCEPTED = "accepted"
    REVOKED = "revoked"
    EXPIRED = "expired"


class AccessGrant(Base):
    """Durable patient -> physician authorization edge"""

    __tablename__ = "patient_physician_access"
    __table_args__ = (
        UniqueConstraint("patient_id", "physician_id", name="uq_access_pair"),
        Index("ix_access_physician_id", "physician_id"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    patient_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    physician_id = Column(Uuid(as_uuid=True), nullable=False)

    created_at = Column(DateTime(timezone=True), default=utc_now)
    revoked_at = Column(DateTime(timezone=True), nullable=True)


class AccessInvite(Base):
    __tablename__ = "access_invites"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    kind = Column(str_enum(InviteKind), nullable=False)
    inviter_id = Column(Uuid(as_uuid=True), nullable=False, index=True)

    # sha256 hex of the raw token; the token itself is never stored
    token_hash = Column(String(64), nullable=False, unique=True)

    expires_at = Column(DateTime(timezone=True), nullable=False)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    accepted_by_user_id = Column(Uuid(as_uuid=True), nullable=True)
    revoked_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now)
