# src/medichat/schemas/invite_schemas.py
from datetime import datetime
from typing import Optional
from uuid import UUID
from pydantic import Field
from medichat.models.access import InviteKind, InviteStatus
from .base_schemas import BaseSchema, CamelInputSchema, IDMixin, TimestampMixin


class InviteCreate(CamelInputSchema):
    kind: InviteKind


class InviteCreated(BaseSchema):
    invite_id: UUID
    token: str
    expires_at: datetime
    invite_url: str


class InviteAccept(CamelInputSchema):
    token: str = Field(..., min_length=10, max_length=256)


class InviteAcceptResult(BaseSchema):
    invite_id: UUID
    kind: InviteKind
    patient_id: UUID
    physician_id: UUID


class InviteRevoke(CamelInputSchema):
    invite_id: UUID


class InvitePublic(IDMixin, TimestampMixin):
    kind: InviteKind
    status: InviteStatus
    expires_at: datetime
    accepted_at: Optional[datetime] = None
    accepted_by_user_id: Optional[UUID] = None
    revoked_at: Optional[datetime] = None


class AccessRevoke(CamelInputSchema):
    physician_id: UUID


class AccessGrantPublic(IDMixin, TimestampMixin):
    patient_id: UUID
    physician_id: UUID
    revoked_at: Optional[datetime] = None
