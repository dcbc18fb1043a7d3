# src/medichat/services/invite_service.py
import hashlib
import secrets
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from uuid import UUID
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from medichat.core.config import settings
from medichat.models.access import AccessInvite, InviteKind, InviteStatus
from medichat.utils.datetime_utils import utc_now, ensure_utc
from medichat.utils.exceptions import ServiceError, ErrorCode
from medichat.utils.logger import setup_logger
from .access_service import access_service, AccessService

logger = setup_logger("INVITE_SERVICE")


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def get_invite_status(
    invite: AccessInvite, now: Optional[datetime] = None
) -> InviteStatus:
    """Derived status; precedence is revoked > accepted > expired > active"""
    now = now or utc_now()
    if invite.revoked_at is not None:
        return InviteStatus.REVOKED
    if invite.accepted_at is not None:
        return InviteStatus.ACCEPTED
    if ensure_utc(invite.expires_at) < now:
        return InviteStatus.EXPIRED
    return InviteStatus.ACTIVE


class InviteService:
    """Single-use, expiring invite tokens that bootstrap access grants"""

    def __init__(self, access: AccessService = access_service):
        self.access = access

    def _generate_token(self) -> str:
        """Generate a URL-safe token with 32 bytes of entropy"""
        return secrets.token_urlsafe(32)

    def build_invite_url(self, token: str, base_url: Optional[str] = None) -> str:
        return f"{(base_url or settings.APP_URL).rstrip('/')}/invite/{token}"

    async def create_invite(
        self,
        db: AsyncSession,
        inviter_id: UUID,
        kind: InviteKind,
        base_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Create an invite; the raw token is returned exactly once"""
        kind = InviteKind(kind)
        token = self._generate_token()
        expires_at = utc_now() + timedelta(days=settings.INVITE_EXPIRE_DAYS)

        invite = AccessInvite(
            kind=kind,
            inviter_id=inviter_id,
            token_hash=hash_token(token),
            expires_at=expires_at,
        )
        db.add(invite)
        await db.commit()
        await db.refresh(invite)

        logger.info(f"Created {kind.value} invite {invite.id} by {inviter_id}")

        return {
            "invite_id": invite.id,
            "token": token,
            "expires_at": expires_at,
            "invite_url": self.build_invite_url(token, base_url),
        }

    async def accept_invite(
        self, db: AsyncSession, token: str, acceptor_id: UUID
    ) -> Dict[str, Any]:
        """
        Redeem an invite and upsert the resulting access grant.

        The grant upsert and the acceptance stamp commit together or not at
        all. Acceptance is a conditional update, so two concurrent redemptions
        of one token cannot both succeed.
        """
        try:
            result = await db.execute(
                select(AccessInvite)
                .where(AccessInvite.token_hash == hash_token(token))
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            invite = result.scalar_one_or_none()

            if invite is None:
                raise ServiceError(ErrorCode.INVITE_NOT_FOUND)
            if invite.revoked_at is not None:
                raise ServiceError(ErrorCode.INVITE_REVOKED)
            if invite.accepted_at is not None:
                raise ServiceError(ErrorCode.INVITE_ALREADY_ACCEPTED)
            if ensure_utc(invite.expires_at) < utc_now():
                raise ServiceError(ErrorCode.INVITE_EXPIRED)

            kind = InviteKind(invite.kind)
            if kind == InviteKind.PATIENT_INVITES_PHYSICIAN:
                patient_id, physician_id = invite.inviter_id, acceptor_id
            else:
                patient_id, physician_id = acceptor_id, invite.inviter_id

            if patient_id == physician_id:
                raise ServiceError(ErrorCode.INVITE_SELF_NOT_ALLOWED)

            await self.access.upsert_grant(db, patient_id, physician_id)

            stamped = await db.execute(
                update(AccessInvite)
                .where(
                    AccessInvite.id == invite.id,
                    AccessInvite.accepted_at.is_(None),
                    AccessInvite.revoked_at.is_(None),
                )
                .values(accepted_at=utc_now(), accepted_by_user_id=acceptor_id)
                .execution_options(synchronize_session=False)
            )
            if stamped.rowcount == 0:
                raise ServiceError(ErrorCode.INVITE_ALREADY_ACCEPTED)

            await db.commit()

        except Exception:
            await db.rollback()
            raise

        logger.info(
            f"Invite {invite.id} accepted by {acceptor_id}: "
            f"patient {patient_id} <-> physician {physician_id}"
        )
        return {
            "invite_id": invite.id,
            "kind": kind,
            "patient_id": patient_id,
            "physician_id": physician_id,
        }

    async def revoke_invite(
        self, db: AsyncSession, invite_id: UUID, requester_id: UUID
    ) -> None:
        invite = await db.get(AccessInvite, invite_id)
        if invite is None:
            raise ServiceError(ErrorCode.INVITE_NOT_FOUND)
        if invite.inviter_id != requester_id:
            raise ServiceError(ErrorCode.INVITE_FORBIDDEN)
        if invite.revoked_at is not None:
            return

        invite.revoked_at = utc_now()
        await db.commit()
        logger.info(f"Invite {invite_id} revoked by {requester_id}")

    async def list_invites(
        self, db: AsyncSession, inviter_id: UUID, limit: int = 50
    ) -> List[Dict[str, Any]]:
        result = await db.execute(
            select(AccessInvite)
            .where(AccessInvite.inviter_id == inviter_id)
            .order_by(AccessInvite.created_at.desc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        now = utc_now()
        return [
            {
                "id": invite.id,
                "kind": invite.kind,
                "status": get_invite_status(invite, now),
                "expires_at": invite.expires_at,
                "accepted_at": invite.accepted_at,
                "accepted_by_user_id": invite.accepted_by_user_id,
                "revoked_at": invite.revoked_at,
                "created_at": invite.created_at,
            }
            for invite in result.scalars().all()
        ]


invite_service = InviteService()
