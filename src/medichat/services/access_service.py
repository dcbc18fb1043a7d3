# src/medichat/services/access_service.py
from typing import List
from uuid import UUID
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from medichat.db.database import dialect_insert
from medichat.models.access import AccessGrant
from medichat.utils.datetime_utils import utc_now
from medichat.utils.exceptions import ForbiddenPatientAccess
from medichat.utils.logger import setup_logger

logger = setup_logger("ACCESS_SERVICE")


class AccessService:
    """Decides whether a viewer may read or write a patient's data"""

    async def can_access_patient(
        self, db: AsyncSession, viewer_id: UUID, patient_id: UUID
    ) -> bool:
        if viewer_id == patient_id:
            return True

        result = await db.execute(
            select(AccessGrant.id).where(
                AccessGrant.patient_id == patient_id,
                AccessGrant.physician_id == viewer_id,
                AccessGrant.revoked_at.is_(None),
            )
        )
        return result.first() is not None

    async def assert_patient_access(
        self, db: AsyncSession, viewer_id: UUID, patient_id: UUID
    ) -> None:
        if not await self.can_access_patient(db, viewer_id, patient_id):
            logger.warning(f"Denied access to patient {patient_id} for {viewer_id}")
            raise ForbiddenPatientAccess()

    async def upsert_grant(
        self, db: AsyncSession, patient_id: UUID, physician_id: UUID
    ) -> None:
        """
        Create the grant or re-activate a revoked one.

        Runs inside the caller's transaction; never commits.
        """
        stmt = dialect_insert(db, AccessGrant).values(
            patient_id=patient_id,
            physician_id=physician_id,
            created_at=utc_now(),
            revoked_at=None,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[AccessGrant.patient_id, AccessGrant.physician_id],
            set_={"revoked_at": None},
        )
        await db.execute(stmt)
        logger.info(f"Granted physician {physician_id} access to patient {patient_id}")

    async def revoke_access(
        self, db: AsyncSession, patient_id: UUID, physician_id: UUID
    ) -> bool:
        """Revoke a live grant; returns False when nothing was live (idempotent)"""
        result = await db.execute(
            update(AccessGrant)
            .where(
                AccessGrant.patient_id == patient_id,
                AccessGrant.physician_id == physician_id,
                AccessGrant.revoked_at.is_(None),
            )
            .values(revoked_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        await db.commit()

        revoked = result.rowcount > 0
        if revoked:
            logger.info(f"Patient {patient_id} revoked access for physician {physician_id}")
        return revoked

    async def list_physicians_for_patient(
        self, db: AsyncSession, patient_id: UUID
    ) -> List[AccessGrant]:
        result = await db.execute(
            select(AccessGrant)
            .where(
                AccessGrant.patient_id == patient_id,
                AccessGrant.revoked_at.is_(None),
            )
            .order_by(AccessGrant.created_at.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def list_patients_for_physician(
        self, db: AsyncSession, physician_id: UUID
    ) -> List[AccessGrant]:
        result = await db.execute(
            select(AccessGrant)
            .where(
                AccessGrant.physician_id == physician_id,
                AccessGrant.revoked_at.is_(None),
            )
            .order_by(AccessGrant.created_at.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())


access_service = AccessService()
