# src/medichat/services/memory_service.py
from typing import List, Optional
from uuid import UUID
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from medichat.models.chat import ContextMode
from medichat.models.confirmation import UserMemory, ProposalStatus
from medichat.utils.datetime_utils import utc_now
from medichat.utils.exceptions import ServiceError, ErrorCode
from medichat.utils.logger import setup_logger

logger = setup_logger("MEMORY_SERVICE")

MAX_RETRIEVE_LIMIT = 50


class MemoryService:
    """Proposed -> accepted/rejected lifecycle for personalization memories"""

    async def propose_memory(
        self,
        db: AsyncSession,
        owner_id: UUID,
        context_mode: ContextMode,
        memory_text: str,
        category: Optional[str] = None,
        subject_patient_id: Optional[UUID] = None,
        source_thread_id: Optional[UUID] = None,
        source_message_id: Optional[UUID] = None,
    ) -> UserMemory:
        """Adds a proposed memory to the session; the caller commits"""
        memory = UserMemory(
            owner_id=owner_id,
            context_mode=ContextMode(context_mode),
            subject_patient_id=subject_patient_id,
            status=ProposalStatus.PROPOSED,
            memory_text=memory_text,
            category=category,
            source_thread_id=source_thread_id,
            source_message_id=source_message_id,
        )
        db.add(memory)
        await db.flush()
        logger.info(f"Proposed memory {memory.id} for {owner_id}")
        return memory

    async def retrieve_memories(
        self,
        db: AsyncSession,
        owner_id: UUID,
        context_mode: ContextMode,
        subject_patient_id: Optional[UUID] = None,
        limit: int = 20,
    ) -> List[UserMemory]:
        """Accepted memories only, most recently accepted first"""
        limit = max(1, min(limit, MAX_RETRIEVE_LIMIT))
        stmt = select(UserMemory).where(
            UserMemory.owner_id == owner_id,
            UserMemory.context_mode == ContextMode(context_mode),
            UserMemory.status == ProposalStatus.ACCEPTED,
        )
        if subject_patient_id is None:
            stmt = stmt.where(UserMemory.subject_patient_id.is_(None))
        else:
            stmt = stmt.where(UserMemory.subject_patient_id == subject_patient_id)

        result = await db.execute(
            stmt.order_by(UserMemory.accepted_at.desc(), UserMemory.created_at.desc()).limit(
                limit
            )
        )
        return list(result.scalars().all())

    async def _resolve(
        self,
        db: AsyncSession,
        memory_id: UUID,
        owner_id: UUID,
        new_status: ProposalStatus,
    ) -> UserMemory:
        now = utc_now()
        values = {"status": new_status}
        if new_status == ProposalStatus.ACCEPTED:
            values["accepted_at"] = now
        else:
            values["rejected_at"] = now

        # Single conditional UPDATE: only one of concurrent resolutions can match
        result = await db.execute(
            update(UserMemory)
            .where(
                UserMemory.id == memory_id,
                UserMemory.owner_id == owner_id,
                UserMemory.status == ProposalStatus.PROPOSED,
            )
            .values(**values)
            .returning(UserMemory)
            .execution_options(populate_existing=True)
        )
        memory = result.scalar_one_or_none()
        if memory is None:
            await db.rollback()
            raise ServiceError(ErrorCode.MEMORY_NOT_FOUND)

        await db.commit()
        logger.info(f"Memory {memory_id} {new_status.value} by {owner_id}")
        return memory

    async def accept_memory(
        self, db: AsyncSession, memory_id: UUID, owner_id: UUID
    ) -> UserMemory:
        return await self._resolve(db, memory_id, owner_id, ProposalStatus.ACCEPTED)

    async def reject_memory(
        self, db: AsyncSession, memory_id: UUID, owner_id: UUID
    ) -> UserMemory:
        return await self._resolve(db, memory_id, owner_id, ProposalStatus.REJECTED)

    async def list_memories(
        self,
        db: AsyncSession,
        owner_id: UUID,
        status: Optional[ProposalStatus] = None,
        limit: int = 100,
    ) -> List[UserMemory]:
        stmt = select(UserMemory).where(UserMemory.owner_id == owner_id)
        if status is not None:
            stmt = stmt.where(UserMemory.status == ProposalStatus(status))
        result = await db.execute(stmt.order_by(UserMemory.created_at.desc()).limit(limit))
        return list(result.scalars().all())


memory_service = MemoryService()
