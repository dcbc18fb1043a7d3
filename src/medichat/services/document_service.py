# src/medichat/services/document_service.py
import re
import uuid
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from medichat.db.database import dialect_insert
from medichat.models.document import Document, DocumentText, DocumentExtraction, DocumentStatus
from medichat.models.patient_record import Vital, LabResult, Medication, Condition
from medichat.utils.datetime_utils import utc_now
from medichat.utils.exceptions import ServiceError, ErrorCode
from medichat.utils.logger import setup_logger
from .access_service import access_service, AccessService
from .extraction_service import ExtractionService
from .ingestion_service import ingestion_service, IngestionService
from .patient_record_service import patient_record_service, PatientRecordService
from .storage_service import ObjectStorage, StorageError
from .text_extraction import extract_text

logger = setup_logger("DOCUMENT_SERVICE")

INSIGHTS_LIMIT = 50
_UNSAFE_FILENAME_CHARS = re.compile(r"[^\w.\-()+\s]")


def sanitize_file_name(file_name: Optional[str]) -> str:
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", (file_name or "").strip())
    return cleaned[:120] or "document"


def content_disposition(file_name: Optional[str], attachment: bool = False) -> str:
    # header values must stay ASCII
    name = re.sub(r'["\r\n]', "", file_name or "").encode("ascii", "replace").decode()
    name = name[:180] or "document"
    return f'{"attachment" if attachment else "inline"}; filename="{name}"'


class DocumentService:
    """Upload, parse and read back patient documents"""

    def __init__(
        self,
        storage: ObjectStorage,
        extraction: ExtractionService,
        access: AccessService = access_service,
        ingestion: IngestionService = ingestion_service,
        records: PatientRecordService = patient_record_service,
    ):
        self.storage = storage
        self.extraction = extraction
        self.access = access
        self.ingestion = ingestion
        self.records = records

    async def _mark_error(self, db: AsyncSession, document_id: UUID, reason: str) -> None:
        await db.execute(
            update(Document)
            .where(Document.id == document_id)
            .values(status=DocumentStatus.ERROR, parse_error=reason)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        logger.warning(f"Document {document_id} marked error: {reason}")

    async def get_document_for_caller(
        self, db: AsyncSession, caller_id: UUID, document_id: UUID
    ) -> Document:
        document = await db.get(Document, document_id, populate_existing=True)
        if document is None:
            raise ServiceError(ErrorCode.DOCUMENT_NOT_FOUND)
        if document.patient_id != caller_id:
            await self.access.assert_patient_access(db, caller_id, document.patient_id)
        return document

    async def download_document(
        self, db: AsyncSession, caller_id: UUID, document_id: UUID
    ) -> Tuple[Document, bytes]:
        """The stored bytes of a document the caller may see"""
        document = await self.get_document_for_caller(db, caller_id, document_id)
        if not document.storage_key:
            raise ServiceError(ErrorCode.DOCUMENT_STORAGE_KEY_MISSING)

        try:
            data = await self.storage.get_object_buffer(document.storage_key)
        except StorageError as e:
            logger.error(f"Could not read document {document_id}: {e}")
            raise ServiceError(ErrorCode.DOCUMENT_READ_FAILED) from e
        return document, data

    async def upload_document(
        self,
        db: AsyncSession,
        caller_id: UUID,
        file_name: str,
        content_type: Optional[str],
        data: bytes,
        patient_id: Optional[UUID] = None,
    ) -> Document:
        target_patient = patient_id or caller_id
        if target_patient != caller_id:
            await self.access.assert_patient_access(db, caller_id, target_patient)

        safe_name = sanitize_file_name(file_name)
        document = Document(
            id=uuid.uuid4(),
            patient_id=target_patient,
            uploaded_by_user_id=caller_id,
            original_file_name=safe_name,
            content_type=content_type or "application/octet-stream",
            size_bytes=len(data),
            status=DocumentStatus.UPLOADED,
        )
        db.add(document)
        await db.commit()
        document_id = document.id

        storage_key = f"{target_patient}/{uuid.uuid4()}-{safe_name}"
        try:
            await self.storage.put_object(storage_key, data, document.content_type)
        except StorageError as e:
            await self._mark_error(db, document_id, ErrorCode.UPLOAD_FAILED.value)
            raise ServiceError(ErrorCode.UPLOAD_FAILED) from e

        document.storage_key = storage_key
        await db.commit()
        await db.refresh(document)

        logger.info(
            f"Uploaded document {document_id} ({len(data)} bytes) for patient {target_patient}"
        )
        return document

    async def parse_document(
        self, db: AsyncSession, caller_id: UUID, document_id: UUID
    ) -> Document:
        """
        Extract text, run structured extraction and ingest the result.

        On any failure after the document was found, its status becomes
        `error` with the failure code as reason and the error is re-raised.
        """
        document = await self.get_document_for_caller(db, caller_id, document_id)
        if not document.storage_key:
            raise ServiceError(ErrorCode.DOCUMENT_STORAGE_KEY_MISSING)

        try:
            data = await self.storage.get_object_buffer(document.storage_key)
        except StorageError as e:
            logger.error(f"Could not read document {document_id}: {e}")
            await self._mark_error(db, document_id, ErrorCode.INGESTION_FAILED.value)
            raise ServiceError(ErrorCode.INGESTION_FAILED, "Stored document is unreadable") from e

        text = await extract_text(data, document.content_type, document.original_file_name)
        if not text:
            await self._mark_error(db, document_id, ErrorCode.NO_TEXT_EXTRACTED.value)
            raise ServiceError(ErrorCode.NO_TEXT_EXTRACTED)

        await self._save_text(db, document_id, text)

        try:
            result, raw_json = await self.extraction.extract(text)
        except ServiceError as e:
            await self._mark_error(db, document_id, e.code.value)
            raise

        try:
            await self.ingestion.ingest(db, document, self.extraction.model, result, raw_json)
        except Exception as e:
            await self._mark_error(db, document_id, ErrorCode.INGESTION_FAILED.value)
            raise ServiceError(ErrorCode.INGESTION_FAILED) from e

        return document

    async def _save_text(self, db: AsyncSession, document_id: UUID, text: str) -> None:
        now = utc_now()
        stmt = dialect_insert(db, DocumentText.__table__).values(
            document_id=document_id, text=text, created_at=now, updated_at=now
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[DocumentText.__table__.c.document_id],
            set_={"text": text, "updated_at": now},
        )
        await db.execute(stmt)
        await db.commit()

    async def get_document_insights(
        self, db: AsyncSession, document: Document
    ) -> Dict[str, Any]:
        """Latest extraction plus the fact rows derived from this document"""
        result = await db.execute(
            select(DocumentExtraction)
            .where(DocumentExtraction.document_id == document.id)
            .order_by(DocumentExtraction.created_at.desc())
            .limit(1)
        )
        extraction = result.scalar_one_or_none()

        facts = {}
        for key, model in (
            ("vitals", Vital),
            ("labs", LabResult),
            ("medications", Medication),
            ("conditions", Condition),
        ):
            facts[key] = await self.records.recent_facts(
                db, model, document.patient_id, INSIGHTS_LIMIT, source_document_id=document.id
            )

        return {"document": document, "extraction": extraction, **facts}

    async def list_documents(
        self,
        db: AsyncSession,
        caller_id: UUID,
        patient_id: Optional[UUID] = None,
        limit: int = 100,
    ) -> List[Document]:
        target_patient = patient_id or caller_id
        if target_patient != caller_id:
            await self.access.assert_patient_access(db, caller_id, target_patient)

        result = await db.execute(
            select(Document)
            .where(Document.patient_id == target_patient)
            .order_by(Document.created_at.desc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def get_documents_for_patient(
        self, db: AsyncSession, patient_id: UUID, document_ids: List[UUID]
    ) -> List[Document]:
        """Subset of `document_ids` that belong to `patient_id`; others are dropped"""
        if not document_ids:
            return []
        result = await db.execute(
            select(Document).where(
                Document.id.in_(document_ids), Document.patient_id == patient_id
            )
        )
        return list(result.scalars().all())
