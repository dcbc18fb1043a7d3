# src/medichat/routes/documents.py
from typing import List, Optional
from uuid import UUID
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession
from medichat.core.config import settings
from medichat.core.dependencies import CurrentUser, get_current_user, get_document_service
from medichat.db.database import get_db
from medichat.schemas.base_schemas import OkResponse
from medichat.schemas.document_schemas import DocumentPublic, DocumentInsights
from medichat.services.document_service import DocumentService, content_disposition
from medichat.utils.logger import setup_logger

router = APIRouter(prefix="/documents", tags=["documents"])
logger = setup_logger("DOCUMENT_ROUTES")


@router.post(
    "/upload",
    response_model=DocumentPublic,
    status_code=status.HTTP_201_CREATED,
    summary="Upload a medical document",
    description="Store a document for the caller, or for a patient the caller has access to",
)
async def upload_document(
    file: UploadFile = File(...),
    patient_id: Optional[UUID] = Form(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    document_service: DocumentService = Depends(get_document_service),
):
    data = await file.read()
    if len(data) > settings.MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=413,
            detail=f"File exceeds {settings.MAX_UPLOAD_BYTES} bytes",
        )
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Empty file")

    return await document_service.upload_document(
        db,
        current_user.id,
        file_name=file.filename,
        content_type=file.content_type,
        data=data,
        patient_id=patient_id,
    )


@router.get(
    "",
    response_model=List[DocumentPublic],
    summary="List documents",
    description="Documents of the caller, or of an accessible patient",
)
async def list_documents(
    patient_id: Optional[UUID] = None,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    document_service: DocumentService = Depends(get_document_service),
):
    return await document_service.list_documents(db, current_user.id, patient_id)


@router.post(
    "/{document_id}/parse",
    response_model=OkResponse,
    summary="Parse a document",
    description=(
        "Extract text, run structured extraction and write the results into the "
        "patient record. On failure the document is marked as errored."
    ),
)
async def parse_document(
    document_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    document_service: DocumentService = Depends(get_document_service),
):
    await document_service.parse_document(db, current_user.id, document_id)
    return OkResponse()


@router.get(
    "/{document_id}/insights",
    response_model=DocumentInsights,
    summary="Get document insights",
    description="Latest extraction and the record rows derived from this document",
)
async def get_document_insights(
    document_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    document_service: DocumentService = Depends(get_document_service),
):
    document = await document_service.get_document_for_caller(db, current_user.id, document_id)
    return await document_service.get_document_insights(db, document)


@router.get(
    "/{document_id}/download",
    response_class=Response,
    summary="Download a document",
    description="The original file bytes; `download=true` asks the browser to save it",
)
async def download_document(
    document_id: UUID,
    download: bool = False,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
    document_service: DocumentService = Depends(get_document_service),
):
    document, data = await document_service.download_document(db, current_user.id, document_id)
    return Response(
        content=data,
        media_type=document.content_type or "application/octet-stream",
        headers={
            "Content-Disposition": content_disposition(document.original_file_name, download),
            "Cache-Control": "private, max-age=0, no-store",
        },
    )
