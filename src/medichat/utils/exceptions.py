# src/medichat/utils/exceptions.py
from enum import Enum
from fastapi import HTTPException, status
from typing import Any, Optional
from .logger import setup_logger

logger = setup_logger("EXCEPTIONS")


class ErrorCode(str, Enum):
    """Stable machine-readable failure kinds returned to API clients"""

    UNAUTHENTICATED = "UNAUTHENTICATED"
    FORBIDDEN_PATIENT_ACCESS = "FORBIDDEN_PATIENT_ACCESS"
    DATABASE_NOT_AVAILABLE = "DATABASE_NOT_AVAILABLE"

    # Documents
    DOCUMENT_NOT_FOUND = "DOCUMENT_NOT_FOUND"
    DOCUMENT_STORAGE_KEY_MISSING = "DOCUMENT_STORAGE_KEY_MISSING"
    UPLOAD_FAILED = "UPLOAD_FAILED"
    DOCUMENT_READ_FAILED = "DOCUMENT_READ_FAILED"
    NO_TEXT_EXTRACTED = "NO_TEXT_EXTRACTED"
    EXTRACTION_JSON_NOT_FOUND = "EXTRACTION_JSON_NOT_FOUND"
    EXTRACTION_SCHEMA_INVALID = "EXTRACTION_SCHEMA_INVALID"
    INGESTION_FAILED = "INGESTION_FAILED"

    # Invites
    INVITE_NOT_FOUND = "INVITE_NOT_FOUND"
    INVITE_REVOKED = "INVITE_REVOKED"
    INVITE_ALREADY_ACCEPTED = "INVITE_ALREADY_ACCEPTED"
    INVITE_EXPIRED = "INVITE_EXPIRED"
    INVITE_SELF_NOT_ALLOWED = "INVITE_SELF_NOT_ALLOWED"
    INVITE_FORBIDDEN = "INVITE_FORBIDDEN"

    # Dashboards
    DASHBOARD_JSON_NOT_FOUND = "DASHBOARD_JSON_NOT_FOUND"
    DASHBOARD_SCHEMA_INVALID = "DASHBOARD_SCHEMA_INVALID"

    # Chat
    PATIENT_ID_REQUIRED = "PATIENT_ID_REQUIRED"
    THREAD_NOT_FOUND = "THREAD_NOT_FOUND"
    THREAD_FORBIDDEN = "THREAD_FORBIDDEN"
    MODEL_NO_RESPONSE = "MODEL_NO_RESPONSE"

    # Confirmation workflow
    SUGGESTION_NOT_FOUND = "SUGGESTION_NOT_FOUND"
    SUGGESTION_PAYLOAD_INVALID = "SUGGESTION_PAYLOAD_INVALID"
    MEMORY_NOT_FOUND = "MEMORY_NOT_FOUND"


ERROR_STATUS = {
    ErrorCode.UNAUTHENTICATED: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.FORBIDDEN_PATIENT_ACCESS: status.HTTP_403_FORBIDDEN,
    ErrorCode.DATABASE_NOT_AVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.DOCUMENT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.DOCUMENT_STORAGE_KEY_MISSING: status.HTTP_400_BAD_REQUEST,
    ErrorCode.UPLOAD_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.DOCUMENT_READ_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.NO_TEXT_EXTRACTED: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.EXTRACTION_JSON_NOT_FOUND: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.EXTRACTION_SCHEMA_INVALID: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.INGESTION_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.INVITE_NOT_FOUND: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVITE_REVOKED: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVITE_ALREADY_ACCEPTED: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVITE_EXPIRED: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVITE_SELF_NOT_ALLOWED: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVITE_FORBIDDEN: status.HTTP_400_BAD_REQUEST,
    ErrorCode.DASHBOARD_JSON_NOT_FOUND: status.HTTP_502_BAD_GATEWAY,
    ErrorCode.DASHBOARD_SCHEMA_INVALID: status.HTTP_502_BAD_GATEWAY,
    ErrorCode.PATIENT_ID_REQUIRED: status.HTTP_400_BAD_REQUEST,
    ErrorCode.THREAD_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.THREAD_FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorCode.MODEL_NO_RESPONSE: status.HTTP_502_BAD_GATEWAY,
    ErrorCode.SUGGESTION_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.SUGGESTION_PAYLOAD_INVALID: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.MEMORY_NOT_FOUND: status.HTTP_404_NOT_FOUND,
}


class BaseAPIException(HTTPException):
    def __init__(
        self,
        status_code: int,
        detail: Any = None,
        headers: Optional[dict] = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=detail, headers=headers)


class ServiceError(BaseAPIException):
    """
    Typed domain failure.

    Raised where the failure is detected; the HTTP status is derived from the
    error code so the API boundary never has to re-classify it.
    """

    def __init__(self, code: ErrorCode, detail: Optional[str] = None):
        headers = (
            {"WWW-Authenticate": "Bearer"}
            if code == ErrorCode.UNAUTHENTICATED
            else None
        )
        super().__init__(
            status_code=ERROR_STATUS[code],
            detail=detail or code.value,
            headers=headers,
        )
        self.code = code

    def __repr__(self) -> str:
        return f"ServiceError({self.code.value}, {self.detail!r})"


class UnauthorizedException(ServiceError):
    def __init__(self, detail: str = "Authentication required"):
        super().__init__(ErrorCode.UNAUTHENTICATED, detail)


class ForbiddenPatientAccess(ServiceError):
    def __init__(self, detail: str = "You do not have access to this patient"):
        super().__init__(ErrorCode.FORBIDDEN_PATIENT_ACCESS, detail)
