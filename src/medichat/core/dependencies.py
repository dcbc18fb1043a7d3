# src/medichat/core/dependencies.py
from functools import lru_cache
from typing import Optional
from uuid import UUID
from fastapi import Header
from jose import JWTError, jwt
from pydantic import BaseModel
from medichat.core.config import settings
from medichat.services.chat_service import ChatService
from medichat.services.dashboard_service import DashboardService
from medichat.services.document_service import DocumentService
from medichat.services.extraction_service import ExtractionService
from medichat.services.llm_client import LLMClient
from medichat.services.storage_service import EncryptedFileStorage, ObjectStorage
from medichat.utils.exceptions import UnauthorizedException
from medichat.utils.logger import setup_logger

logger = setup_logger("DEPENDENCIES")


class CurrentUser(BaseModel):
    """Authenticated caller; identity is owned by the external identity provider"""

    id: UUID


async def get_current_user(
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> CurrentUser:
    """
    Resolve the caller from a bearer JWT.

    Raises:
        UnauthorizedException (UNAUTHENTICATED, 401) when the header is missing,
        the token is invalid or expired, or `sub` is not a UUID.
    """
    if not authorization:
        raise UnauthorizedException("Authorization header is missing")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise UnauthorizedException("Invalid authentication scheme")

    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError as e:
        logger.warning(f"Rejected bearer token: {e}")
        raise UnauthorizedException("Invalid or expired token")

    try:
        return CurrentUser(id=UUID(str(payload.get("sub"))))
    except ValueError:
        raise UnauthorizedException("Invalid token subject")


@lru_cache
def get_llm_client() -> LLMClient:
    return LLMClient()


@lru_cache
def get_object_storage() -> ObjectStorage:
    return EncryptedFileStorage()


def get_document_service() -> DocumentService:
    return DocumentService(
        storage=get_object_storage(),
        extraction=ExtractionService(get_llm_client()),
    )


def get_chat_service() -> ChatService:
    return ChatService(llm=get_llm_client(), documents=get_document_service())


def get_dashboard_service() -> DashboardService:
    return DashboardService(llm=get_llm_client())
