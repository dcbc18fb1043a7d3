# src/medichat/schemas/chat_schemas.py
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID
from pydantic import AliasChoices, Field
from medichat.models.chat import ContextMode, SenderRole
from medichat.models.confirmation import SuggestionKind
from .base_schemas import BaseSchema, CamelInputSchema, IDMixin, TimestampMixin


class ChatTurnRequest(CamelInputSchema):
    mode: ContextMode
    patient_id: Optional[UUID] = Field(
        None, validation_alias=AliasChoices("patientId", "patientUserId", "patient_id")
    )
    thread_id: Optional[UUID] = None
    message: str = Field(..., min_length=1, max_length=8000)
    document_ids: List[UUID] = Field(default_factory=list, max_length=20)


class ProposedMemory(BaseSchema):
    id: UUID
    memory_text: str
    category: Optional[str] = None


class ProposedSuggestion(BaseSchema):
    id: UUID
    kind: SuggestionKind
    summary_text: str
    payload: Dict[str, Any]


class ChatTurnResponse(BaseSchema):
    thread_id: UUID
    assistant_message: str
    proposed_memories: List[ProposedMemory] = []
    proposed_suggestions: List[ProposedSuggestion] = []


class ChatThreadPublic(IDMixin, TimestampMixin):
    patient_id: UUID
    context_mode: ContextMode
    title: Optional[str] = None
    updated_at: Optional[datetime] = None


class ChatMessagePublic(IDMixin, TimestampMixin):
    sender_role: SenderRole
    content: str


class ChatThreadWithMessages(BaseSchema):
    thread: ChatThreadPublic
    messages: List[ChatMessagePublic] = []
