# src/medichat/models/__init__.py
from .access import AccessGrant, AccessInvite, InviteKind, InviteStatus
from .patient_record import (
    PatientProfile,
    PatientProfileHistory,
    Vital,
    LabResult,
    Medication,
    Condition,
    Gender,
    SmokingStatus,
    AlcoholConsumption,
    ActivityLevel,
    PROFILE_FIELDS,
)
from .document import Document, DocumentText, DocumentExtraction, DocumentStatus
from .chat import ChatThread, ChatMessage, ContextMode, SenderRole
from .confirmation import (
    UserMemory,
    PatientRecordSuggestion,
    ProposalStatus,
    SuggestionKind,
)
from .dashboard import PatientDailyDashboard

__all__ = [
    "AccessGrant",
    "AccessInvite",
    "InviteKind",
    "InviteStatus",
    "PatientProfile",
    "PatientProfileHistory",
    "Vital",
    "LabResult",
    "Medication",
    "Condition",
    "Gender",
    "SmokingStatus",
    "AlcoholConsumption",
    "ActivityLevel",
    "PROFILE_FIELDS",
    "Document",
    "DocumentText",
    "DocumentExtraction",
    "DocumentStatus",
    "ChatThread",
    "ChatMessage",
    "ContextMode",
    "SenderRole",
    "UserMemory",
    "PatientRecordSuggestion",
    "ProposalStatus",
    "SuggestionKind",
    "PatientDailyDashboard",
]
