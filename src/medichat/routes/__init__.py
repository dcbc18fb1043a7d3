# src/medichat/routes/__init__.py
from .access import router as access_router
from .chat import router as chat_router
from .dashboards import router as dashboards_router
from .documents import router as documents_router
from .invites import router as invites_router
from .memories import router as memories_router
from .patients import router as patients_router
from .suggestions import router as suggestions_router

__all__ = [
    "access_router",
    "chat_router",
    "dashboards_router",
    "documents_router",
    "invites_router",
    "memories_router",
    "patients_router",
    "suggestions_router",
]
