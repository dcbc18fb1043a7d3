# src/medichat/services/chat_tools.py
import json
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional
from uuid import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from medichat.models.chat import ContextMode
from medichat.models.confirmation import (
    PatientRecordSuggestion,
    SuggestionKind,
    UserMemory,
)
from medichat.models.document import Document
from medichat.schemas.document_schemas import DocumentInsights
from medichat.utils.logger import setup_logger
from .document_service import DocumentService
from .memory_service import memory_service, MemoryService, MAX_RETRIEVE_LIMIT
from .suggestion_service import suggestion_service, SuggestionService

logger = setup_logger("CHAT_TOOLS")


@dataclass
class ChatToolContext:
    """Per-turn facts every tool call is scoped to"""

    caller_id: UUID
    patient_id: UUID
    mode: ContextMode
    thread_id: UUID
    source_message_id: Optional[UUID] = None


@dataclass
class ToolResult:
    """
    Outcome of one tool call.

    `content` is what the model sees; failures are reported there as
    {"error": CODE} instead of being raised.
    """

    content: Dict[str, Any]
    memory: Optional[UserMemory] = None
    suggestion: Optional[PatientRecordSuggestion] = None

    @classmethod
    def error(cls, code: str, **details: Any) -> "ToolResult":
        return cls(content={"error": code, **details})

    @property
    def ok(self) -> bool:
        return "error" not in self.content

    def as_message_content(self) -> str:
        return json.dumps(self.content, default=str)


ToolHandler = Callable[[AsyncSession, ChatToolContext, Dict[str, Any]], Awaitable[ToolResult]]


@dataclass
class ToolDefinition:
    name: str
    description: str
    parameters: Dict[str, Any]
    handler: ToolHandler

    def as_openai_tool(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class ToolRegistry:
    def __init__(self) -> None:
        self._tools: Dict[str, ToolDefinition] = {}

    def register(self, tool: ToolDefinition) -> None:
        self._tools[tool.name] = tool

    def get(self, name: str) -> Optional[ToolDefinition]:
        return self._tools.get(name)

    def list_names(self) -> List[str]:
        return sorted(self._tools)

    def openai_tools(self) -> List[Dict[str, Any]]:
        return [tool.as_openai_tool() for tool in self._tools.values()]


def _parse_arguments(raw: Any) -> Optional[Dict[str, Any]]:
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return raw
    try:
        parsed = json.loads(raw)
    except (TypeError, json.JSONDecodeError):
        return None
    return parsed if isinstance(parsed, dict) else None


class ChatToolset:
    """
    The four tools the chat model may call.

    Read tools go through the same services as the HTTP API; write tools only
    ever create *proposed* memories or suggestions.
    """

    def __init__(
        self,
        documents: DocumentService,
        memories: MemoryService = memory_service,
        suggestions: SuggestionService = suggestion_service,
    ):
        self.documents = documents
        self.memories = memories
        self.suggestions = suggestions
        self.registry = ToolRegistry()
        self._register_tools()

    def _register_tools(self) -> None:
        self.registry.register(
            ToolDefinition(
                name="retrieveMemories",
                description=(
                    "Retrieve accepted long-term memories about the user's preferences "
                    "and personal context. Call before assuming anything personal."
                ),
                parameters={
                    "type": "object",
                    "properties": {
                        "limit": {
                            "type": "integer",
                            "minimum": 1,
                            "maximum": MAX_RETRIEVE_LIMIT,
                            "description": "Maximum memories to return (default 20)",
                        }
                    },
                    "additionalProperties": False,
                },
                handler=self.retrieve_memories,
            )
        )
        self.registry.register(
            ToolDefinition(
                name="logMemory",
                description=(
                    "Propose a durable memory (preference, routine, personal context). "
                    "The user must accept it before it is used."
                ),
                parameters={
                    "type": "object",
                    "properties": {
                        "memoryText": {"type": "string", "minLength": 1, "maxLength": 1000},
                        "category": {"type": "string", "maxLength": 64},
                    },
                    "required": ["memoryText"],
                    "additionalProperties": False,
                },
                handler=self.log_memory,
            )
        )
        self.registry.register(
            ToolDefinition(
                name="getDocumentInsights",
                description=(
                    "Read the structured data extracted from one of the patient's "
                    "uploaded documents."
                ),
                parameters={
                    "type": "object",
                    "properties": {"documentId": {"type": "string", "format": "uuid"}},
                    "required": ["documentId"],
                    "additionalProperties": False,
                },
                handler=self.get_document_insights,
            )
        )
        self.registry.register(
            ToolDefinition(
                name="proposePatientRecordSuggestion",
                description=(
                    "Propose a change to the patient's record (profile, vital, lab, "
                    "medication or condition). The patient must accept it."
                ),
                parameters={
                    "type": "object",
                    "properties": {
                        "kind": {
                            "type": "string",
                            "enum": [k.value for k in SuggestionKind],
                        },
                        "summaryText": {"type": "string", "minLength": 1, "maxLength": 500},
                        "payloadJson": {
                            "type": "object",
                            "description": (
                                "Fields for the record row, e.g. "
                                '{"systolic": 130, "diastolic": 85} for a vital'
                            ),
                        },
                    },
                    "required": ["kind", "summaryText", "payloadJson"],
                    "additionalProperties": False,
                },
                handler=self.propose_record_suggestion,
            )
        )

    def openai_tools(self) -> List[Dict[str, Any]]:
        return self.registry.openai_tools()

    async def dispatch(
        self,
        db: AsyncSession,
        ctx: ChatToolContext,
        name: str,
        raw_arguments: Any,
    ) -> ToolResult:
        tool = self.registry.get(name)
        if tool is None:
            logger.warning(f"Model called unknown tool {name!r}")
            return ToolResult.error("UNKNOWN_TOOL", tool=name)

        args = _parse_arguments(raw_arguments)
        if args is None:
            return ToolResult.error("INVALID_TOOL_ARGUMENTS", tool=name)

        logger.info(f"Dispatching tool {name} for thread {ctx.thread_id}")
        return await tool.handler(db, ctx, args)

    async def retrieve_memories(
        self, db: AsyncSession, ctx: ChatToolContext, args: Dict[str, Any]
    ) -> ToolResult:
        limit = args.get("limit", 20)
        if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= MAX_RETRIEVE_LIMIT:
            return ToolResult.error("INVALID_LIMIT")

        subject = ctx.patient_id if ctx.mode == ContextMode.PHYSICIAN else None
        memories = await self.memories.retrieve_memories(
            db, ctx.caller_id, ctx.mode, subject_patient_id=subject, limit=limit
        )
        return ToolResult(
            content={
                "memories": [
                    {"id": str(m.id), "memoryText": m.memory_text, "category": m.category}
                    for m in memories
                ]
            }
        )

    async def log_memory(
        self, db: AsyncSession, ctx: ChatToolContext, args: Dict[str, Any]
    ) -> ToolResult:
        memory_text = args.get("memoryText")
        if not isinstance(memory_text, str) or not memory_text.strip():
            return ToolResult.error("MISSING_MEMORY_TEXT")
        category = args.get("category")
        if category is not None and not isinstance(category, str):
            category = None

        memory = await self.memories.propose_memory(
            db,
            owner_id=ctx.caller_id,
            context_mode=ctx.mode,
            memory_text=memory_text.strip()[:1000],
            category=category[:64] if category else None,
            subject_patient_id=ctx.patient_id if ctx.mode == ContextMode.PHYSICIAN else None,
            source_thread_id=ctx.thread_id,
            source_message_id=ctx.source_message_id,
        )
        return ToolResult(content={"ok": True, "memoryId": str(memory.id)}, memory=memory)

    async def get_document_insights(
        self, db: AsyncSession, ctx: ChatToolContext, args: Dict[str, Any]
    ) -> ToolResult:
        try:
            document_id = UUID(str(args.get("documentId")))
        except ValueError:
            return ToolResult.error("DOCUMENT_NOT_FOUND")

        document = await db.get(Document, document_id)
        # Same answer for "missing" and "other patient's" so ids cannot be enumerated
        if document is None or document.patient_id != ctx.patient_id:
            return ToolResult.error("DOCUMENT_NOT_FOUND")

        insights = await self.documents.get_document_insights(db, document)
        payload = DocumentInsights.model_validate(insights).model_dump(mode="json")
        return ToolResult(content=payload)

    async def propose_record_suggestion(
        self, db: AsyncSession, ctx: ChatToolContext, args: Dict[str, Any]
    ) -> ToolResult:
        try:
            kind = SuggestionKind(args.get("kind"))
        except ValueError:
            return ToolResult.error("INVALID_SUGGESTION_KIND")

        summary_text = args.get("summaryText")
        if not isinstance(summary_text, str) or not 1 <= len(summary_text.strip()) <= 500:
            return ToolResult.error("INVALID_SUMMARY_TEXT")

        payload = args.get("payloadJson")
        if not isinstance(payload, dict):
            return ToolResult.error("INVALID_PAYLOAD_JSON")

        suggestion = await self.suggestions.propose_suggestion(
            db,
            patient_id=ctx.patient_id,
            kind=kind,
            summary_text=summary_text.strip(),
            payload=payload,
            source_thread_id=ctx.thread_id,
            source_message_id=ctx.source_message_id,
        )
        return ToolResult(
            content={"ok": True, "suggestionId": str(suggestion.id), "status": "proposed"},
            suggestion=suggestion,
        )
