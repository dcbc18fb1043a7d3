# src/medichat/services/chat_service.py
from typing import Any, Dict, List, Optional
from uuid import UUID
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from medichat.core.config import settings
from medichat.models.chat import ChatThread, ChatMessage, ContextMode, SenderRole
from medichat.schemas.chat_schemas import ChatTurnRequest
from medichat.utils.datetime_utils import utc_now
from medichat.utils.exceptions import ServiceError, ErrorCode
from medichat.utils.logger import setup_logger
from .access_service import access_service, AccessService
from .chat_tools import ChatToolset, ChatToolContext
from .document_service import DocumentService
from .llm_client import LLMClient, LLMError
from .patient_context_service import patient_context_service, PatientContextService

logger = setup_logger("CHAT_SERVICE")

FALLBACK_REPLY = "I'm not sure I understood, could you rephrase?"
THREAD_TITLES = {
    ContextMode.PATIENT: "Patient chat",
    ContextMode.PHYSICIAN: "Physician chat",
}

PERSONALIZATION_CONTRACT = """Personalization rules:
- Before relying on personal preferences or context, call retrieveMemories.
- When the user shares a durable preference, routine or personal fact, call logMemory to propose it. Never claim something is remembered until the user accepts it.
- When the conversation reveals a new or changed record fact (vital, lab, medication, condition, profile detail), call proposePatientRecordSuggestion. Never state that the record was updated; the patient confirms every change.
- To read an attached document, call getDocumentInsights with its id."""

SAFETY_LINE = (
    "You do not diagnose, prescribe or give definitive medical advice. Encourage "
    "consulting a clinician for medical decisions and urgent care for emergencies."
)

SYSTEM_PROMPTS = {
    ContextMode.PATIENT: (
        "You are a friendly health-records assistant talking with a patient about "
        "their own record. Explain results in plain language and help them keep "
        "their record accurate.\n\n"
    ),
    ContextMode.PHYSICIAN: (
        "You are a clinical assistant supporting a physician reviewing a patient's "
        "record they have been granted access to. Be concise and precise, cite the "
        "record data you rely on, and flag missing information.\n\n"
    ),
}


def build_system_prompt(mode: ContextMode, patient_context: str) -> str:
    return (
        f"{SYSTEM_PROMPTS[mode]}{PERSONALIZATION_CONTRACT}\n\n{SAFETY_LINE}\n\n"
        f"Patient record snapshot:\n{patient_context}"
    )


class ChatService:
    """
    Runs one chat turn: authorize, persist, build context, and drive a bounded
    tool-calling loop against the model.
    """

    def __init__(
        self,
        llm: LLMClient,
        documents: DocumentService,
        access: AccessService = access_service,
        context: PatientContextService = patient_context_service,
        model: Optional[str] = None,
        max_tool_rounds: Optional[int] = None,
        history_limit: Optional[int] = None,
    ):
        self.llm = llm
        self.documents = documents
        self.access = access
        self.context = context
        self.tools = ChatToolset(documents)
        self.model = model or settings.AI_MODEL_CHAT
        self.max_tool_rounds = max_tool_rounds or settings.CHAT_MAX_TOOL_ROUNDS
        self.history_limit = history_limit or settings.CHAT_HISTORY_LIMIT

    async def _resolve_patient(
        self, db: AsyncSession, caller_id: UUID, mode: ContextMode, patient_id: Optional[UUID]
    ) -> UUID:
        if mode == ContextMode.PATIENT:
            return caller_id
        if patient_id is None:
            raise ServiceError(ErrorCode.PATIENT_ID_REQUIRED)
        await self.access.assert_patient_access(db, caller_id, patient_id)
        return patient_id

    async def _get_or_create_thread(
        self,
        db: AsyncSession,
        caller_id: UUID,
        patient_id: UUID,
        mode: ContextMode,
        thread_id: Optional[UUID],
    ) -> ChatThread:
        if thread_id is not None:
            thread = await db.get(ChatThread, thread_id)
            if (
                thread is not None
                and thread.patient_id == patient_id
                and ContextMode(thread.context_mode) == mode
            ):
                return thread
            logger.info(f"Thread {thread_id} not reusable for patient {patient_id}, creating new")

        thread = ChatThread(
            patient_id=patient_id,
            created_by_user_id=caller_id,
            context_mode=mode,
            title=THREAD_TITLES[mode],
        )
        db.add(thread)
        await db.flush()
        return thread

    async def _recent_history(
        self, db: AsyncSession, thread_id: UUID
    ) -> List[Dict[str, Any]]:
        result = await db.execute(
            select(ChatMessage)
            .where(ChatMessage.thread_id == thread_id)
            .order_by(ChatMessage.created_at.desc())
            .limit(self.history_limit)
        )
        rows = list(reversed(result.scalars().all()))
        return [
            {"role": SenderRole(m.sender_role).value, "content": m.content}
            for m in rows
            if SenderRole(m.sender_role) in (SenderRole.USER, SenderRole.ASSISTANT)
        ]

    async def run_turn(
        self, db: AsyncSession, caller_id: UUID, request: ChatTurnRequest
    ) -> Dict[str, Any]:
        mode = ContextMode(request.mode)
        patient_id = await self._resolve_patient(db, caller_id, mode, request.patient_id)

        thread = await self._get_or_create_thread(
            db, caller_id, patient_id, mode, request.thread_id
        )
        thread_id = thread.id

        user_message = ChatMessage(
            thread_id=thread_id, sender_role=SenderRole.USER, content=request.message
        )
        db.add(user_message)
        await db.commit()

        attached = await self.documents.get_documents_for_patient(
            db, patient_id, request.document_ids
        )
        patient_context = await self.context.build_context(db, patient_id, attached)
        messages: List[Dict[str, Any]] = [
            {"role": "system", "content": build_system_prompt(mode, patient_context)}
        ] + await self._recent_history(db, thread_id)

        ctx = ChatToolContext(
            caller_id=caller_id,
            patient_id=patient_id,
            mode=mode,
            thread_id=thread_id,
            source_message_id=user_message.id,
        )
        proposed_memories = []
        proposed_suggestions = []
        reply: Optional[str] = None

        for round_number in range(1, self.max_tool_rounds + 1):
            try:
                response = await self.llm.chat_completion(
                    messages=messages,
                    model=self.model,
                    temperature=0.4,
                    tools=self.tools.openai_tools(),
                    tool_choice="auto",
                )
            except LLMError as e:
                raise ServiceError(ErrorCode.MODEL_NO_RESPONSE, str(e)) from e

            choices = response.get("choices") or []
            if not choices:
                raise ServiceError(ErrorCode.MODEL_NO_RESPONSE)
            message = choices[0].get("message") or {}

            content = message.get("content")
            if isinstance(content, str) and content.strip():
                reply = content.strip()

            tool_calls = message.get("tool_calls") or []
            if not tool_calls:
                break

            messages.append(
                {"role": "assistant", "content": content or "", "tool_calls": tool_calls}
            )
            for call in tool_calls:
                function = call.get("function") or {}
                result = await self.tools.dispatch(
                    db, ctx, function.get("name", ""), function.get("arguments")
                )
                if result.memory is not None:
                    proposed_memories.append(result.memory)
                if result.suggestion is not None:
                    proposed_suggestions.append(result.suggestion)
                messages.append(
                    {
                        "role": "tool",
                        "tool_call_id": call.get("id"),
                        "content": result.as_message_content(),
                    }
                )
            logger.info(
                f"Thread {thread_id} round {round_number}: {len(tool_calls)} tool call(s)"
            )

        assistant_text = reply or FALLBACK_REPLY
        db.add(
            ChatMessage(
                thread_id=thread_id, sender_role=SenderRole.ASSISTANT, content=assistant_text
            )
        )
        await db.execute(
            update(ChatThread)
            .where(ChatThread.id == thread_id)
            .values(updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        await db.commit()

        return {
            "thread_id": thread_id,
            "assistant_message": assistant_text,
            "proposed_memories": [
                {"id": m.id, "memory_text": m.memory_text, "category": m.category}
                for m in proposed_memories
            ],
            "proposed_suggestions": [
                {
                    "id": s.id,
                    "kind": s.kind,
                    "summary_text": s.summary_text,
                    "payload": s.payload_json,
                }
                for s in proposed_suggestions
            ],
        }

    async def list_threads(
        self,
        db: AsyncSession,
        caller_id: UUID,
        mode: ContextMode,
        patient_id: Optional[UUID] = None,
        limit: int = 50,
    ) -> List[ChatThread]:
        mode = ContextMode(mode)
        target_patient = await self._resolve_patient(db, caller_id, mode, patient_id)
        result = await db.execute(
            select(ChatThread)
            .where(ChatThread.patient_id == target_patient, ChatThread.context_mode == mode)
            .order_by(ChatThread.updated_at.desc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def get_thread_messages(
        self, db: AsyncSession, caller_id: UUID, thread_id: UUID, limit: int = 100
    ) -> Dict[str, Any]:
        thread = await db.get(ChatThread, thread_id)
        if thread is None:
            raise ServiceError(ErrorCode.THREAD_NOT_FOUND)
        await self.access.assert_patient_access(db, caller_id, thread.patient_id)

        result = await db.execute(
            select(ChatMessage)
            .where(ChatMessage.thread_id == thread_id)
            .order_by(ChatMessage.created_at.desc())
            .limit(limit)
        )
        return {"thread": thread, "messages": list(reversed(result.scalars().all()))}

    async def delete_thread(self, db: AsyncSession, caller_id: UUID, thread_id: UUID) -> None:
        """Only the thread's creator or its patient may delete it, messages included"""
        thread = await db.get(ChatThread, thread_id)
        if thread is None:
            raise ServiceError(ErrorCode.THREAD_NOT_FOUND)
        if caller_id not in (thread.created_by_user_id, thread.patient_id):
            raise ServiceError(ErrorCode.THREAD_FORBIDDEN)

        try:
            await db.execute(delete(ChatMessage).where(ChatMessage.thread_id == thread_id))
            await db.delete(thread)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(f"Thread {thread_id} deleted by {caller_id}")
