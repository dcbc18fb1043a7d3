import json
import uuid

import pytest
from sqlalchemy import select

from medichat.models.chat import ChatMessage, ChatThread, ContextMode
from medichat.models.confirmation import PatientRecordSuggestion, ProposalStatus, UserMemory
from medichat.schemas.chat_schemas import ChatTurnRequest
from medichat.services.access_service import access_service
from medichat.services.chat_service import FALLBACK_REPLY
from medichat.services.chat_tools import ChatToolContext
from medichat.services.llm_client import LLMError
from medichat.services.memory_service import memory_service
from medichat.services.suggestion_service import suggestion_service
from medichat.utils.exceptions import ErrorCode, ServiceError

from .conftest import text_reply, tool_reply

HBA1C_EXTRACTION = {"labs": [{"testName": "HbA1c", "valueText": "6.1", "unit": "%"}]}


def _turn(message="Hello", mode="patient", **kwargs):
    return ChatTurnRequest.model_validate({"mode": mode, "message": message, **kwargs})


def _tool_messages(call):
    return [m for m in call["messages"] if m["role"] == "tool"]


async def _grant(db, patient_id, physician_id):
    await access_service.upsert_grant(db, patient_id, physician_id)
    await db.commit()


class TestChatTurn:
    async def test_plain_reply_persists_both_messages(self, db, chat_service, llm, patient_id):
        llm.responses.append(text_reply("  Hi there!  "))

        result = await chat_service.run_turn(db, patient_id, _turn("Hello"))

        assert result["assistant_message"] == "Hi there!"
        assert result["proposed_memories"] == []
        assert result["proposed_suggestions"] == []

        messages = (
            await db.execute(
                select(ChatMessage)
                .where(ChatMessage.thread_id == result["thread_id"])
                .order_by(ChatMessage.created_at)
            )
        ).scalars().all()
        assert [(m.sender_role, m.content) for m in messages] == [
            ("user", "Hello"),
            ("assistant", "Hi there!"),
        ]

    async def test_request_carries_system_prompt_history_and_tools(
        self, db, chat_service, llm, patient_id
    ):
        first = await chat_service.run_turn(db, patient_id, _turn("First question"))
        await chat_service.run_turn(
            db, patient_id, _turn("Second question", threadId=str(first["thread_id"]))
        )

        call = llm.calls[-1]
        assert call["model"] == "test-chat"
        assert call["tool_choice"] == "auto"
        assert {t["function"]["name"] for t in call["tools"]} == {
            "retrieveMemories",
            "logMemory",
            "getDocumentInsights",
            "proposePatientRecordSuggestion",
        }
        system = call["messages"][0]
        assert system["role"] == "system"
        assert "retrieveMemories" in system["content"]
        assert [m["content"] for m in call["messages"][1:]] == [
            "First question",
            "ok",
            "Second question",
        ]

    async def test_empty_reply_falls_back(self, db, chat_service, llm, patient_id):
        llm.responses.append(text_reply("   "))
        result = await chat_service.run_turn(db, patient_id, _turn())
        assert result["assistant_message"] == FALLBACK_REPLY

    async def test_model_failure_keeps_user_message(self, db, chat_service, llm, patient_id):
        llm.responses.append(LLMError("upstream down"))

        with pytest.raises(ServiceError) as exc:
            await chat_service.run_turn(db, patient_id, _turn("Are you there?"))
        assert exc.value.code == ErrorCode.MODEL_NO_RESPONSE

        messages = (await db.execute(select(ChatMessage))).scalars().all()
        assert [m.content for m in messages] == ["Are you there?"]

    async def test_tool_loop_is_bounded(self, db, chat_service, llm, patient_id):
        llm.default = tool_reply(("retrieveMemories", {}))

        result = await chat_service.run_turn(db, patient_id, _turn())

        assert len(llm.calls) == 3
        assert result["assistant_message"] == FALLBACK_REPLY
        assert len(_tool_messages(llm.calls[-1])) == 2

    async def test_unknown_tool_is_reported_to_model(self, db, chat_service, llm, patient_id):
        llm.responses.extend([tool_reply(("dropAllTables", {})), text_reply("Done")])

        result = await chat_service.run_turn(db, patient_id, _turn())

        assert result["assistant_message"] == "Done"
        [tool_message] = _tool_messages(llm.calls[1])
        assert json.loads(tool_message["content"])["error"] == "UNKNOWN_TOOL"

    async def test_malformed_arguments(self, db, chat_service, llm, patient_id):
        llm.responses.extend([tool_reply(("logMemory", "{not json")), text_reply("Sorry")])

        result = await chat_service.run_turn(db, patient_id, _turn())

        assert result["proposed_memories"] == []
        [tool_message] = _tool_messages(llm.calls[1])
        assert json.loads(tool_message["content"])["error"] == "INVALID_TOOL_ARGUMENTS"

    async def test_tool_call_ids_are_echoed(self, db, chat_service, llm, patient_id):
        request = tool_reply(("retrieveMemories", {"limit": 5}))
        llm.responses.extend([request, text_reply("ok")])

        await chat_service.run_turn(db, patient_id, _turn())

        call_id = request["choices"][0]["message"]["tool_calls"][0]["id"]
        second = llm.calls[1]["messages"]
        assert second[-2]["tool_calls"][0]["id"] == call_id
        assert second[-1]["tool_call_id"] == call_id


class TestThreads:
    async def test_thread_reused_for_same_patient_and_mode(
        self, db, chat_service, patient_id
    ):
        first = await chat_service.run_turn(db, patient_id, _turn())
        second = await chat_service.run_turn(
            db, patient_id, _turn(threadId=str(first["thread_id"]))
        )
        assert second["thread_id"] == first["thread_id"]

    async def test_foreign_thread_is_not_reused(self, db, chat_service, patient_id):
        other_patient = uuid.uuid4()
        foreign = await chat_service.run_turn(db, other_patient, _turn())

        result = await chat_service.run_turn(
            db, patient_id, _turn(threadId=str(foreign["thread_id"]))
        )
        assert result["thread_id"] != foreign["thread_id"]
        thread = await db.get(ChatThread, result["thread_id"])
        assert thread.patient_id == patient_id

    async def test_unknown_thread_starts_new_one(self, db, chat_service, patient_id):
        result = await chat_service.run_turn(db, patient_id, _turn(threadId=str(uuid.uuid4())))
        assert await db.get(ChatThread, result["thread_id"]) is not None

    async def test_list_threads_and_messages(self, db, chat_service, patient_id, physician_id):
        first = await chat_service.run_turn(db, patient_id, _turn("one"))
        await chat_service.run_turn(db, patient_id, _turn("two"))

        threads = await chat_service.list_threads(db, patient_id, ContextMode.PATIENT)
        assert len(threads) == 2

        thread = await chat_service.get_thread_messages(db, patient_id, first["thread_id"])
        assert [m.content for m in thread["messages"]] == ["one", "ok"]

        with pytest.raises(ServiceError) as exc:
            await chat_service.get_thread_messages(db, physician_id, first["thread_id"])
        assert exc.value.code == ErrorCode.FORBIDDEN_PATIENT_ACCESS

        with pytest.raises(ServiceError) as exc:
            await chat_service.get_thread_messages(db, patient_id, uuid.uuid4())
        assert exc.value.code == ErrorCode.THREAD_NOT_FOUND

    async def test_delete_thread_removes_messages(self, db, chat_service, patient_id):
        result = await chat_service.run_turn(db, patient_id, _turn("forget this"))
        thread_id = result["thread_id"]

        await chat_service.delete_thread(db, patient_id, thread_id)

        assert await db.get(ChatThread, thread_id) is None
        messages = await db.execute(select(ChatMessage).where(ChatMessage.thread_id == thread_id))
        assert messages.scalars().all() == []

        with pytest.raises(ServiceError) as exc:
            await chat_service.delete_thread(db, patient_id, thread_id)
        assert exc.value.code == ErrorCode.THREAD_NOT_FOUND

    async def test_delete_thread_creator_or_patient_only(
        self, db, chat_service, patient_id, physician_id
    ):
        colleague = uuid.uuid4()
        await _grant(db, patient_id, physician_id)
        await _grant(db, patient_id, colleague)
        first = await chat_service.run_turn(
            db, physician_id, _turn(mode="physician", patientId=str(patient_id))
        )
        second = await chat_service.run_turn(
            db, physician_id, _turn(mode="physician", patientId=str(patient_id))
        )

        with pytest.raises(ServiceError) as exc:
            await chat_service.delete_thread(db, colleague, first["thread_id"])
        assert exc.value.code == ErrorCode.THREAD_FORBIDDEN
        assert exc.value.status_code == 403

        await chat_service.delete_thread(db, physician_id, first["thread_id"])
        await chat_service.delete_thread(db, patient_id, second["thread_id"])
        assert await chat_service.list_threads(
            db, physician_id, ContextMode.PHYSICIAN, patient_id
        ) == []


class TestPhysicianMode:
    async def test_patient_id_required(self, db, chat_service, physician_id):
        with pytest.raises(ServiceError) as exc:
            await chat_service.run_turn(db, physician_id, _turn(mode="physician"))
        assert exc.value.code == ErrorCode.PATIENT_ID_REQUIRED

    async def test_access_is_checked_on_every_turn(
        self, db, chat_service, llm, patient_id, physician_id
    ):
        request = _turn(mode="physician", patientUserId=str(patient_id))
        with pytest.raises(ServiceError) as exc:
            await chat_service.run_turn(db, physician_id, request)
        assert exc.value.code == ErrorCode.FORBIDDEN_PATIENT_ACCESS
        assert llm.calls == []

        await _grant(db, patient_id, physician_id)
        result = await chat_service.run_turn(db, physician_id, request)
        thread = await db.get(ChatThread, result["thread_id"])
        assert thread.patient_id == patient_id
        assert thread.created_by_user_id == physician_id

        await access_service.revoke_access(db, patient_id, physician_id)
        with pytest.raises(ServiceError) as exc:
            await chat_service.run_turn(db, physician_id, request)
        assert exc.value.code == ErrorCode.FORBIDDEN_PATIENT_ACCESS

    async def test_physician_memory_is_scoped_to_patient(
        self, db, chat_service, llm, patient_id, physician_id
    ):
        await _grant(db, patient_id, physician_id)
        llm.responses.extend(
            [
                tool_reply(("logMemory", {"memoryText": "Prefers metric units"})),
                text_reply("Noted, pending your confirmation."),
            ]
        )

        result = await chat_service.run_turn(
            db, physician_id, _turn(mode="physician", patientUserId=str(patient_id))
        )

        [proposed] = result["proposed_memories"]
        memory = await db.get(UserMemory, proposed["id"])
        assert memory.owner_id == physician_id
        assert memory.context_mode == ContextMode.PHYSICIAN
        assert memory.subject_patient_id == patient_id
        assert memory.source_thread_id == result["thread_id"]


class TestTools:
    async def test_memory_round_trip_through_confirmation(
        self, db, chat_service, llm, patient_id
    ):
        llm.responses.extend(
            [
                tool_reply(
                    ("logMemory", {"memoryText": "Walks 30 minutes daily", "category": "routine"})
                ),
                text_reply("I'll remember that once you confirm."),
            ]
        )
        result = await chat_service.run_turn(db, patient_id, _turn("I walk every day"))

        [proposed] = result["proposed_memories"]
        assert proposed["memory_text"] == "Walks 30 minutes daily"
        memory = await db.get(UserMemory, proposed["id"])
        assert memory.status == ProposalStatus.PROPOSED

        await memory_service.accept_memory(db, proposed["id"], patient_id)

        llm.responses.extend(
            [tool_reply(("retrieveMemories", {"limit": 10})), text_reply("You walk daily.")]
        )
        await chat_service.run_turn(db, patient_id, _turn("What do you know about me?"))

        [tool_message] = _tool_messages(llm.calls[-1])
        memories = json.loads(tool_message["content"])["memories"]
        assert [m["memoryText"] for m in memories] == ["Walks 30 minutes daily"]

    async def test_retrieve_rejects_bad_limit(self, db, chat_service, llm, patient_id):
        llm.responses.extend([tool_reply(("retrieveMemories", {"limit": 500})), text_reply("ok")])
        await chat_service.run_turn(db, patient_id, _turn())
        [tool_message] = _tool_messages(llm.calls[1])
        assert json.loads(tool_message["content"]) == {"error": "INVALID_LIMIT"}

    async def test_log_memory_requires_text(self, db, chat_service, llm, patient_id):
        llm.responses.extend([tool_reply(("logMemory", {"memoryText": "  "})), text_reply("ok")])
        result = await chat_service.run_turn(db, patient_id, _turn())
        assert result["proposed_memories"] == []
        [tool_message] = _tool_messages(llm.calls[1])
        assert json.loads(tool_message["content"]) == {"error": "MISSING_MEMORY_TEXT"}

    async def test_suggestion_is_proposed_not_applied(self, db, chat_service, llm, patient_id):
        llm.responses.extend(
            [
                tool_reply(
                    (
                        "proposePatientRecordSuggestion",
                        {
                            "kind": "vital",
                            "summaryText": "Blood pressure 130/85 today",
                            "payloadJson": {"systolic": 130, "diastolic": 85},
                        },
                    )
                ),
                text_reply("I've suggested adding that reading."),
            ]
        )

        result = await chat_service.run_turn(db, patient_id, _turn("My BP was 130/85"))

        [proposed] = result["proposed_suggestions"]
        assert proposed["kind"] == "vital"
        assert proposed["payload"] == {"systolic": 130, "diastolic": 85}
        suggestion = await db.get(PatientRecordSuggestion, proposed["id"])
        assert suggestion.status == ProposalStatus.PROPOSED
        assert suggestion.patient_id == patient_id

        await suggestion_service.accept_suggestion(db, proposed["id"], patient_id)

    @pytest.mark.parametrize(
        "arguments, error",
        [
            ({"kind": "surgery", "summaryText": "x", "payloadJson": {}}, "INVALID_SUGGESTION_KIND"),
            ({"kind": "lab", "summaryText": " ", "payloadJson": {}}, "INVALID_SUMMARY_TEXT"),
            ({"kind": "lab", "summaryText": "x", "payloadJson": "[]"}, "INVALID_PAYLOAD_JSON"),
        ],
    )
    async def test_suggestion_argument_errors(
        self, db, chat_service, llm, patient_id, arguments, error
    ):
        llm.responses.extend(
            [tool_reply(("proposePatientRecordSuggestion", arguments)), text_reply("ok")]
        )
        result = await chat_service.run_turn(db, patient_id, _turn())
        assert result["proposed_suggestions"] == []
        [tool_message] = _tool_messages(llm.calls[1])
        assert json.loads(tool_message["content"]) == {"error": error}

    async def test_document_insights_tool(
        self, db, chat_service, document_service, llm, patient_id
    ):
        document = await document_service.upload_document(
            db, patient_id, "labs.txt", "text/plain", b"HbA1c 6.1 %"
        )
        llm.responses.append(text_reply(json.dumps(HBA1C_EXTRACTION)))
        await document_service.parse_document(db, patient_id, document.id)

        ctx = ChatToolContext(
            caller_id=patient_id,
            patient_id=patient_id,
            mode=ContextMode.PATIENT,
            thread_id=uuid.uuid4(),
        )
        result = await chat_service.tools.dispatch(
            db, ctx, "getDocumentInsights", {"documentId": str(document.id)}
        )
        assert result.ok
        [lab] = result.content["labs"]
        assert lab["value_text"] == "6.1"
        assert result.content["document"]["status"] == "parsed"

        other_ctx = ChatToolContext(
            caller_id=patient_id,
            patient_id=uuid.uuid4(),
            mode=ContextMode.PATIENT,
            thread_id=uuid.uuid4(),
        )
        foreign = await chat_service.tools.dispatch(
            db, other_ctx, "getDocumentInsights", {"documentId": str(document.id)}
        )
        assert foreign.content == {"error": "DOCUMENT_NOT_FOUND"}

        garbage = await chat_service.tools.dispatch(
            db, ctx, "getDocumentInsights", {"documentId": "not-a-uuid"}
        )
        assert garbage.content == {"error": "DOCUMENT_NOT_FOUND"}

    async def test_attached_documents_appear_in_context(
        self, db, chat_service, document_service, llm, patient_id
    ):
        document = await document_service.upload_document(
            db, patient_id, "bloodwork.txt", "text/plain", b"LDL 130"
        )

        await chat_service.run_turn(
            db, patient_id, _turn("Look at this", documentIds=[str(document.id)])
        )

        system = llm.calls[-1]["messages"][0]["content"]
        assert "bloodwork.txt" in system
        assert str(document.id) in system
