import json

import pytest
from sqlalchemy import select

from medichat.core.config import settings
from medichat.models.dashboard import PatientDailyDashboard
from medichat.models.patient_record import LabResult
from medichat.services.access_service import access_service
from medichat.services.llm_client import LLMError
from medichat.utils.datetime_utils import utc_now
from medichat.utils.exceptions import ErrorCode, ServiceError

from .conftest import auth_headers, text_reply

DASHBOARD = {
    "overview": "HbA1c is slightly above range.",
    "insights": ["HbA1c 6.1 % is in the prediabetes range"],
    "redFlags": [],
}


async def _rows(db):
    result = await db.execute(
        select(PatientDailyDashboard).execution_options(populate_existing=True)
    )
    return result.scalars().all()


class TestGenerateDashboard:
    async def test_generates_and_stores(self, db, dashboard_service, llm, patient_id):
        db.add(
            LabResult(
                patient_id=patient_id,
                collected_at=utc_now(),
                test_name="HbA1c",
                value_text="6.1",
                unit="%",
            )
        )
        await db.commit()
        llm.responses.append(text_reply(f"Here you go:\n```json\n{json.dumps(DASHBOARD)}\n```"))

        dashboard = await dashboard_service.generate_dashboard(
            db, patient_id, date="2024-05-01"
        )

        assert dashboard.patient_id == patient_id
        assert dashboard.date == "2024-05-01"
        assert dashboard.model == "test-dashboard"
        assert dashboard.dashboard_json == {
            "overview": "HbA1c is slightly above range.",
            "insights": ["HbA1c 6.1 % is in the prediabetes range"],
            "recommendations": [],
            "redFlags": [],
            "suggestedFollowUps": [],
        }

        [call] = llm.calls
        assert call["temperature"] == 0.2
        assert call["tools"] is None
        assert "HbA1c: 6.1 %" in call["messages"][0]["content"]

    async def test_defaults_to_today(self, db, dashboard_service, llm, patient_id):
        llm.responses.append(text_reply(json.dumps(DASHBOARD)))
        dashboard = await dashboard_service.generate_dashboard(db, patient_id)
        assert dashboard.date == utc_now().date().isoformat()

    async def test_existing_dashboard_is_reused(self, db, dashboard_service, llm, patient_id):
        llm.responses.append(text_reply(json.dumps(DASHBOARD)))
        first = await dashboard_service.generate_dashboard(db, patient_id, date="2024-05-01")

        again = await dashboard_service.generate_dashboard(db, patient_id, date="2024-05-01")
        assert again.id == first.id
        assert len(llm.calls) == 1

    async def test_force_replaces_the_day(self, db, dashboard_service, llm, patient_id):
        llm.responses.extend(
            [
                text_reply(json.dumps(DASHBOARD)),
                text_reply(json.dumps({"overview": "Updated summary."})),
            ]
        )
        await dashboard_service.generate_dashboard(db, patient_id, date="2024-05-01")
        forced = await dashboard_service.generate_dashboard(
            db, patient_id, date="2024-05-01", force=True
        )

        assert forced.dashboard_json["overview"] == "Updated summary."
        [row] = await _rows(db)
        assert row.id == forced.id

    async def test_requires_patient_access(
        self, db, dashboard_service, llm, patient_id, physician_id
    ):
        with pytest.raises(ServiceError) as exc:
            await dashboard_service.generate_dashboard(db, physician_id, patient_id)
        assert exc.value.code == ErrorCode.FORBIDDEN_PATIENT_ACCESS
        assert llm.calls == []

        await access_service.upsert_grant(db, patient_id, physician_id)
        await db.commit()
        llm.responses.append(text_reply(json.dumps(DASHBOARD)))
        dashboard = await dashboard_service.generate_dashboard(db, physician_id, patient_id)
        assert dashboard.patient_id == patient_id

    @pytest.mark.parametrize(
        "reply,code",
        [
            (text_reply("Your health looks fine today."), ErrorCode.DASHBOARD_JSON_NOT_FOUND),
            (text_reply('{"insights": ["no overview"]}'), ErrorCode.DASHBOARD_SCHEMA_INVALID),
            (
                text_reply('{"overview": "x", "insights": "not a list"}'),
                ErrorCode.DASHBOARD_SCHEMA_INVALID,
            ),
            (LLMError("timeout"), ErrorCode.MODEL_NO_RESPONSE),
            ({"choices": []}, ErrorCode.MODEL_NO_RESPONSE),
        ],
    )
    async def test_unusable_model_output(
        self, db, dashboard_service, llm, patient_id, reply, code
    ):
        llm.responses.append(reply)
        with pytest.raises(ServiceError) as exc:
            await dashboard_service.generate_dashboard(db, patient_id, date="2024-05-01")
        assert exc.value.code == code
        assert await _rows(db) == []


class TestDashboardRoutes:
    async def test_generate(self, client, llm, patient_id):
        llm.responses.append(text_reply(json.dumps(DASHBOARD)))
        response = await client.post(
            f"{settings.API_PREFIX}/dashboards/generate",
            json={"date": "2024-05-01"},
            headers=auth_headers(patient_id),
        )
        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["dashboard"]["patient_id"] == str(patient_id)
        assert body["dashboard"]["dashboard_json"]["overview"] == DASHBOARD["overview"]

    async def test_invalid_date(self, client, patient_id):
        response = await client.post(
            f"{settings.API_PREFIX}/dashboards/generate",
            json={"date": "May 1st"},
            headers=auth_headers(patient_id),
        )
        assert response.status_code == 422

    async def test_stranger_is_forbidden(self, client, patient_id, physician_id):
        response = await client.post(
            f"{settings.API_PREFIX}/dashboards/generate",
            json={"patientId": str(patient_id)},
            headers=auth_headers(physician_id),
        )
        assert response.status_code == 403
        assert response.json()["error"] == "FORBIDDEN_PATIENT_ACCESS"
