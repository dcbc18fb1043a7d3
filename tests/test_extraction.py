import pytest

from medichat.models.patient_record import Gender
from medichat.schemas.document_schemas import ExtractionResult
from medichat.services.document_service import sanitize_file_name
from medichat.services.extraction_service import ExtractionService, parse_json_object
from medichat.services.ingestion_service import profile_fields_from_extraction
from medichat.services.llm_client import LLMError
from medichat.services.text_extraction import extract_text
from medichat.utils.datetime_utils import parse_datetime
from medichat.utils.exceptions import ErrorCode, ServiceError

from .conftest import BROKEN_PAGE_TREE_PDF, FakeLLM, text_reply


class TestParseJsonObject:
    def test_bare_object(self):
        assert parse_json_object('{"labs": []}') == {"labs": []}

    def test_object_inside_code_fence(self):
        text = 'Here you go:\n```json\n{"vitals": [{"systolic": 120}]}\n```\nDone.'
        assert parse_json_object(text) == {"vitals": [{"systolic": 120}]}

    def test_braces_inside_strings(self):
        text = 'prefix {"note": "a } inside", "n": 1} suffix'
        assert parse_json_object(text) == {"note": "a } inside", "n": 1}

    def test_skips_unparseable_span(self):
        text = "{not json} then {\"ok\": true}"
        assert parse_json_object(text) == {"ok": True}

    @pytest.mark.parametrize("text", ["", "no json here", "[1, 2, 3]", "{broken"])
    def test_no_object(self, text):
        with pytest.raises(ServiceError) as exc:
            parse_json_object(text)
        assert exc.value.code == ErrorCode.EXTRACTION_JSON_NOT_FOUND


class TestExtractionResult:
    def test_camel_case_and_number_coercion(self):
        result = ExtractionResult.model_validate(
            {
                "demographics": {"ageYears": 54, "gender": "F"},
                "labs": [{"testName": "HbA1c", "valueText": 6.1, "unit": "%"}],
                "vitals": None,
            }
        )
        assert result.labs[0].value_text == "6.1"
        assert result.vitals == []
        assert result.demographics.age_years == 54

    def test_lab_without_value_is_invalid(self):
        with pytest.raises(ValueError):
            ExtractionResult.model_validate({"labs": [{"testName": "HbA1c"}]})

    def test_profile_fields_only_include_stated_values(self):
        result = ExtractionResult.model_validate(
            {
                "demographics": {"ageYears": 41.9, "gender": "woman"},
                "hpi": {"symptomOnset": "2 days ago"},
            }
        )
        assert profile_fields_from_extraction(result) == {
            "age_years": 41,
            "gender": Gender.FEMALE,
            "symptom_onset": "2 days ago",
        }

    def test_unrecognized_gender_is_dropped(self):
        result = ExtractionResult.model_validate({"demographics": {"gender": "n/a"}})
        assert profile_fields_from_extraction(result) == {}


class TestExtractionService:
    async def test_extract_validates_model_output(self):
        llm = FakeLLM(
            [text_reply('```json\n{"labs": [{"testName": "LDL", "valueText": "130"}]}\n```')]
        )
        service = ExtractionService(llm, model="extract-model", max_chars=50)

        result, raw = await service.extract("x" * 500)

        assert [lab.test_name for lab in result.labs] == ["LDL"]
        assert raw == {"labs": [{"testName": "LDL", "valueText": "130"}]}
        call = llm.calls[0]
        assert call["model"] == "extract-model"
        assert call["temperature"] == 0
        assert call["messages"][1]["content"].endswith("x" * 50)
        assert "x" * 51 not in call["messages"][1]["content"]

    async def test_schema_mismatch(self):
        llm = FakeLLM([text_reply('{"labs": [{"unit": "mg/dL"}]}')])
        with pytest.raises(ServiceError) as exc:
            await ExtractionService(llm, model="m").extract("some text")
        assert exc.value.code == ErrorCode.EXTRACTION_SCHEMA_INVALID

    async def test_model_failure(self):
        llm = FakeLLM([LLMError("upstream 500")])
        with pytest.raises(ServiceError) as exc:
            await ExtractionService(llm, model="m").extract("some text")
        assert exc.value.code == ErrorCode.MODEL_NO_RESPONSE

    async def test_empty_choices(self):
        llm = FakeLLM([{"choices": []}])
        with pytest.raises(ServiceError) as exc:
            await ExtractionService(llm, model="m").extract("some text")
        assert exc.value.code == ErrorCode.MODEL_NO_RESPONSE


class TestTextExtraction:
    async def test_plain_text(self):
        assert await extract_text(b"  HbA1c 6.1 %\n", "text/plain", "labs.txt") == "HbA1c 6.1 %"

    async def test_text_by_extension(self):
        text = await extract_text(b"BP 120/80", "application/octet-stream", "note.md")
        assert text == "BP 120/80"

    async def test_unreadable_pdf_yields_empty_text(self):
        assert await extract_text(b"%PDF-1.4 garbage", "application/pdf", "scan.pdf") == ""

    async def test_malformed_page_tree_yields_empty_text(self):
        text = await extract_text(BROKEN_PAGE_TREE_PDF, "application/pdf", "scan.pdf")
        assert text == ""

    async def test_binary_is_cleaned(self):
        text = await extract_text(b"\x00\x00abc\x00", "image/png", "scan.png")
        assert text == "abc"


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("labs.pdf", "labs.pdf"),
        ("../../etc/passwd", ".._.._etc_passwd"),
        ("", "document"),
        (None, "document"),
        ("a" * 300, "a" * 120),
    ],
)
def test_sanitize_file_name(raw, expected):
    assert sanitize_file_name(raw) == expected


@pytest.mark.parametrize(
    "raw, expected_date",
    [
        ("2024-03-05", "2024-03-05"),
        ("2024-03-05T10:00:00Z", "2024-03-05"),
        ("05/03/2024", "2024-03-05"),
        ("2024-03", "2024-03-01"),
    ],
)
def test_parse_datetime(raw, expected_date):
    assert parse_datetime(raw).date().isoformat() == expected_date


@pytest.mark.parametrize("raw", [None, "", "last tuesday", 42])
def test_parse_datetime_unreadable(raw):
    assert parse_datetime(raw) is None
