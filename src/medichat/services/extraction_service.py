# src/medichat/services/extraction_service.py
import json
from typing import Any, Dict, Optional, Tuple
from pydantic import ValidationError
from medichat.core.config import settings
from medichat.schemas.document_schemas import ExtractionResult, EXTRACTION_JSON_SHAPE
from medichat.utils.exceptions import ServiceError, ErrorCode
from medichat.utils.logger import setup_logger
from .llm_client import LLMClient, LLMError

logger = setup_logger("EXTRACTION_SERVICE")

EXTRACTION_SYSTEM_PROMPT = f"""You extract structured clinical data from a patient's medical document.
Return ONLY a single JSON object, with no prose and no markdown, using exactly this shape:
{EXTRACTION_JSON_SHAPE}
Rules:
- If a field is unknown, omit it or use null. Never guess values that are not in the document.
- Use empty arrays when a section has no entries.
- Dates must be ISO-8601 (YYYY-MM-DD) when present.
- Keep lab values exactly as written in valueText (e.g. "6.1"), and the unit separately (e.g. "%")."""


def _balanced_object_end(text: str, start: int) -> Optional[int]:
    """Index of the brace closing the object opened at `start`, skipping string literals"""
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
    return None


def parse_json_object(
    text: str, not_found: ErrorCode = ErrorCode.EXTRACTION_JSON_NOT_FOUND
) -> Dict[str, Any]:
    """
    Parse model output that should be a JSON object.

    Accepts a bare JSON object, or the first balanced ``{...}`` span embedded
    in surrounding prose or code fences.

    Raises:
        ServiceError(not_found) when no object can be parsed.
    """
    stripped = (text or "").strip()
    if stripped.startswith("{") and stripped.endswith("}"):
        try:
            parsed = json.loads(stripped)
            if isinstance(parsed, dict):
                return parsed
        except json.JSONDecodeError:
            pass

    start = stripped.find("{")
    while start != -1:
        end = _balanced_object_end(stripped, start)
        if end is None:
            break
        try:
            parsed = json.loads(stripped[start : end + 1])
            if isinstance(parsed, dict):
                return parsed
        except json.JSONDecodeError:
            pass
        start = stripped.find("{", start + 1)

    raise ServiceError(not_found)


class ExtractionService:
    """Turns free document text into a validated ExtractionResult with one LLM call"""

    def __init__(
        self,
        llm: LLMClient,
        model: Optional[str] = None,
        max_chars: Optional[int] = None,
    ):
        self.llm = llm
        self.model = model or settings.AI_MODEL_EXTRACT
        self.max_chars = max_chars or settings.EXTRACTION_MAX_CHARS

    async def extract(self, text: str) -> Tuple[ExtractionResult, Dict[str, Any]]:
        """Returns the validated result and the raw parsed JSON"""
        excerpt = text[: self.max_chars]
        messages = [
            {"role": "system", "content": EXTRACTION_SYSTEM_PROMPT},
            {"role": "user", "content": f"Document text:\n\n{excerpt}"},
        ]

        try:
            response = await self.llm.chat_completion(
                messages=messages, model=self.model, temperature=0
            )
        except LLMError as e:
            raise ServiceError(ErrorCode.MODEL_NO_RESPONSE, str(e)) from e

        choices = response.get("choices") or []
        if not choices:
            raise ServiceError(ErrorCode.MODEL_NO_RESPONSE)
        content = (choices[0].get("message") or {}).get("content") or ""

        raw = parse_json_object(content)
        try:
            result = ExtractionResult.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Extraction output failed validation: {e.error_count()} errors")
            raise ServiceError(ErrorCode.EXTRACTION_SCHEMA_INVALID) from e

        logger.info(
            f"Extracted {len(result.vitals)} vitals, {len(result.labs)} labs, "
            f"{len(result.medications)} medications, {len(result.conditions)} conditions"
        )
        return result, raw
