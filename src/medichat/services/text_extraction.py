# src/medichat/services/text_extraction.py
import asyncio
import io
from typing import Optional
from PyPDF2 import PdfReader
from medichat.utils.logger import setup_logger

logger = setup_logger("TEXT_EXTRACTION")

TEXT_EXTENSIONS = (".txt", ".md", ".csv")


def is_pdf(content_type: Optional[str], file_name: str) -> bool:
    return "pdf" in (content_type or "").lower() or file_name.lower().endswith(".pdf")


def is_plain_text(content_type: Optional[str], file_name: str) -> bool:
    return (content_type or "").lower().startswith("text/") or file_name.lower().endswith(
        TEXT_EXTENSIONS
    )


def _pdf_to_text(data: bytes) -> str:
    reader = PdfReader(io.BytesIO(data))
    pages = []
    for page in reader.pages:
        pages.append(page.extract_text() or "")
    return "\n".join(pages)


async def extract_text(data: bytes, content_type: Optional[str], file_name: str) -> str:
    """
    Best-effort plain text for a stored document.

    PDFs go through PyPDF2, text types are decoded as UTF-8, anything else keeps
    only the bytes that decode cleanly. An unreadable PDF yields
    an empty string, which callers treat as "no text extracted".
    """
    if is_pdf(content_type, file_name):
        try:
            text = await asyncio.to_thread(_pdf_to_text, data)
        except Exception as e:
            # PyPDF2 surfaces malformed object trees as arbitrary exception types
            logger.warning(f"Could not read PDF {file_name}: {type(e).__name__}: {e}")
            return ""
    elif is_plain_text(content_type, file_name):
        text = data.decode("utf-8", errors="replace")
    else:
        # Unknown binary types: keep whatever decodes cleanly
        text = data.decode("utf-8", errors="ignore").replace("\x00", "")

    return text.strip()
