from __future__ import annotations

import io

import docx
import PyPDF2
from fastapi import APIRouter, Depends, File, UploadFile, status

from webtoon_studio.auth import Caller, verify_session
from webtoon_studio.log_config import logger

from ..utils import api_error

router = APIRouter(prefix="/api", tags=["extract-text"])

PDF_TYPES = {"application/pdf"}
DOCX_TYPES = {"application/vnd.openxmlformats-officedocument.wordprocessingml.document"}


def extract_pdf_text(data: bytes) -> str:
    reader = PyPDF2.PdfReader(io.BytesIO(data))
    pages = [page.extract_text() or "" for page in reader.pages]
    return "\n\n".join(page.strip() for page in pages if page.strip())


def extract_docx_text(data: bytes) -> str:
    document = docx.Document(io.BytesIO(data))
    return "\n".join(paragraph.text for paragraph in document.paragraphs)


def detect_kind(content_type: str, filename: str) -> str | None:
    name = filename.lower()
    if content_type.startswith("text/plain") or name.endswith(".txt"):
        return "txt"
    if content_type in PDF_TYPES or name.endswith(".pdf"):
        return "pdf"
    if content_type in DOCX_TYPES or name.endswith(".docx"):
        return "docx"
    return None


@router.post("/extract-text")
async def extract_text(
    file: UploadFile | None = File(default=None),
    caller: Caller = Depends(verify_session),
) -> dict[str, str]:
    """Extract plain text from an uploaded .txt, .docx or .pdf file."""
    if file is None:
        raise api_error(status.HTTP_400_BAD_REQUEST, "file is required")
    content_type = (file.content_type or "").lower()
    filename = file.filename or ""
    kind = detect_kind(content_type, filename)
    if kind is None:
        raise api_error(
            status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            f"Unsupported file type: {content_type or filename}",
        )

    data = await file.read()
    logger.info("extract-text request user=%s kind=%s bytes=%d", caller.user_id, kind, len(data))
    if kind == "txt":
        return {"text": data.decode("utf-8-sig", errors="replace")}
    if kind == "pdf":
        try:
            return {"text": extract_pdf_text(data)}
        except Exception as exc:
            logger.error("extract-text pdf parsing failed error=%s", exc)
            raise api_error(status.HTTP_500_INTERNAL_SERVER_ERROR, "PDF parsing failed", str(exc)) from exc
    try:
        return {"text": extract_docx_text(data)}
    except Exception as exc:
        logger.error("extract-text docx parsing failed error=%s", exc)
        raise api_error(status.HTTP_500_INTERNAL_SERVER_ERROR, "DOCX parsing failed", str(exc)) from exc
