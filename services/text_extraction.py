"""
Text extraction for uploaded course documents and exams.
"""
import io
import re
import asyncio
import zipfile
from typing import List, Optional, Tuple
from pypdf import PdfReader
from pypdf.errors import PdfReadError
import docx
from docx.opc.exceptions import PackageNotFoundError

from core.logging import get_logger

logger = get_logger("app")

BINARY_NOISE = re.compile(r"[\x00-\x08\x0E-\x1F]")
MIN_FALLBACK_CHARS = 50


def extract_pdf_text(content: bytes) -> str:
    reader = PdfReader(io.BytesIO(content))
    pages: list[str] = []
    for page in reader.pages:
        text = page.extract_text()
        if text:
            pages.append(text)
    return "\n\n".join(pages)


def extract_docx_text(content: bytes) -> str:
    document = docx.Document(io.BytesIO(content))
    return "\n".join(paragraph.text for paragraph in document.paragraphs)


def is_text_upload(filename: str, content_type: str = "") -> bool:
    name = (filename or "").lower()
    return (content_type or "").startswith("text/") or name.endswith((".md", ".txt"))


def extract_text(filename: str, content: bytes, content_type: str = "") -> str:
    """
    Best-effort text for one file; "" when nothing readable comes out.

    PDF and DOCX parse failures are logged and treated as empty. Unknown
    types are decoded as UTF-8 and kept only if enough survives once binary
    noise is stripped.
    """
    name = (filename or "").lower()

    if name.endswith(".pdf") or "pdf" in (content_type or ""):
        try:
            return extract_pdf_text(content)
        except (PdfReadError, ValueError, KeyError, OSError) as e:
            logger.warning("PDF text extraction failed", file_name=filename, error=str(e))
            return ""

    if name.endswith(".docx"):
        try:
            return extract_docx_text(content)
        except (PackageNotFoundError, zipfile.BadZipFile, ValueError, KeyError, OSError) as e:
            logger.warning("DOCX text extraction failed", file_name=filename, error=str(e))
            return ""

    decoded = content.decode("utf-8", errors="replace")
    if is_text_upload(filename, content_type):
        return decoded

    cleaned = BINARY_NOISE.sub("", decoded).strip()
    return cleaned if len(cleaned) > MIN_FALLBACK_CHARS else ""


async def extract_text_async(filename: str, content: bytes, content_type: str = "") -> str:
    return await asyncio.to_thread(extract_text, filename, content, content_type)


def combine_documents(texts: List[Tuple[str, str]], max_chars: Optional[int] = None) -> str:
    """Join ``(name, text)`` pairs as ``# name`` sections, optionally capped."""
    combined = "\n\n\n".join(f"# {name}\n\n{text}" for name, text in texts)
    return combined[:max_chars] if max_chars is not None else combined
