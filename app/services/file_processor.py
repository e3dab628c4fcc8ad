import csv
from io import BytesIO, StringIO
from typing import Any, Callable, Dict, List

from docx import Document
from PIL import Image, UnidentifiedImageError
from PyPDF2 import PdfReader

from app.core.logging import logger


DOCX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

# MIME type -> canonical extension accepted for it
ALLOWED_MIME_TYPES: Dict[str, str] = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/webp": ".webp",
    "application/pdf": ".pdf",
    DOCX_MIME_TYPE: ".docx",
    "text/plain": ".txt",
    "text/csv": ".csv",
}

EXTENSION_ALIASES: Dict[str, str] = {".jpeg": ".jpg"}


class FileProcessingError(ValueError):
    """Raised when a file's content cannot be parsed."""


def process_image(data: bytes) -> Dict[str, Any]:
    try:
        with Image.open(BytesIO(data)) as image:
            return {
                "width": image.width,
                "height": image.height,
                "format": (image.format or "").lower(),
                "mode": image.mode,
                "hasAlpha": image.mode in ("RGBA", "LA", "PA") or "transparency" in image.info,
                "size": len(data),
                "text": "",
                "type": "image",
            }
    except (UnidentifiedImageError, OSError) as exc:
        raise FileProcessingError(f"Failed to process image: {exc}") from exc


def process_pdf(data: bytes) -> Dict[str, Any]:
    try:
        reader = PdfReader(BytesIO(data))
        pages = [page.extract_text() or "" for page in reader.pages]
        info = {str(key): str(value) for key, value in (reader.metadata or {}).items()}
    except Exception as exc:  # noqa: BLE001 - PyPDF2 raises many unrelated types on malformed input
        raise FileProcessingError(f"Failed to process PDF: {exc}") from exc

    text = "\n".join(pages)
    logger.info("PDF processed", pages=len(pages), characters=len(text))
    return {"pages": len(pages), "text": text, "info": info, "type": "pdf"}


def process_docx(data: bytes) -> Dict[str, Any]:
    try:
        document = Document(BytesIO(data))
    except Exception as exc:  # noqa: BLE001 - python-docx raises zipfile/lxml/KeyError variants
        raise FileProcessingError(f"Failed to process DOCX: {exc}") from exc

    paragraphs = [para.text for para in document.paragraphs]
    text = "\n".join(paragraphs)
    logger.info("DOCX processed", characters=len(text))
    return {"text": text, "paragraphs": len(paragraphs), "type": "docx"}


def process_text(data: bytes) -> Dict[str, Any]:
    text = data.decode("utf-8", errors="replace")
    return {
        "text": text,
        "lines": len(text.split("\n")),
        "characters": len(text),
        "type": "text",
    }


def process_csv(data: bytes) -> Dict[str, Any]:
    decoded = data.decode("utf-8-sig", errors="replace")
    try:
        reader = csv.DictReader(StringIO(decoded))
        rows: List[Dict[str, str]] = [dict(row) for row in reader]
        headers = list(reader.fieldnames or [])
    except csv.Error as exc:
        raise FileProcessingError(f"Failed to process CSV: {exc}") from exc

    lines = [", ".join(headers)]
    for row in rows:
        lines.append(", ".join("" if value is None else str(value) for value in row.values()))

    return {
        "rows": len(rows),
        "columns": len(headers),
        "headers": headers,
        "text": "\n".join(lines) + "\n",
        "preview": rows[:10],
        "type": "csv",
    }


def _processor_for(mime_type: str) -> Callable[[bytes], Dict[str, Any]]:
    if mime_type.startswith("image/"):
        return process_image
    handlers: Dict[str, Callable[[bytes], Dict[str, Any]]] = {
        "application/pdf": process_pdf,
        DOCX_MIME_TYPE: process_docx,
        "text/plain": process_text,
        "text/csv": process_csv,
    }
    try:
        return handlers[mime_type]
    except KeyError:
        raise FileProcessingError(f"Unsupported file type: {mime_type}") from None


def process_file(data: bytes, mime_type: str) -> Dict[str, Any]:
    """Extract metadata and plain text for an uploaded file."""
    return _processor_for(mime_type)(data)
