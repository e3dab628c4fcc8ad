from io import BytesIO

import pytest
from docx import Document
from PIL import Image

from app.services.file_processor import (
    DOCX_MIME_TYPE,
    FileProcessingError,
    process_csv,
    process_file,
    process_image,
)


def test_csv_rows_headers_and_preview():
    rows = "\n".join(f"item{index},{index}" for index in range(15))
    result = process_csv(f"name,count\n{rows}\n".encode())

    assert result["type"] == "csv"
    assert result["rows"] == 15
    assert result["columns"] == 2
    assert result["headers"] == ["name", "count"]
    assert len(result["preview"]) == 10
    assert result["text"].splitlines()[0] == "name, count"
    assert result["text"].splitlines()[1] == "item0, 0"


def test_text_counts_lines_and_characters():
    result = process_file("héllo\nworld".encode(), "text/plain")

    assert result["text"] == "héllo\nworld"
    assert result["lines"] == 2
    assert result["characters"] == 11


def test_image_metadata():
    buffer = BytesIO()
    Image.new("RGB", (20, 10)).save(buffer, format="WEBP")

    result = process_file(buffer.getvalue(), "image/webp")

    assert result["type"] == "image"
    assert (result["width"], result["height"]) == (20, 10)
    assert result["format"] == "webp"
    assert result["hasAlpha"] is False
    assert result["text"] == ""


def test_docx_paragraph_text():
    document = Document()
    document.add_paragraph("First paragraph")
    document.add_paragraph("Second paragraph")
    buffer = BytesIO()
    document.save(buffer)

    result = process_file(buffer.getvalue(), DOCX_MIME_TYPE)

    assert result["type"] == "docx"
    assert "First paragraph\nSecond paragraph" in result["text"]


def test_corrupt_image_raises_processing_error():
    with pytest.raises(FileProcessingError):
        process_image(b"definitely not an image")


def test_corrupt_docx_raises_processing_error():
    with pytest.raises(FileProcessingError):
        process_file(b"not a zip", DOCX_MIME_TYPE)


def test_unknown_type_raises_processing_error():
    with pytest.raises(FileProcessingError):
        process_file(b"data", "application/zip")
