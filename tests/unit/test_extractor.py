"""Tests for text extraction from uploaded files."""
import pytest
from docx import Document
from pypdf import PdfWriter

from docqa.errors import ExtractionFailed, UnsupportedFileType
from docqa.extractor import extract, file_type_for


@pytest.mark.parametrize(
    "name,file_type",
    [("report.PDF", "PDF"), ("letter.docx", "DOCX"), ("notes.txt", "TXT"), ("README.md", "TXT")],
)
def test_file_type_for(name, file_type):
    assert file_type_for(name) == file_type


@pytest.mark.parametrize("name", ["photo.png", "archive.zip", "no_extension"])
def test_unsupported_file_types(name):
    with pytest.raises(UnsupportedFileType):
        file_type_for(name)


def test_extract_utf8_text(tmp_path):
    path = tmp_path / "notes.txt"
    path.write_text("नमस्ते world", encoding="utf-8")

    assert extract(path) == "नमस्ते world"


def test_extract_latin1_text(tmp_path):
    path = tmp_path / "legacy.txt"
    path.write_bytes(b"caf\xe9")

    assert extract(path) == "café"


def test_extract_docx_paragraphs_and_tables(tmp_path):
    path = tmp_path / "letter.docx"
    doc = Document()
    doc.add_paragraph("First paragraph.")
    doc.add_paragraph("   ")
    doc.add_paragraph("Second paragraph.")
    table = doc.add_table(rows=1, cols=2)
    table.rows[0].cells[0].text = "Name"
    table.rows[0].cells[1].text = "Value"
    doc.save(str(path))

    assert extract(path) == "First paragraph.\n\nSecond paragraph.\n\nName | Value"


def test_extract_pdf_without_text(tmp_path):
    path = tmp_path / "blank.pdf"
    writer = PdfWriter()
    writer.add_blank_page(width=200, height=200)
    with open(path, "wb") as f:
        writer.write(f)

    assert extract(path).strip() == ""


def test_corrupt_pdf_raises_extraction_failed(tmp_path):
    path = tmp_path / "broken.pdf"
    path.write_bytes(b"this is not a pdf")

    with pytest.raises(ExtractionFailed):
        extract(path)


def test_missing_file_raises_extraction_failed(tmp_path):
    with pytest.raises(ExtractionFailed):
        extract(tmp_path / "missing.txt")
