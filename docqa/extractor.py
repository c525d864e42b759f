"""Plain-text extraction from uploaded files."""
from pathlib import Path
from typing import Callable, Dict
import structlog
from docx import Document
from pypdf import PdfReader

from docqa.errors import UnsupportedFileType, ExtractionFailed

logger = structlog.get_logger()

FILE_TYPES = {
    ".pdf": "PDF",
    ".docx": "DOCX",
    ".txt": "TXT",
    ".md": "TXT",
}


def file_type_for(file_name: str) -> str:
    """Map a file name to its document category.

    Raises:
        UnsupportedFileType: For extensions without an extractor
    """
    ext = Path(file_name).suffix.lower()
    if ext not in FILE_TYPES:
        raise UnsupportedFileType(f"Unsupported file type: {ext or file_name}")
    return FILE_TYPES[ext]


def _extract_pdf(file_path: Path) -> str:
    reader = PdfReader(str(file_path))
    return "\n".join(page.extract_text() or "" for page in reader.pages)


def _extract_docx(file_path: Path) -> str:
    doc = Document(str(file_path))
    parts = [p.text for p in doc.paragraphs if p.text.strip()]

    for table in doc.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
            if cells:
                parts.append(" | ".join(cells))

    return "\n\n".join(parts)


def _extract_txt(file_path: Path) -> str:
    try:
        return file_path.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        return file_path.read_text(encoding="latin-1")


EXTRACTORS: Dict[str, Callable[[Path], str]] = {
    "PDF": _extract_pdf,
    "DOCX": _extract_docx,
    "TXT": _extract_txt,
}


def extract(file_path: Path) -> str:
    """Extract raw text from a PDF, DOCX or text file.

    Args:
        file_path: Path to the file

    Returns:
        Extracted text (may be empty)

    Raises:
        UnsupportedFileType: For unknown extensions
        ExtractionFailed: If the file cannot be read or parsed
    """
    file_path = Path(file_path)
    file_type = file_type_for(file_path.name)

    logger.info("extracting_text", path=str(file_path), file_type=file_type)

    try:
        text = EXTRACTORS[file_type](file_path)
    except Exception as e:
        logger.error(
            "extraction_failed",
            path=str(file_path),
            file_type=file_type,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise ExtractionFailed(f"{file_type} extraction failed: {e}") from e

    logger.info("text_extracted", path=str(file_path), length=len(text))

    return text
