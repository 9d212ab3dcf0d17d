"""
Document loaders.

Reads files from disk into plain text so they can be ingested as
documents. Each file becomes a single document; the text is embedded
whole.
"""

from pathlib import Path
from typing import Tuple, Union

import PyPDF2

from ragcore.exceptions import InvalidRequest
from ragcore.logger import get_logger

logger = get_logger(__name__)


class DocumentLoader:
    """
    Load documents from various file formats.

    WHY A SEPARATE CLASS:
    - Only handles file I/O
    - Easy to add new formats (Word, HTML, etc.)
    """

    SUPPORTED_SUFFIXES = (".txt", ".md", ".pdf")

    @staticmethod
    def load(file_path: Union[str, Path]) -> Tuple[str, dict]:
        """
        Load a document and return (text, metadata).

        Raises:
            FileNotFoundError: the path does not exist
            InvalidRequest: the suffix is not supported
        """
        path = Path(file_path)

        if not path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")

        suffix = path.suffix.lower()

        if suffix in (".txt", ".md"):
            return DocumentLoader._load_txt(path, suffix.lstrip("."))
        elif suffix == ".pdf":
            return DocumentLoader._load_pdf(path)
        else:
            raise InvalidRequest(f"Unsupported file format: {suffix}")

    @staticmethod
    def _load_txt(path: Path, fmt: str) -> Tuple[str, dict]:
        """Load a text or markdown file."""
        with open(path, "r", encoding="utf-8") as f:
            text = f.read()
        return text, {"source": str(path), "format": fmt}

    @staticmethod
    def _load_pdf(path: Path) -> Tuple[str, dict]:
        """
        Load a PDF file, one text block per page.

        Pages without extractable text (scans) contribute an empty string.
        """
        text_parts = []

        with open(path, "rb") as f:
            reader = PyPDF2.PdfReader(f)
            page_count = len(reader.pages)

            for page in reader.pages:
                text_parts.append(page.extract_text() or "")

        logger.debug("Loaded %d pages from %s", page_count, path)

        return "\n\n".join(text_parts), {
            "source": str(path),
            "format": "pdf",
            "page_count": page_count
        }
