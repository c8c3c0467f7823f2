from __future__ import annotations

import logging
import re
from dataclasses import dataclass

import fitz  # PyMuPDF

logger = logging.getLogger("paperpost.pdf")

DEFAULT_ABSTRACT_MAX_CHARS = 2_500

_ABSTRACT_START_RE = re.compile(
    r"(?:^|\n)\s*(?:abstract|resumen)\s*:?\s*", re.IGNORECASE
)
_ABSTRACT_END_RE = re.compile(
    r"(?:^|\n)\s*(?:\d+\s*(?:[.)]\s*)?)?(?:introduction|introduccion|introducción)\b",
    re.IGNORECASE,
)


@dataclass(frozen=True, slots=True)
class ParsedPdf:
    full_text: str
    abstract_text: str | None
    pages_count: int


class PdfParseError(ValueError):
    """Raised when the uploaded bytes cannot be read as a PDF."""


class PdfParser:
    def __init__(self, *, abstract_max_chars: int = DEFAULT_ABSTRACT_MAX_CHARS) -> None:
        self.abstract_max_chars = abstract_max_chars

    def parse(self, content: bytes) -> ParsedPdf:
        text, pages_count = extract_text_from_pdf_bytes(content)
        if not text:
            logger.warning(
                "PDF contains no extractable text",
                extra={"metrics": {"pages_count": pages_count}},
            )
        return ParsedPdf(
            full_text=text,
            abstract_text=extract_abstract(text, max_length=self.abstract_max_chars),
            pages_count=pages_count,
        )


def extract_text_from_pdf_bytes(content: bytes) -> tuple[str, int]:
    try:
        doc = fitz.open(stream=content, filetype="pdf")
    except RuntimeError as error:
        raise PdfParseError(f"Unable to open PDF: {error}") from error

    try:
        page_texts = [page.get_text("text") or "" for page in doc]
        pages_count = len(doc)
    finally:
        doc.close()

    return normalize_text("\n".join(page_texts)), pages_count


def extract_abstract(
    text: str,
    max_length: int = DEFAULT_ABSTRACT_MAX_CHARS,
) -> str | None:
    normalized = normalize_text(text)
    if not normalized:
        return None

    start_match = _ABSTRACT_START_RE.search(normalized)
    if start_match is None:
        return None

    after_start = normalized[start_match.end():]
    end_match = _ABSTRACT_END_RE.search(after_start)
    end = end_match.start() if end_match is not None else max_length

    sliced = after_start[: min(end, max_length)].strip()
    return sliced or None


def normalize_text(value: str) -> str:
    text = value.replace("\r", "")
    text = re.sub(r"[ \t]+\n", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()
