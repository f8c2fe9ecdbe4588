"""Attachment eligibility checks and local PDF access."""

import base64
import fnmatch
import re
from pathlib import Path

import fitz  # PyMuPDF

from ai_summary.core.config import SummaryConfig
from ai_summary.core.logging import get_logger
from ai_summary.models.summaries import (
    Attachment,
    AttachmentRequest,
    SkippedAttachment,
    SummarizeMode,
)
from ai_summary.services.notes import NoteWriter

logger = get_logger(__name__)

PDF_MAGIC = b"%PDF"


class AttachmentError(Exception):
    """Base exception for attachment handling."""


class AttachmentTextUnavailableError(AttachmentError):
    """Raised when no text can be extracted from a PDF."""


class AttachmentFilter:
    """
    File name filter built from a rule string.

    Groups are separated by ``;`` and all of them must accept a file. Rules
    inside a group are separated by ``,``. A rule starting with ``!``
    excludes matching files; if a group has any inclusion rules, one of them
    must match. Patterns support ``*`` and ``?`` and ignore case.
    """

    def __init__(self, rule: str) -> None:
        self.rule = rule
        self._groups: list[tuple[list[re.Pattern[str]], list[re.Pattern[str]]]] = []
        for group in rule.split(";"):
            includes: list[re.Pattern[str]] = []
            excludes: list[re.Pattern[str]] = []
            for raw in group.split(","):
                pattern = raw.strip()
                negated = pattern.startswith("!")
                if negated:
                    pattern = pattern[1:].strip()
                if not pattern:
                    continue
                compiled = re.compile(fnmatch.translate(pattern), re.IGNORECASE)
                (excludes if negated else includes).append(compiled)
            if includes or excludes:
                self._groups.append((includes, excludes))

    def matches(self, file_name: str) -> bool:
        """Whether the file name passes every rule group."""
        for includes, excludes in self._groups:
            if any(pattern.match(file_name) for pattern in excludes):
                return False
            if includes and not any(pattern.match(file_name) for pattern in includes):
                return False
        return True


def is_pdf(path: Path) -> bool:
    """Whether the file looks like a PDF by extension or header."""
    if path.suffix.lower() == ".pdf":
        return True
    with open(path, "rb") as f:
        return f.read(len(PDF_MAGIC)) == PDF_MAGIC


def count_pdf_pages(path: Path) -> int:
    """Number of pages in a PDF."""
    with fitz.open(str(path)) as document:
        return document.page_count


def extract_pdf_text(path: Path, max_chars: int) -> str:
    """
    Extract the text layer of a PDF.

    Args:
        path: PDF file
        max_chars: Maximum number of characters to return

    Returns:
        Extracted text, truncated to ``max_chars``
    """
    parts: list[str] = []
    length = 0
    with fitz.open(str(path)) as document:
        for page in document:
            text = page.get_text()
            parts.append(text)
            length += len(text)
            if length >= max_chars:
                break
    return "".join(parts).strip()[:max_chars]


def read_pdf_base64(path: Path) -> str:
    """Read a PDF and encode it for inline upload."""
    return base64.b64encode(path.read_bytes()).decode("ascii")


class AttachmentInspector:
    """Decides which requested attachments are queued and which are skipped."""

    def __init__(self, config: SummaryConfig, note_writer: NoteWriter) -> None:
        self.config = config
        self.note_writer = note_writer
        self.filter = AttachmentFilter(config.attachment_filter)

    def inspect(
        self, request: AttachmentRequest, mode: SummarizeMode
    ) -> Attachment | SkippedAttachment | None:
        """
        Check one attachment.

        Blocking: reads the file system and may open the PDF.

        Args:
            request: Requested attachment
            mode: Summarize mode the attachment will be processed with

        Returns:
            The eligible attachment, a skip record, or None for files that are
            silently ignored (not PDFs or rejected by the filter)
        """
        path = Path(request.file_path).expanduser()
        file_name = path.name
        attachment_id = str(path.resolve())

        if not path.is_file():
            return SkippedAttachment(file_name=file_name, reason="File not found")
        if not is_pdf(path) or not self.filter.matches(file_name):
            logger.debug("Attachment ignored by filter", extra={"file_name": file_name})
            return None

        if self.config.skip_existing_summary and self.note_writer.has_summary(attachment_id):
            return SkippedAttachment(file_name=file_name, reason="Summary already exists")

        file_size = path.stat().st_size
        max_bytes = self.config.max_file_size_mb * 1024 * 1024
        if max_bytes and file_size > max_bytes:
            size_mb = file_size / (1024 * 1024)
            return SkippedAttachment(
                file_name=file_name,
                reason=f"File too large ({size_mb:.1f}MB > {self.config.max_file_size_mb:g}MB)",
            )

        page_count: int | None = None
        if self.config.max_page_count:
            try:
                page_count = count_pdf_pages(path)
            except Exception as exc:  # noqa: BLE001
                return SkippedAttachment(
                    file_name=file_name, reason=f"Could not read page count: {exc}"
                )
            if page_count > self.config.max_page_count:
                return SkippedAttachment(
                    file_name=file_name,
                    reason=f"Too many pages ({page_count} > {self.config.max_page_count})",
                )

        text = ""
        if mode == SummarizeMode.TEXT:
            try:
                text = extract_pdf_text(path, self.config.max_chars)
            except Exception as exc:  # noqa: BLE001
                return SkippedAttachment(file_name=file_name, reason=f"Text extraction failed: {exc}")
            if not text:
                return SkippedAttachment(file_name=file_name, reason="No extractable text")

        return Attachment(
            attachment_id=attachment_id,
            file_path=path,
            file_name=file_name,
            title=request.title or path.stem,
            abstract=request.abstract,
            text=text,
            file_size=file_size,
            page_count=page_count,
        )
