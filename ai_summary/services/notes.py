"""Markdown summary notes with YAML front matter."""

import re
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import yaml

from ai_summary.core.logging import get_logger
from ai_summary.models.providers import SummaryResult
from ai_summary.models.summaries import Attachment, SummarizeMode

logger = get_logger(__name__)

NOTE_TAGS = ["ai-summary", "ai-generated"]
_FRONTMATTER_RE = re.compile(r"^---\n(?P<yaml>[\s\S]*?)\n---", re.MULTILINE)
_UNSAFE_CHARS_RE = re.compile(r'[\\/:*?"<>|\s]+')


class NoteWriter:
    """Writes one summary note per processed attachment."""

    def __init__(self, notes_dir: str | Path) -> None:
        self.notes_dir = Path(notes_dir)

    def write(
        self,
        *,
        attachment: Attachment,
        result: SummaryResult,
        model: str,
        provider: str,
        mode: SummarizeMode,
        save_thoughts: bool = False,
    ) -> Path:
        """
        Render and save a note.

        Returns:
            Path of the written note
        """
        created = datetime.now(UTC)
        content = self.render(
            attachment=attachment,
            result=result,
            model=model,
            provider=provider,
            mode=mode,
            created=created,
            save_thoughts=save_thoughts,
        )

        self.notes_dir.mkdir(parents=True, exist_ok=True)
        stem = _UNSAFE_CHARS_RE.sub("_", Path(attachment.file_name).stem).strip("_") or "note"
        note_path = self.notes_dir / f"{stem}.summary-{created:%Y%m%dT%H%M%S%f}.md"
        note_path.write_text(content, encoding="utf-8")

        logger.info(
            "Summary note written",
            extra={"file_name": attachment.file_name, "note_path": str(note_path)},
        )
        return note_path

    @staticmethod
    def render(
        *,
        attachment: Attachment,
        result: SummaryResult,
        model: str,
        provider: str,
        mode: SummarizeMode,
        created: datetime,
        save_thoughts: bool = False,
    ) -> str:
        """Render note Markdown."""
        frontmatter: dict[str, Any] = {
            "title": f"AI Summary: {attachment.title}",
            "source_file": attachment.file_name,
            "source_path": attachment.attachment_id,
            "model": model,
            "provider": provider,
            "mode": mode.value,
            "created": created.isoformat(),
            "tags": NOTE_TAGS,
        }
        yaml_block = yaml.safe_dump(frontmatter, sort_keys=False, allow_unicode=True).strip()

        heading = f"# AI Summary: {attachment.title} - {attachment.file_name}"
        body = f"{heading}\n\n*{model} @ {created:%Y-%m-%d %H:%M}*\n\n{result.answer.strip()}"
        if save_thoughts and result.thoughts:
            body = f"{body}\n\n## Model reasoning\n\n{result.thoughts.strip()}"

        return f"---\n{yaml_block}\n---\n\n{body}\n"

    def has_summary(self, source_path: str) -> bool:
        """Whether a note for the source file at the given resolved path already exists."""
        if not self.notes_dir.is_dir():
            return False

        for note_path in self.notes_dir.glob("*.md"):
            try:
                content = note_path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError):
                logger.warning("Unreadable note", extra={"note_path": str(note_path)})
                continue
            match = _FRONTMATTER_RE.match(content)
            if match is None:
                continue
            try:
                frontmatter = yaml.safe_load(match.group("yaml")) or {}
            except yaml.YAMLError:
                logger.warning("Unreadable note front matter", extra={"note_path": str(note_path)})
                continue
            if isinstance(frontmatter, dict) and frontmatter.get("source_path") == source_path:
                return True
        return False
