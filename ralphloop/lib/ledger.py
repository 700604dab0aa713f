"""
Progress ledger parser and writer.

progress.md is a markdown checklist plus a free-text completion log:

    ## Sprint 1
    - [x] SDET-1.1-001: Explain OOP pillars
    - [ ] SDET-1.1-002: String immutability

    ## Detailed Completion Log
    - 2026-10-19T10:00:00 | SDET-1.1-001 | content generated

Entry order is work order. Status only moves pending -> completed, and every
write replaces the whole file atomically under an exclusive lock.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path

from ralphloop.lib.constants import ITEM_ID_CHARS, LOG_SECTION_HEADING
from ralphloop.lib.locking import LockTimeout, file_lock
from ralphloop.lib.sanitize import atomic_write_text, clean_text, decode_text
from ralphloop.lib.workitems import UnknownIdError

logger = logging.getLogger(__name__)

__all__ = [
    "EntryStatus",
    "ProgressEntry",
    "MarkResult",
    "LogRecord",
    "ProgressLedger",
    "MalformedLedgerError",
]

# Anything that opens like a checklist item must parse as an entry
CHECKBOX_START_RE = re.compile(r'^\s*[-*]\s*\[')
ENTRY_RE = re.compile(
    r'^(?P<indent>\s*)[-*]\s+\[(?P<mark>[ xX])\]\s+'
    rf'(?P<id>{ITEM_ID_CHARS}):\s*(?P<description>.*?)\s*$'
)
LOG_HEADING_RE = re.compile(r'^#{1,6}\s+detailed completion log\s*$', re.IGNORECASE)


class MalformedLedgerError(Exception):
    """progress.md contains a line that cannot be parsed."""

    def __init__(self, message: str, path: Path | None = None, line_number: int | None = None):
        self.path = path
        self.line_number = line_number
        where = ""
        if path is not None:
            where = f"{path}"
            if line_number is not None:
                where += f":{line_number}"
            where += ": "
        super().__init__(f"{where}{message}")


class EntryStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class MarkResult(Enum):
    COMPLETED = "completed"
    ALREADY_COMPLETED = "already_completed"


@dataclass
class ProgressEntry:
    id: str
    status: EntryStatus
    line_number: int  # 1-based, in the sanitized document
    description: str = ""

    @property
    def done(self) -> bool:
        return self.status is EntryStatus.COMPLETED


@dataclass
class LogRecord:
    """One line of the completion log."""
    item_id: str
    summary: str
    timestamp: datetime = field(default_factory=datetime.now)

    def format(self) -> str:
        summary = " ".join(self.summary.split())
        return f"- {self.timestamp.isoformat(timespec='seconds')} | {self.item_id} | {summary}"


def parse_lines(lines: list[str], path: Path | None = None) -> list[ProgressEntry]:
    """Parse checklist entries from ledger lines.

    Raises:
        MalformedLedgerError: on a checkbox-like line that doesn't match the
            entry grammar, or on a repeated id
    """
    entries = []
    seen: dict[str, int] = {}

    for lineno, line in enumerate(lines, 1):
        if LOG_HEADING_RE.match(line.strip()):
            break  # completion log is free text

        if not CHECKBOX_START_RE.match(line):
            continue

        match = ENTRY_RE.match(line)
        if not match:
            raise MalformedLedgerError(
                f"Expected '- [ ] ID: description', got {line.strip()!r}", path, lineno
            )

        item_id = match.group("id")
        if item_id in seen:
            raise MalformedLedgerError(
                f"Duplicate id '{item_id}' (first seen on line {seen[item_id]})", path, lineno
            )
        seen[item_id] = lineno

        status = EntryStatus.PENDING if match.group("mark") == " " else EntryStatus.COMPLETED
        entries.append(ProgressEntry(
            id=item_id,
            status=status,
            line_number=lineno,
            description=match.group("description"),
        ))

    return entries


class ProgressLedger:
    """Ordered pending/completed state of every work item, backed by progress.md."""

    def __init__(self, path: Path, lines: list[str], lock_timeout: float = 30):
        self.path = Path(path)
        self.lock_timeout = lock_timeout
        self._lines = lines
        self._entries = parse_lines(lines, self.path)

    @classmethod
    def open(cls, source: Path | str, lock_timeout: float = 30) -> "ProgressLedger":
        """Load and parse the ledger.

        Raises:
            FileNotFoundError: source does not exist
            MalformedLedgerError: unparsable checklist or undecodable bytes
        """
        path = Path(source)
        return cls(path, cls._read_lines(path), lock_timeout=lock_timeout)

    @staticmethod
    def _read_text(path: Path) -> tuple[bytes, str]:
        """Raw bytes and their cleaned text."""
        if not path.exists():
            raise FileNotFoundError(f"Progress file not found: {path}")
        raw = path.read_bytes()
        try:
            return raw, clean_text(decode_text(raw))
        except UnicodeDecodeError as e:
            # e.start is relative to the decoded slice, which excludes a UTF-8 BOM
            offset = e.start + len(raw) - len(e.object)
            raise MalformedLedgerError(
                f"invalid {e.encoding} byte {raw[offset:offset + 1]!r} at offset {offset}", path
            ) from None

    @classmethod
    def _read_lines(cls, path: Path) -> list[str]:
        return cls._read_text(path)[1].splitlines()

    def reload(self) -> None:
        """Re-read the file; picks up edits made outside this process."""
        lines = self._read_lines(self.path)
        self._entries = parse_lines(lines, self.path)
        self._lines = lines

    @property
    def entries(self) -> list[ProgressEntry]:
        return list(self._entries)

    def get(self, item_id: str) -> ProgressEntry:
        for entry in self._entries:
            if entry.id == item_id:
                return entry
        raise UnknownIdError(item_id, "progress ledger")

    def next_pending(self) -> str | None:
        """Id of the first pending entry in document order, or None when all are done."""
        for entry in self._entries:
            if entry.status is EntryStatus.PENDING:
                return entry.id
        return None

    def counts(self) -> tuple[int, int]:
        """Return (completed, pending)."""
        completed = sum(1 for e in self._entries if e.done)
        return completed, len(self._entries) - completed

    def recent_log(self, n: int) -> str:
        """Trailing n lines of the document, for prompt context."""
        if n <= 0:
            return ""
        lines = list(self._lines)
        while lines and not lines[-1].strip():
            lines.pop()
        return "\n".join(lines[-n:])

    def _persist(self, lines: list[str]) -> None:
        atomic_write_text(self.path, "\n".join(lines) + "\n")
        self._entries = parse_lines(lines, self.path)
        self._lines = lines

    def sanitize(self) -> bool:
        """Rewrite progress.md as clean UTF-8 if an agent left it otherwise.

        Runs under the write lock like every other ledger write. Returns True
        when the file was rewritten; the in-memory state is refreshed either way.

        Raises:
            MalformedLedgerError: the file has bytes that are not valid text
            LockTimeout: another writer held the ledger too long
        """
        with file_lock(self.path, self.lock_timeout):
            raw, text = self._read_text(self.path)
            rewritten = text.encode("utf-8") != raw
            if rewritten:
                logger.warning(f"Sanitized {self.path} (encoding, NUL bytes or CR line endings)")
                atomic_write_text(self.path, text)
            lines = text.splitlines()
            self._entries = parse_lines(lines, self.path)
            self._lines = lines
        return rewritten

    def mark_completed(self, item_id: str) -> MarkResult:
        """Flip item_id from pending to completed and durably persist the ledger.

        Calling it again for a completed entry changes nothing and returns
        MarkResult.ALREADY_COMPLETED.

        Raises:
            UnknownIdError: no entry with that id
            LockTimeout: another writer held the ledger too long
        """
        with file_lock(self.path, self.lock_timeout):
            # Another writer may have touched the file since we parsed it
            self.reload()
            entry = self.get(item_id)
            if entry.done:
                logger.info(f"{item_id} already marked complete")
                return MarkResult.ALREADY_COMPLETED

            lines = list(self._lines)
            line = lines[entry.line_number - 1]
            match = ENTRY_RE.match(line)
            lines[entry.line_number - 1] = line[:match.start("mark")] + "x" + line[match.end("mark"):]
            self._persist(lines)

        logger.info(f"Marked {item_id} complete in {self.path.name}")
        return MarkResult.COMPLETED

    def append_log_record(self, record: LogRecord) -> bool:
        """Append a line to the completion log section. Best-effort.

        Returns False (after logging a warning) instead of raising when the
        write fails; status changes never depend on this.
        """
        try:
            with file_lock(self.path, self.lock_timeout):
                self.reload()
                lines = list(self._lines)
                if not any(LOG_HEADING_RE.match(l.strip()) for l in lines):
                    while lines and not lines[-1].strip():
                        lines.pop()
                    lines.extend(["", LOG_SECTION_HEADING, ""])
                lines.append(record.format())
                self._persist(lines)
        except (OSError, LockTimeout, MalformedLedgerError) as e:
            logger.warning(f"Failed to append completion log for {record.item_id}: {e}")
            return False
        return True
