"""
Text sanitization for files the agent may have rewritten.

Agents occasionally save progress.md as UTF-16 or leave NUL bytes and
carriage returns behind, which breaks line matching. Decoding is strict:
bytes that are not valid text raise UnicodeDecodeError rather than being
replaced, so cleaning a file never loses data.
"""

import codecs
import os
import tempfile
from pathlib import Path

__all__ = ["decode_text", "clean_text", "atomic_write_text"]


def decode_text(data: bytes) -> str:
    """Decode file bytes, honouring UTF-16/UTF-8 BOMs. Raises UnicodeDecodeError."""
    if data.startswith(codecs.BOM_UTF16_LE) or data.startswith(codecs.BOM_UTF16_BE):
        return data.decode("utf-16")
    if data.startswith(codecs.BOM_UTF8):
        data = data[len(codecs.BOM_UTF8):]
    return data.decode("utf-8")


def clean_text(text: str) -> str:
    """Strip NUL characters and normalise line endings."""
    return text.replace("\x00", "").replace("\r\n", "\n").replace("\r", "\n")


def atomic_write_text(path: Path, content: str) -> None:
    """Write content to path so readers see either the old or the new file.

    Writes a temp file in the same directory, fsyncs it, then os.replace()s it
    over the target.
    """
    path = Path(path)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise

