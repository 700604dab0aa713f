"""Tests for ralphloop.lib.sanitize module."""

import codecs

import pytest

from ralphloop.lib.sanitize import atomic_write_text, clean_text, decode_text


class TestDecodeText:
    """Tests for decode_text function."""

    def test_plain_utf8(self):
        assert decode_text("héllo".encode("utf-8")) == "héllo"

    def test_utf8_bom_dropped(self):
        assert decode_text(codecs.BOM_UTF8 + b"abc") == "abc"

    def test_utf16_le_and_be(self):
        assert decode_text("- [ ] a: x".encode("utf-16")) == "- [ ] a: x"
        assert decode_text(codecs.BOM_UTF16_BE + "ok".encode("utf-16-be")) == "ok"

    def test_invalid_bytes_rejected(self):
        with pytest.raises(UnicodeDecodeError):
            decode_text(b"- [ ] a: Caf\xe9 topic\n")


class TestCleanText:
    """Tests for clean_text function."""

    def test_strips_nul(self):
        assert clean_text("a\x00b") == "ab"

    def test_normalises_line_endings(self):
        assert clean_text("a\r\nb\rc\n") == "a\nb\nc\n"


class TestAtomicWrite:
    """Tests for atomic_write_text function."""

    def test_replaces_content(self, tmp_path):
        path = tmp_path / "progress.md"
        path.write_text("old\n")
        atomic_write_text(path, "new\n")
        assert path.read_text() == "new\n"
        assert sorted(p.name for p in tmp_path.iterdir()) == ["progress.md"]

    def test_cleans_up_temp_file_on_error(self, tmp_path, monkeypatch):
        path = tmp_path / "progress.md"
        path.write_text("old\n")

        def fail(*args):
            raise OSError("boom")

        monkeypatch.setattr("ralphloop.lib.sanitize.os.replace", fail)
        with pytest.raises(OSError):
            atomic_write_text(path, "new\n")
        assert path.read_text() == "old\n"
        assert sorted(p.name for p in tmp_path.iterdir()) == ["progress.md"]

