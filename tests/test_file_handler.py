"""Tests for file_handler: path containment and encoding-aware I/O."""

import pytest

from tavern_sync.file_handler import (
    read_file_with_encoding,
    resolve_safe_path,
    write_bytes,
    write_file,
)

# =============================================================================
# resolve_safe_path
# =============================================================================


class TestResolveSafePath:
    """Names from remote data must stay under the base directory."""

    def test_simple_name(self, tmp_path):
        assert resolve_safe_path(tmp_path, "Alice Lore") == (
            tmp_path.resolve() / "Alice Lore"
        )

    def test_nested_name(self, tmp_path):
        assert resolve_safe_path(tmp_path, "a/b") == tmp_path.resolve() / "a" / "b"

    def test_traversal_rejected(self, tmp_path):
        with pytest.raises(ValueError, match="escapes"):
            resolve_safe_path(tmp_path, "../outside")

    def test_base_itself_rejected(self, tmp_path):
        with pytest.raises(ValueError, match="escapes"):
            resolve_safe_path(tmp_path, ".")

    def test_absolute_rejected(self, tmp_path):
        with pytest.raises(ValueError, match="relative"):
            resolve_safe_path(tmp_path, "/etc/passwd")

    def test_null_byte_rejected(self, tmp_path):
        with pytest.raises(ValueError, match="null byte"):
            resolve_safe_path(tmp_path, "bad\x00name")

    def test_empty_rejected(self, tmp_path):
        with pytest.raises(ValueError, match="empty"):
            resolve_safe_path(tmp_path, "  ")


# =============================================================================
# read_file_with_encoding
# =============================================================================


class TestReadFileWithEncoding:
    def test_utf8_file(self, tmp_path):
        f = tmp_path / "utf8.yaml"
        f.write_bytes("content: 龍の国 café\n".encode("utf-8"))
        content, encoding = read_file_with_encoding(f)
        assert content == "content: 龍の国 café\n"
        assert encoding == "utf-8"

    def test_empty_file(self, tmp_path):
        f = tmp_path / "empty.yaml"
        f.write_bytes(b"")
        assert read_file_with_encoding(f) == ("", "utf-8")

    def test_non_utf8_file(self, tmp_path):
        """Non-UTF-8 file detects encoding and returns decoded content."""
        f = tmp_path / "latin1.md"
        text = "Café résumé naïve üöä"
        f.write_bytes(text.encode("latin-1"))
        content, encoding = read_file_with_encoding(f)
        assert "Caf" in content
        assert isinstance(encoding, str)


# =============================================================================
# write_file / write_bytes
# =============================================================================


class TestWriteFile:
    def test_write_basic(self, tmp_path):
        f = tmp_path / "out.md"
        count = write_file(f, "Hello, wörld!")
        assert f.read_text(encoding="utf-8") == "Hello, wörld!"
        assert count == len("Hello, wörld!".encode("utf-8"))

    def test_creates_parent_directories(self, tmp_path):
        f = tmp_path / "entries" / "deep" / "x.yaml"
        write_file(f, "content: x\n")
        assert f.is_file()

    def test_write_bytes(self, tmp_path):
        f = tmp_path / "char" / "card.png"
        assert write_bytes(f, b"\x89PNG") == 4
        assert f.read_bytes() == b"\x89PNG"
