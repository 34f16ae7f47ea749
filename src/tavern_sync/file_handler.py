"""File handler module: path containment, encoding-aware read/write.

Provides the file I/O used by the local store and the character layout.
All functions are synchronous; callers on the event loop go through
``run_sync()``.
"""

from pathlib import Path

from charset_normalizer import from_bytes

# =============================================================================
# Path Validation
# =============================================================================


def resolve_safe_path(base_dir: Path, user_input: str) -> Path:
    """Join a remote- or user-supplied name onto *base_dir* safely.

    Book and character names come from the remote server and end up as
    directory names; they must not escape the project root.

    Args:
        base_dir: Directory the result must stay under.
        user_input: Relative name to append.

    Returns:
        Resolved path under *base_dir*.

    Raises:
        ValueError: If the name is empty, contains a null byte, is absolute,
            or resolves outside *base_dir*.
    """
    if not user_input or not user_input.strip():
        raise ValueError("Path name cannot be empty")
    if "\x00" in user_input:
        raise ValueError(f"Path name contains a null byte: {user_input!r}")
    candidate = Path(user_input)
    if candidate.is_absolute():
        raise ValueError(f"Path name must be relative: {user_input}")

    base_resolved = base_dir.resolve()
    resolved = (base_resolved / candidate).resolve()
    if resolved == base_resolved or not resolved.is_relative_to(
        base_resolved
    ):
        raise ValueError(
            f"Path escapes base directory: {user_input} not under {base_resolved}"
        )
    return resolved


# =============================================================================
# File Read/Write
# =============================================================================


def read_file_with_encoding(path: Path) -> tuple[str, str]:
    """Read a file with automatic encoding detection.

    Reads raw bytes first, then uses charset-normalizer to detect encoding.
    Defaults to UTF-8 for empty files, for files that decode as UTF-8, and
    when detection fails.

    Args:
        path: Path to the file to read.

    Returns:
        Tuple of (content_string, detected_encoding).
    """
    raw = path.read_bytes()
    if not raw:
        return ("", "utf-8")

    # Short UTF-8 files are easily misdetected; trust a clean decode.
    try:
        return (raw.decode("utf-8"), "utf-8")
    except UnicodeDecodeError:
        pass

    result = from_bytes(raw).best()
    if result is None:
        encoding = "utf-8"
        content = raw.decode(encoding, errors="replace")
    else:
        encoding = result.encoding
        if encoding == "ascii":
            encoding = "utf-8"
        content = str(result)
    return (content, encoding)


def write_file(
    path: Path, content: str, encoding: str = "utf-8"
) -> int:
    """Write content to a file, creating parent directories as needed.

    Args:
        path: Path to the output file.
        content: String content to write.
        encoding: Encoding to use (default: utf-8).

    Returns:
        Number of bytes written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    encoded = content.encode(encoding)
    path.write_bytes(encoded)
    return len(encoded)


def write_bytes(path: Path, data: bytes) -> int:
    """Write binary data (avatar images), creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return len(data)
