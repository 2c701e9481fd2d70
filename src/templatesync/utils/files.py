"""Utility helpers for working with files."""

from __future__ import annotations

import hashlib
import os
import tempfile
from pathlib import Path
from typing import Iterator


def is_markdown_note(root: Path, path: Path) -> bool:
    """True for a ``.md`` path under ``root`` that is not inside a dot-directory."""
    if path.suffix != ".md":
        return False
    try:
        relative = path.relative_to(root)
    except ValueError:
        return False
    return not any(part.startswith(".") for part in relative.parts[:-1])


def iter_markdown_paths(root: Path) -> Iterator[Path]:
    """Yield markdown files under ``root``, skipping dot-directories."""
    for path in sorted(root.rglob("*.md")):
        if is_markdown_note(root, path) and path.is_file():
            yield path


def compute_sha256(path: Path) -> str:
    """Compute SHA256 hash for a file."""
    sha = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1 << 20), b""):
            sha.update(chunk)
    return sha.hexdigest()


def atomic_write_text(path: Path, text: str) -> None:
    """Write ``text`` next to ``path`` and move it into place.

    Line endings in ``text`` are written unchanged.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        "w",
        delete=False,
        encoding="utf-8",
        newline="",
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp",
    ) as tmp:
        tmp.write(text)
        tmp.flush()
        os.fsync(tmp.fileno())
        tmp_path = Path(tmp.name)
    try:
        os.replace(tmp_path, path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise
