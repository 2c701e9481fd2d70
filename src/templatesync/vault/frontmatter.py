"""Reading and writing the YAML frontmatter block of markdown notes."""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

import yaml

from templatesync.errors import FrontmatterError

DELIMITER = "---"


def split_frontmatter(raw: str) -> Tuple[Optional[Dict[str, Any]], str]:
    """Return ``(frontmatter, body)``.

    ``frontmatter`` is None when the note has no frontmatter block.  A block
    that is not valid YAML, or not a mapping, raises :class:`FrontmatterError`.
    """
    raw = raw.lstrip("\ufeff")
    lines = raw.splitlines(keepends=True)
    if not lines or lines[0].rstrip("\r\n") != DELIMITER:
        return None, raw

    for index in range(1, len(lines)):
        if lines[index].rstrip("\r\n") == DELIMITER:
            yaml_text = "".join(lines[1:index])
            body = "".join(lines[index + 1 :])
            break
    else:
        # unterminated block is plain text
        return None, raw

    try:
        data = yaml.safe_load(yaml_text)
    except yaml.YAMLError as exc:
        raise FrontmatterError(f"Invalid YAML frontmatter: {exc}") from exc

    if data is None:
        return {}, body
    if not isinstance(data, dict):
        raise FrontmatterError(f"Frontmatter is a {type(data).__name__}, expected a mapping")
    return data, body


def detect_newline(raw: str) -> str:
    """Line ending used by the first line of ``raw``."""
    first = raw.split("\n", 1)[0]
    return "\r\n" if "\n" in raw and first.endswith("\r") else "\n"


def render_frontmatter(data: Dict[str, Any], body: str, newline: str = "\n") -> str:
    """Join a frontmatter mapping and a body back into note text.

    ``newline`` is used for the frontmatter block only; ``body`` is kept as is.
    """
    if not data:
        return body
    dumped = yaml.safe_dump(
        data, sort_keys=False, allow_unicode=True, default_flow_style=False, line_break=newline
    )
    return f"{DELIMITER}{newline}{dumped}{DELIMITER}{newline}{body}"
