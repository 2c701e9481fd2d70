"""Link extraction and resolution for markdown notes."""

from __future__ import annotations

import posixpath
import re
from pathlib import PurePosixPath
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import unquote

from templatesync.models import FrontmatterLink

WIKILINK_PATTERN = re.compile(r"\[\[([^\]|#]*)(?:#[^\]|]*)?(?:\|[^\]]*)?\]\]")
MARKDOWN_LINK_PATTERN = re.compile(r"\[[^\]]*\]\(<?([^)<>#]+?)>?(?:#[^)]*)?\)")


def extract_wikilinks(text: str) -> List[str]:
    return [m.group(1).strip() for m in WIKILINK_PATTERN.finditer(text) if m.group(1).strip()]


def extract_body_links(body: str) -> List[str]:
    """Wikilinks and relative markdown links found in the note body."""
    links = extract_wikilinks(body)
    for match in MARKDOWN_LINK_PATTERN.finditer(body):
        target = match.group(1).strip()
        if target and "://" not in target and not target.startswith("mailto:"):
            links.append(unquote(target))
    return links


def extract_frontmatter_links(data: Dict[str, Any]) -> List[FrontmatterLink]:
    """Collect wikilinks in frontmatter values, keyed by their property path.

    A top-level ``template: "[[Book]]"`` yields key ``template``; list items
    get their index appended (``related.0``) and nested mappings their key.
    """
    links: List[FrontmatterLink] = []
    for key, value in data.items():
        _collect(str(key), value, links)
    return links


def _collect(key: str, value: Any, links: List[FrontmatterLink]) -> None:
    if isinstance(value, str):
        links.extend(FrontmatterLink(key=key, link=link) for link in extract_wikilinks(value))
    elif isinstance(value, list):
        for index, item in enumerate(value):
            _collect(f"{key}.{index}", item, links)
    elif isinstance(value, dict):
        for child_key, child in value.items():
            _collect(f"{key}.{child_key}", child, links)


class LinkIndex:
    """Case-insensitive lookup tables over a set of note ids."""

    def __init__(self, doc_ids: Iterable[str]) -> None:
        self.by_key: Dict[str, str] = {}
        self.by_name: Dict[str, List[str]] = {}
        for doc_id in doc_ids:
            self.by_key[doc_id.casefold()] = doc_id
            self.by_name.setdefault(PurePosixPath(doc_id).name.casefold(), []).append(doc_id)

    def resolve(self, link: str, source_id: str) -> Optional[str]:
        """Find the note a link points to, the way Obsidian picks the first match.

        Paths are tried relative to the source note, then from the vault root;
        otherwise the note name is matched against every note, preferring one in
        the source's folder and then the one closest to the root.
        """
        target = link.split("#", 1)[0].split("|", 1)[0].strip()
        if not target:
            return None
        if not target.lower().endswith(".md"):
            target += ".md"

        source_dir = PurePosixPath(source_id).parent
        candidates = self.by_name.get(PurePosixPath(target).name.casefold(), [])

        if "/" in target:
            for candidate in (str(source_dir / target), target.lstrip("/")):
                normalized = posixpath.normpath(candidate)
                if normalized.startswith(".."):
                    continue
                found = self.by_key.get(normalized.casefold())
                if found is not None:
                    return found
            suffix = "/" + target.lstrip("/").casefold()
            matches = [doc_id for doc_id in candidates if ("/" + doc_id.casefold()).endswith(suffix)]
        else:
            matches = candidates

        if not matches:
            return None
        same_folder = sorted(doc_id for doc_id in matches if PurePosixPath(doc_id).parent == source_dir)
        if same_folder:
            return same_folder[0]
        return min(matches, key=lambda doc_id: (len(PurePosixPath(doc_id).parts), doc_id))


def resolve_link(link: str, source_id: str, doc_ids: Iterable[str]) -> Optional[str]:
    """One-off :meth:`LinkIndex.resolve` over ``doc_ids``."""
    return LinkIndex(doc_ids).resolve(link, source_id)
