"""A vault of markdown notes on disk, acting as the propagator's host."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from templatesync.config import AppConfig, TemplatesConfig, load_templates_config
from templatesync.errors import DependentWriteFailed, FrontmatterError
from templatesync.models import (
    FrontmatterLink,
    MetaRecord,
    NoteCache,
    record_from_python,
    to_python,
)
from templatesync.sync.propagator import Mutator
from templatesync.utils.files import (
    atomic_write_text,
    compute_sha256,
    is_markdown_note,
    iter_markdown_paths,
)
from templatesync.vault.frontmatter import detect_newline, render_frontmatter, split_frontmatter
from templatesync.vault.links import LinkIndex, extract_body_links, extract_frontmatter_links

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class VaultChanges:
    created: list[str] = field(default_factory=list)
    modified: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    renamed: list[Tuple[str, str]] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.created or self.modified or self.deleted or self.renamed)


def _default_notifier(message: str) -> None:
    LOGGER.info(message)


class FileVault:
    """Markdown notes under ``root`` with a cache of their parsed frontmatter."""

    def __init__(
        self,
        root: Path,
        *,
        config: AppConfig | None = None,
        notifier: Callable[[str], None] | None = None,
    ) -> None:
        self.root = Path(root)
        self.config = config or AppConfig()
        self.notifier = notifier or _default_notifier
        self.notes: Dict[str, NoteCache] = {}
        self._link_index: Optional[LinkIndex] = None

    def doc_id(self, path: Path) -> str:
        return Path(path).relative_to(self.root).as_posix()

    def path_for(self, doc_id: str) -> Path:
        return self.root / doc_id

    @property
    def link_index(self) -> LinkIndex:
        """Lookup tables over the cached note ids, rebuilt when the set changes."""
        if self._link_index is None:
            self._link_index = LinkIndex(self.notes)
        return self._link_index

    def scan(self) -> int:
        """Parse every note in the vault, replacing the cache."""
        self.notes = {}
        self._link_index = None
        for path in iter_markdown_paths(self.root):
            self.refresh(self.doc_id(path))
        LOGGER.info("Loaded %d notes from %s", len(self.notes), self.root)
        return len(self.notes)

    def refresh(self, doc_id: str) -> Optional[NoteCache]:
        """Re-read one note from disk into the cache."""
        path = self.path_for(doc_id)
        try:
            raw = path.read_text(encoding="utf-8", errors="replace")
            sha256 = compute_sha256(path)
        except OSError as exc:
            LOGGER.warning("Failed to read %s: %s", path, exc)
            self.forget(doc_id)
            return None

        try:
            data, body = split_frontmatter(raw)
            frontmatter = record_from_python(data) if data is not None else None
        except (FrontmatterError, TypeError) as exc:
            LOGGER.warning("Ignoring frontmatter of %s: %s", doc_id, exc)
            data, body, frontmatter = None, raw, None

        note = NoteCache(
            doc_id=doc_id,
            frontmatter=frontmatter,
            frontmatter_links=extract_frontmatter_links(data) if data else [],
            links=extract_body_links(body),
            sha256=sha256,
        )
        note.links.extend(link.link for link in note.frontmatter_links)
        if doc_id not in self.notes:
            self._link_index = None
        self.notes[doc_id] = note
        return note

    def forget(self, doc_id: str) -> None:
        if self.notes.pop(doc_id, None) is not None:
            self._link_index = None

    def move(self, old_id: str, new_id: str) -> None:
        note = self.notes.pop(old_id, None)
        if note is not None:
            note.doc_id = new_id
            self.notes[new_id] = note
            self._link_index = None

    def classify(self, paths: Iterable[Path | str]) -> VaultChanges:
        """Sort changed paths into created, modified, deleted and renamed notes.

        Each path is judged by whether it exists now and whether it is cached.
        A deleted note and a created one with the same sha256 are a rename.
        The cache is not updated.
        """
        changed = sorted(
            {self.doc_id(Path(path)) for path in paths if is_markdown_note(self.root, Path(path))}
        )
        changes = VaultChanges()
        for doc_id in changed:
            exists = self.path_for(doc_id).is_file()
            if doc_id in self.notes:
                (changes.modified if exists else changes.deleted).append(doc_id)
            elif exists:
                changes.created.append(doc_id)

        if changes.deleted and changes.created:
            self._pair_renames(changes)
        return changes

    def _pair_renames(self, changes: VaultChanges) -> None:
        created_hashes: Dict[str, str] = {}
        for doc_id in changes.created:
            try:
                created_hashes.setdefault(compute_sha256(self.path_for(doc_id)), doc_id)
            except OSError as exc:
                LOGGER.warning("Failed to hash %s: %s", doc_id, exc)
        for old_id in list(changes.deleted):
            new_id = created_hashes.pop(self.notes[old_id].sha256, None)
            if new_id is not None:
                changes.renamed.append((old_id, new_id))
                changes.created.remove(new_id)
                changes.deleted.remove(old_id)

    # Host capabilities used by TemplatePropagator

    async def read_template_config(self) -> TemplatesConfig:
        path = self.config.resolve_templates_config_path(self.root)
        return await asyncio.to_thread(load_templates_config, path)

    def get_metadata(self, doc_id: str) -> Optional[MetaRecord]:
        note = self.notes.get(doc_id)
        if note is None or note.frontmatter is None:
            return None
        return note.frontmatter.clone()

    async def get_dependents(self, template_id: str) -> List[str]:
        """Notes with any link that resolves to ``template_id``."""
        index = self.link_index
        dependents = []
        for doc_id, note in self.notes.items():
            if doc_id == template_id:
                continue
            if any(index.resolve(link, doc_id) == template_id for link in note.links):
                dependents.append(doc_id)
        return dependents

    def get_frontmatter_links(self, doc_id: str) -> List[FrontmatterLink]:
        note = self.notes.get(doc_id)
        return list(note.frontmatter_links) if note is not None else []

    def resolve_link(self, link: str, source_id: str) -> Optional[str]:
        return self.link_index.resolve(link, source_id)

    async def patch_metadata(self, doc_id: str, mutator: Mutator) -> None:
        await asyncio.to_thread(self._patch_metadata, doc_id, mutator)

    def _patch_metadata(self, doc_id: str, mutator: Mutator) -> None:
        path = self.path_for(doc_id)
        try:
            raw = path.read_bytes().decode("utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise DependentWriteFailed(doc_id, f"cannot read note: {exc}") from exc

        try:
            data, body = split_frontmatter(raw)
            record = record_from_python(data or {})
        except (FrontmatterError, TypeError) as exc:
            raise DependentWriteFailed(doc_id, str(exc)) from exc

        result = mutator(record)
        text = render_frontmatter(to_python(result), body, detect_newline(raw))
        try:
            atomic_write_text(path, text)
        except OSError as exc:
            raise DependentWriteFailed(doc_id, f"cannot write note: {exc}") from exc
        LOGGER.debug("Wrote frontmatter of %s", doc_id)

    def notify(self, message: str) -> None:
        self.notifier(message)
