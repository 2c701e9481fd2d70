"""Shared fixtures."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from templatesync.config import TemplatesConfig
from templatesync.errors import ConfigUnavailable, DependentWriteFailed
from templatesync.models import FrontmatterLink, MetaRecord, from_python, to_python
from templatesync.vault.links import extract_frontmatter_links, resolve_link


class FakeHost:
    """In-memory document host keyed by document id."""

    def __init__(self, folder: Optional[str] = "Templates") -> None:
        self.folder = folder
        self.documents: Dict[str, dict] = {}
        self.notices: List[str] = []
        self.failing: set[str] = set()
        self.patched: List[str] = []

    def add(self, doc_id: str, frontmatter: Optional[dict]) -> None:
        self.documents[doc_id] = frontmatter

    async def read_template_config(self) -> TemplatesConfig:
        if self.folder is None:
            raise ConfigUnavailable("templates feature disabled")
        return TemplatesConfig(folder=self.folder)

    def get_metadata(self, doc_id: str) -> Optional[MetaRecord]:
        data = self.documents.get(doc_id)
        return from_python(data) if data is not None else None

    async def get_dependents(self, template_id: str) -> List[str]:
        return [doc_id for doc_id in self.documents if doc_id != template_id]

    def get_frontmatter_links(self, doc_id: str) -> List[FrontmatterLink]:
        return extract_frontmatter_links(self.documents.get(doc_id) or {})

    def resolve_link(self, link: str, source_id: str) -> Optional[str]:
        return resolve_link(link, source_id, self.documents.keys())

    async def patch_metadata(self, doc_id, mutator) -> None:
        if doc_id in self.failing:
            raise DependentWriteFailed(doc_id, "disk full")
        record = from_python(self.documents.get(doc_id) or {})
        self.documents[doc_id] = to_python(mutator(record))
        self.patched.append(doc_id)

    def notify(self, message: str) -> None:
        self.notices.append(message)


@pytest.fixture
def host() -> FakeHost:
    return FakeHost()


def write_note(root: Path, doc_id: str, text: str) -> Path:
    path = root / doc_id
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture
def vault_root(tmp_path: Path) -> Path:
    """A vault with a template folder configured and one template."""
    root = tmp_path / "vault"
    (root / ".obsidian").mkdir(parents=True)
    (root / ".obsidian" / "templates.json").write_text(json.dumps({"folder": "Templates"}))
    write_note(root, "Templates/Book.md", "---\nstatus: unread\nrating: 0\n---\n# Book\n")
    write_note(
        root,
        "Reading/Dune.md",
        '---\ntemplate: "[[Book]]"\nstatus: reading\nrating: 0\n---\nGreat so far.\n',
    )
    write_note(root, "Reading/Notes.md", "See [[Book]] for the layout.\n")
    return root
