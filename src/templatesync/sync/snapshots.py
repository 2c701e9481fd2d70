"""In-memory store of the last observed frontmatter per template."""

from __future__ import annotations

from typing import Dict, Optional

from templatesync.models import MetaRecord


class SnapshotStore:
    """Baseline records the differ compares new frontmatter against.

    Nothing is persisted: after a restart the store is empty and is filled
    again as templates are modified.
    """

    def __init__(self) -> None:
        self._snapshots: Dict[str, MetaRecord] = {}

    def __len__(self) -> int:
        return len(self._snapshots)

    def __contains__(self, doc_id: object) -> bool:
        return doc_id in self._snapshots

    def get(self, doc_id: str) -> Optional[MetaRecord]:
        return self._snapshots.get(doc_id)

    def put(self, doc_id: str, record: MetaRecord) -> None:
        self._snapshots[doc_id] = record.clone()

    def move(self, old_id: str, new_id: str) -> None:
        if old_id not in self._snapshots:
            return
        self._snapshots[new_id] = self._snapshots.pop(old_id)

    def remove(self, doc_id: str) -> None:
        self._snapshots.pop(doc_id, None)

    def clear(self) -> None:
        self._snapshots.clear()
