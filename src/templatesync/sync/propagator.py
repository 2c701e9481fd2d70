"""Propagate template frontmatter changes to the documents that use them."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Callable, List, Optional, Protocol

from templatesync.config import TemplatesConfig, is_under_folder
from templatesync.errors import DependentWriteFailed, TemplateConfigError
from templatesync.models import Diff, EventKind, FrontmatterLink, MetaRecord, VaultEvent
from templatesync.sync.differ import diff as compute_diff
from templatesync.sync.locks import KeyedLocks
from templatesync.sync.patcher import apply
from templatesync.sync.snapshots import SnapshotStore

LOGGER = logging.getLogger(__name__)

Mutator = Callable[[MetaRecord], MetaRecord]


class DocumentHost(Protocol):
    """Capabilities the propagator needs from the document store."""

    async def read_template_config(self) -> TemplatesConfig: ...

    def get_metadata(self, doc_id: str) -> Optional[MetaRecord]: ...

    async def get_dependents(self, template_id: str) -> List[str]: ...

    def get_frontmatter_links(self, doc_id: str) -> List[FrontmatterLink]: ...

    def resolve_link(self, link: str, source_id: str) -> Optional[str]: ...

    async def patch_metadata(self, doc_id: str, mutator: Mutator) -> None: ...

    def notify(self, message: str) -> None: ...


@dataclass(slots=True)
class PropagationStats:
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    updated_documents: list[str] = field(default_factory=list)

    def increment(self, status: str, doc_id: str) -> None:
        if status == "updated":
            self.updated += 1
            self.updated_documents.append(doc_id)
        elif status == "skipped":
            self.skipped += 1
        else:
            self.failed += 1


class TemplatePropagator:
    """Reacts to document notifications and keeps dependents in sync."""

    def __init__(
        self,
        host: DocumentHost,
        snapshots: SnapshotStore | None = None,
        *,
        template_field: str = "template",
    ) -> None:
        self.host = host
        self.snapshots = snapshots if snapshots is not None else SnapshotStore()
        self.template_field = template_field
        self._dependent_locks = KeyedLocks()

    async def handle(self, event: VaultEvent) -> Optional[PropagationStats]:
        if event.kind is EventKind.MODIFY:
            await self.on_modify(event.doc_id)
        elif event.kind is EventKind.RENAME:
            await self.on_rename(event.doc_id, event.old_id or event.doc_id)
        elif event.kind is EventKind.DELETE:
            await self.on_delete(event.doc_id)
        elif event.kind is EventKind.METADATA_CHANGED:
            return await self.on_metadata_changed(event.doc_id)
        return None

    async def is_template(self, doc_id: str) -> bool:
        config = await self.host.read_template_config()
        return is_under_folder(doc_id, config.folder)

    async def _qualifies(self, doc_id: str) -> Optional[bool]:
        """Like :meth:`is_template` but returns None when it cannot be decided."""
        try:
            return await self.is_template(doc_id)
        except TemplateConfigError as exc:
            LOGGER.warning("Cannot tell whether %s is a template: %s", doc_id, exc)
            return None

    async def on_modify(self, doc_id: str) -> None:
        """Remember the frontmatter as it was before the pending metadata change."""
        current = self.host.get_metadata(doc_id)
        if not await self._qualifies(doc_id):
            return
        if not current:
            return
        self.snapshots.put(doc_id, current)
        LOGGER.debug("Captured snapshot for %s", doc_id)

    async def on_rename(self, doc_id: str, old_id: str) -> None:
        if old_id not in self.snapshots:
            return
        if await self._qualifies(doc_id):
            self.snapshots.move(old_id, doc_id)
        else:
            self.snapshots.remove(old_id)

    async def on_delete(self, doc_id: str) -> None:
        self.snapshots.remove(doc_id)

    async def on_metadata_changed(self, doc_id: str) -> PropagationStats:
        # Both sides are read before the first await so a concurrent
        # modify of the same template cannot replace the baseline.
        old = self.snapshots.get(doc_id)
        new = self.host.get_metadata(doc_id)

        if not await self._qualifies(doc_id):
            return PropagationStats()
        if old is None or new is None:
            LOGGER.debug("No baseline for %s, nothing to propagate", doc_id)
            return PropagationStats()

        change = compute_diff(old, new)
        if change.is_empty():
            return PropagationStats()

        LOGGER.debug("Frontmatter diff for %s: %s", doc_id, change.to_python())
        stats = await self.propagate(doc_id, change)
        if stats.updated:
            self.host.notify(
                f"Updated {stats.updated} file(s) linked to {PurePosixPath(doc_id).stem}"
            )
        return stats

    def links_to_template(self, dependent_id: str, template_id: str) -> bool:
        return any(
            link.key == self.template_field
            and self.host.resolve_link(link.link, dependent_id) == template_id
            for link in self.host.get_frontmatter_links(dependent_id)
        )

    async def propagate(self, template_id: str, change: Diff) -> PropagationStats:
        """Apply ``change`` to every document whose template field points at ``template_id``."""
        stats = PropagationStats()
        dependents = await self.host.get_dependents(template_id)

        for dependent_id in dependents:
            try:
                if dependent_id == template_id or not self.links_to_template(dependent_id, template_id):
                    stats.increment("skipped", dependent_id)
                    continue
                async with self._dependent_locks.hold(dependent_id):
                    await self.host.patch_metadata(
                        dependent_id, lambda record: apply(record, change)
                    )
            except DependentWriteFailed as exc:
                LOGGER.warning("Skipping %s: %s", dependent_id, exc)
                stats.increment("failed", dependent_id)
                continue
            except Exception:
                LOGGER.exception("Unexpected error while updating %s", dependent_id)
                stats.increment("failed", dependent_id)
                continue

            stats.increment("updated", dependent_id)

        LOGGER.info(
            "Propagated %s: updated %d, skipped %d, failed %d",
            template_id,
            stats.updated,
            stats.skipped,
            stats.failed,
        )
        return stats
