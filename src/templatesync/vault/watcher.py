"""Filesystem watcher that turns file changes into vault events."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from watchfiles import Change, DefaultFilter, awatch

from templatesync.models import VaultEvent
from templatesync.sync.dispatcher import EventDispatcher
from templatesync.utils.files import is_markdown_note
from templatesync.vault.store import FileVault

LOGGER = logging.getLogger(__name__)

FileChange = Tuple[Change, str]


class MarkdownFilter(DefaultFilter):
    """Passes changes to markdown notes outside dot-directories."""

    def __init__(self, root: Path) -> None:
        super().__init__()
        self.root = Path(root)

    def __call__(self, change: Change, path: str) -> bool:
        return super().__call__(change, path) and is_markdown_note(self.root, Path(path))


class VaultWatcher:
    """Watches a :class:`FileVault` and submits events for its changes.

    For an edited note the ``modify`` event is handled while the cache still
    holds the previous frontmatter; only then is the note re-parsed and
    ``metadata-changed`` submitted.
    """

    def __init__(
        self,
        vault: FileVault,
        dispatcher: EventDispatcher,
        *,
        debounce_ms: int = 1600,
        force_polling: bool = False,
    ) -> None:
        self.vault = vault
        self.dispatcher = dispatcher
        self.debounce_ms = debounce_ms
        self.force_polling = force_polling

    async def poll(self, batch: Iterable[FileChange]) -> List[VaultEvent]:
        """Handle one batch of raw changes; returns the submitted events."""
        paths = [path for _, path in batch]
        changes = await asyncio.to_thread(self.vault.classify, paths)
        if not changes:
            return []

        events: List[VaultEvent] = []

        def submit(event: VaultEvent) -> asyncio.Future:
            events.append(event)
            return self.dispatcher.submit(event)

        for old_id, new_id in changes.renamed:
            self.vault.move(old_id, new_id)
            submit(VaultEvent.rename(new_id, old_id))

        for doc_id in changes.deleted:
            self.vault.forget(doc_id)
            submit(VaultEvent.delete(doc_id))

        if changes.modified:
            pending = [submit(VaultEvent.modify(doc_id)) for doc_id in changes.modified]
            await asyncio.gather(*pending)
            for doc_id in changes.modified:
                await asyncio.to_thread(self.vault.refresh, doc_id)
                submit(VaultEvent.metadata_changed(doc_id))

        for doc_id in changes.created:
            await asyncio.to_thread(self.vault.refresh, doc_id)
            submit(VaultEvent.metadata_changed(doc_id))

        LOGGER.debug("Submitted %d events", len(events))
        return events

    async def run(self, stop: Optional[asyncio.Event] = None) -> None:
        """Watch the vault root until ``stop`` is set."""
        stop = stop or asyncio.Event()
        async for batch in awatch(
            self.vault.root,
            watch_filter=MarkdownFilter(self.vault.root),
            debounce=self.debounce_ms,
            stop_event=stop,
            force_polling=self.force_polling,
        ):
            try:
                await self.poll(batch)
            except OSError as exc:
                LOGGER.error("Failed to process changes in %s: %s", self.vault.root, exc)
