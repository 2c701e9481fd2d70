"""Tests for TemplatePropagator."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from templatesync.models import VaultEvent, from_python
from templatesync.sync.differ import diff
from templatesync.sync.propagator import PropagationStats, TemplatePropagator
from templatesync.sync.snapshots import SnapshotStore


class TestPropagationStats:
    """Test PropagationStats tracking."""

    def test_init_defaults(self) -> None:
        stats = PropagationStats()
        assert (stats.updated, stats.skipped, stats.failed) == (0, 0, 0)
        assert stats.updated_documents == []

    def test_increment(self) -> None:
        stats = PropagationStats()

        stats.increment("updated", "a.md")
        stats.increment("skipped", "b.md")
        stats.increment("failed", "c.md")
        stats.increment("unknown", "d.md")

        assert stats.updated == 1
        assert stats.skipped == 1
        assert stats.failed == 2
        assert stats.updated_documents == ["a.md"]


class TestSnapshotHandlers:
    """Test modify/rename/delete handling."""

    def test_modify_captures_template_snapshot(self, host) -> None:
        host.add("Templates/Book.md", {"status": "unread"})
        propagator = TemplatePropagator(host)

        asyncio.run(propagator.on_modify("Templates/Book.md"))

        assert propagator.snapshots.get("Templates/Book.md") == from_python({"status": "unread"})

    def test_modify_ignores_non_templates(self, host) -> None:
        host.add("Dune.md", {"status": "unread"})
        propagator = TemplatePropagator(host)

        asyncio.run(propagator.on_modify("Dune.md"))

        assert len(propagator.snapshots) == 0

    @pytest.mark.parametrize("frontmatter", [None, {}])
    def test_modify_ignores_empty_frontmatter(self, host, frontmatter) -> None:
        host.add("Templates/Book.md", frontmatter)
        propagator = TemplatePropagator(host)

        asyncio.run(propagator.on_modify("Templates/Book.md"))

        assert len(propagator.snapshots) == 0

    def test_modify_with_config_error_is_skipped(self, host) -> None:
        host.folder = None
        host.add("Templates/Book.md", {"status": "unread"})
        propagator = TemplatePropagator(host)

        asyncio.run(propagator.on_modify("Templates/Book.md"))

        assert len(propagator.snapshots) == 0

    def test_rename_within_templates_moves_snapshot(self, host) -> None:
        propagator = TemplatePropagator(host)
        propagator.snapshots.put("Templates/Book.md", from_python({"x": 1}))

        asyncio.run(propagator.on_rename("Templates/Novel.md", "Templates/Book.md"))

        assert propagator.snapshots.get("Templates/Book.md") is None
        assert propagator.snapshots.get("Templates/Novel.md") == from_python({"x": 1})

    def test_rename_out_of_templates_drops_snapshot(self, host) -> None:
        propagator = TemplatePropagator(host)
        propagator.snapshots.put("Templates/Book.md", from_python({"x": 1}))

        asyncio.run(propagator.on_rename("Archive/Book.md", "Templates/Book.md"))

        assert len(propagator.snapshots) == 0

    def test_delete_removes_snapshot(self, host) -> None:
        propagator = TemplatePropagator(host)
        propagator.snapshots.put("Templates/Book.md", from_python({"x": 1}))

        asyncio.run(propagator.on_delete("Templates/Book.md"))

        assert len(propagator.snapshots) == 0

    def test_handle_dispatches_by_kind(self, host) -> None:
        host.add("Templates/Book.md", {"x": 1})
        propagator = TemplatePropagator(host)

        asyncio.run(propagator.handle(VaultEvent.modify("Templates/Book.md")))
        asyncio.run(propagator.handle(VaultEvent.rename("Templates/Novel.md", "Templates/Book.md")))
        assert "Templates/Novel.md" in propagator.snapshots

        asyncio.run(propagator.handle(VaultEvent.delete("Templates/Novel.md")))
        assert len(propagator.snapshots) == 0

    def test_uses_given_snapshot_store(self, host) -> None:
        snapshots = SnapshotStore()
        host.add("Templates/Book.md", {"x": 1})
        propagator = TemplatePropagator(host, snapshots)

        asyncio.run(propagator.on_modify("Templates/Book.md"))

        assert propagator.snapshots is snapshots
        assert "Templates/Book.md" in snapshots


class TestMetadataChanged:
    """Test propagation on metadata change."""

    def test_end_to_end(self, host) -> None:
        """The changed field reaches the dependent and custom fields stay."""
        host.add("Templates/T.md", {"template_field": "B"})
        host.add("D.md", {"template": "[[T]]", "template_field": "A", "custom": "keep"})
        propagator = TemplatePropagator(host)
        propagator.snapshots.put("Templates/T.md", from_python({"template_field": "A"}))

        stats = asyncio.run(propagator.on_metadata_changed("Templates/T.md"))

        assert host.documents["D.md"] == {"template": "[[T]]", "template_field": "B", "custom": "keep"}
        assert stats.updated == 1
        assert host.notices == ["Updated 1 file(s) linked to T"]

    def test_no_snapshot_skips(self, host) -> None:
        host.add("Templates/T.md", {"a": 1})
        host.add("D.md", {"template": "[[T]]"})
        propagator = TemplatePropagator(host)

        stats = asyncio.run(propagator.on_metadata_changed("Templates/T.md"))

        assert stats.updated == 0
        assert host.patched == []
        assert host.notices == []

    def test_no_current_metadata_skips(self, host) -> None:
        host.add("Templates/T.md", None)
        host.add("D.md", {"template": "[[T]]", "a": 1})
        propagator = TemplatePropagator(host)
        propagator.snapshots.put("Templates/T.md", from_python({"a": 1}))

        stats = asyncio.run(propagator.on_metadata_changed("Templates/T.md"))

        assert stats.updated == 0
        assert host.documents["D.md"] == {"template": "[[T]]", "a": 1}

    def test_empty_diff_skips_dependents(self, host) -> None:
        host.add("Templates/T.md", {"a": 1})
        propagator = TemplatePropagator(host)
        propagator.snapshots.put("Templates/T.md", from_python({"a": 1}))
        host.get_dependents = AsyncMock(return_value=[])

        asyncio.run(propagator.on_metadata_changed("Templates/T.md"))

        host.get_dependents.assert_not_awaited()

    def test_non_template_skips(self, host) -> None:
        host.add("T.md", {"a": 2})
        host.add("D.md", {"template": "[[T]]", "a": 1})
        propagator = TemplatePropagator(host)
        propagator.snapshots.put("T.md", from_python({"a": 1}))

        stats = asyncio.run(propagator.on_metadata_changed("T.md"))

        assert stats.updated == 0
        assert host.documents["D.md"]["a"] == 1

    def test_only_template_field_links_count(self, host) -> None:
        """Backlinks from other properties are not dependents."""
        host.add("Templates/T.md", {"a": 2})
        host.add("Linked.md", {"related": "[[T]]", "a": 1})
        host.add("Dependent.md", {"template": "[[T]]", "a": 1})
        host.add("Other.md", {"template": "[[Elsewhere]]", "a": 1})
        propagator = TemplatePropagator(host)
        propagator.snapshots.put("Templates/T.md", from_python({"a": 1}))

        stats = asyncio.run(propagator.on_metadata_changed("Templates/T.md"))

        assert stats.updated_documents == ["Dependent.md"]
        assert stats.skipped == 2
        assert host.documents["Linked.md"]["a"] == 1
        assert host.documents["Other.md"]["a"] == 1

    def test_custom_template_field(self, host) -> None:
        host.add("Templates/T.md", {"a": 2})
        host.add("D.md", {"based-on": "[[T]]", "a": 1})
        propagator = TemplatePropagator(host, template_field="based-on")
        propagator.snapshots.put("Templates/T.md", from_python({"a": 1}))

        stats = asyncio.run(propagator.on_metadata_changed("Templates/T.md"))

        assert stats.updated == 1

    def test_failed_dependent_does_not_stop_others(self, host) -> None:
        host.add("Templates/T.md", {"a": 2})
        host.add("A.md", {"template": "[[T]]", "a": 1})
        host.add("B.md", {"template": "[[T]]", "a": 1})
        host.add("C.md", {"template": "[[T]]", "a": 1})
        host.failing.add("B.md")
        propagator = TemplatePropagator(host)
        propagator.snapshots.put("Templates/T.md", from_python({"a": 1}))

        stats = asyncio.run(propagator.on_metadata_changed("Templates/T.md"))

        assert stats.updated_documents == ["A.md", "C.md"]
        assert stats.failed == 1
        assert host.documents["B.md"]["a"] == 1
        assert host.notices == ["Updated 2 file(s) linked to T"]

    def test_unexpected_error_is_contained(self, host) -> None:
        host.add("Templates/T.md", {"a": 2})
        host.add("A.md", {"template": "[[T]]", "a": 1})
        host.add("B.md", {"template": "[[T]]", "a": 1})
        propagator = TemplatePropagator(host)
        propagator.snapshots.put("Templates/T.md", from_python({"a": 1}))
        original = host.patch_metadata

        async def flaky(doc_id, mutator):
            if doc_id == "A.md":
                raise RuntimeError("boom")
            await original(doc_id, mutator)

        host.patch_metadata = flaky

        stats = asyncio.run(propagator.on_metadata_changed("Templates/T.md"))

        assert stats.updated_documents == ["B.md"]
        assert stats.failed == 1

    def test_unreadable_links_do_not_stop_others(self, host) -> None:
        host.add("Templates/T.md", {"a": 2})
        host.add("A.md", {"template": "[[T]]", "a": 1})
        host.add("B.md", {"template": "[[T]]", "a": 1})
        propagator = TemplatePropagator(host)
        propagator.snapshots.put("Templates/T.md", from_python({"a": 1}))
        original = host.get_frontmatter_links

        def unreadable(doc_id):
            if doc_id == "A.md":
                raise OSError("cannot read A")
            return original(doc_id)

        host.get_frontmatter_links = unreadable

        stats = asyncio.run(propagator.on_metadata_changed("Templates/T.md"))

        assert stats.updated_documents == ["B.md"]
        assert stats.failed == 1
        assert host.documents["A.md"]["a"] == 1
        assert host.documents["B.md"]["a"] == 2

    def test_dependent_locks_released(self, host) -> None:
        host.add("Templates/T.md", {"a": 2})
        host.add("A.md", {"template": "[[T]]", "a": 1})
        propagator = TemplatePropagator(host)
        propagator.snapshots.put("Templates/T.md", from_python({"a": 1}))

        asyncio.run(propagator.on_metadata_changed("Templates/T.md"))

        assert len(propagator._dependent_locks) == 0

    def test_no_notice_when_nothing_updated(self, host) -> None:
        host.add("Templates/T.md", {"a": 2})
        host.add("A.md", {"template": "[[T]]", "a": 1})
        host.failing.add("A.md")
        propagator = TemplatePropagator(host)
        propagator.snapshots.put("Templates/T.md", from_python({"a": 1}))

        asyncio.run(propagator.on_metadata_changed("Templates/T.md"))

        assert host.notices == []

    def test_baseline_read_before_first_await(self, host) -> None:
        """A snapshot replaced while qualification is pending must not be used."""
        host.add("Templates/T.md", {"a": 2})
        host.add("D.md", {"template": "[[T]]", "a": 1})
        propagator = TemplatePropagator(host)
        propagator.snapshots.put("Templates/T.md", from_python({"a": 1}))
        original = host.read_template_config

        async def slow_config():
            propagator.snapshots.put("Templates/T.md", from_python({"a": 2}))
            return await original()

        host.read_template_config = slow_config

        stats = asyncio.run(propagator.on_metadata_changed("Templates/T.md"))

        assert stats.updated == 1
        assert host.documents["D.md"]["a"] == 2

    def test_propagate_skips_template_itself(self, host) -> None:
        host.add("Templates/T.md", {"template": "[[T]]", "a": 1})
        propagator = TemplatePropagator(host)
        host.get_dependents = AsyncMock(return_value=["Templates/T.md"])

        stats = asyncio.run(
            propagator.propagate("Templates/T.md", diff(from_python({"a": 1}), from_python({"a": 2})))
        )

        assert stats.skipped == 1
        assert host.patched == []
