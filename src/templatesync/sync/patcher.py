"""Apply a :class:`~templatesync.models.Diff` onto another record."""

from __future__ import annotations

from templatesync.models import Diff, MetaRecord, ValueKind


def apply(target: MetaRecord, change: Diff) -> MetaRecord:
    """Merge ``change`` into ``target`` in place and return it.

    Only keys named in the diff are touched; everything else the target
    carries is left as is.
    """
    for tree in (change.added, change.updated, change.deleted):
        _merge(target, tree)
    return target


def _merge(target: MetaRecord, tree: MetaRecord) -> None:
    for key, node in tree.items():
        if node.kind is ValueKind.RECORD:
            container = target.get(key)
            if container is None or container.kind is not ValueKind.RECORD:
                container = MetaRecord()
                target[key] = container
            _merge(container, node)
        elif node.kind is ValueKind.NULL:
            target.pop(key, None)
        else:
            # scalars and whole sequences
            target[key] = node.clone()
