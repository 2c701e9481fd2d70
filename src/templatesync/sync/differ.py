"""Structural diff of two frontmatter records."""

from __future__ import annotations

from templatesync.models import NULL, Diff, MetaRecord, ValueKind


def diff(old: MetaRecord, new: MetaRecord) -> Diff:
    """Compute which keys were added, updated and deleted going from ``old`` to ``new``.

    Records present on both sides are compared recursively.  Anything else
    that differs (scalars, sequences, a change of type) is reported in
    ``updated`` with the new value as a whole.  Deleted keys carry ``NULL``.
    """
    result = Diff()

    for key in old:
        if key not in new:
            result.deleted[key] = NULL

    for key, new_value in new.items():
        if key not in old:
            result.added[key] = new_value.clone()
            continue

        old_value = old[key]
        if old_value == new_value:
            continue

        if old_value.kind is ValueKind.RECORD and new_value.kind is ValueKind.RECORD:
            nested = diff(old_value, new_value)
            if nested.added:
                result.added[key] = nested.added
            if nested.updated:
                result.updated[key] = nested.updated
            if nested.deleted:
                result.deleted[key] = nested.deleted
        else:
            result.updated[key] = new_value.clone()

    return result
