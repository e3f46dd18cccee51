from typing import Any, Dict, Iterable, Mapping

# Only the concurrency token is excluded; every other differing field is audited
EXCLUDED_FIELDS = frozenset({"updated_at"})


def compute_changes(
    before: Mapping[str, Any],
    after: Mapping[str, Any],
    fields: Iterable[str] = None,
) -> Dict[str, Dict[str, Any]]:
    """
    Field-level diff between two versions of a record.

    Values are compared by equality, so two equal tag lists are not a change.
    Returns {field: {"from": old, "to": new}} for every differing field.
    """
    if fields is None:
        fields = list(after.keys())

    changes = {}
    for field in fields:
        if field in EXCLUDED_FIELDS:
            continue
        old = before.get(field)
        new = after.get(field)
        if old != new:
            changes[field] = {"from": old, "to": new}
    return changes
