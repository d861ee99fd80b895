from __future__ import annotations

from typing import Any, Optional


def resolve_relationship_id(field: Any) -> Optional[str]:
    """Return the id of a relationship field.

    Stores hand relationships back as a bare id, an embedded record (``{"id": ...}`` or
    ``{"$id": ...}``) or a list of either; only the first element of a list is used.
    """
    if field is None or field == "" or field == []:
        return None
    if isinstance(field, (list, tuple)):
        return resolve_relationship_id(field[0])
    if isinstance(field, dict):
        ref = field.get("id") or field.get("$id")
        return str(ref) if ref else None
    return str(field)


def refers_to(field: Any, record_id: str) -> bool:
    return resolve_relationship_id(field) == record_id
