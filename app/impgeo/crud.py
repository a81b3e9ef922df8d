"""
Helpers shared by the entity services (batch delete, change diffs).
"""
from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from app.impgeo.audit import record_event
from app.impgeo.models import User


def parse_ids(payload: dict) -> list[int]:
    ids = payload.get("ids")
    if not isinstance(ids, list):
        raise ValueError("IDs devem ser um array")
    out = []
    for raw in ids:
        try:
            out.append(int(raw))
        except (TypeError, ValueError) as e:
            raise ValueError(f"ID inválido: {raw}") from e
    return sorted(set(out))


def bulk_delete(
    s: Session,
    model: Any,
    ids: list[int],
    actor: User,
    *,
    action: str,
    module_key: str,
) -> int:
    """Delete all rows of model with the given ids. The caller commits (or rolls back)."""
    if not ids:
        return 0
    deleted = s.query(model).filter(model.id.in_(ids)).delete(synchronize_session=False)
    record_event(
        s,
        actor=actor,
        action=action,
        module_key=module_key,
        entity_type=model.__name__,
        entity_id=",".join(str(i) for i in ids)[:128],
        details={"ids": ids, "deleted": deleted},
    )
    return deleted


def apply_changes(obj: Any, values: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Set attributes that differ; returns {field: {"old", "new"}} for the activity log."""
    changes = {}
    for field, new in values.items():
        old = getattr(obj, field)
        if old != new:
            changes[field] = {"old": None if old is None else str(old), "new": None if new is None else str(new)}
            setattr(obj, field, new)
    return changes
