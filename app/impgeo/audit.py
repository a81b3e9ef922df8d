from __future__ import annotations

import json
from datetime import date, datetime, time, timedelta
from typing import Any

from flask import g, has_request_context
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.impgeo.models import ActivityLog, User
from app.impgeo.utils import client_ip, iso

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def record_event(
    s: Session,
    *,
    actor: User | None,
    action: str,
    module_key: str | None = None,
    entity_type: str | None = None,
    entity_id: str | None = None,
    details: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> ActivityLog:
    """
    Append-only activity helper. The caller owns the commit.
    """
    in_request = has_request_context()
    rid = request_id or (getattr(g, "request_id", None) if in_request else None)
    ev = ActivityLog(
        request_id=rid,
        user_id=actor.id if actor else None,
        username=actor.username if actor else None,
        action=action,
        module_key=module_key,
        entity_type=entity_type,
        entity_id=entity_id,
        details_json=json.dumps(details, sort_keys=True, default=str) if details else None,
        ip_address=client_ip() if in_request else None,
    )
    s.add(ev)
    return ev


def serialize_event(ev: ActivityLog) -> dict:
    return {
        "id": ev.id,
        "userId": ev.user_id,
        "username": ev.username,
        "action": ev.action,
        "moduleKey": ev.module_key,
        "entityType": ev.entity_type,
        "entityId": ev.entity_id,
        "details": json.loads(ev.details_json) if ev.details_json else None,
        "ipAddress": ev.ip_address,
        "createdAt": iso(ev.created_at),
    }


def clamp_page(page: Any, page_size: Any) -> tuple[int, int]:
    try:
        p = int(page)
    except (TypeError, ValueError):
        p = 1
    try:
        ps = int(page_size)
    except (TypeError, ValueError):
        ps = DEFAULT_PAGE_SIZE
    return max(p, 1), min(max(ps, 1), MAX_PAGE_SIZE)


def list_events(
    s: Session,
    *,
    page: Any = 1,
    page_size: Any = DEFAULT_PAGE_SIZE,
    user_id: int | None = None,
    module_key: str | None = None,
    action: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    search: str | None = None,
) -> dict:
    """Newest-first page of activity with the admin panel filters."""
    page, page_size = clamp_page(page, page_size)
    q = s.query(ActivityLog)
    if user_id:
        q = q.filter(ActivityLog.user_id == user_id)
    if module_key:
        q = q.filter(ActivityLog.module_key == module_key)
    if action:
        q = q.filter(ActivityLog.action == action)
    if start_date:
        q = q.filter(ActivityLog.created_at >= datetime.combine(start_date, time.min))
    if end_date:
        # inclusive end-date (treat as whole day)
        q = q.filter(ActivityLog.created_at < datetime.combine(end_date + timedelta(days=1), time.min))
    if search:
        like = f"%{search.strip()}%"
        q = q.filter(
            or_(
                ActivityLog.username.ilike(like),
                ActivityLog.action.ilike(like),
                ActivityLog.module_key.ilike(like),
            )
        )
    total = q.count()
    rows = (
        q.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return {
        "data": [serialize_event(r) for r in rows],
        "page": page,
        "pageSize": page_size,
        "total": total,
        "totalPages": (total + page_size - 1) // page_size,
    }


def trim_events(s: Session, max_rows: int) -> int:
    """Delete the oldest rows beyond max_rows. Returns how many were removed."""
    total = s.query(func.count(ActivityLog.id)).scalar() or 0
    excess = total - max_rows
    if excess <= 0:
        return 0
    oldest_ids = [
        r[0]
        for r in s.query(ActivityLog.id).order_by(ActivityLog.created_at.asc(), ActivityLog.id.asc()).limit(excess).all()
    ]
    s.query(ActivityLog).filter(ActivityLog.id.in_(oldest_ids)).delete(synchronize_session=False)
    return len(oldest_ids)
