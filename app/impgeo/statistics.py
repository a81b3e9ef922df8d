from __future__ import annotations

from collections import Counter
from datetime import date, datetime, time, timedelta

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.impgeo.models import ActivityLog, ModuleCatalog, User

GROUP_BY = ("day", "week", "month")
DEFAULT_TIMELINE_DAYS = 30
MAX_TIMELINE_BUCKETS = 366


def overview(s: Session, *, top: int = 10) -> dict:
    """Counters for the admin statistics tab."""
    users_by_role = dict(s.query(User.role, func.count(User.id)).group_by(User.role).all())
    active_users = s.query(func.count(User.id)).filter(User.is_active.is_(True)).scalar() or 0

    modules = s.query(ModuleCatalog).all()
    since = datetime.utcnow() - timedelta(hours=24)

    by_module = (
        s.query(ActivityLog.module_key, func.count(ActivityLog.id))
        .filter(ActivityLog.module_key.isnot(None))
        .group_by(ActivityLog.module_key)
        .order_by(func.count(ActivityLog.id).desc())
        .limit(top)
        .all()
    )
    top_users = (
        s.query(ActivityLog.user_id, ActivityLog.username, func.count(ActivityLog.id))
        .filter(ActivityLog.user_id.isnot(None))
        .group_by(ActivityLog.user_id, ActivityLog.username)
        .order_by(func.count(ActivityLog.id).desc())
        .limit(top)
        .all()
    )

    return {
        "users": {
            "total": sum(users_by_role.values()),
            "active": active_users,
            "byRole": {role: users_by_role.get(role, 0) for role in ("admin", "user", "guest")},
        },
        "modules": {
            "total": len(modules),
            "active": sum(1 for m in modules if m.is_active),
            "system": sum(1 for m in modules if m.is_system),
            "custom": sum(1 for m in modules if not m.is_system),
        },
        "activity": {
            "total": s.query(func.count(ActivityLog.id)).scalar() or 0,
            "last24h": s.query(func.count(ActivityLog.id)).filter(ActivityLog.created_at >= since).scalar() or 0,
        },
        "usageByModule": [{"moduleKey": k, "count": c} for k, c in by_module],
        "topUsers": [{"userId": uid, "username": name, "count": c} for uid, name, c in top_users],
    }


def _bucket(d: date, group_by: str) -> date:
    if group_by == "week":
        return d - timedelta(days=d.weekday())
    if group_by == "month":
        return d.replace(day=1)
    return d


def _bucket_count(start: date, end: date, group_by: str) -> int:
    first, last = _bucket(start, group_by), _bucket(end, group_by)
    if group_by == "month":
        return (last.year - first.year) * 12 + last.month - first.month + 1
    step = 7 if group_by == "week" else 1
    return (last - first).days // step + 1

def usage_timeline(
    s: Session,
    *,
    start_date: date | None = None,
    end_date: date | None = None,
    group_by: str = "day",
) -> list[dict]:
    """
    Activity counts per period, oldest first, with empty periods filled in.
    Bucketing happens in Python so it behaves the same on SQLite and Postgres.
    """
    if group_by not in GROUP_BY:
        raise ValueError(f"groupBy inválido. Use: {', '.join(GROUP_BY)}")
    end_date = end_date or datetime.utcnow().date()
    start_date = start_date or end_date - timedelta(days=DEFAULT_TIMELINE_DAYS - 1)
    if start_date > end_date:
        raise ValueError("startDate deve ser anterior a endDate")
    if _bucket_count(start_date, end_date, group_by) > MAX_TIMELINE_BUCKETS:
        raise ValueError(f"Intervalo muito longo: no máximo {MAX_TIMELINE_BUCKETS} períodos por consulta")

    stamps = (
        s.query(ActivityLog.created_at)
        .filter(
            ActivityLog.created_at >= datetime.combine(start_date, time.min),
            ActivityLog.created_at < datetime.combine(end_date + timedelta(days=1), time.min),
        )
        .all()
    )
    counts = Counter(_bucket(ts.date(), group_by) for (ts,) in stamps)

    out = []
    cursor = _bucket(start_date, group_by)
    while cursor <= end_date:
        out.append({"period": cursor.isoformat(), "count": counts.get(cursor, 0)})
        if group_by == "day":
            cursor += timedelta(days=1)
        elif group_by == "week":
            cursor += timedelta(days=7)
        else:
            cursor = (cursor.replace(day=28) + timedelta(days=4)).replace(day=1)
    return out
