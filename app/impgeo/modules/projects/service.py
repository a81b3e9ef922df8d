from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from app.impgeo.audit import record_event
from app.impgeo.crud import apply_changes
from app.impgeo.utils import clean_str, iso, money, parse_date, parse_int, parse_number, pick

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.impgeo.models import User
    from app.impgeo.modules.projects.models import Project

MODULE_KEY = "projects"
VALID_STATUSES = ("ativo", "pausado", "concluido")


def serialize_project(p: "Project") -> dict:
    return {
        "id": p.id,
        "name": p.name,
        "client": p.client,
        "status": p.status,
        "description": p.description,
        "startDate": iso(p.start_date),
        "endDate": iso(p.end_date),
        "value": money(p.value),
        "progress": p.progress,
        "services": p.services or [],
        "created_at": iso(p.created_at),
        "updated_at": iso(p.updated_at),
    }


def parse_services(raw) -> list[str]:
    """Accepts a list or a comma separated string ("servico1, servico2")."""
    if raw is None or raw == "":
        return []
    if isinstance(raw, str):
        raw = raw.split(",")
    if not isinstance(raw, list):
        raise ValueError("Serviços devem ser uma lista")
    return [str(x).strip() for x in raw if str(x).strip()]


def _values_from_payload(payload: dict) -> dict:
    name = clean_str(payload.get("name"))
    if not name:
        raise ValueError("Nome é obrigatório")
    status = (clean_str(payload.get("status")) or "ativo").lower()
    if status not in VALID_STATUSES:
        raise ValueError(f"Status inválido. Use: {', '.join(VALID_STATUSES)}")
    try:
        value = parse_number(payload.get("value"))
        progress = parse_int(payload.get("progress"))
    except ValueError as e:
        raise ValueError("Valor e progresso devem ser numéricos") from e
    if progress < 0 or progress > 100:
        raise ValueError("Progresso deve estar entre 0 e 100")
    try:
        start = parse_date(pick(payload, "startDate", "start_date"))
        end = parse_date(pick(payload, "endDate", "end_date"))
    except ValueError as e:
        raise ValueError("Datas devem estar no formato YYYY-MM-DD") from e
    if start and end and end < start:
        raise ValueError("Data de término não pode ser anterior à data de início")
    return {
        "name": name,
        "client": clean_str(payload.get("client")),
        "status": status,
        "description": clean_str(payload.get("description")),
        "start_date": start,
        "end_date": end,
        "value": Decimal(str(round(value, 2))),
        "progress": progress,
        "services": parse_services(payload.get("services")),
    }


def list_projects(s: "Session") -> list["Project"]:
    from app.impgeo.modules.projects.models import Project

    return s.query(Project).order_by(Project.name.asc(), Project.id.asc()).all()


def create_project(s: "Session", payload: dict, user: "User | None") -> "Project":
    from app.impgeo.modules.projects.models import Project

    now = datetime.utcnow()
    p = Project(**_values_from_payload(payload), created_at=now, updated_at=now, created_by_user_id=user.id if user else None)
    s.add(p)
    s.flush()
    record_event(
        s,
        actor=user,
        action="project.create",
        module_key=MODULE_KEY,
        entity_type="Project",
        entity_id=str(p.id),
        details={"name": p.name, "client": p.client},
    )
    return p


def update_project(s: "Session", p: "Project", payload: dict, user: "User") -> "Project":
    changes = apply_changes(p, _values_from_payload(payload))
    if changes:
        p.updated_at = datetime.utcnow()
        record_event(
            s,
            actor=user,
            action="project.update",
            module_key=MODULE_KEY,
            entity_type="Project",
            entity_id=str(p.id),
            details={"changes": changes},
        )
    return p


def delete_project(s: "Session", p: "Project", user: "User") -> None:
    record_event(
        s,
        actor=user,
        action="project.delete",
        module_key=MODULE_KEY,
        entity_type="Project",
        entity_id=str(p.id),
        details={"name": p.name},
    )
    s.delete(p)
