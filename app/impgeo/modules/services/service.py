from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from app.impgeo.audit import record_event
from app.impgeo.crud import apply_changes
from app.impgeo.utils import clean_str, iso, money, parse_int, parse_number

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.impgeo.models import User
    from app.impgeo.modules.services.models import Service

MODULE_KEY = "services"
VALID_STATUSES = ("ativo", "inativo")


def serialize_service(sv: "Service") -> dict:
    return {
        "id": sv.id,
        "name": sv.name,
        "description": sv.description,
        "category": sv.category,
        "price": money(sv.price),
        "duration": sv.duration,
        "status": sv.status,
        "created_at": iso(sv.created_at),
        "updated_at": iso(sv.updated_at),
    }


def _values_from_payload(payload: dict) -> dict:
    name = clean_str(payload.get("name"))
    if not name:
        raise ValueError("Nome é obrigatório")
    status = (clean_str(payload.get("status")) or "ativo").lower()
    if status not in VALID_STATUSES:
        raise ValueError(f"Status inválido. Use: {', '.join(VALID_STATUSES)}")
    try:
        price = parse_number(payload.get("price"))
        duration = parse_int(payload.get("duration")) if payload.get("duration") not in (None, "") else None
    except ValueError as e:
        raise ValueError("Preço e duração devem ser numéricos") from e
    if price < 0:
        raise ValueError("Preço não pode ser negativo")
    return {
        "name": name,
        "description": clean_str(payload.get("description")),
        "category": clean_str(payload.get("category")),
        "price": Decimal(str(round(price, 2))),
        "duration": duration,
        "status": status,
    }


def list_services(s: "Session") -> list["Service"]:
    from app.impgeo.modules.services.models import Service

    return s.query(Service).order_by(Service.name.asc(), Service.id.asc()).all()


def create_service(s: "Session", payload: dict, user: "User") -> "Service":
    from app.impgeo.modules.services.models import Service

    now = datetime.utcnow()
    sv = Service(**_values_from_payload(payload), created_at=now, updated_at=now, created_by_user_id=user.id)
    s.add(sv)
    s.flush()
    record_event(
        s,
        actor=user,
        action="service.create",
        module_key=MODULE_KEY,
        entity_type="Service",
        entity_id=str(sv.id),
        details={"name": sv.name},
    )
    return sv


def update_service(s: "Session", sv: "Service", payload: dict, user: "User") -> "Service":
    changes = apply_changes(sv, _values_from_payload(payload))
    if changes:
        sv.updated_at = datetime.utcnow()
        record_event(
            s,
            actor=user,
            action="service.update",
            module_key=MODULE_KEY,
            entity_type="Service",
            entity_id=str(sv.id),
            details={"changes": changes},
        )
    return sv


def delete_service(s: "Session", sv: "Service", user: "User") -> None:
    record_event(
        s,
        actor=user,
        action="service.delete",
        module_key=MODULE_KEY,
        entity_type="Service",
        entity_id=str(sv.id),
        details={"name": sv.name},
    )
    s.delete(sv)
