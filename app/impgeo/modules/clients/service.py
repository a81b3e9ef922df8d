from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from app.impgeo.audit import record_event
from app.impgeo.crud import apply_changes
from app.impgeo.utils import clean_str, is_valid_email, iso, pick

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.impgeo.models import User
    from app.impgeo.modules.clients.models import Client

MODULE_KEY = "clients"


def serialize_client(c: "Client") -> dict:
    return {
        "id": c.id,
        "name": c.name,
        "email": c.email,
        "phone": c.phone,
        "company": c.company,
        "address": c.address,
        "city": c.city,
        "state": c.state,
        "zip_code": c.zip_code,
        "cpf": c.cpf,
        "cnpj": c.cnpj,
        "created_at": iso(c.created_at),
        "updated_at": iso(c.updated_at),
    }


def _values_from_payload(payload: dict) -> dict:
    name = clean_str(payload.get("name"))
    if not name:
        raise ValueError("Nome é obrigatório")
    email = (clean_str(payload.get("email")) or "").lower() or None
    if email and not is_valid_email(email):
        raise ValueError("Email inválido")
    state = clean_str(payload.get("state"))
    return {
        "name": name,
        "email": email,
        "phone": clean_str(payload.get("phone")),
        "company": clean_str(payload.get("company")),
        "address": clean_str(payload.get("address")),
        "city": clean_str(payload.get("city")),
        "state": state.upper() if state else None,
        "zip_code": clean_str(pick(payload, "zip_code", "zipCode")),
        "cpf": clean_str(payload.get("cpf")),
        "cnpj": clean_str(payload.get("cnpj")),
    }


def list_clients(s: "Session") -> list["Client"]:
    from app.impgeo.modules.clients.models import Client

    return s.query(Client).order_by(Client.name.asc(), Client.id.asc()).all()


def create_client(s: "Session", payload: dict, user: "User | None") -> "Client":
    from app.impgeo.modules.clients.models import Client

    now = datetime.utcnow()
    c = Client(**_values_from_payload(payload), created_at=now, updated_at=now, created_by_user_id=user.id if user else None)
    s.add(c)
    s.flush()
    record_event(
        s,
        actor=user,
        action="client.create",
        module_key=MODULE_KEY,
        entity_type="Client",
        entity_id=str(c.id),
        details={"name": c.name},
    )
    return c


def update_client(s: "Session", c: "Client", payload: dict, user: "User") -> "Client":
    changes = apply_changes(c, _values_from_payload(payload))
    if changes:
        c.updated_at = datetime.utcnow()
        record_event(
            s,
            actor=user,
            action="client.update",
            module_key=MODULE_KEY,
            entity_type="Client",
            entity_id=str(c.id),
            details={"changes": changes},
        )
    return c


def delete_client(s: "Session", c: "Client", user: "User") -> None:
    record_event(
        s,
        actor=user,
        action="client.delete",
        module_key=MODULE_KEY,
        entity_type="Client",
        entity_id=str(c.id),
        details={"name": c.name},
    )
    s.delete(c)
