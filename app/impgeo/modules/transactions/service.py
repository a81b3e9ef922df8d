from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from app.impgeo.audit import record_event
from app.impgeo.crud import apply_changes
from app.impgeo.utils import clean_str, iso, money, parse_date, parse_number

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.impgeo.models import User
    from app.impgeo.modules.transactions.models import Subcategory, Transaction

MODULE_KEY = "transactions"
DEFAULT_TYPE = "Receita"


def serialize_transaction(t: "Transaction") -> dict:
    return {
        "id": t.id,
        "date": iso(t.date),
        "description": t.description,
        "value": money(t.value),
        "type": t.type,
        "category": t.category,
        "subcategory": t.subcategory,
        "created_at": iso(t.created_at),
        "updated_at": iso(t.updated_at),
    }


def _values_from_payload(payload: dict) -> dict:
    description = clean_str(payload.get("description"))
    if not description:
        raise ValueError("Descrição é obrigatória")
    try:
        value = parse_number(payload.get("value"))
    except ValueError as e:
        raise ValueError("Valor inválido") from e
    try:
        when = parse_date(payload.get("date")) or date.today()
    except ValueError as e:
        raise ValueError("Data inválida (use YYYY-MM-DD)") from e
    return {
        "date": when,
        "description": description,
        "value": Decimal(str(round(value, 2))),
        "type": clean_str(payload.get("type")) or DEFAULT_TYPE,
        "category": clean_str(payload.get("category")),
        "subcategory": clean_str(payload.get("subcategory")),
    }


def ensure_subcategory(s: "Session", name: str | None) -> "Subcategory | None":
    from app.impgeo.modules.transactions.models import Subcategory

    name = clean_str(name)
    if not name:
        return None
    sub = s.query(Subcategory).filter(Subcategory.name == name).one_or_none()
    if sub is None:
        sub = Subcategory(name=name, created_at=datetime.utcnow())
        s.add(sub)
        s.flush()
    return sub


def list_subcategories(s: "Session") -> list[str]:
    from app.impgeo.modules.transactions.models import Subcategory

    return [r[0] for r in s.query(Subcategory.name).order_by(Subcategory.name.asc()).all()]


def create_subcategory(s: "Session", payload: dict, user: "User") -> "Subcategory":
    name = clean_str(payload.get("name"))
    if not name:
        raise ValueError("Nome da subcategoria é obrigatório")
    sub = ensure_subcategory(s, name)
    record_event(s, actor=user, action="subcategory.create", module_key=MODULE_KEY, entity_type="Subcategory", entity_id=name)
    return sub


def list_transactions(s: "Session") -> list["Transaction"]:
    from app.impgeo.modules.transactions.models import Transaction

    return s.query(Transaction).order_by(Transaction.date.desc(), Transaction.id.desc()).all()


def create_transaction(s: "Session", payload: dict, user: "User | None") -> "Transaction":
    from app.impgeo.modules.transactions.models import Transaction

    values = _values_from_payload(payload)
    now = datetime.utcnow()
    t = Transaction(**values, created_at=now, updated_at=now, created_by_user_id=user.id if user else None)
    s.add(t)
    s.flush()
    ensure_subcategory(s, t.subcategory)
    record_event(
        s,
        actor=user,
        action="transaction.create",
        module_key=MODULE_KEY,
        entity_type="Transaction",
        entity_id=str(t.id),
        details={"description": t.description, "value": money(t.value), "type": t.type},
    )
    return t


def update_transaction(s: "Session", t: "Transaction", payload: dict, user: "User") -> "Transaction":
    changes = apply_changes(t, _values_from_payload(payload))
    if changes:
        t.updated_at = datetime.utcnow()
        ensure_subcategory(s, t.subcategory)
        record_event(
            s,
            actor=user,
            action="transaction.update",
            module_key=MODULE_KEY,
            entity_type="Transaction",
            entity_id=str(t.id),
            details={"changes": changes},
        )
    return t


def delete_transaction(s: "Session", t: "Transaction", user: "User") -> None:
    record_event(
        s,
        actor=user,
        action="transaction.delete",
        module_key=MODULE_KEY,
        entity_type="Transaction",
        entity_id=str(t.id),
        details={"description": t.description},
    )
    s.delete(t)
