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
    from app.impgeo.modules.products.models import Product

MODULE_KEY = "products"


def serialize_product(p: "Product") -> dict:
    return {
        "id": p.id,
        "name": p.name,
        "category": p.category,
        "price": money(p.price),
        "cost": money(p.cost),
        "stock": p.stock,
        "sold": p.sold,
        "created_at": iso(p.created_at),
        "updated_at": iso(p.updated_at),
    }


def _values_from_payload(payload: dict) -> dict:
    name = clean_str(payload.get("name"))
    if not name:
        raise ValueError("Nome é obrigatório")
    try:
        price = parse_number(payload.get("price"))
        cost = parse_number(payload.get("cost"))
        stock = parse_int(payload.get("stock"))
        sold = parse_int(payload.get("sold"))
    except ValueError as e:
        raise ValueError("Preço, custo, estoque e vendidos devem ser numéricos") from e
    if price < 0 or cost < 0 or stock < 0 or sold < 0:
        raise ValueError("Valores do produto não podem ser negativos")
    return {
        "name": name,
        "category": clean_str(payload.get("category")),
        "price": Decimal(str(round(price, 2))),
        "cost": Decimal(str(round(cost, 2))),
        "stock": stock,
        "sold": sold,
    }


def list_products(s: "Session") -> list["Product"]:
    from app.impgeo.modules.products.models import Product

    return s.query(Product).order_by(Product.name.asc(), Product.id.asc()).all()


def create_product(s: "Session", payload: dict, user: "User | None") -> "Product":
    from app.impgeo.modules.products.models import Product

    now = datetime.utcnow()
    p = Product(**_values_from_payload(payload), created_at=now, updated_at=now, created_by_user_id=user.id if user else None)
    s.add(p)
    s.flush()
    record_event(
        s,
        actor=user,
        action="product.create",
        module_key=MODULE_KEY,
        entity_type="Product",
        entity_id=str(p.id),
        details={"name": p.name},
    )
    return p


def update_product(s: "Session", p: "Product", payload: dict, user: "User") -> "Product":
    changes = apply_changes(p, _values_from_payload(payload))
    if changes:
        p.updated_at = datetime.utcnow()
        record_event(
            s,
            actor=user,
            action="product.update",
            module_key=MODULE_KEY,
            entity_type="Product",
            entity_id=str(p.id),
            details={"changes": changes},
        )
    return p


def delete_product(s: "Session", p: "Product", user: "User") -> None:
    record_event(
        s,
        actor=user,
        action="product.delete",
        module_key=MODULE_KEY,
        entity_type="Product",
        entity_id=str(p.id),
        details={"name": p.name},
    )
    s.delete(p)
