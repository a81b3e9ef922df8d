from __future__ import annotations

from flask import Blueprint, abort, g

from app.impgeo.crud import bulk_delete, parse_ids
from app.impgeo.db import db_session
from app.impgeo.modules.products.models import Product
from app.impgeo.modules.products.service import (
    MODULE_KEY,
    create_product,
    delete_product,
    list_products,
    serialize_product,
    update_product,
)
from app.impgeo.rbac import require_module
from app.impgeo.utils import fail, json_payload, ok

bp = Blueprint("products", __name__)


def _get_or_404(s, product_id: int) -> Product:
    p = s.get(Product, product_id)
    if not p:
        abort(404, description="Produto não encontrado")
    return p


@bp.get("/products")
@require_module(MODULE_KEY)
def products_list():
    s = db_session()
    return ok([serialize_product(p) for p in list_products(s)])


@bp.post("/products")
@require_module(MODULE_KEY)
def products_create():
    s = db_session()
    try:
        p = create_product(s, json_payload(), g.current_user)
    except ValueError as e:
        s.rollback()
        return fail(str(e), 400)
    s.commit()
    return ok(serialize_product(p), 201)


@bp.put("/products/<int:product_id>")
@require_module(MODULE_KEY)
def products_update(product_id: int):
    s = db_session()
    p = _get_or_404(s, product_id)
    try:
        update_product(s, p, json_payload(), g.current_user)
    except ValueError as e:
        s.rollback()
        return fail(str(e), 400)
    s.commit()
    return ok(serialize_product(p))


@bp.delete("/products/<int:product_id>")
@require_module(MODULE_KEY)
def products_delete(product_id: int):
    s = db_session()
    p = _get_or_404(s, product_id)
    delete_product(s, p, g.current_user)
    s.commit()
    return ok(message="Produto deletado com sucesso")


@bp.delete("/products")
@require_module(MODULE_KEY)
def products_delete_many():
    s = db_session()
    try:
        ids = parse_ids(json_payload())
        deleted = bulk_delete(s, Product, ids, g.current_user, action="product.delete_many", module_key=MODULE_KEY)
        s.commit()
    except ValueError as e:
        s.rollback()
        return fail(str(e), 400)
    except Exception:
        s.rollback()
        raise
    return ok(message=f"{deleted} produtos deletados com sucesso", deletedCount=deleted)
