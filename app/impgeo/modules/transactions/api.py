from __future__ import annotations

from flask import Blueprint, abort, g

from app.impgeo.crud import bulk_delete, parse_ids
from app.impgeo.db import db_session
from app.impgeo.modules.transactions.models import Transaction
from app.impgeo.modules.transactions.service import (
    MODULE_KEY,
    create_subcategory,
    create_transaction,
    delete_transaction,
    list_subcategories,
    list_transactions,
    serialize_transaction,
    update_transaction,
)
from app.impgeo.rbac import require_module
from app.impgeo.utils import fail, json_payload, ok

bp = Blueprint("transactions", __name__)


def _get_or_404(s, transaction_id: int) -> Transaction:
    t = s.get(Transaction, transaction_id)
    if not t:
        abort(404, description="Transação não encontrada")
    return t


@bp.get("/transactions")
@require_module(MODULE_KEY)
def transactions_list():
    s = db_session()
    return ok([serialize_transaction(t) for t in list_transactions(s)])


@bp.post("/transactions")
@require_module(MODULE_KEY)
def transactions_create():
    s = db_session()
    try:
        t = create_transaction(s, json_payload(), g.current_user)
    except ValueError as e:
        s.rollback()
        return fail(str(e), 400)
    s.commit()
    return ok(serialize_transaction(t), 201)


@bp.put("/transactions/<int:transaction_id>")
@require_module(MODULE_KEY)
def transactions_update(transaction_id: int):
    s = db_session()
    t = _get_or_404(s, transaction_id)
    try:
        update_transaction(s, t, json_payload(), g.current_user)
    except ValueError as e:
        s.rollback()
        return fail(str(e), 400)
    s.commit()
    return ok(serialize_transaction(t))


@bp.delete("/transactions/<int:transaction_id>")
@require_module(MODULE_KEY)
def transactions_delete(transaction_id: int):
    s = db_session()
    t = _get_or_404(s, transaction_id)
    delete_transaction(s, t, g.current_user)
    s.commit()
    return ok(message="Transação deletada com sucesso")


@bp.delete("/transactions")
@require_module(MODULE_KEY)
def transactions_delete_many():
    s = db_session()
    try:
        ids = parse_ids(json_payload())
        deleted = bulk_delete(s, Transaction, ids, g.current_user, action="transaction.delete_many", module_key=MODULE_KEY)
        s.commit()
    except ValueError as e:
        s.rollback()
        return fail(str(e), 400)
    except Exception:
        s.rollback()
        raise
    return ok(message=f"{deleted} transações deletadas com sucesso", deletedCount=deleted)


@bp.get("/subcategories")
@require_module(MODULE_KEY)
def subcategories_list():
    s = db_session()
    return ok(list_subcategories(s))


@bp.post("/subcategories")
@require_module(MODULE_KEY)
def subcategories_create():
    s = db_session()
    try:
        sub = create_subcategory(s, json_payload(), g.current_user)
    except ValueError as e:
        s.rollback()
        return fail(str(e), 400)
    s.commit()
    return ok({"id": sub.id, "name": sub.name}, 201)
