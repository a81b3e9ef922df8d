"""
Twelve-month budget model.

Each budget category is a series of three scenarios (previsto / médio / máximo).
The master projection aggregates the "previsto" scenario of the categories that
feed it; sync_projection copies them over, leaving every other field alone.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.impgeo.audit import record_event
from app.impgeo.constants import MONTHS_PER_YEAR
from app.impgeo.utils import iso, parse_number

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.impgeo.models import User
    from app.impgeo.modules.projection.models import BudgetSeries, BudgetSnapshot, Projection

MODULE_KEY = "projecao"
PROJECTION_ID = 1


@dataclass(frozen=True)
class SeriesSpec:
    key: str
    slug: str  # URL path segment
    label: str
    middle: str = "medio"  # name of the middle scenario in the API payload
    feeds: str | None = None  # Projection column fed by "previsto"
    clearable: bool = True


SERIES: dict[str, SeriesSpec] = {
    spec.key: spec
    for spec in (
        SeriesSpec("fixed_expenses", "fixed-expenses", "despesas fixas", middle="media", feeds="despesas_fixas"),
        SeriesSpec("variable_expenses", "variable-expenses", "despesas variáveis", feeds="despesas_variaveis"),
        SeriesSpec("mkt", "mkt", "MKT", feeds="mkt"),
        SeriesSpec("budget", "budget", "orçamento", clearable=False),
        SeriesSpec("investments", "investments", "investimentos", feeds="investimentos"),
        SeriesSpec("faturamento_reurb", "faturamento-reurb", "faturamento REURB", feeds="faturamento_reurb"),
        SeriesSpec("faturamento_geo", "faturamento-geo", "faturamento GEO", feeds="faturamento_geo"),
        SeriesSpec("faturamento_plan", "faturamento-plan", "faturamento PLAN", feeds="faturamento_plan"),
        SeriesSpec("faturamento_reg", "faturamento-reg", "faturamento REG", feeds="faturamento_reg"),
        SeriesSpec("faturamento_nn", "faturamento-nn", "faturamento NN", feeds="faturamento_nn"),
        SeriesSpec("faturamento_total", "faturamento-total", "faturamento total", clearable=False),
        SeriesSpec("resultado", "resultado", "resultado"),
    )
}

SERIES_BY_SLUG = {spec.slug: spec for spec in SERIES.values()}

# Projection column -> camelCase API field
PROJECTION_FIELDS = {
    "despesas_variaveis": "despesasVariaveis",
    "despesas_fixas": "despesasFixas",
    "investimentos": "investimentos",
    "mkt": "mkt",
    "faturamento_reurb": "faturamentoReurb",
    "faturamento_geo": "faturamentoGeo",
    "faturamento_plan": "faturamentoPlan",
    "faturamento_reg": "faturamentoReg",
    "faturamento_nn": "faturamentoNn",
}

REVENUE_FIELDS = ("faturamento_reurb", "faturamento_geo", "faturamento_plan", "faturamento_reg", "faturamento_nn")
EXPENSE_FIELDS = ("despesas_fixas", "despesas_variaveis", "investimentos", "mkt")
MKT_COMPONENTS = ("trafego", "socialMedia", "producaoConteudo")
GROWTH_KEYS = ("minimo", "medio", "maximo")


def zeros() -> list[float]:
    return [0.0] * MONTHS_PER_YEAR


def normalize_months(values: Any) -> list[float]:
    """
    Exactly twelve floats: missing months become 0, extra values are dropped,
    blanks count as 0. Non-list input is rejected.
    """
    if values is None:
        return zeros()
    if not isinstance(values, (list, tuple)):
        raise ValueError("Os valores mensais devem ser uma lista")
    out = []
    for v in list(values)[:MONTHS_PER_YEAR]:
        try:
            out.append(parse_number(v))
        except ValueError as e:
            raise ValueError(f"Valor mensal inválido: {v}") from e
    return out + [0.0] * (MONTHS_PER_YEAR - len(out))


def default_mkt_components() -> dict:
    return {k: zeros() for k in MKT_COMPONENTS}


def default_growth() -> dict:
    return {k: 0.0 for k in GROWTH_KEYS}


def normalize_mkt_components(raw: Any) -> dict:
    if raw is None:
        return default_mkt_components()
    if not isinstance(raw, dict):
        raise ValueError("mktComponents deve ser um objeto")
    return {k: normalize_months(raw.get(k)) for k in MKT_COMPONENTS}


def normalize_growth(raw: Any) -> dict:
    if raw is None:
        return default_growth()
    if not isinstance(raw, dict):
        raise ValueError("growth deve ser um objeto")
    try:
        return {k: parse_number(raw.get(k)) for k in GROWTH_KEYS}
    except ValueError as e:
        raise ValueError("Percentuais de crescimento inválidos") from e


def spec_for(key_or_slug: str) -> SeriesSpec:
    spec = SERIES.get(key_or_slug) or SERIES_BY_SLUG.get(key_or_slug)
    if spec is None:
        raise KeyError(key_or_slug)
    return spec


# ---------- Series ----------


def get_series_row(s: "Session", spec: SeriesSpec) -> "BudgetSeries":
    """Fetch the series row, creating an all-zero one on first use."""
    from app.impgeo.modules.projection.models import BudgetSeries

    row = s.get(BudgetSeries, spec.key)
    if row is None:
        now = datetime.utcnow()
        row = BudgetSeries(key=spec.key, previsto=zeros(), medio=zeros(), maximo=zeros(), created_at=now, updated_at=now)
        s.add(row)
        s.flush()
    return row


def serialize_series(spec: SeriesSpec, row: "BudgetSeries") -> dict:
    return {
        "previsto": normalize_months(row.previsto),
        spec.middle: normalize_months(row.medio),
        "maximo": normalize_months(row.maximo),
        "updatedAt": iso(row.updated_at),
    }


def update_series(s: "Session", spec: SeriesSpec, payload: dict, user: "User") -> "BudgetSeries":
    row = get_series_row(s, spec)
    middle = payload.get(spec.middle)
    if middle is None:
        # accept either spelling of the middle scenario
        middle = payload.get("medio", payload.get("media"))
    row.previsto = normalize_months(payload.get("previsto"))
    row.medio = normalize_months(middle)
    row.maximo = normalize_months(payload.get("maximo"))
    row.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="budget.update", module_key=MODULE_KEY, entity_type="BudgetSeries", entity_id=spec.key)
    return row


def _reset_series(row: "BudgetSeries") -> None:
    row.previsto = zeros()
    row.medio = zeros()
    row.maximo = zeros()
    row.updated_at = datetime.utcnow()


def clear_series(s: "Session", spec: SeriesSpec, user: "User") -> "BudgetSeries":
    """Snapshot, zero the three scenarios, then re-sync the projection."""
    if not spec.clearable:
        raise ValueError(f"Não é permitido limpar {spec.label}")
    row = get_series_row(s, spec)
    create_snapshot(s, spec, user, reason="clear")
    _reset_series(row)
    s.flush()
    sync_projection(s, user)
    record_event(s, actor=user, action="budget.clear", module_key=MODULE_KEY, entity_type="BudgetSeries", entity_id=spec.key)
    return row


# ---------- Snapshots ----------


def create_snapshot(s: "Session", spec: SeriesSpec, user: "User | None", *, reason: str = "manual") -> "BudgetSnapshot":
    from app.impgeo.modules.projection.models import BudgetSnapshot

    row = get_series_row(s, spec)
    snap = BudgetSnapshot(
        series_key=spec.key,
        payload={
            "previsto": normalize_months(row.previsto),
            "medio": normalize_months(row.medio),
            "maximo": normalize_months(row.maximo),
        },
        reason=reason,
        created_at=datetime.utcnow(),
        created_by_user_id=user.id if user else None,
    )
    s.add(snap)
    s.flush()
    if reason == "manual":
        record_event(
            s,
            actor=user,
            action="budget.backup",
            module_key=MODULE_KEY,
            entity_type="BudgetSeries",
            entity_id=spec.key,
            details={"snapshotId": snap.id},
        )
    return snap


def latest_snapshot(s: "Session", spec: SeriesSpec) -> "BudgetSnapshot | None":
    from app.impgeo.modules.projection.models import BudgetSnapshot

    return (
        s.query(BudgetSnapshot)
        .filter(BudgetSnapshot.series_key == spec.key)
        .order_by(BudgetSnapshot.created_at.desc(), BudgetSnapshot.id.desc())
        .first()
    )


def restore_snapshot(s: "Session", spec: SeriesSpec, user: "User") -> "BudgetSnapshot":
    snap = latest_snapshot(s, spec)
    if snap is None:
        raise LookupError(f"Nenhum backup encontrado para {spec.label}")
    row = get_series_row(s, spec)
    row.previsto = normalize_months(snap.payload.get("previsto"))
    row.medio = normalize_months(snap.payload.get("medio"))
    row.maximo = normalize_months(snap.payload.get("maximo"))
    row.updated_at = datetime.utcnow()
    s.flush()
    if spec.feeds:
        sync_projection(s, user)
    record_event(
        s,
        actor=user,
        action="budget.restore",
        module_key=MODULE_KEY,
        entity_type="BudgetSeries",
        entity_id=spec.key,
        details={"snapshotId": snap.id},
    )
    return snap


# ---------- Projection ----------


def get_projection_row(s: "Session") -> "Projection":
    from app.impgeo.modules.projection.models import Projection

    row = s.get(Projection, PROJECTION_ID)
    if row is None:
        now = datetime.utcnow()
        row = Projection(
            id=PROJECTION_ID,
            **{col: zeros() for col in PROJECTION_FIELDS},
            mkt_components=default_mkt_components(),
            growth=default_growth(),
            created_at=now,
            updated_at=now,
        )
        s.add(row)
        s.flush()
    return row


def projection_totals(row: "Projection") -> dict:
    """Monthly revenue, expenses and result derived from the master projection."""
    revenue = zeros()
    expenses = zeros()
    for col in REVENUE_FIELDS:
        for i, v in enumerate(normalize_months(getattr(row, col))):
            revenue[i] += v
    for col in EXPENSE_FIELDS:
        for i, v in enumerate(normalize_months(getattr(row, col))):
            expenses[i] += v
    result = [round(r - e, 2) for r, e in zip(revenue, expenses)]
    return {
        "faturamentoTotal": [round(v, 2) for v in revenue],
        "despesasTotal": [round(v, 2) for v in expenses],
        "resultado": result,
        "resultadoAnual": round(sum(result), 2),
    }


def serialize_projection(row: "Projection") -> dict:
    data: dict[str, Any] = {api: normalize_months(getattr(row, col)) for col, api in PROJECTION_FIELDS.items()}
    data["mktComponents"] = normalize_mkt_components(row.mkt_components)
    data["growth"] = normalize_growth(row.growth)
    data["totals"] = projection_totals(row)
    data["createdAt"] = iso(row.created_at)
    data["updatedAt"] = iso(row.updated_at)
    return data


def update_projection(s: "Session", payload: dict, user: "User") -> "Projection":
    row = get_projection_row(s)
    for col, api in PROJECTION_FIELDS.items():
        setattr(row, col, normalize_months(payload.get(api)))
    row.mkt_components = normalize_mkt_components(payload.get("mktComponents"))
    row.growth = normalize_growth(payload.get("growth"))
    row.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="projection.update", module_key=MODULE_KEY, entity_type="Projection", entity_id="1")
    return row


def sync_projection(s: "Session", user: "User | None") -> "Projection":
    """Copy each feeding series' "previsto" into its projection column."""
    row = get_projection_row(s)
    for spec in SERIES.values():
        if spec.feeds:
            setattr(row, spec.feeds, normalize_months(get_series_row(s, spec).previsto))
    row.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="projection.sync", module_key=MODULE_KEY, entity_type="Projection", entity_id="1")
    return row


def clear_all(s: "Session", user: "User") -> None:
    """Zero every series and the projection. The caller commits as one transaction."""
    for spec in SERIES.values():
        _reset_series(get_series_row(s, spec))
    row = get_projection_row(s)
    for col in PROJECTION_FIELDS:
        setattr(row, col, zeros())
    row.mkt_components = default_mkt_components()
    row.growth = default_growth()
    row.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="projection.clear_all", module_key=MODULE_KEY, entity_type="Projection", entity_id="1")


def ensure_projection_rows(s: "Session") -> None:
    """Idempotent seed for scripts/init_db.py."""
    get_projection_row(s)
    for spec in SERIES.values():
        get_series_row(s, spec)
