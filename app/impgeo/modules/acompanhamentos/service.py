from __future__ import annotations

import re
from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.impgeo.audit import record_event
from app.impgeo.crud import apply_changes
from app.impgeo.utils import clean_str, iso, parse_number, pick

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.impgeo.models import User
    from app.impgeo.modules.acompanhamentos.models import Acompanhamento

MODULE_KEY = "acompanhamentos"

TEXT_FIELDS = (
    ("municipio", ("municipio",)),
    ("mapa_url", ("mapa_url", "mapaUrl")),
    ("matriculas", ("matriculas",)),
    ("n_incra_ccir", ("n_incra_ccir", "nIncraCcir")),
    ("car", ("car",)),
    ("itr", ("itr",)),
    ("cultura1", ("cultura1",)),
    ("cultura2", ("cultura2",)),
    ("outros", ("outros",)),
    ("observacoes", ("observacoes",)),
)

AREA_FIELDS = (
    ("area_total", ("area_total", "areaTotal")),
    ("reserva_legal", ("reserva_legal", "reservaLegal")),
    ("area_cultura1", ("area_cultura1", "areaCultura1")),
    ("area_cultura2", ("area_cultura2", "areaCultura2")),
    ("area_outros", ("area_outros", "areaOutros")),
    ("app_codigo_florestal", ("app_codigo_florestal", "appCodigoFlorestal")),
    ("app_vegetada", ("app_vegetada", "appVegetada")),
    ("app_nao_vegetada", ("app_nao_vegetada", "appNaoVegetada")),
    ("remanescente_florestal", ("remanescente_florestal", "remanescenteFlorestal")),
)

SERIALIZED_FIELDS = (
    "id",
    "cod_imovel",
    "imovel",
    "municipio",
    "mapa_url",
    "matriculas",
    "n_incra_ccir",
    "car",
    "status_car",
    "itr",
    "geo_certificacao",
    "geo_registro",
    "area_total",
    "reserva_legal",
    "cultura1",
    "area_cultura1",
    "cultura2",
    "area_cultura2",
    "outros",
    "area_outros",
    "app_codigo_florestal",
    "app_vegetada",
    "app_nao_vegetada",
    "remanescente_florestal",
    "endereco",
    "status",
    "observacoes",
)


def format_cod_imovel(value: Any) -> str | None:
    """Digits only, left-padded to three places: 7 -> "007", "IMP-12" -> "012"."""
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    digits = re.sub(r"\D", "", str(value))
    if not digits:
        return None
    return digits.zfill(3)


def yes_no(value: Any) -> str:
    if isinstance(value, bool):
        return "SIM" if value else "NÃO"
    return "SIM" if str(value or "").strip().upper() == "SIM" else "NÃO"


def serialize_acompanhamento(a: "Acompanhamento") -> dict:
    data = {f: getattr(a, f) for f in SERIALIZED_FIELDS}
    data["created_at"] = iso(a.created_at)
    data["updated_at"] = iso(a.updated_at)
    return data


def values_from_payload(payload: dict) -> dict:
    """Accepts snake_case and camelCase keys; imovel and endereco fill in for each other."""
    imovel = clean_str(payload.get("imovel"))
    endereco = clean_str(payload.get("endereco"))
    if not imovel and not endereco:
        raise ValueError("Imóvel é obrigatório")

    values: dict[str, Any] = {
        "cod_imovel": format_cod_imovel(pick(payload, "cod_imovel", "codImovel")),
        "imovel": imovel or endereco,
        "endereco": endereco or imovel,
        "geo_certificacao": yes_no(pick(payload, "geo_certificacao", "geoCertificacao")),
        "geo_registro": yes_no(pick(payload, "geo_registro", "geoRegistro")),
    }
    for field, keys in TEXT_FIELDS:
        values[field] = clean_str(pick(payload, *keys))
    status_car = clean_str(pick(payload, "status_car", "statusCar"))
    status = clean_str(payload.get("status"))
    values["status_car"] = status_car or status
    values["status"] = status or status_car
    for field, keys in AREA_FIELDS:
        raw = pick(payload, *keys)
        try:
            area = parse_number(raw)
        except ValueError as e:
            raise ValueError(f"Área inválida em {field}: {raw}") from e
        if area < 0:
            raise ValueError(f"Área não pode ser negativa: {field}")
        values[field] = area
    return values


def list_acompanhamentos(s: "Session", ids: list[int] | None = None) -> list["Acompanhamento"]:
    from app.impgeo.modules.acompanhamentos.models import Acompanhamento

    q = s.query(Acompanhamento)
    if ids is not None:
        q = q.filter(Acompanhamento.id.in_(ids))
    return q.order_by(Acompanhamento.cod_imovel.asc(), Acompanhamento.id.asc()).all()


def create_acompanhamento(s: "Session", payload: dict, user: "User | None") -> "Acompanhamento":
    from app.impgeo.modules.acompanhamentos.models import Acompanhamento

    now = datetime.utcnow()
    a = Acompanhamento(**values_from_payload(payload), created_at=now, updated_at=now, created_by_user_id=user.id if user else None)
    s.add(a)
    s.flush()
    record_event(
        s,
        actor=user,
        action="acompanhamento.create",
        module_key=MODULE_KEY,
        entity_type="Acompanhamento",
        entity_id=str(a.id),
        details={"cod_imovel": a.cod_imovel, "imovel": a.imovel},
    )
    return a


def update_acompanhamento(s: "Session", a: "Acompanhamento", payload: dict, user: "User") -> "Acompanhamento":
    changes = apply_changes(a, values_from_payload(payload))
    if changes:
        a.updated_at = datetime.utcnow()
        record_event(
            s,
            actor=user,
            action="acompanhamento.update",
            module_key=MODULE_KEY,
            entity_type="Acompanhamento",
            entity_id=str(a.id),
            details={"changes": changes},
        )
    return a


def delete_acompanhamento(s: "Session", a: "Acompanhamento", user: "User") -> None:
    record_event(
        s,
        actor=user,
        action="acompanhamento.delete",
        module_key=MODULE_KEY,
        entity_type="Acompanhamento",
        entity_id=str(a.id),
        details={"cod_imovel": a.cod_imovel, "imovel": a.imovel},
    )
    s.delete(a)
