"""
Excel templates, import and export for the registry entities.

Imports read the first sheet of an .xlsx file, map the header row through
Portuguese/English aliases and hand every usable row to the entity's create
service. Rows that lack the essential fields are skipped.
"""
from __future__ import annotations

import logging
import zipfile
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from io import BytesIO
from typing import TYPE_CHECKING, Any

from openpyxl import Workbook, load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from app.impgeo.modules.acompanhamentos.service import (
    create_acompanhamento,
    list_acompanhamentos,
    serialize_acompanhamento,
)
from app.impgeo.modules.clients.service import create_client, list_clients, serialize_client
from app.impgeo.modules.products.service import create_product, list_products, serialize_product
from app.impgeo.modules.projects.service import create_project, list_projects, parse_services, serialize_project
from app.impgeo.modules.transactions.service import create_transaction, list_transactions, serialize_transaction
from app.impgeo.utils import clean_str, parse_int, parse_number

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.impgeo.models import User

logger = logging.getLogger(__name__)

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@dataclass(frozen=True)
class SheetType:
    key: str
    module_key: str
    sheet_name: str
    template_filename: str
    noun: str  # plural used in the import message
    gender: str  # "a" for feminine nouns (transações, ...), "o" otherwise
    headers: tuple[str, ...]
    samples: tuple[dict, ...]


TYPES: dict[str, SheetType] = {
    t.key: t
    for t in (
        SheetType(
            "transactions",
            "transactions",
            "Transações",
            "modelo-transacoes.xlsx",
            "transações",
            "a",
            ("Data", "Descrição", "Valor", "Tipo", "Categoria", "Subcategoria"),
            (
                {"Data": "2024-01-15", "Descrição": "Venda de produto", "Valor": 150.00, "Tipo": "Receita",
                 "Categoria": "Vendas", "Subcategoria": "Online"},
                {"Data": "2024-01-16", "Descrição": "Compra de material", "Valor": 75.50, "Tipo": "Despesa",
                 "Categoria": "Compras", "Subcategoria": "Escritório"},
            ),
        ),
        SheetType(
            "products",
            "products",
            "Produtos",
            "modelo-produtos.xlsx",
            "produtos",
            "o",
            ("Nome", "Categoria", "Preço", "Custo", "Estoque", "Vendido"),
            (),
        ),
        SheetType(
            "clients",
            "clients",
            "Clientes",
            "modelo-clientes.xlsx",
            "clientes",
            "o",
            ("Nome", "Email", "Telefone", "Endereço", "Tipo de Documento", "CPF", "CNPJ"),
            (
                {"Nome": "João Silva", "Email": "joao@email.com", "Telefone": "(11) 99999-9999",
                 "Endereço": "Rua das Flores, 123", "Tipo de Documento": "cpf", "CPF": "123.456.789-00", "CNPJ": ""},
                {"Nome": "Empresa XYZ Ltda", "Email": "contato@empresa.com", "Telefone": "(11) 88888-8888",
                 "Endereço": "Av. Principal, 456", "Tipo de Documento": "cnpj", "CPF": "",
                 "CNPJ": "12.345.678/0001-90"},
            ),
        ),
        SheetType(
            "projects",
            "projects",
            "Projetos",
            "modelo-projetos.xlsx",
            "projetos",
            "o",
            ("Nome", "Descrição", "Cliente", "Data Início", "Data Fim", "Status", "Valor", "Progresso", "Serviços"),
            (
                {"Nome": "Projeto Topografia Urbana", "Descrição": "Levantamento topográfico para loteamento",
                 "Cliente": "Construtora ABC", "Data Início": "2024-01-15", "Data Fim": "2024-03-15",
                 "Status": "ativo", "Valor": 15000.00, "Progresso": 60, "Serviços": "servico1,servico2"},
                {"Nome": "Projeto Georreferenciamento", "Descrição": "Georreferenciamento de propriedade rural",
                 "Cliente": "Fazenda XYZ", "Data Início": "2024-02-01", "Data Fim": "2024-02-28",
                 "Status": "concluido", "Valor": 8500.00, "Progresso": 100, "Serviços": "servico3"},
            ),
        ),
        SheetType(
            "acompanhamentos",
            "acompanhamentos",
            "Acompanhamentos",
            "modelo-acompanhamentos.xlsx",
            "acompanhamentos",
            "o",
            (
                "COD. IMP", "IMÓVEL", "MUNICÍPIO", "MAPA", "MATRÍCULAS", "N INCRA / CCIR", "CAR", "STATUS CAR",
                "ITR", "GEO CERTIFICAÇÃO", "GEO REGISTRO", "ÁREA TOTAL (ha)", "20% RESERVA LEGAL (ha)",
                "CULTURAS", "ÁREA (ha)", "CULTURAS.1", "ÁREA (ha).1", "OUTROS", "ÁREA (ha).2",
                "APP (CÓDIGO FLORESTAL)", "APP (VEGETADA)", "APP (NÃO VEGETADA)", "REMANESCENTE FLORESTAL (ha)",
            ),
            (
                {"COD. IMP": 1, "IMÓVEL": "Fazenda Jacarezinho", "MUNICÍPIO": "Joaquim Távora",
                 "MAPA": "https://www.google.com/maps/d/u/0/viewer?...", "MATRÍCULAS": "4031, 4183",
                 "N INCRA / CCIR": "731.000.003.808-7", "CAR": "PR-4112803-06020389GGA77AG9000237709GA760A2",
                 "STATUS CAR": "ATIVO - AGUARDANDO ANÁLISE SC", "ITR": "", "GEO CERTIFICAÇÃO": "SIM",
                 "GEO REGISTRO": "SIM", "ÁREA TOTAL (ha)": 33.26, "20% RESERVA LEGAL (ha)": 2.35,
                 "CULTURAS": "Cultura Temporária", "ÁREA (ha)": 5.64, "CULTURAS.1": "Pasto", "ÁREA (ha).1": 3.22,
                 "OUTROS": "Horta", "ÁREA (ha).2": 0.83, "APP (CÓDIGO FLORESTAL)": 2.38, "APP (VEGETADA)": 1.44,
                 "APP (NÃO VEGETADA)": 0.62, "REMANESCENTE FLORESTAL (ha)": 0.68},
            ),
        ),
    )
}

INVALID_TYPE_MESSAGE = 'Tipo inválido! Use "transactions", "products", "clients", "projects" ou "acompanhamentos"'


def sheet_type(key: str | None) -> SheetType:
    t = TYPES.get(key or "")
    if t is None:
        raise ValueError(INVALID_TYPE_MESSAGE)
    return t


# ---------- Workbook helpers ----------


def _workbook_bytes(sheet_name: str, headers: Iterable[str], rows: Iterable[Iterable[Any]]) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = sheet_name
    ws.append(list(headers))
    for row in rows:
        ws.append(list(row))
    buf = BytesIO()
    wb.save(buf)
    return buf.getvalue()


def build_template(t: SheetType) -> bytes:
    return _workbook_bytes(t.sheet_name, t.headers, ([sample.get(h, "") for h in t.headers] for sample in t.samples))


def dedupe_headers(raw: Iterable[Any]) -> list[str | None]:
    """Repeated header names get ".1", ".2"... suffixes, in column order."""
    seen: dict[str, int] = {}
    out: list[str | None] = []
    for h in raw:
        name = clean_str(h)
        if name is None:
            out.append(None)
            continue
        n = seen.get(name, 0)
        seen[name] = n + 1
        out.append(name if n == 0 else f"{name}.{n}")
    return out


def read_rows(data: bytes) -> list[dict[str, Any]]:
    """First worksheet as a list of {header: value}; blank rows are dropped."""
    try:
        wb = load_workbook(BytesIO(data), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as e:
        raise ValueError("Arquivo Excel inválido ou corrompido") from e
    try:
        ws = wb.worksheets[0]
        it = ws.iter_rows(values_only=True)
        header_row = next(it, None)
        if header_row is None:
            return []
        headers = dedupe_headers(header_row)
        rows = []
        for values in it:
            row = {h: v for h, v in zip(headers, values) if h is not None and v is not None and v != ""}
            if row:
                rows.append(row)
        return rows
    finally:
        wb.close()


def _first(row: dict, *aliases: str) -> Any:
    for a in aliases:
        v = row.get(a)
        if v is not None and v != "":
            return v
    return None


def _number(row: dict, *aliases: str) -> float:
    try:
        return parse_number(_first(row, *aliases))
    except ValueError:
        return 0.0


# ---------- Row mappers (spreadsheet row -> create payload or None) ----------


def _transaction_type(raw: Any) -> str | None:
    value = clean_str(raw)
    if value is None:
        return None
    lowered = value.lower()
    if lowered in ("entrada", "receita", "income"):
        return "Receita"
    if lowered in ("saída", "saida", "despesa", "expense"):
        return "Despesa"
    return value


def map_transaction(row: dict) -> dict | None:
    payload = {
        "date": _first(row, "Data", "date", "Date"),
        "description": clean_str(_first(row, "Descrição", "Descricao", "description", "Description")),
        "value": _number(row, "Valor", "value", "Value"),
        "type": _transaction_type(_first(row, "Tipo", "type", "Type")) or "Receita",
        "category": clean_str(_first(row, "Categoria", "category", "Category")) or "Outros",
        "subcategory": clean_str(_first(row, "Subcategoria", "SubCategoria", "subcategory", "Subcategory")),
    }
    if not payload["description"] or not payload["value"]:
        return None
    return payload


def map_product(row: dict) -> dict | None:
    payload = {
        "name": clean_str(_first(row, "Nome", "name", "Name")),
        "category": clean_str(_first(row, "Categoria", "category", "Category")) or "Outros",
        "price": _number(row, "Preço", "Preco", "price", "Price"),
        "cost": _number(row, "Custo", "cost", "Cost"),
        "stock": int(_number(row, "Estoque", "stock", "Stock")),
        "sold": int(_number(row, "Vendido", "sold", "Sold")),
    }
    return payload if payload["name"] else None


def map_client(row: dict) -> dict | None:
    document_type = (
        clean_str(_first(row, "Tipo de Documento", "tipo de documento", "Tipo de documento")) or "cpf"
    ).lower()
    payload = {
        "name": clean_str(_first(row, "Nome", "name", "Name")),
        "email": clean_str(_first(row, "Email", "email", "E-mail")),
        "phone": clean_str(_first(row, "Telefone", "phone", "Phone")),
        "address": clean_str(_first(row, "Endereço", "Endereco", "address", "Address")),
        "cpf": clean_str(_first(row, "CPF", "cpf", "Cpf")) if document_type == "cpf" else None,
        "cnpj": clean_str(_first(row, "CNPJ", "cnpj", "Cnpj")) if document_type == "cnpj" else None,
    }
    if not payload["name"] or not payload["email"]:
        return None
    return payload


def map_project(row: dict) -> dict | None:
    payload = {
        "name": clean_str(_first(row, "Nome", "name", "Name")),
        "description": clean_str(_first(row, "Descrição", "Descricao", "descricao", "description", "Description")),
        "client": clean_str(_first(row, "Cliente", "client", "Client")),
        "startDate": _first(row, "Data Início", "Data Inicio", "data_inicio", "startDate", "StartDate"),
        "endDate": _first(row, "Data Fim", "data_fim", "endDate", "EndDate"),
        "status": clean_str(_first(row, "Status", "status")) or "ativo",
        "value": _number(row, "Valor", "valor", "value", "Value"),
        "progress": int(_number(row, "Progresso", "progresso", "progress", "Progress")),
        "services": parse_services(clean_str(_first(row, "Serviços", "Servicos", "servicos", "services", "Services"))),
    }
    if not payload["name"] or not payload["client"]:
        return None
    return payload


def map_acompanhamento(row: dict) -> dict | None:
    try:
        cod = parse_int(_first(row, "COD. IMP", "Cod. Imp", "codImovel", "COD IMP"))
    except ValueError:
        cod = 0
    payload = {
        "cod_imovel": cod,
        "imovel": clean_str(_first(row, "IMÓVEL", "Imóvel", "imovel", "IMOVEL")),
        "municipio": _first(row, "MUNICÍPIO", "Município", "municipio", "MUNICIPIO"),
        "mapa_url": _first(row, "MAPA", "Mapa", "mapa", "MAPA URL", "Mapa URL", "mapaUrl"),
        "matriculas": _first(row, "MATRÍCULAS", "Matrículas", "matriculas", "MATRICULAS"),
        "n_incra_ccir": _first(row, "N INCRA / CCIR", "N Incra / CCIR", "nIncraCcir", "N INCRA CCIR"),
        "car": _first(row, "CAR", "car"),
        "status_car": _first(row, "STATUS CAR", "Status CAR", "statusCar", "STATUS_CAR")
        or "ATIVO - AGUARDANDO ANÁLISE SC",
        "itr": _first(row, "ITR", "itr"),
        "geo_certificacao": _first(row, "GEO CERTIFICAÇÃO", "Geo Certificação", "geoCertificacao", "GEO_CERTIFICACAO"),
        "geo_registro": _first(row, "GEO REGISTRO", "Geo Registro", "geoRegistro", "GEO_REGISTRO"),
        "area_total": _number(row, "ÁREA TOTAL (ha)", "Área Total (ha)", "areaTotal", "AREA_TOTAL"),
        "reserva_legal": _number(row, "20% RESERVA LEGAL (ha)", "20% Reserva Legal (ha)", "reservaLegal", "RESERVA_LEGAL"),
        "cultura1": _first(row, "CULTURAS", "Culturas", "cultura1", "CULTURA1"),
        "area_cultura1": _number(row, "ÁREA (ha)", "Área (ha)", "areaCultura1", "AREA_CULTURA1"),
        "cultura2": _first(row, "CULTURAS.1", "Culturas 2", "cultura2", "CULTURA2"),
        "area_cultura2": _number(row, "ÁREA (ha).1", "Área (ha) 2", "areaCultura2", "AREA_CULTURA2"),
        "outros": _first(row, "OUTROS", "Outros", "outros"),
        "area_outros": _number(row, "ÁREA (ha).2", "Área (ha) Outros", "areaOutros", "AREA_OUTROS"),
        "app_codigo_florestal": _number(
            row, "APP (CÓDIGO FLORESTAL)", "APP (Código Florestal)", "appCodigoFlorestal", "APP_CODIGO_FLORESTAL"
        ),
        "app_vegetada": _number(row, "APP (VEGETADA)", "APP (Vegetada)", "appVegetada", "APP_VEGETADA"),
        "app_nao_vegetada": _number(
            row, "APP (NÃO VEGETADA)", "APP (Não Vegetada)", "appNaoVegetada", "APP_NAO_VEGETADA"
        ),
        "remanescente_florestal": _number(
            row, "REMANESCENTE FLORESTAL (ha)", "Remanescente Florestal (ha)", "remanescenteFlorestal",
            "REMANESCENTE_FLORESTAL",
        ),
    }
    if cod <= 0 or not payload["imovel"]:
        return None
    return payload


MAPPERS: dict[str, Callable[[dict], dict | None]] = {
    "transactions": map_transaction,
    "products": map_product,
    "clients": map_client,
    "projects": map_project,
    "acompanhamentos": map_acompanhamento,
}

CREATORS: dict[str, tuple[Callable, Callable]] = {
    "transactions": (create_transaction, serialize_transaction),
    "products": (create_product, serialize_product),
    "clients": (create_client, serialize_client),
    "projects": (create_project, serialize_project),
    "acompanhamentos": (create_acompanhamento, serialize_acompanhamento),
}


def import_rows(s: "Session", t: SheetType, rows: list[dict], user: "User") -> list[dict]:
    """
    Map and persist rows. Rows the mapper rejects, or that the entity
    service refuses, are skipped and logged. The caller commits.
    """
    mapper = MAPPERS[t.key]
    create, serialize = CREATORS[t.key]
    saved = []
    for index, row in enumerate(rows, start=2):
        payload = mapper(row)
        if payload is None:
            continue
        try:
            obj = create(s, payload, user)
        except ValueError as e:
            logger.info("import %s: skipping row %s: %s", t.key, index, e)
            continue
        saved.append(serialize(obj))
    return saved


def import_message(t: SheetType, count: int) -> str:
    return f"{count} {t.noun} importad{t.gender}s com sucesso!"


# ---------- Export ----------

EXPORT_COLUMNS: dict[str, tuple[tuple[str, str], ...]] = {
    "transactions": (
        ("Data", "date"),
        ("Descrição", "description"),
        ("Valor", "value"),
        ("Tipo", "type"),
        ("Categoria", "category"),
        ("Subcategoria", "subcategory"),
    ),
    "products": (
        ("Nome", "name"),
        ("Categoria", "category"),
        ("Preço", "price"),
        ("Custo", "cost"),
        ("Estoque", "stock"),
        ("Vendido", "sold"),
    ),
    "clients": (
        ("Nome", "name"),
        ("Email", "email"),
        ("Telefone", "phone"),
        ("Endereço", "address"),
        ("CPF", "cpf"),
        ("CNPJ", "cnpj"),
    ),
    "projects": (
        ("Nome", "name"),
        ("Descrição", "description"),
        ("Cliente", "client"),
        ("Data Início", "startDate"),
        ("Data Fim", "endDate"),
        ("Status", "status"),
        ("Valor", "value"),
        ("Progresso", "progress"),
        ("Serviços", "services"),
    ),
    "acompanhamentos": (
        ("COD. IMP", "cod_imovel"),
        ("IMÓVEL", "imovel"),
        ("MUNICÍPIO", "municipio"),
        ("MAPA", "mapa_url"),
        ("MATRÍCULAS", "matriculas"),
        ("N INCRA / CCIR", "n_incra_ccir"),
        ("CAR", "car"),
        ("STATUS CAR", "status_car"),
        ("ITR", "itr"),
        ("GEO CERTIFICAÇÃO", "geo_certificacao"),
        ("GEO REGISTRO", "geo_registro"),
        ("ÁREA TOTAL (ha)", "area_total"),
        ("20% RESERVA LEGAL (ha)", "reserva_legal"),
        ("CULTURAS", "cultura1"),
        ("ÁREA (ha)", "area_cultura1"),
        ("CULTURAS.1", "cultura2"),
        ("ÁREA (ha).1", "area_cultura2"),
        ("OUTROS", "outros"),
        ("ÁREA (ha).2", "area_outros"),
        ("APP (CÓDIGO FLORESTAL)", "app_codigo_florestal"),
        ("APP (VEGETADA)", "app_vegetada"),
        ("APP (NÃO VEGETADA)", "app_nao_vegetada"),
        ("REMANESCENTE FLORESTAL (ha)", "remanescente_florestal"),
    ),
}

LISTERS: dict[str, tuple[Callable, Callable]] = {
    "transactions": (list_transactions, serialize_transaction),
    "products": (list_products, serialize_product),
    "clients": (list_clients, serialize_client),
    "projects": (list_projects, serialize_project),
    "acompanhamentos": (list_acompanhamentos, serialize_acompanhamento),
}


def _field(rec: dict, field: str) -> Any:
    if field in rec:
        return rec[field]
    head, *rest = field.split("_")
    return rec.get(head + "".join(p.capitalize() for p in rest))


def _cell(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    if isinstance(value, dict):
        return str(value)
    return value


def current_rows(s: "Session", t: SheetType) -> list[dict]:
    lister, serialize = LISTERS[t.key]
    return [serialize(obj) for obj in lister(s)]


def export_workbook(t: SheetType, records: list[dict]) -> bytes:
    if not isinstance(records, list):
        raise ValueError("data deve ser um array")
    columns = EXPORT_COLUMNS[t.key]
    rows = (
        [_cell(_field(rec, field)) for _, field in columns]
        for rec in records
        if isinstance(rec, dict)
    )
    return _workbook_bytes(t.sheet_name, (header for header, _ in columns), rows)
