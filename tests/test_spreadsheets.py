"""Tests for Excel templates, import and export."""
from io import BytesIO

import pytest
from openpyxl import Workbook, load_workbook

from app.impgeo import create_app
from app.impgeo.accounts import create_user
from app.impgeo.db import session_scope
from app.impgeo.models import Base
from app.impgeo.modules.spreadsheets.service import (
    TYPES,
    build_template,
    dedupe_headers,
    import_message,
    map_client,
    map_transaction,
    read_rows,
)
from app.impgeo.permissions import ensure_default_modules


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("JWT_SECRET", "test-jwt-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    for k in ("S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        ensure_default_modules(s)
        create_user(s, {"username": "admin", "password": "admin123", "role": "admin"}, None)
        create_user(s, {"username": "visitante", "password": "guest123", "role": "guest"}, None)

    return app.test_client()


def _auth(client, username="admin", password="admin123"):
    r = client.post("/api/auth/login", json={"username": username, "password": password})
    assert r.status_code == 200
    return {"Authorization": f"Bearer {r.json['token']}"}


def _xlsx(headers, *rows) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.append(list(headers))
    for row in rows:
        ws.append(list(row))
    buf = BytesIO()
    wb.save(buf)
    return buf.getvalue()


def _upload(client, h, data: bytes, type_key: str, filename="dados.xlsx"):
    return client.post(
        "/api/import",
        data={"file": (BytesIO(data), filename), "type": type_key},
        headers=h,
        content_type="multipart/form-data",
    )


def test_dedupe_headers():
    assert dedupe_headers(["ÁREA (ha)", "X", "ÁREA (ha)", None, "ÁREA (ha)"]) == [
        "ÁREA (ha)",
        "X",
        "ÁREA (ha).1",
        None,
        "ÁREA (ha).2",
    ]


def test_templates_read_back_with_their_headers():
    t = TYPES["acompanhamentos"]
    rows = read_rows(build_template(t))
    assert len(rows) == 1
    assert rows[0]["ÁREA (ha).2"] == 0.83
    assert read_rows(build_template(TYPES["products"])) == []


def test_read_rows_rejects_garbage():
    with pytest.raises(ValueError):
        read_rows(b"not a workbook")


def test_row_mappers():
    assert map_transaction({"Descrição": "Venda", "Valor": "10,50", "Tipo": "Entrada"}) == {
        "date": None,
        "description": "Venda",
        "value": 10.5,
        "type": "Receita",
        "category": "Outros",
        "subcategory": None,
    }
    assert map_transaction({"Descrição": "Sem valor"}) is None
    assert map_transaction({"description": "Saída", "value": 5, "type": "Saída"})["type"] == "Despesa"
    assert map_client({"Nome": "Sem email"}) is None
    c = map_client({"Nome": "ACME", "Email": "a@acme.com", "Tipo de Documento": "CNPJ", "CPF": "1", "CNPJ": "2"})
    assert c["cpf"] is None and c["cnpj"] == "2"


def test_import_message():
    assert import_message(TYPES["transactions"], 3) == "3 transações importadas com sucesso!"
    assert import_message(TYPES["clients"], 1) == "1 clientes importados com sucesso!"


def test_template_download(client):
    h = _auth(client)
    r = client.get("/api/modelo/clients", headers=h)
    assert r.status_code == 200
    assert "modelo-clientes.xlsx" in r.headers["Content-Disposition"]
    ws = load_workbook(BytesIO(r.data)).active
    assert [c.value for c in ws[1]][:2] == ["Nome", "Email"]
    assert ws.max_row == 3

    assert client.get("/api/modelo/invoices", headers=h).status_code == 400
    assert client.get("/api/modelo/clients").status_code == 401


def test_import_transactions(client):
    h = _auth(client)
    data = _xlsx(
        ("Data", "Descrição", "Valor", "Tipo", "Categoria", "Subcategoria"),
        ("2024-01-15", "Venda de produto", 150, "Entrada", "Vendas", "Online"),
        ("2024-01-16", "Compra", "75,50", "Saída", None, None),
        ("2024-01-17", None, 10, "Receita", None, None),
        ("data ruim", "Linha inválida", 10, "Receita", None, None),
    )
    r = _upload(client, h, data, "transactions")
    assert r.status_code == 200, r.json
    assert r.json["count"] == 2
    assert r.json["message"] == "2 transações importadas com sucesso!"
    assert r.json["type"] == "transactions"

    rows = client.get("/api/transactions", headers=h).json["data"]
    assert {(t["description"], t["type"], t["value"]) for t in rows} == {
        ("Venda de produto", "Receita", 150.0),
        ("Compra", "Despesa", 75.5),
    }
    assert "Online" in client.get("/api/subcategories", headers=h).json["data"]


def test_import_acompanhamentos_template(client):
    h = _auth(client)
    r = _upload(client, h, build_template(TYPES["acompanhamentos"]), "acompanhamentos")
    assert r.status_code == 200
    a = client.get("/api/acompanhamentos", headers=h).json["data"][0]
    assert a["cod_imovel"] == "001"
    assert a["area_cultura2"] == 3.22
    assert a["geo_certificacao"] == "SIM"


def test_import_validation(client):
    h = _auth(client)
    data = _xlsx(("Nome",), ("X",))
    r = client.post("/api/import", data={"type": "clients"}, headers=h, content_type="multipart/form-data")
    assert r.status_code == 400
    assert r.json["error"] == "Nenhum arquivo foi enviado!"
    assert _upload(client, h, data, "invoices").status_code == 400
    r = _upload(client, h, b"a,b\n1,2", "clients", filename="dados.csv")
    assert r.status_code == 400
    assert r.json["error"] == "Apenas arquivos .xlsx são permitidos!"
    r = _upload(client, h, b"garbage", "clients")
    assert r.status_code == 400
    assert r.json["error"] == "Arquivo Excel inválido ou corrompido"


def test_import_rejects_files_over_ten_megabytes(client):
    h = _auth(client)
    r = _upload(client, h, b"0" * (10 * 1024 * 1024 + 1), "clients")
    assert r.status_code == 400
    assert r.json["error"] == "Arquivo muito grande! Tamanho máximo permitido: 10MB."
    assert client.get("/api/clients", headers=h).json["data"] == []


def test_import_requires_write(client):
    h = _auth(client, "visitante", "guest123")
    r = _upload(client, h, _xlsx(("Nome", "Email"), ("ACME", "a@acme.com")), "clients")
    assert r.status_code == 403


def test_export_posted_rows(client):
    h = _auth(client)
    r = client.post(
        "/api/export",
        json={"type": "projects", "data": [{"name": "P1", "client": "C1", "startDate": "2024-01-01", "services": ["a", "b"]}]},
        headers=h,
    )
    assert r.status_code == 200
    assert "projects_" in r.headers["Content-Disposition"]
    ws = load_workbook(BytesIO(r.data)).active
    assert ws["A2"].value == "P1"
    assert ws["D2"].value == "2024-01-01"
    assert ws["I2"].value == "a,b"

    assert client.post("/api/export", json={"type": "projects", "data": "x"}, headers=h).status_code == 400
    assert client.post("/api/export", json={"type": "nope"}, headers=h).status_code == 400


def test_export_database_rows(client):
    h = _auth(client)
    client.post("/api/clients", json={"name": "ACME", "email": "a@acme.com"}, headers=h)
    r = client.post("/api/export", json={"type": "clients"}, headers=h)
    assert r.status_code == 200
    ws = load_workbook(BytesIO(r.data)).active
    assert [c.value for c in ws[2]][:2] == ["ACME", "a@acme.com"]

    # guests may read clients, so they may export them
    g = _auth(client, "visitante", "guest123")
    assert client.post("/api/export", json={"type": "clients"}, headers=g).status_code == 200
