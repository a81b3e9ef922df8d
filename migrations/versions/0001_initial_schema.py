"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001_initial_schema'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    ]


def _created_by() -> sa.Column:
    return sa.Column("created_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)


def _area(name: str) -> sa.Column:
    return sa.Column(name, sa.Float(), nullable=False, server_default="0")


def upgrade() -> None:
    """Create users/permissions, registry, projection and share-link tables."""
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing_tables = set(inspector.get_table_names())

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("username", sa.String(150), nullable=False, unique=True),
            sa.Column("password_hash", sa.String(255), nullable=False),
            sa.Column("role", sa.String(16), nullable=False, server_default="user"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("first_name", sa.String(120), nullable=True),
            sa.Column("last_name", sa.String(120), nullable=True),
            sa.Column("email", sa.String(320), nullable=True),
            sa.Column("phone", sa.String(32), nullable=True),
            sa.Column("cpf", sa.String(14), nullable=True),
            sa.Column("birth_date", sa.Date(), nullable=True),
            sa.Column("gender", sa.String(32), nullable=True),
            sa.Column("position", sa.String(120), nullable=True),
            sa.Column("address", JSONType, nullable=True),
            sa.Column("photo_url", sa.String(512), nullable=True),
            sa.Column("last_login", sa.DateTime(), nullable=True),
            *_timestamps(),
            sa.CheckConstraint("role IN ('admin', 'user', 'guest')", name="ck_users_role"),
        )
        op.create_index("idx_users_email", "users", ["email"])

    if "modules_catalog" not in existing_tables:
        op.create_table(
            "modules_catalog",
            sa.Column("module_key", sa.String(100), primary_key=True),
            sa.Column("module_name", sa.String(150), nullable=False),
            sa.Column("icon_name", sa.String(100), nullable=True),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("route_path", sa.String(200), nullable=True),
            sa.Column("is_system", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
            *_timestamps(),
        )

    if "user_module_permissions" not in existing_tables:
        op.create_table(
            "user_module_permissions",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column(
                "module_key",
                sa.String(100),
                sa.ForeignKey("modules_catalog.module_key", ondelete="CASCADE", onupdate="CASCADE"),
                nullable=False,
            ),
            sa.Column("access_level", sa.String(16), nullable=False, server_default="view"),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.UniqueConstraint("user_id", "module_key", name="uq_user_module_permission"),
            sa.CheckConstraint("access_level IN ('view', 'write', 'edit')", name="ck_user_module_access_level"),
        )
        op.create_index("ix_user_module_permissions_user_id", "user_module_permissions", ["user_id"])

    if "activity_logs" not in existing_tables:
        op.create_table(
            "activity_logs",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("request_id", sa.String(64), nullable=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("username", sa.String(150), nullable=True),
            sa.Column("action", sa.String(128), nullable=False),
            sa.Column("module_key", sa.String(100), nullable=True),
            sa.Column("entity_type", sa.String(128), nullable=True),
            sa.Column("entity_id", sa.String(128), nullable=True),
            sa.Column("details_json", sa.Text(), nullable=True),
            sa.Column("ip_address", sa.String(64), nullable=True),
        )
        op.create_index("idx_activity_logs_created_at", "activity_logs", ["created_at"])
        op.create_index("idx_activity_logs_module_key", "activity_logs", ["module_key"])
        op.create_index("ix_activity_logs_user_id", "activity_logs", ["user_id"])

    if "password_reset_tokens" not in existing_tables:
        op.create_table(
            "password_reset_tokens",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("token", sa.String(128), nullable=False, unique=True),
            sa.Column("expires_at", sa.DateTime(), nullable=False),
            sa.Column("used", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("used_at", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("ix_password_reset_tokens_user_id", "password_reset_tokens", ["user_id"])

    if "transactions" not in existing_tables:
        op.create_table(
            "transactions",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("date", sa.Date(), nullable=False),
            sa.Column("description", sa.Text(), nullable=False),
            sa.Column("value", sa.Numeric(14, 2), nullable=False),
            sa.Column("type", sa.String(32), nullable=False),
            sa.Column("category", sa.String(128), nullable=True),
            sa.Column("subcategory", sa.String(128), nullable=True),
            *_timestamps(),
            _created_by(),
        )
        op.create_index("idx_transactions_date", "transactions", ["date"])
        op.create_index("idx_transactions_type", "transactions", ["type"])
        op.create_index("idx_transactions_category", "transactions", ["category"])

    if "subcategories" not in existing_tables:
        op.create_table(
            "subcategories",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(128), nullable=False, unique=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if "clients" not in existing_tables:
        op.create_table(
            "clients",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("email", sa.String(320), nullable=True),
            sa.Column("phone", sa.String(64), nullable=True),
            sa.Column("company", sa.String(255), nullable=True),
            sa.Column("address", sa.Text(), nullable=True),
            sa.Column("city", sa.String(128), nullable=True),
            sa.Column("state", sa.String(64), nullable=True),
            sa.Column("zip_code", sa.String(16), nullable=True),
            sa.Column("cpf", sa.String(18), nullable=True),
            sa.Column("cnpj", sa.String(20), nullable=True),
            *_timestamps(),
            _created_by(),
        )
        op.create_index("idx_clients_name", "clients", ["name"])
        op.create_index("idx_clients_email", "clients", ["email"])

    if "products" not in existing_tables:
        op.create_table(
            "products",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("category", sa.String(128), nullable=True),
            sa.Column("price", sa.Numeric(14, 2), nullable=False, server_default="0"),
            sa.Column("cost", sa.Numeric(14, 2), nullable=False, server_default="0"),
            sa.Column("stock", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("sold", sa.Integer(), nullable=False, server_default="0"),
            *_timestamps(),
            _created_by(),
        )
        op.create_index("idx_products_name", "products", ["name"])

    if "projects" not in existing_tables:
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("client", sa.String(255), nullable=True),
            sa.Column("status", sa.String(32), nullable=False, server_default="ativo"),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("start_date", sa.Date(), nullable=True),
            sa.Column("end_date", sa.Date(), nullable=True),
            sa.Column("value", sa.Numeric(14, 2), nullable=False, server_default="0"),
            sa.Column("progress", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("services", JSONType, nullable=True),
            *_timestamps(),
            _created_by(),
            sa.CheckConstraint("progress >= 0 AND progress <= 100", name="ck_projects_progress"),
        )
        op.create_index("idx_projects_name", "projects", ["name"])
        op.create_index("idx_projects_status", "projects", ["status"])

    if "services" not in existing_tables:
        op.create_table(
            "services",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("category", sa.String(128), nullable=True),
            sa.Column("price", sa.Numeric(14, 2), nullable=False, server_default="0"),
            sa.Column("duration", sa.Integer(), nullable=True),
            sa.Column("status", sa.String(16), nullable=False, server_default="ativo"),
            *_timestamps(),
            _created_by(),
        )
        op.create_index("idx_services_name", "services", ["name"])

    if "acompanhamentos" not in existing_tables:
        op.create_table(
            "acompanhamentos",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("cod_imovel", sa.String(32), nullable=True),
            sa.Column("imovel", sa.String(255), nullable=False),
            sa.Column("municipio", sa.String(255), nullable=True),
            sa.Column("mapa_url", sa.Text(), nullable=True),
            sa.Column("matriculas", sa.Text(), nullable=True),
            sa.Column("n_incra_ccir", sa.String(128), nullable=True),
            sa.Column("car", sa.String(128), nullable=True),
            sa.Column("status_car", sa.String(128), nullable=True),
            sa.Column("itr", sa.String(128), nullable=True),
            sa.Column("geo_certificacao", sa.String(8), nullable=False, server_default="NÃO"),
            sa.Column("geo_registro", sa.String(8), nullable=False, server_default="NÃO"),
            _area("area_total"),
            _area("reserva_legal"),
            sa.Column("cultura1", sa.String(255), nullable=True),
            _area("area_cultura1"),
            sa.Column("cultura2", sa.String(255), nullable=True),
            _area("area_cultura2"),
            sa.Column("outros", sa.String(255), nullable=True),
            _area("area_outros"),
            _area("app_codigo_florestal"),
            _area("app_vegetada"),
            _area("app_nao_vegetada"),
            _area("remanescente_florestal"),
            sa.Column("endereco", sa.Text(), nullable=True),
            sa.Column("status", sa.String(64), nullable=True),
            sa.Column("observacoes", sa.Text(), nullable=True),
            *_timestamps(),
            _created_by(),
        )
        op.create_index("idx_acompanhamentos_cod_imovel", "acompanhamentos", ["cod_imovel"])
        op.create_index("idx_acompanhamentos_municipio", "acompanhamentos", ["municipio"])

    if "share_links" not in existing_tables:
        op.create_table(
            "share_links",
            sa.Column("token", sa.String(80), primary_key=True),
            sa.Column("name", sa.String(255), nullable=True),
            sa.Column("password_hash", sa.String(255), nullable=True),
            sa.Column("expires_at", sa.DateTime(), nullable=True),
            sa.Column("selected_ids", JSONType, nullable=True),
            *_timestamps(),
            _created_by(),
        )

    if "budget_series" not in existing_tables:
        op.create_table(
            "budget_series",
            sa.Column("key", sa.String(64), primary_key=True),
            sa.Column("previsto", JSONType, nullable=False),
            sa.Column("medio", JSONType, nullable=False),
            sa.Column("maximo", JSONType, nullable=False),
            *_timestamps(),
        )

    if "projection" not in existing_tables:
        op.create_table(
            "projection",
            sa.Column("id", sa.Integer(), primary_key=True),
            *[
                sa.Column(name, JSONType, nullable=False)
                for name in (
                    "despesas_variaveis",
                    "despesas_fixas",
                    "investimentos",
                    "mkt",
                    "faturamento_reurb",
                    "faturamento_geo",
                    "faturamento_plan",
                    "faturamento_reg",
                    "faturamento_nn",
                    "mkt_components",
                    "growth",
                )
            ],
            *_timestamps(),
        )

    if "budget_snapshots" not in existing_tables:
        op.create_table(
            "budget_snapshots",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("series_key", sa.String(64), nullable=False),
            sa.Column("payload", JSONType, nullable=False),
            sa.Column("reason", sa.String(64), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            _created_by(),
        )
        op.create_index("idx_budget_snapshots_series", "budget_snapshots", ["series_key", "created_at"])


def downgrade() -> None:
    for table in (
        "budget_snapshots",
        "projection",
        "budget_series",
        "share_links",
        "acompanhamentos",
        "services",
        "projects",
        "products",
        "clients",
        "subcategories",
        "transactions",
        "password_reset_tokens",
        "activity_logs",
        "user_module_permissions",
        "modules_catalog",
        "users",
    ):
        op.drop_table(table)
