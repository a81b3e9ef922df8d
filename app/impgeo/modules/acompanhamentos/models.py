from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.impgeo.models import Base, JSONType


class Acompanhamento(Base):
    """
    Rural property compliance record: registry numbers (matrícula, INCRA/CCIR,
    CAR, ITR), georeferencing status and land-use areas in hectares.
    """

    __tablename__ = "acompanhamentos"
    __table_args__ = (
        Index("idx_acompanhamentos_cod_imovel", "cod_imovel"),
        Index("idx_acompanhamentos_municipio", "municipio"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    cod_imovel: Mapped[str | None] = mapped_column(String(32), nullable=True)  # zero-padded, e.g. "007"
    imovel: Mapped[str] = mapped_column(String(255), nullable=False)
    municipio: Mapped[str | None] = mapped_column(String(255), nullable=True)
    mapa_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    matriculas: Mapped[str | None] = mapped_column(Text, nullable=True)
    n_incra_ccir: Mapped[str | None] = mapped_column(String(128), nullable=True)
    car: Mapped[str | None] = mapped_column(String(128), nullable=True)
    status_car: Mapped[str | None] = mapped_column(String(128), nullable=True)
    itr: Mapped[str | None] = mapped_column(String(128), nullable=True)
    geo_certificacao: Mapped[str] = mapped_column(String(8), nullable=False, default="NÃO")  # SIM / NÃO
    geo_registro: Mapped[str] = mapped_column(String(8), nullable=False, default="NÃO")  # SIM / NÃO

    # Areas (ha)
    area_total: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    reserva_legal: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    cultura1: Mapped[str | None] = mapped_column(String(255), nullable=True)
    area_cultura1: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    cultura2: Mapped[str | None] = mapped_column(String(255), nullable=True)
    area_cultura2: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    outros: Mapped[str | None] = mapped_column(String(255), nullable=True)
    area_outros: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    app_codigo_florestal: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    app_vegetada: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    app_nao_vegetada: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    remanescente_florestal: Mapped[float] = mapped_column(Float, nullable=False, default=0)

    endereco: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str | None] = mapped_column(String(64), nullable=True)
    observacoes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)


class ShareLink(Base):
    """
    Public read-only view over acompanhamentos.
    selected_ids NULL means every record is visible.
    """

    __tablename__ = "share_links"

    token: Mapped[str] = mapped_column(String(80), primary_key=True)  # "view_" + 64 hex chars
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    selected_ids: Mapped[list | None] = mapped_column(JSONType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
