from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.impgeo.models import Base, JSONType


class BudgetSeries(Base):
    """
    One budget category (fixed expenses, marketing, REURB revenue...):
    three twelve-month scenarios. Arrays always hold exactly 12 floats.
    """

    __tablename__ = "budget_series"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    previsto: Mapped[list] = mapped_column(JSONType, nullable=False)
    medio: Mapped[list] = mapped_column(JSONType, nullable=False)
    maximo: Mapped[list] = mapped_column(JSONType, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)


class Projection(Base):
    """Master projection; a single row with id=1."""

    __tablename__ = "projection"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    despesas_variaveis: Mapped[list] = mapped_column(JSONType, nullable=False)
    despesas_fixas: Mapped[list] = mapped_column(JSONType, nullable=False)
    investimentos: Mapped[list] = mapped_column(JSONType, nullable=False)
    mkt: Mapped[list] = mapped_column(JSONType, nullable=False)
    faturamento_reurb: Mapped[list] = mapped_column(JSONType, nullable=False)
    faturamento_geo: Mapped[list] = mapped_column(JSONType, nullable=False)
    faturamento_plan: Mapped[list] = mapped_column(JSONType, nullable=False)
    faturamento_reg: Mapped[list] = mapped_column(JSONType, nullable=False)
    faturamento_nn: Mapped[list] = mapped_column(JSONType, nullable=False)
    mkt_components: Mapped[dict] = mapped_column(JSONType, nullable=False)  # trafego, socialMedia, producaoConteudo
    growth: Mapped[dict] = mapped_column(JSONType, nullable=False)  # minimo, medio, maximo (%)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)


class BudgetSnapshot(Base):
    """Point-in-time copy of a series, taken before destructive operations or on demand."""

    __tablename__ = "budget_snapshots"
    __table_args__ = (Index("idx_budget_snapshots_series", "series_key", "created_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    series_key: Mapped[str] = mapped_column(String(64), nullable=False)
    payload: Mapped[dict] = mapped_column(JSONType, nullable=False)
    reason: Mapped[str | None] = mapped_column(String(64), nullable=True)  # manual, clear, clear_all
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
