"""Project (tenant) model."""

from __future__ import annotations

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from catering_stock.db.base import Base, TimestampMixin


class Project(Base, TimestampMixin):
    """A catering project. Every stock record is scoped to one."""

    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
