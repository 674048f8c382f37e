"""AccessPolicy ORM model — per-table rules for what the AI may read or change."""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class AccessPolicy(Base):
    __tablename__ = "ai_datasources"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=lambda: uuid.uuid4().hex)
    table_schema: Mapped[str] = mapped_column(String(64), default="public")
    table_name: Mapped[str] = mapped_column(String(128), unique=True)
    display_name: Mapped[str] = mapped_column(String(128), default="")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    access_level: Mapped[str] = mapped_column(String(16), default="none")  # none|read|read_write|full
    is_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    allowed_columns: Mapped[list[str]] = mapped_column(JSON, default=list)
    excluded_columns: Mapped[list[str]] = mapped_column(JSON, default=list)
    max_rows_per_query: Mapped[int] = mapped_column(Integer, default=100)
    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)  # weak ref, no FK
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    @property
    def qualified_name(self) -> str:
        return f"{self.table_schema}.{self.table_name}"
