"""Secret ORM model — sealed provider credentials such as the OpenRouter key."""

from datetime import datetime

from sqlalchemy import DateTime, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class Secret(Base):
    __tablename__ = "secrets"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)  # e.g. OPENROUTER_API_KEY
    description: Mapped[str] = mapped_column(Text, default="")
    encrypted_value: Mapped[str] = mapped_column(Text)
    hint: Mapped[str] = mapped_column(String(16), default="")  # last chars, for recognition
    rotated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )
