"""users table."""

import enum

from sqlalchemy import Integer, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from bookshelf.core.database import Base, TimestampMixin


class Role(str, enum.Enum):
    """Privilege tier, fixed at registration by the entry point used."""

    USER = "user"
    MODERATOR = "moderator"
    ADMIN = "admin"


class User(TimestampMixin, Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[str] = mapped_column(Text, nullable=False, server_default=text("'user'"))
