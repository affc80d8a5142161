"""genres table."""

from sqlalchemy import Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from bookshelf.core.database import Base, TimestampMixin


class Genre(TimestampMixin, Base):
    __tablename__ = "genres"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
