"""books table and the books <-> genres association."""

from typing import TYPE_CHECKING

from sqlalchemy import Column, ForeignKey, Integer, Table, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bookshelf.core.database import Base, TimestampMixin

if TYPE_CHECKING:
    from bookshelf.models.author import Author
    from bookshelf.models.genre import Genre

book_genres = Table(
    "book_genres",
    Base.metadata,
    Column("book_id", ForeignKey("books.id", ondelete="CASCADE"), primary_key=True),
    Column("genre_id", ForeignKey("genres.id", ondelete="CASCADE"), primary_key=True),
)


class Book(TimestampMixin, Base):
    __tablename__ = "books"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    author_id: Mapped[int] = mapped_column(
        ForeignKey("authors.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    image_file: Mapped[str] = mapped_column(Text, nullable=False)
    book_file: Mapped[str] = mapped_column(Text, nullable=False)

    author: Mapped["Author"] = relationship(back_populates="books")
    genres: Mapped[list["Genre"]] = relationship(secondary=book_genres, lazy="selectin")
