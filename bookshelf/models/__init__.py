"""SQLAlchemy ORM models — one file per table."""

from bookshelf.models.author import Author
from bookshelf.models.book import Book, book_genres
from bookshelf.models.genre import Genre
from bookshelf.models.user import Role, User

__all__ = [
    "Author",
    "Book",
    "Genre",
    "Role",
    "User",
    "book_genres",
]
