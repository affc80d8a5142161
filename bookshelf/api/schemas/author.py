"""Author response schemas."""

from __future__ import annotations

from datetime import date

from pydantic import BaseModel, ConfigDict


class GenreResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str


class BookResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: str
    image_file: str
    book_file: str
    genres: list[GenreResponse]


class AuthorResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    full_name: str
    born_at: date
    died_at: date | None
    info: str
    image_file: str | None


class AuthorDetail(AuthorResponse):
    books: list[BookResponse]
