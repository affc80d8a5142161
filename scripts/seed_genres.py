"""Create the schema (optionally) and seed the genres table.

Book payloads reference genres by id, so at least one genre must exist
before authors can be created. Genre names come from the command line or,
by default, from ``DEFAULT_GENRES``.

    python scripts/seed_genres.py --create-schema
    python scripts/seed_genres.py Poetry Drama
"""

import argparse
import asyncio
import os
import sys
from pathlib import Path

# Add project root to path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from dotenv import load_dotenv

load_dotenv(ROOT / ".env")

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from bookshelf.core.database import Base
from bookshelf.core.logging import setup_logging
from bookshelf.dao.genre_dao import GenreDAO
import bookshelf.models  # noqa: F401  (registers every table on Base.metadata)

DEFAULT_GENRES = [
    "Fiction",
    "Non-fiction",
    "Fantasy",
    "Science fiction",
    "Mystery",
    "Biography",
    "History",
    "Poetry",
]


async def main(names: list[str], create_schema: bool) -> None:
    url = os.environ.get("BOOKSHELF_DATABASE_URL", "postgresql+asyncpg://localhost/bookshelf")
    engine = create_async_engine(url, pool_pre_ping=True)
    factory = async_sessionmaker(engine, expire_on_commit=False)

    if create_schema:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        print("Schema created.")

    dao = GenreDAO()
    async with factory() as session:
        for name in names:
            genre = await dao.get_or_create(session, name)
            print(f"  {genre.id:>4}  {genre.name}")
        await session.commit()

    print(f"Done: {len(names)} genres present.")
    await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("names", nargs="*", help="genre names (default: built-in list)")
    parser.add_argument(
        "--create-schema", action="store_true", help="create all tables before seeding"
    )
    parser.add_argument("--log-level", default=None, help="override BOOKSHELF_LOG_LEVEL")
    args = parser.parse_args()
    setup_logging(level=args.log_level)
    asyncio.run(main(args.names or DEFAULT_GENRES, args.create_schema))
