"""
Create every table the API needs.

Run once against an empty database:
  python -m app.db.init_db
"""
import asyncio

from sqlalchemy.ext.asyncio import AsyncEngine

# Import all models so they are registered on Base.metadata
from app.auth.models import User  # noqa: F401
from app.core.models import Classroom, School, Student  # noqa: F401
from app.db.session import Base, engine


async def create_tables(bind: AsyncEngine) -> None:
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def main() -> None:
    await create_tables(engine)
    await engine.dispose()
    print("Tables created.")


if __name__ == "__main__":
    asyncio.run(main())
