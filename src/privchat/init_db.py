"""Create every table for a development database."""

import asyncio

from privchat.db.session import create_tables, engine


async def init_db() -> None:
    """Initialize the database by creating all tables."""
    await create_tables()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(init_db())
    print("Database initialized.")
