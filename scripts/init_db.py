"""Script to initialize the database without running migrations."""

import asyncio

from sqlalchemy import text

from app.database import engine
from app.models import metadata


async def init_db() -> None:
    """Create extensions, tables and the slot overlap constraint."""
    async with engine.begin() as conn:
        await conn.execute(text('CREATE EXTENSION IF NOT EXISTS "pgcrypto"'))

        # btree_gist and appointments_no_overlap come from the metadata DDL hooks
        await conn.run_sync(metadata.create_all)

    print("✓ Database initialized successfully!")


if __name__ == "__main__":
    asyncio.run(init_db())
