# Creates every table without alembic (local runs and demos)
import asyncio

from rewards_ledger.core.database import engine, Base
from rewards_ledger import models  # noqa: F401


async def init_db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


if __name__ == "__main__":
    asyncio.run(init_db())
