from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from rewards_ledger.core.config import config


engine = create_async_engine(config.DATABASE_URL, echo=config.DEBUG_MODE)
async_session = async_sessionmaker(
	bind=engine,
	expire_on_commit=False,
	class_=AsyncSession
)

Base = declarative_base()


def utc_now() -> datetime:
	return datetime.now(timezone.utc)
