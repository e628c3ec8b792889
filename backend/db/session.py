from sqlalchemy.orm import declarative_base
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy import event
from contextlib import asynccontextmanager
from core.config import settings
import logging
from typing import Optional

Base = declarative_base()
logger = logging.getLogger("points_economy")

def _to_async_database_url(url: str) -> str:
    if not url:
        return url
    if url.startswith("mysql+pymysql://"):
        return url.replace("mysql+pymysql://", "mysql+aiomysql://", 1)
    if url.startswith("mysql://"):
        return url.replace("mysql://", "mysql+aiomysql://", 1)
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    return url

def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        return {}
    # pool_recycle < DB wait_timeout (often 600s)
    return {
        "pool_pre_ping": bool(settings.DB_PRE_PING),
        "pool_recycle": int(settings.DB_POOL_RECYCLE),
        "pool_size": int(settings.DB_POOL_SIZE),
        "max_overflow": int(settings.DB_MAX_OVERFLOW),
        "pool_timeout": int(settings.DB_POOL_TIMEOUT),
        "connect_args": {"connect_timeout": int(settings.DB_CONNECT_TIMEOUT)},
    }

def build_engine(url: str):
    async_url = _to_async_database_url(url)
    return create_async_engine(async_url, future=True, echo=False, **_engine_kwargs(async_url))

def build_sessionmaker(bind) -> async_sessionmaker:
    return async_sessionmaker(bind=bind, class_=AsyncSession, expire_on_commit=False)

ASYNC_DATABASE_URL = _to_async_database_url(settings.DATABASE_URL)

engine = build_engine(ASYNC_DATABASE_URL)
SessionLocal = build_sessionmaker(engine)

async def get_db_session():
    async with SessionLocal() as db:
        try:
            logger.debug("DB session dependency: opened")
            yield db
        except Exception:
            # ensure we always rollback when something goes wrong
            await db.rollback()
            raise
        finally:
            logger.debug("DB session dependency: closed")

@asynccontextmanager
async def get_or_use_session(db: Optional[AsyncSession]):
    """Yield provided AsyncSession without closing it, or create one if None."""
    if db is None:
        logger.debug("DB session: creating new session")
        async with SessionLocal() as new_db:
            try:
                yield new_db
            except Exception:
                await new_db.rollback()
                raise
    else:
        logger.debug("DB session: reusing provided session")
        yield db

# Lightweight pool logging
@event.listens_for(engine.sync_engine, "connect")
def _on_connect(dbapi_connection, connection_record):
    logger.debug("DB connect: id=%s", id(connection_record))

@event.listens_for(engine.sync_engine, "checkout")
def _on_checkout(dbapi_connection, connection_record, connection_proxy):
    logger.debug("DB checkout: id=%s", id(connection_record))

@event.listens_for(engine.sync_engine, "checkin")
def _on_checkin(dbapi_connection, connection_record):
    logger.debug("DB checkin: id=%s", id(connection_record))
