from contextlib import asynccontextmanager
import logging

from sqlalchemy.exc import IntegrityError, DBAPIError

from core.exceptions import PointsError, OperationFailed

logger = logging.getLogger(__name__)


async def safe_commit(session, server_error_message: str = None):
    try:
        await session.commit()
    except (IntegrityError, DBAPIError) as e:
        await session.rollback()
        raise OperationFailed(server_error_message) from e


@asynccontextmanager
async def atomic(session, operation: str):
    """Run the block as one transaction: commit on success, roll back on any error.

    Typed business errors pass through untouched. Anything else (constraint
    violation, driver error, bug) is collapsed into ``OperationFailed`` so a
    caller never sees a partially applied multi-step operation.
    """
    try:
        yield session
        await session.commit()
    except PointsError as e:
        await session.rollback()
        logger.info(f"{operation} rejected: {e.kind}: {e.message}")
        raise
    except Exception as e:
        await session.rollback()
        logger.exception(f"{operation} failed and was rolled back: {e}")
        raise OperationFailed() from e
