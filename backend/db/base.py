from db.session import Base, engine
from db.models.account import Account  # noqa: F401
from db.models.points_transaction import PointsTransaction  # noqa: F401
from db.models.task import Task, TaskAssignment, Submission  # noqa: F401
from db.models.reward import Reward, RewardRedemption  # noqa: F401
from db.models.referral import ReferralCode, ReferralApplication  # noqa: F401
import logging

logger = logging.getLogger(__name__)

async def initialize_database(bind=None):
    """Create tables only. Tasks and rewards are seeded by the admin tooling."""
    try:
        async with (bind or engine).begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created successfully")
    except Exception as e:
        logger.error(f"Error creating database tables: {e}")
        raise e
