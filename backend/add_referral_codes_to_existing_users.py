#!/usr/bin/env python3
"""
Backfill script: give every account that has no referral code one.

Usage:
    python add_referral_codes_to_existing_users.py

This script will:
1. Find all accounts without a row in referral_codes
2. Create a code for each through the referral engine (same uniqueness
   guarantees and collision retry as the API)
"""

import asyncio
import logging
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from db.session import get_or_use_session
from db.models.account import Account
from db.models.referral import ReferralCode
from services.referral_service import create_referral_code

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("migration")


async def add_referral_codes(db: AsyncSession = None) -> int:
    """Create missing referral codes; returns how many were created"""
    async with get_or_use_session(db) as session:
        result = await session.execute(
            select(Account.id)
            .outerjoin(ReferralCode, ReferralCode.owner_id == Account.id)
            .where(ReferralCode.code.is_(None))
            .order_by(Account.id)
        )
        account_ids = list(result.scalars().all())

        if not account_ids:
            logger.info("No accounts without referral codes")
            return 0

        logger.info(f"Found {len(account_ids)} accounts without referral codes")
        created = 0
        for account_id in account_ids:
            outcome = await create_referral_code(account_id, session)
            if outcome["created"]:
                created += 1
                logger.info(f"Assigned referral code {outcome['code']} to account {account_id}")
        logger.info(f"Backfill complete: {created} referral code(s) created")
        return created


async def main():
    from db.base import initialize_database
    await initialize_database()
    await add_referral_codes()


if __name__ == "__main__":
    asyncio.run(main())
