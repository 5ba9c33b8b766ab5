"""
Periodic removal of expired verification codes and admin tickets.
"""
import asyncio

from core.logger import logger
from services.admin_verification import admin_verification
import config


def sweep_once() -> int:
    """Run one purge in its own session."""
    if not config.db:
        return 0
    with config.db.get_session() as db:
        return admin_verification.purge_expired(db)


async def run_expiry_sweeper(interval_seconds: int = None):
    """Purge forever, every ``interval_seconds``. Cancel the task to stop it."""
    interval = interval_seconds or config.OTP_SWEEP_INTERVAL_SECONDS
    logger.info(f"Expiry sweeper running every {interval}s")
    while True:
        try:
            await asyncio.to_thread(sweep_once)
        except Exception as e:
            logger.error(f"Expiry sweep failed: {e}", exc_info=True)
        await asyncio.sleep(interval)
