"""
Periodic removal of abandoned verifications. Runs as an asyncio task for the app's lifetime.
"""
import asyncio
import logging

from verify_server.registry import PendingRegistry

logger = logging.getLogger(__name__)


async def run_sweeper(registry: PendingRegistry, interval: float, max_age: float) -> None:
    """Sweep every `interval` seconds until cancelled. A failed sweep is logged and retried next tick."""
    while True:
        await asyncio.sleep(interval)
        try:
            removed = registry.sweep(max_age)
        except Exception:
            logger.exception("Sweep of pending verifications failed")
            continue
        if removed:
            logger.info("Cleaned up %d expired verification(s)", removed)
