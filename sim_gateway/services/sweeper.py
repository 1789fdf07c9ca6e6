"""Periodic housekeeping: offline detection and raw log retention."""
import asyncio
import logging
from datetime import datetime

from sim_gateway.db import Store
from sim_gateway.errors import StorageError
from sim_gateway.repositories import device as device_repo
from sim_gateway.repositories import event_log as event_log_repo
from sim_gateway.services.timeutil import canonical_before

logger = logging.getLogger(__name__)


async def sweep(store: Store, timeout_seconds: float, now: datetime | None = None) -> int:
    """Mark online devices not seen for ``timeout_seconds`` as offline; returns how many."""
    threshold = canonical_before(timeout_seconds, now)
    async with store.session() as session:
        changed = await device_repo.mark_offline_before(session, threshold)
    if changed:
        logger.info("%d device(s) marked offline", changed)
    return changed


async def purge_messages(store: Store, retention_days: int, now: datetime | None = None) -> int:
    """Delete raw messages older than ``retention_days``; 0 disables."""
    if retention_days <= 0:
        return 0
    threshold = canonical_before(retention_days * 86400, now)
    async with store.session() as session:
        deleted = await event_log_repo.purge_messages_before(session, threshold)
    if deleted:
        logger.info("Purged %d raw message(s) older than %s", deleted, threshold)
    return deleted


class OfflineSweeper:
    def __init__(self, store: Store, timeout_seconds: float = 300, interval_seconds: float = 300):
        self.store = store
        self.timeout_seconds = timeout_seconds
        self.interval_seconds = interval_seconds

    async def run(self) -> None:
        """Sweep every ``interval_seconds`` until cancelled."""
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await sweep(self.store, self.timeout_seconds)
            except StorageError:
                logger.exception("Offline sweep failed")
