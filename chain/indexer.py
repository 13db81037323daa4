# chain/indexer.py
"""
Background refresher for the claim repository.
Rescans the contract every `interval` seconds so approvals and submissions
made by other wallets show up without a local write.
Does NOT use eth_getLogs; every pass is a plain getClaimCount()/claims(i) scan.
"""

import asyncio
import logging

from .errors import CarbonLedgerError

logger = logging.getLogger(__name__)


async def run_refresher(repository, interval: float):
    if interval <= 0:
        logger.info("Refresher disabled (REFRESH_INTERVAL=%s)", interval)
        return

    logger.info("Refresher running (rescanning claims every %ss)", interval)
    last_bound = repository.snapshot.bound

    while True:
        try:
            snap = await repository.refresh()
            if snap.bound > last_bound:
                logger.info("Found %d new claims (ids %d..%d)", snap.bound - last_bound, last_bound, snap.bound - 1)
            last_bound = snap.bound
        except CarbonLedgerError as e:
            logger.warning("Refresh failed: %s", e)
        except Exception as e:
            logger.exception("Refresher error: %s", e)
        await asyncio.sleep(interval)
