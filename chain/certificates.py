# chain/certificates.py
"""
Owned-certificate enumeration (ERC-721 Enumerable) with listing state and
off-ledger metadata. A token whose metadata can't be fetched is still
returned, with placeholder metadata.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from .errors import NotFound, TransientReadError
from .ledger import call_ledger
from .models import Certificate

logger = logging.getLogger(__name__)

LISTING_UNSUPPORTED = "marketplace listing enumeration unsupported"


@dataclass(frozen=True)
class Listings:
    certificates: Tuple[Certificate, ...] = ()
    supported: bool = True
    note: Optional[str] = None


class CertificateResolver:
    def __init__(self, ledger, metadata, *, concurrency: int = 8, call_timeout: float = 10.0):
        self.ledger = ledger
        self.metadata = metadata
        self.concurrency = max(1, int(concurrency))
        self.call_timeout = call_timeout
        # (owner, token) -> first time seen. Pruned to current holdings on
        # every complete owned_by() pass.
        self._first_seen: Dict[Tuple[str, int], datetime] = {}

    async def _call(self, fn, *args):
        return await call_ledger(fn, *args, timeout=self.call_timeout)

    def _seen(self, owner: str, token_id: int) -> datetime:
        key = (owner.lower(), token_id)
        return self._first_seen.setdefault(key, datetime.now(timezone.utc))

    async def _resolve(self, token_id: int, owner: str) -> Optional[Certificate]:
        try:
            pointer = await self._call(self.ledger.token_uri, token_id)
            listing = await self._call(self.ledger.listing, token_id)
        except (TransientReadError, NotFound) as e:
            logger.warning("Skipping certificate %d: %s", token_id, e)
            return None

        meta, resolved = await asyncio.to_thread(self.metadata.resolve_or_placeholder, pointer)
        return Certificate(
            certificate_id=token_id,
            owner=owner,
            metadata_pointer=pointer,
            metadata=meta,
            metadata_resolved=resolved,
            listing=listing,
            purchased_at_estimate=self._seen(owner, token_id),
        )

    async def _gather(self, jobs) -> List[Certificate]:
        sem = asyncio.Semaphore(self.concurrency)

        async def bounded(job):
            async with sem:
                return await job

        results = await asyncio.gather(*(bounded(j) for j in jobs))
        return [c for c in results if c is not None]

    async def owned_by(self, account: str) -> List[Certificate]:
        """Certificates held by `account`, in the ledger's owner-index order."""
        n = await self._call(self.ledger.owned_count, account)
        held = set()
        complete = True

        async def at(i: int) -> Optional[Certificate]:
            nonlocal complete
            try:
                token_id = await self._call(self.ledger.owned_at, account, i)
            except (TransientReadError, NotFound) as e:
                logger.warning("Skipping owned index %d for %s: %s", i, account, e)
                complete = False
                return None
            held.add(token_id)
            return await self._resolve(token_id, account)

        certs = await self._gather(at(i) for i in range(n))
        if complete:
            self._forget_sold(account, held)
        return certs

    def _forget_sold(self, account: str, held):
        # Tokens no longer held by `account` lose their first-seen time
        owner = account.lower()
        for key in [k for k in self._first_seen if k[0] == owner and k[1] not in held]:
            del self._first_seen[key]

    async def available(self) -> Listings:
        """
        Certificates currently listed for sale, across owners.
        Needs a ledger-side listing index; without one the result is empty and
        flagged unsupported instead of scanning every token.
        """
        if not self.ledger.has_listing_index:
            logger.info("available(): %s", LISTING_UNSUPPORTED)
            return Listings(supported=False, note=LISTING_UNSUPPORTED)

        n = await self._call(self.ledger.listed_count)

        async def at(i: int) -> Optional[Certificate]:
            try:
                token_id = await self._call(self.ledger.listed_at, i)
                owner = await self._call(self.ledger.owner_of, token_id)
            except (TransientReadError, NotFound) as e:
                logger.warning("Skipping listed index %d: %s", i, e)
                return None
            return await self._resolve(token_id, owner)

        certs = await self._gather(at(i) for i in range(n))
        # The index may lag a sale by a block; trust the per-token listing
        return Listings(certificates=tuple(c for c in certs if c.listing is not None))
