# chain/claims.py
"""
Claim repository: enumerates every claim on the ledger and keeps the latest
classified snapshot.

The ledger only offers getClaimCount() and claims(i), so a scan is:
  1. read the count once (the bound for this generation),
  2. read [0, count) with bounded fan-out,
  3. skip and log records that fail, classify once every read has finished.

Only a scan writes the snapshot, and at most one scan runs at a time.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple

from .errors import Busy, NotFound, TransientReadError
from .ledger import call_ledger
from .models import Claim, ClaimStatus, decode_claim, same_account

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClaimPartition:
    pending: Tuple[Claim, ...] = ()
    approved: Tuple[Claim, ...] = ()
    rejected: Tuple[Claim, ...] = ()

    def by_status(self, status: ClaimStatus) -> Tuple[Claim, ...]:
        return {
            ClaimStatus.PENDING: self.pending,
            ClaimStatus.APPROVED: self.approved,
            ClaimStatus.REJECTED: self.rejected,
        }[status]


def classify(claims: Iterable[Claim]) -> ClaimPartition:
    pending, approved, rejected = [], [], []
    buckets = {
        ClaimStatus.PENDING: pending,
        ClaimStatus.APPROVED: approved,
        ClaimStatus.REJECTED: rejected,
    }
    for c in claims:
        buckets[c.status].append(c)
    return ClaimPartition(tuple(pending), tuple(approved), tuple(rejected))


def newest_first(claims: Iterable[Claim]) -> List[Claim]:
    epoch = datetime.fromtimestamp(0, tz=timezone.utc)
    return sorted(claims, key=lambda c: (c.submitted_at or epoch, c.id), reverse=True)


@dataclass(frozen=True)
class Snapshot:
    generation: int = 0
    bound: int = 0
    claims: Tuple[Claim, ...] = ()
    skipped: Tuple[int, ...] = ()
    taken_at: Optional[datetime] = None
    partition: ClaimPartition = field(default_factory=ClaimPartition)


class ClaimRepository:
    def __init__(
        self,
        ledger,
        *,
        concurrency: int = 8,
        call_timeout: float = 10.0,
        busy_policy: str = "join",
    ):
        if busy_policy not in ("join", "reject"):
            raise ValueError(f"busy_policy must be 'join' or 'reject', got {busy_policy!r}")
        self.ledger = ledger
        self.concurrency = max(1, int(concurrency))
        self.call_timeout = call_timeout
        self.busy_policy = busy_policy
        self._snapshot = Snapshot()
        self._inflight: Optional[asyncio.Task] = None

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    @property
    def scanning(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    # ------------------------------------------------------------
    # Remote calls
    # ------------------------------------------------------------

    async def _call(self, fn, *args):
        return await call_ledger(fn, *args, timeout=self.call_timeout)

    async def read_claim(self, claim_id: int) -> Claim:
        """Fresh single-record read. Raises NotFound / TransientReadError."""
        raw = await self._call(self.ledger.read_claim, claim_id)
        try:
            return decode_claim(raw)
        except ValueError as e:
            raise NotFound(f"Claim {claim_id} could not be decoded: {e}") from e

    async def _read_many(self, ids: Iterable[int]) -> Tuple[List[Claim], List[int]]:
        sem = asyncio.Semaphore(self.concurrency)

        async def read_one(i: int) -> Optional[Claim]:
            async with sem:
                try:
                    return await self.read_claim(i)
                except TransientReadError as e:
                    logger.warning("Skipping claim %d: %s", i, e)
                except NotFound as e:
                    logger.error("Claim %d missing below the scan bound: %s", i, e)
                return None

        ids = list(ids)
        results = await asyncio.gather(*(read_one(i) for i in ids))
        claims = [c for c in results if c is not None]
        skipped = [i for i, c in zip(ids, results) if c is None]
        return claims, skipped

    # ------------------------------------------------------------
    # Full scan
    # ------------------------------------------------------------

    async def _scan(self) -> Snapshot:
        bound = await self._call(self.ledger.count)
        claims, skipped = await self._read_many(range(bound))
        claims.sort(key=lambda c: c.id)

        snap = Snapshot(
            generation=self._snapshot.generation + 1,
            bound=bound,
            claims=tuple(claims),
            skipped=tuple(skipped),
            taken_at=datetime.now(timezone.utc),
            partition=classify(claims),
        )
        self._snapshot = snap
        if skipped:
            logger.warning(
                "Scan generation %d: %d/%d claims read, skipped ids %s",
                snap.generation, len(claims), bound, skipped,
            )
        else:
            logger.info("Scan generation %d: %d claims", snap.generation, bound)
        return snap

    @staticmethod
    def _log_failure(task: asyncio.Task):
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Claim scan failed: %s", exc)

    def _start_or_join(self, *, allow_join: bool) -> asyncio.Task:
        task = self._inflight
        if task is not None and not task.done():
            if not allow_join:
                raise Busy("A claim scan is already in progress")
            logger.debug("Joining in-flight claim scan")
            return task
        task = asyncio.create_task(self._scan())
        task.add_done_callback(self._log_failure)
        self._inflight = task
        return task

    async def scan_all(self) -> List[Claim]:
        """
        All claims in ascending id order, from one scan generation.
        A caller that stops waiting (cancellation) detaches from the scan;
        the scan itself runs to completion.
        """
        task = self._start_or_join(allow_join=self.busy_policy == "join")
        snap = await asyncio.shield(task)
        return list(snap.claims)

    async def refresh(self) -> Snapshot:
        """
        Run a scan that starts after this call. An in-flight scan may have read
        records before the caller's write landed, so it is waited out, not joined.
        """
        task = self._inflight
        if task is not None and not task.done():
            try:
                await asyncio.shield(task)
            except Exception as e:
                logger.debug("Previous scan ended with %s; rescanning", e)
        return await asyncio.shield(self._start_or_join(allow_join=True))

    # ------------------------------------------------------------
    # Per-account
    # ------------------------------------------------------------

    async def scan_for_account(self, account: str) -> List[Claim]:
        if not self.ledger.has_account_index:
            return [c for c in await self.scan_all() if same_account(c.producer, account)]

        n = await self._call(self.ledger.account_claim_count, account)
        sem = asyncio.Semaphore(self.concurrency)

        async def id_at(i: int) -> Optional[int]:
            async with sem:
                try:
                    return await self._call(self.ledger.account_claim_id, account, i)
                except (TransientReadError, NotFound) as e:
                    logger.warning("Skipping claim index %d for %s: %s", i, account, e)
                    return None

        ids = await asyncio.gather(*(id_at(i) for i in range(n)))
        claims, _ = await self._read_many(sorted({i for i in ids if i is not None}))

        mine = []
        for c in claims:
            if same_account(c.producer, account):
                mine.append(c)
            else:
                logger.error("Claim %d indexed for %s but produced by %s", c.id, account, c.producer)
        return sorted(mine, key=lambda c: c.id)
