# chain/lifecycle.py
"""
Claim lifecycle writes: submit, approve, reject (plus listing a certificate).

Pattern for every write: re-read -> submit tx -> wait for receipt ->
re-read -> rescan. The controller never edits the repository snapshot;
the ledger stays the only source of truth.

Pending -> Approved | Rejected. Both are terminal.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .errors import (
    AlreadyDecided,
    CarbonLedgerError,
    Indeterminate,
    NotFound,
    Rejected,
    SubmissionFailed,
    TransientReadError,
    TransportError,
)
from .ledger import call_ledger
from .models import ClaimStatus, Receipt, same_account

logger = logging.getLogger(__name__)

DEFAULT_REJECT_REASON = "Claim rejected by administrator"


class LifecycleController:
    def __init__(self, ledger, repository, *, metadata_scheme: str = "ipfs", call_timeout: float = 10.0):
        self.ledger = ledger
        self.repository = repository
        self.metadata_scheme = metadata_scheme
        self.call_timeout = call_timeout
        # One lifecycle write at a time per controller
        self._lock = asyncio.Lock()

    async def _send(self, operation: str, *args, value: int = 0) -> Receipt:
        tx_hash = await asyncio.to_thread(self.ledger.submit, operation, *args, value=value)
        return await asyncio.to_thread(self.ledger.wait, tx_hash)

    @staticmethod
    def _log_detached(task: asyncio.Task):
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.debug("Lifecycle write ended with %s: %s", type(exc).__name__, exc)

    async def _exclusive(self, body, *args):
        """
        Run `body` under the writer lock in its own task.

        Once issued a write is never abandoned: a cancelled caller detaches,
        and the task keeps the lock until the receipt is in and the record
        has been re-read.
        """
        async def run():
            async with self._lock:
                return await body(*args)

        task = asyncio.create_task(run())
        task.add_done_callback(self._log_detached)
        return await asyncio.shield(task)

    async def _resync(self, what: str):
        # The write is already confirmed; a failed rescan only leaves the
        # snapshot stale until the next one.
        try:
            await self.repository.refresh()
        except CarbonLedgerError as e:
            logger.warning("%s confirmed but rescan failed: %s", what, e)

    def metadata_pointer(self, documentation_id: str) -> str:
        return f"{self.metadata_scheme}://{documentation_id}"

    # ------------------------------------------------------------
    # Submit
    # ------------------------------------------------------------

    async def submit(
        self,
        producer: str,
        co2_offset: int,
        project_name: str,
        project_description: str,
        documentation_id: str,
    ) -> int:
        """
        Record a new claim for `producer` and return its id.

        Raises SubmissionFailed for bad input or a refused/unsent transaction,
        Indeterminate if the receipt never arrived.
        """
        if isinstance(co2_offset, bool) or not isinstance(co2_offset, int) or co2_offset <= 0:
            raise SubmissionFailed("co2Offset must be a positive integer")
        if not documentation_id or not documentation_id.strip():
            raise SubmissionFailed("documentationId is required")
        signer = self.ledger.account
        if signer is None:
            raise SubmissionFailed("no signing account configured")
        if not same_account(producer, signer):
            raise SubmissionFailed(f"producer {producer} is not the signing account {signer}")

        claim_id, receipt = await self._exclusive(
            self._submit, signer, co2_offset, project_name, project_description, documentation_id,
        )

        logger.info("Claim %d submitted by %s (%d t CO2, tx=%s)", claim_id, signer, co2_offset, receipt.tx_hash)
        await self._resync(f"Claim {claim_id} submission")
        return claim_id

    async def _submit(self, signer, co2_offset, project_name, project_description, documentation_id):
        try:
            previous = await call_ledger(self.ledger.count, timeout=self.call_timeout)
        except (TransientReadError, NotFound) as e:
            raise SubmissionFailed(f"could not read claim count: {e}") from e

        try:
            receipt = await self._send(
                "submitClaim", co2_offset, project_name, project_description, documentation_id,
            )
        except Rejected as e:
            raise SubmissionFailed(e.reason) from e
        except TransportError as e:
            raise SubmissionFailed(str(e)) from e

        return await self._locate_submitted(signer, previous), receipt

    async def _locate_submitted(self, producer: str, previous: int) -> int:
        """
        The new claim normally sits at the count read before submitting.
        If another producer got in between, the per-account index says where.
        """
        if not self.ledger.has_account_index:
            return previous
        try:
            n = await call_ledger(self.ledger.account_claim_count, producer, timeout=self.call_timeout)
            if n > 0:
                newest = await call_ledger(self.ledger.account_claim_id, producer, n - 1, timeout=self.call_timeout)
                if newest >= previous:
                    return newest
        except (TransientReadError, NotFound) as e:
            logger.warning("Could not confirm new claim id for %s, assuming %d: %s", producer, previous, e)
        return previous

    # ------------------------------------------------------------
    # Approve / reject
    # ------------------------------------------------------------

    async def _require_pending(self, claim_id: int):
        claim = await self.repository.read_claim(claim_id)
        if not claim.is_pending:
            raise AlreadyDecided(claim_id, claim.status)
        return claim

    async def approve(self, claim_id: int) -> int:
        """Approve a Pending claim and return the minted certificate id."""
        certificate_id, receipt = await self._exclusive(self._approve, claim_id)
        logger.info("Claim %d approved, certificate %d (tx=%s)", claim_id, certificate_id, receipt.tx_hash)
        await self._resync(f"Claim {claim_id} approval")
        return certificate_id

    async def _approve(self, claim_id: int):
        claim = await self._require_pending(claim_id)
        pointer = self.metadata_pointer(claim.documentation_id)
        logger.info("Approving claim %d with tokenURI %s", claim_id, pointer)

        receipt = await self._send("approveClaim", claim_id, pointer)

        try:
            after = await self.repository.read_claim(claim_id)
        except (TransientReadError, NotFound) as e:
            raise Indeterminate(receipt.tx_hash, f"approval confirmed but claim {claim_id} re-read failed: {e}") from e
        if after.status is not ClaimStatus.APPROVED or after.certificate_id is None:
            raise Indeterminate(
                receipt.tx_hash,
                f"approval confirmed but claim {claim_id} reads as {after.status.value}",
            )
        return after.certificate_id, receipt

    async def reject(self, claim_id: int, reason: Optional[str] = None) -> None:
        reason = reason or DEFAULT_REJECT_REASON
        receipt = await self._exclusive(self._reject, claim_id, reason)
        logger.info("Claim %d rejected (tx=%s)", claim_id, receipt.tx_hash)
        await self._resync(f"Claim {claim_id} rejection")

    async def _reject(self, claim_id: int, reason: str) -> Receipt:
        await self._require_pending(claim_id)
        logger.info("Rejecting claim %d: %s", claim_id, reason)

        receipt = await self._send("rejectClaim", claim_id, reason)

        try:
            after = await self.repository.read_claim(claim_id)
        except (TransientReadError, NotFound) as e:
            raise Indeterminate(receipt.tx_hash, f"rejection confirmed but claim {claim_id} re-read failed: {e}") from e
        if after.status is not ClaimStatus.REJECTED:
            raise Indeterminate(
                receipt.tx_hash,
                f"rejection confirmed but claim {claim_id} reads as {after.status.value}",
            )
        return receipt

    # ------------------------------------------------------------
    # Certificates
    # ------------------------------------------------------------

    async def list_for_sale(self, certificate_id: int, price: int) -> Receipt:
        """Offer an owned certificate at `price` wei. Settlement happens on the ledger."""
        if isinstance(price, bool) or not isinstance(price, int) or price <= 0:
            raise ValueError("price must be a positive integer (wei)")
        receipt = await self._exclusive(self._send, "listNFTForSale", certificate_id, price)
        logger.info("Certificate %d listed at %d wei (tx=%s)", certificate_id, price, receipt.tx_hash)
        return receipt
