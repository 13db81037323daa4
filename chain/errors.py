# chain/errors.py
"""
Error taxonomy for ledger reads, lifecycle writes and metadata resolution.

Read-path errors (TransientReadError, NotFound, Unavailable) are absorbed
per record during enumeration. Write-path errors (Rejected, Indeterminate,
AlreadyDecided, SubmissionFailed, TransportError) always reach the caller.
"""
from __future__ import annotations

from typing import Optional


class CarbonLedgerError(Exception):
    """Base class for everything raised by the ledger sync layer."""


class TransientReadError(CarbonLedgerError):
    """A read failed in transport. Retryable, never aborts a scan."""


class NotFound(CarbonLedgerError):
    """Index or id out of range. With dense ids this points at a data bug."""


class Busy(CarbonLedgerError):
    """A scan is already in flight and the repository rejects joiners."""


class AlreadyDecided(CarbonLedgerError):
    def __init__(self, claim_id: int, status):
        self.claim_id = claim_id
        self.status = status
        super().__init__(f"Claim {claim_id} is already {getattr(status, 'value', status)}")


class Rejected(CarbonLedgerError):
    """The ledger declined a write. `reason` is passed through verbatim."""

    def __init__(self, reason: str, tx_hash: Optional[str] = None):
        self.reason = reason
        self.tx_hash = tx_hash
        super().__init__(f"Ledger rejected the transaction: {reason}")


class Indeterminate(CarbonLedgerError):
    """
    A write was issued but its outcome is unknown (receipt timed out).
    Re-read the claim or certificate by id before retrying.
    """

    def __init__(self, tx_hash: Optional[str], detail: str = ""):
        self.tx_hash = tx_hash
        self.detail = detail
        msg = f"Transaction {tx_hash} submitted but could not be confirmed"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class TransportError(CarbonLedgerError):
    """A write could not be built or sent. Nothing reached the ledger."""


class SubmissionFailed(CarbonLedgerError):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Claim submission failed: {reason}")


class InvalidContentId(CarbonLedgerError):
    def __init__(self, content_id):
        self.content_id = content_id
        super().__init__(f"Invalid content id: {content_id!r}")


class Unavailable(CarbonLedgerError):
    """A metadata or document pointer could not be resolved."""

    def __init__(self, pointer: str, detail: str = ""):
        self.pointer = pointer
        self.detail = detail
        super().__init__(f"Could not resolve {pointer}: {detail}" if detail else f"Could not resolve {pointer}")
