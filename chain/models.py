# chain/models.py
"""
Claim and certificate records as seen by the sync layer.

Raw ledger tuples are decoded here exactly once; nothing downstream ever
compares a raw status code.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from web3 import Web3

logger = logging.getLogger(__name__)


class ClaimStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"

    @classmethod
    def decode(cls, raw: Any) -> "ClaimStatus":
        """
        Map the ledger's status code to the enum.
        The code may arrive as an int (0/1/2) or as its text form ("0"/"1"/"2").
        """
        if isinstance(raw, bool):
            raise ValueError(f"Unrecognised claim status: {raw!r}")
        try:
            code = int(str(raw).strip())
        except (TypeError, ValueError):
            raise ValueError(f"Unrecognised claim status: {raw!r}") from None
        try:
            return _STATUS_CODES[code]
        except KeyError:
            raise ValueError(f"Unrecognised claim status: {raw!r}") from None

    @property
    def code(self) -> int:
        return _STATUS_VALUES[self]


_STATUS_CODES = {0: ClaimStatus.PENDING, 1: ClaimStatus.APPROVED, 2: ClaimStatus.REJECTED}
_STATUS_VALUES = {v: k for k, v in _STATUS_CODES.items()}


def normalize_account(account: str) -> str:
    return Web3.to_checksum_address(account)


def same_account(a: Optional[str], b: Optional[str]) -> bool:
    if not a or not b:
        return False
    return a.lower() == b.lower()


def _ts(seconds: Any) -> Optional[datetime]:
    seconds = int(seconds or 0)
    if seconds <= 0:
        return None
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


@dataclass(frozen=True)
class RawClaim:
    """One `claims(i)` record, undecoded."""
    index: int
    claimant: str
    project_name: str
    description: str
    co2_offset: int
    documentation_id: str
    status: Any
    timestamp: int
    decided_timestamp: int
    token_id: int


@dataclass(frozen=True)
class Claim:
    id: int
    producer: str
    project_name: str
    project_description: str
    co2_offset: int
    documentation_id: str
    status: ClaimStatus
    submitted_at: Optional[datetime]
    decided_at: Optional[datetime] = None
    certificate_id: Optional[int] = None

    @property
    def is_pending(self) -> bool:
        return self.status is ClaimStatus.PENDING


def decode_claim(raw: RawClaim) -> Claim:
    """
    Build a Claim from a raw record, enforcing:
      certificate_id present iff Approved
      decided_at present iff not Pending
    Raises ValueError on an unknown status code or a negative offset.
    """
    status = ClaimStatus.decode(raw.status)
    co2 = int(raw.co2_offset)
    if co2 < 0:
        raise ValueError(f"Claim {raw.index} has negative co2Offset {co2}")

    submitted_at = _ts(raw.timestamp)
    decided_at = None
    certificate_id = None

    if status is not ClaimStatus.PENDING:
        decided_at = _ts(raw.decided_timestamp)
        if decided_at is None:
            # Decided without a time: fall back to the submission time
            logger.warning("Claim %d is %s but has no decision timestamp", raw.index, status.value)
            decided_at = submitted_at or datetime.fromtimestamp(0, tz=timezone.utc)

    if status is ClaimStatus.APPROVED:
        certificate_id = int(raw.token_id)

    return Claim(
        id=int(raw.index),
        producer=normalize_account(raw.claimant),
        project_name=str(raw.project_name or ""),
        project_description=str(raw.description or ""),
        co2_offset=co2,
        documentation_id=str(raw.documentation_id or ""),
        status=status,
        submitted_at=submitted_at,
        decided_at=decided_at,
        certificate_id=certificate_id,
    )


@dataclass(frozen=True)
class Listing:
    price: int  # wei
    seller: Optional[str] = None
    is_listed: bool = True


@dataclass(frozen=True)
class Certificate:
    certificate_id: int
    owner: str
    metadata_pointer: str
    metadata: Any
    metadata_resolved: bool
    listing: Optional[Listing] = None
    # Display only. The ledger exposes no acquisition time; this is when this
    # resolver first saw the token in the owner's holdings.
    purchased_at_estimate: Optional[datetime] = None


@dataclass(frozen=True)
class Receipt:
    tx_hash: str
    success: bool
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    raw: Any = field(default=None, repr=False, compare=False)
