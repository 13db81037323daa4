# chain/stats.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from .models import Claim, ClaimStatus, same_account


@dataclass(frozen=True)
class AccountStats:
    account: str
    pending_count: int = 0
    approved_count: int = 0
    rejected_count: int = 0
    total_offset: int = 0  # tonnes CO2 across approved claims only


def summarize(claims: Iterable[Claim], account: str) -> AccountStats:
    pending = approved = rejected = total = 0
    for c in claims:
        if not same_account(c.producer, account):
            continue
        if c.status is ClaimStatus.PENDING:
            pending += 1
        elif c.status is ClaimStatus.APPROVED:
            approved += 1
            total += c.co2_offset
        else:
            rejected += 1
    return AccountStats(
        account=account,
        pending_count=pending,
        approved_count=approved,
        rejected_count=rejected,
        total_offset=total,
    )
