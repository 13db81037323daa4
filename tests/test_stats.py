# tests/test_stats.py
from chain.models import RawClaim, decode_claim
from chain.stats import summarize

from conftest import ALICE, BOB, CID, T0


def _claim(index, producer, co2, status):
    return decode_claim(RawClaim(
        index=index,
        claimant=producer,
        project_name="p",
        description="",
        co2_offset=co2,
        documentation_id=CID,
        status=status,
        timestamp=T0 + index,
        decided_timestamp=T0 + 100 if status else 0,
        token_id=index,
    ))


def test_counts_and_offset_for_one_account():
    claims = [
        _claim(0, ALICE, 50, 0),
        _claim(1, ALICE, 70, 1),
        _claim(2, ALICE, 30, 1),
        _claim(3, ALICE, 999, 2),
        _claim(4, BOB, 400, 1),
    ]
    stats = summarize(claims, ALICE.lower())
    assert (stats.pending_count, stats.approved_count, stats.rejected_count) == (1, 2, 1)
    # pending and rejected offsets are not counted
    assert stats.total_offset == 100


def test_unknown_account_is_all_zero():
    stats = summarize([_claim(0, ALICE, 50, 1)], BOB)
    assert stats.account == BOB
    assert (stats.pending_count, stats.approved_count, stats.rejected_count, stats.total_offset) == (0, 0, 0, 0)
