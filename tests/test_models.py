# tests/test_models.py
import pytest

from chain.models import ClaimStatus, RawClaim, decode_claim, same_account

from conftest import ALICE, CID, T0


def _raw(status, *, decided=0, token_id=0, co2=50):
    return RawClaim(
        index=4,
        claimant=ALICE.lower(),
        project_name="Peatland",
        description="Rewetting",
        co2_offset=co2,
        documentation_id=CID,
        status=status,
        timestamp=T0,
        decided_timestamp=decided,
        token_id=token_id,
    )


# ────────────────────────────────────────────────────────────
# Status decoding
# ────────────────────────────────────────────────────────────

class TestStatusDecode:
    @pytest.mark.parametrize("raw,expected", [
        (0, ClaimStatus.PENDING),
        ("0", ClaimStatus.PENDING),
        (1, ClaimStatus.APPROVED),
        ("1", ClaimStatus.APPROVED),
        (2, ClaimStatus.REJECTED),
        (" 2 ", ClaimStatus.REJECTED),
    ])
    def test_numeric_and_text_forms_are_equivalent(self, raw, expected):
        assert ClaimStatus.decode(raw) is expected

    @pytest.mark.parametrize("raw", [3, -1, "x", "", None, True])
    def test_unknown_codes_raise(self, raw):
        with pytest.raises(ValueError):
            ClaimStatus.decode(raw)

    def test_code_round_trips(self):
        for s in ClaimStatus:
            assert ClaimStatus.decode(s.code) is s


# ────────────────────────────────────────────────────────────
# Claim invariants
# ────────────────────────────────────────────────────────────

class TestDecodeClaim:
    def test_pending_has_no_decision_or_certificate(self):
        # token_id / decided are junk on a pending record and must be ignored
        c = decode_claim(_raw("0", decided=T0 + 9, token_id=12))
        assert c.status is ClaimStatus.PENDING
        assert c.decided_at is None
        assert c.certificate_id is None

    def test_approved_carries_certificate_including_zero(self):
        c = decode_claim(_raw(1, decided=T0 + 60, token_id=0))
        assert c.certificate_id == 0
        assert c.decided_at is not None
        assert c.decided_at.timestamp() == T0 + 60

    def test_rejected_has_decision_but_no_certificate(self):
        c = decode_claim(_raw(2, decided=T0 + 60, token_id=5))
        assert c.certificate_id is None
        assert c.decided_at is not None

    def test_decided_without_timestamp_falls_back_to_submission(self, caplog):
        c = decode_claim(_raw(2, decided=0))
        assert c.decided_at == c.submitted_at
        assert "no decision timestamp" in caplog.text

    def test_producer_is_checksummed(self):
        c = decode_claim(_raw(0))
        assert c.producer == ALICE
        assert c.id == 4

    def test_negative_offset_rejected(self):
        with pytest.raises(ValueError):
            decode_claim(_raw(0, co2=-1))


def test_same_account_ignores_case():
    assert same_account(ALICE, ALICE.lower())
    assert not same_account(ALICE, None)
