# tests/conftest.py
"""
In-memory stand-in for the CarbonOffsetNFT ledger client.

Same surface as chain.ledger.LedgerClient: blocking reads by index, and
two-phase writes (submit returns a tx hash, wait applies it and returns a
Receipt). Knobs let tests inject transient failures, refusals, stalls and
interleaved writes from other wallets.
"""
import threading
import time
from typing import Callable, Dict, List, Optional, Set
from unittest.mock import Mock

import pytest
from web3 import Web3

from chain.errors import Indeterminate, NotFound, Rejected, TransientReadError
from chain.models import Listing, RawClaim, Receipt
from metadata import MetadataResolver

ADMIN = Web3.to_checksum_address("0x" + "ad" * 20)
ALICE = Web3.to_checksum_address("0x" + "a1" * 20)
BOB = Web3.to_checksum_address("0x" + "b0" * 20)

CID = "Qm" + "a" * 44
CID2 = "Qm" + "b" * 44

T0 = 1_700_000_000


class FakeLedger:
    def __init__(self, account: Optional[str] = ADMIN, *, has_account_index=True, has_listing_index=False):
        self.account = account
        self.admin = ADMIN
        self.has_account_index = has_account_index
        self.has_listing_index = has_listing_index

        self.records: List[dict] = []
        self.tokens: Dict[int, dict] = {}
        self.next_token = 0

        self.flaky: Set[int] = set()
        self.slow: Dict[int, float] = {}
        self.count_gate: Optional[threading.Event] = None
        self.count_calls = 0
        self.read_calls = 0

        self.refuse: Optional[str] = None
        self.stall = False
        self.interleave: Optional[Callable[[], None]] = None
        self.wait_gate: Optional[threading.Event] = None
        self.wait_entered = threading.Event()
        self.submitted: List[tuple] = []
        self._pending: Dict[str, tuple] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------
    # Seeding
    # ------------------------------------------------------------

    def add_claim(self, producer, co2_offset=50, status=0, *, project_name="Mangrove restoration",
                  description="Coastal replanting", documentation_id=CID, timestamp=None,
                  decided=0, token_id=0) -> int:
        with self._lock:
            index = len(self.records)
            self.records.append({
                "claimant": producer,
                "project_name": project_name,
                "description": description,
                "co2_offset": co2_offset,
                "documentation_id": documentation_id,
                "status": status,
                "timestamp": timestamp if timestamp is not None else T0 + index,
                "decided": decided,
                "token_id": token_id,
            })
            return index

    def add_approved(self, producer, co2_offset=50, *, token_id=None, uri=None) -> int:
        if token_id is None:
            token_id = self.next_token
        self.next_token = max(self.next_token, token_id + 1)
        index = self.add_claim(producer, co2_offset, 1, decided=T0 + 1000, token_id=token_id)
        self.tokens[token_id] = {
            "owner": producer,
            "uri": uri or f"ipfs://{self.records[index]['documentation_id']}",
            "listing": None,
        }
        return index

    # ------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------

    def count(self) -> int:
        self.count_calls += 1
        if self.count_gate is not None:
            self.count_gate.wait(timeout=5)
        return len(self.records)

    def read_claim(self, index: int) -> RawClaim:
        self.read_calls += 1
        if index in self.slow:
            time.sleep(self.slow[index])
        if index in self.flaky:
            raise TransientReadError(f"claims({index}) failed: connection reset")
        if index < 0 or index >= len(self.records):
            raise NotFound(f"claims({index}) reverted")
        r = self.records[index]
        return RawClaim(
            index=index,
            claimant=r["claimant"],
            project_name=r["project_name"],
            description=r["description"],
            co2_offset=r["co2_offset"],
            documentation_id=r["documentation_id"],
            status=r["status"],
            timestamp=r["timestamp"],
            decided_timestamp=r["decided"],
            token_id=r["token_id"],
        )

    def _ids_for(self, account):
        return [i for i, r in enumerate(self.records) if r["claimant"].lower() == account.lower()]

    def account_claim_count(self, account) -> int:
        return len(self._ids_for(account))

    def account_claim_id(self, account, index) -> int:
        return self._ids_for(account)[index]

    def _owned(self, account):
        return sorted(t for t, tok in self.tokens.items() if tok["owner"].lower() == account.lower())

    def owned_count(self, account) -> int:
        return len(self._owned(account))

    def owned_at(self, account, index) -> int:
        return self._owned(account)[index]

    def owner_of(self, token_id) -> str:
        if token_id not in self.tokens:
            raise NotFound(f"ownerOf({token_id}) reverted")
        return self.tokens[token_id]["owner"]

    def token_uri(self, token_id) -> str:
        if token_id not in self.tokens:
            raise NotFound(f"tokenURI({token_id}) reverted")
        return self.tokens[token_id]["uri"]

    def listing(self, token_id) -> Optional[Listing]:
        return self.tokens[token_id]["listing"]

    def _listed(self):
        return sorted(t for t, tok in self.tokens.items() if tok["listing"] is not None)

    def listed_count(self) -> int:
        return len(self._listed())

    def listed_at(self, index) -> int:
        return self._listed()[index]

    # ------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------

    def submit(self, operation, *args, value=0) -> str:
        if self.refuse:
            raise Rejected(self.refuse)
        with self._lock:
            tx = "0x%064x" % (len(self.submitted) + 1)
            self.submitted.append((operation, args))
            self._pending[tx] = (operation, args)
        return tx

    def wait(self, tx_hash, timeout=None) -> Receipt:
        self.wait_entered.set()
        if self.wait_gate is not None:
            self.wait_gate.wait(timeout=5)
        if self.stall:
            raise Indeterminate(tx_hash, "no receipt after 0s")
        if self.interleave is not None:
            hook, self.interleave = self.interleave, None
            hook()
        operation, args = self._pending.pop(tx_hash)
        getattr(self, "_apply_" + operation)(tx_hash, *args)
        return Receipt(tx_hash=tx_hash, success=True, block_number=len(self.submitted), gas_used=21000)

    def _apply_submitClaim(self, tx, co2_offset, project_name, description, documentation_id):
        self.add_claim(self.account, co2_offset, 0, project_name=project_name,
                       description=description, documentation_id=documentation_id)

    def _decide(self, tx, claim_id):
        if self.account != self.admin:
            raise Rejected("Ownable: caller is not the owner", tx_hash=tx)
        rec = self.records[claim_id]
        if str(rec["status"]) != "0":
            raise Rejected("Claim is not pending", tx_hash=tx)
        return rec

    def _apply_approveClaim(self, tx, claim_id, token_uri):
        rec = self._decide(tx, claim_id)
        token_id = self.next_token
        self.next_token += 1
        self.tokens[token_id] = {"owner": rec["claimant"], "uri": token_uri, "listing": None}
        rec.update(status=1, token_id=token_id, decided=T0 + 5000)

    def _apply_rejectClaim(self, tx, claim_id, reason):
        rec = self._decide(tx, claim_id)
        rec.update(status=2, decided=T0 + 5000, reason=reason)

    def _apply_listNFTForSale(self, tx, token_id, price):
        tok = self.tokens.get(token_id)
        if tok is None or tok["owner"].lower() != (self.account or "").lower():
            raise Rejected("Not the token owner", tx_hash=tx)
        tok["listing"] = Listing(price=price, seller=tok["owner"])


def gateway_response(status=200, payload=None, exc=None):
    """A requests.Session stand-in whose get() returns one canned response."""
    session = Mock()
    if exc is not None:
        session.get.side_effect = exc
        return session
    response = Mock()
    response.status_code = status
    if isinstance(payload, Exception):
        response.json.side_effect = payload
    else:
        response.json.return_value = payload
    session.get.return_value = response
    return session


DOC = {
    "projectName": "Mangrove restoration",
    "projectDescription": "Coastal replanting",
    "co2Offset": 50,
    "documentationHash": CID,
}


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def resolver():
    return MetadataResolver("https://gateway.test/ipfs", session=gateway_response(payload=DOC))
