# chain/ledger.py
"""
Thin call adapter for the CarbonOffsetNFT contract.

Every method is one blocking RPC round trip (or a submit/wait pair for
writes). No caching, no business logic: callers decide what to retry,
skip or surface. web3 and transport exceptions are translated into the
chain.errors taxonomy at this boundary.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted

from .abi import function_names
from .errors import Indeterminate, NotFound, Rejected, TransientReadError, TransportError
from .models import Listing, RawClaim, Receipt

logger = logging.getLogger(__name__)

_REVERT_PREFIX = "execution reverted: "


def revert_reason(exc: Exception) -> str:
    """Extract the contract's revert string, without web3's prefix."""
    msg = getattr(exc, "message", None) or str(exc)
    if msg.startswith(_REVERT_PREFIX):
        msg = msg[len(_REVERT_PREFIX):]
    elif msg == "execution reverted":
        msg = "execution reverted (no reason given)"
    return msg


async def call_ledger(fn, *args, timeout: float):
    """
    Run one blocking read off the event loop, bounded by `timeout`.
    On timeout the worker thread is left to finish and its result is dropped.
    """
    try:
        return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout)
    except asyncio.TimeoutError as e:
        name = getattr(fn, "__name__", repr(fn))
        raise TransientReadError(f"{name}{args} timed out after {timeout}s") from e


class LedgerClient:
    def __init__(
        self,
        w3: Web3,
        contract_address: str,
        abi: List[Dict[str, Any]],
        *,
        signer=None,
        receipt_timeout: float = 120.0,
    ):
        if not contract_address:
            raise ValueError("CONTRACT_ADDRESS not set")
        self.w3 = w3
        self.contract = w3.eth.contract(
            address=Web3.to_checksum_address(contract_address),
            abi=abi,
        )
        self.signer = signer
        self.receipt_timeout = receipt_timeout
        self._functions = function_names(abi)
        self._deployed = False

    # ------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------

    @property
    def account(self) -> Optional[str]:
        return self.signer.address if self.signer else None

    @property
    def has_account_index(self) -> bool:
        return {"getUserClaimCount", "userClaimIds"} <= self._functions

    @property
    def has_listing_index(self) -> bool:
        return {"listedTokenCount", "listedTokenAt"} <= self._functions

    # ------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------

    def _read(self, fn_name: str, *args):
        try:
            return self.contract.functions[fn_name](*args).call()
        except ContractLogicError as e:
            raise NotFound(f"{fn_name}{args} reverted: {revert_reason(e)}") from e
        except Exception as e:
            raise TransientReadError(f"{fn_name}{args} failed: {e}") from e

    def count(self) -> int:
        return int(self._read("getClaimCount"))

    def read_claim(self, index: int) -> RawClaim:
        c = self._read("claims", index)
        # claims(i) tuple:
        #   0: claimant, 1: projectName, 2: description, 3: co2Offset,
        #   4: ipfsHash, 5: status, 6: timestamp, 7: approvalTimestamp, 8: tokenId
        return RawClaim(
            index=index,
            claimant=c[0],
            project_name=c[1],
            description=c[2],
            co2_offset=int(c[3]),
            documentation_id=c[4],
            status=c[5],
            timestamp=int(c[6]),
            decided_timestamp=int(c[7]),
            token_id=int(c[8]),
        )

    def account_claim_count(self, account: str) -> int:
        return int(self._read("getUserClaimCount", Web3.to_checksum_address(account)))

    def account_claim_id(self, account: str, index: int) -> int:
        return int(self._read("userClaimIds", Web3.to_checksum_address(account), index))

    def owned_count(self, account: str) -> int:
        return int(self._read("balanceOf", Web3.to_checksum_address(account)))

    def owned_at(self, account: str, index: int) -> int:
        return int(self._read("tokenOfOwnerByIndex", Web3.to_checksum_address(account), index))

    def owner_of(self, token_id: int) -> str:
        return Web3.to_checksum_address(self._read("ownerOf", token_id))

    def token_uri(self, token_id: int) -> str:
        return str(self._read("tokenURI", token_id))

    def listing(self, token_id: int) -> Optional[Listing]:
        # tokenListings tuple: 0: isListed, 1: seller, 2: price
        is_listed, seller, price = self._read("tokenListings", token_id)
        if not is_listed:
            return None
        return Listing(price=int(price), seller=seller, is_listed=True)

    def listed_count(self) -> int:
        return int(self._read("listedTokenCount"))

    def listed_at(self, index: int) -> int:
        return int(self._read("listedTokenAt", index))

    # ------------------------------------------------------------
    # Writes: submit, then wait
    # ------------------------------------------------------------

    def ensure_deployed(self):
        """Checked once, before the first write."""
        if self._deployed:
            return
        address = self.contract.address
        try:
            code = self.w3.eth.get_code(address)
        except Exception as e:
            raise TransportError(f"Could not read contract code at {address}: {e}") from e
        if not code:
            raise TransportError(f"Contract not deployed at specified address {address}")
        self._deployed = True

    def submit(self, operation: str, *args, value: int = 0) -> str:
        """Build, sign and broadcast. Returns the tx hash (the pending handle)."""
        if self.signer is None:
            raise TransportError("No signing account configured for writes")
        self.ensure_deployed()
        try:
            tx = self.contract.functions[operation](*args).build_transaction({
                "from": self.signer.address,
                "value": value,
            })
        except ContractLogicError as e:
            # Gas estimation replays the call, so reverts surface here first
            raise Rejected(revert_reason(e)) from e
        except Exception as e:
            raise TransportError(f"Failed to build {operation} transaction: {e}") from e

        try:
            tx_hash = self.signer.sign_and_send(tx)
        except ContractLogicError as e:
            raise Rejected(revert_reason(e)) from e
        except Exception as e:
            raise TransportError(f"Failed to send {operation} transaction: {e}") from e

        logger.info("Submitted %s%s from %s: tx=%s", operation, args, self.signer.address, tx_hash)
        return tx_hash

    def wait(self, tx_hash: str, timeout: Optional[float] = None) -> Receipt:
        timeout = self.receipt_timeout if timeout is None else timeout
        try:
            receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
        except TimeExhausted as e:
            logger.warning("Receipt timeout for tx=%s after %ss", tx_hash, timeout)
            raise Indeterminate(tx_hash, f"no receipt after {timeout}s") from e
        except Exception as e:
            logger.warning("Receipt lookup failed for tx=%s: %s", tx_hash, e)
            raise Indeterminate(tx_hash, str(e)) from e

        if receipt.status == 0:
            logger.warning("Tx REVERTED: tx=%s gasUsed=%d", tx_hash, receipt.gasUsed)
            raise Rejected("transaction reverted on-chain", tx_hash=tx_hash)

        logger.info("Tx confirmed: tx=%s block=%d gasUsed=%d", tx_hash, receipt.blockNumber, receipt.gasUsed)
        return Receipt(
            tx_hash=tx_hash,
            success=True,
            block_number=receipt.blockNumber,
            gas_used=receipt.gasUsed,
            raw=receipt,
        )
