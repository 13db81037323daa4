# wallet.py
from typing import Optional

from eth_account import Account
from web3 import Web3
from web3.middleware import ExtraDataToPOAMiddleware


def connect(rpc_url: str, *, timeout: float = 10.0, poa: bool = False) -> Web3:
    """HTTP provider with a bounded per-request timeout."""
    w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))
    if poa:
        w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
    return w3


class Signer:
    """Holds the acting account's key and signs/sends transactions for it."""

    def __init__(self, w3: Web3, private_key: str, expected_address: Optional[str] = None):
        if not private_key:
            raise RuntimeError("SIGNER_PRIVATE_KEY not set")
        self.w3 = w3
        self.account = Account.from_key(private_key)
        if expected_address and self.account.address.lower() != expected_address.lower():
            raise RuntimeError("SIGNER_PRIVATE_KEY does not match SIGNER_ADDRESS")

    @property
    def address(self) -> str:
        return self.account.address

    def sign_and_send(self, tx: dict) -> str:
        w3 = self.w3
        tx = dict(tx)
        tx.pop("gasPrice", None)

        try:
            base_fee = w3.eth.get_block("latest").baseFeePerGas
            priority = w3.eth.max_priority_fee * 150 // 100
            tx["type"] = 2
            tx["maxFeePerGas"] = base_fee * 2 + priority
            tx["maxPriorityFeePerGas"] = priority
        except Exception:
            # Pre-London chain: no base fee
            for k in ("type", "maxFeePerGas", "maxPriorityFeePerGas"):
                tx.pop(k, None)
            tx["gasPrice"] = w3.eth.gas_price * 120 // 100

        tx["nonce"] = w3.eth.get_transaction_count(self.address, "pending")
        tx["chainId"] = w3.eth.chain_id

        if "gas" not in tx:
            tx["gas"] = w3.eth.estimate_gas(tx) * 120 // 100

        signed = self.account.sign_transaction(tx)
        return w3.eth.send_raw_transaction(signed.raw_transaction).to_0x_hex()
