# config.py
from dotenv import load_dotenv
import os

load_dotenv()


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# ------------------------------------------------------------
# Chain / contract
# ------------------------------------------------------------
CHAIN_ID = int(os.getenv("CHAIN_ID", "11155111"))  # Sepolia

RPC_URL = os.getenv("RPC_URL", "https://ethereum-sepolia-rpc.publicnode.com")

CONTRACT_ADDRESS = os.getenv("CONTRACT_ADDRESS", "")

# Hardhat build output; the built-in ABI is used when missing
CONTRACT_ARTIFACT_PATH = os.getenv(
    "CONTRACT_ARTIFACT_PATH",
    "artifacts/contracts/CarbonOffsetNFT.sol/CarbonOffsetNFT.json",
)

# Extra-data POA middleware (Avalanche, BSC, Polygon PoS...)
POA_CHAIN = _flag("POA_CHAIN")

# The acting account for writes. Reads work without it.
SIGNER_PRIVATE_KEY = os.getenv("SIGNER_PRIVATE_KEY", "")
SIGNER_ADDRESS = os.getenv("SIGNER_ADDRESS", "")

# ------------------------------------------------------------
# Metadata / content store
# ------------------------------------------------------------
METADATA_SCHEME = os.getenv("METADATA_SCHEME", "ipfs")
IPFS_GATEWAY_URL = os.getenv("IPFS_GATEWAY_URL", "https://gateway.pinata.cloud/ipfs")

PINATA_API_URL = os.getenv("PINATA_API_URL", "https://api.pinata.cloud")
PINATA_API_KEY = os.getenv("PINATA_API_KEY", "")
PINATA_SECRET_API_KEY = os.getenv("PINATA_SECRET_API_KEY", "")

# ------------------------------------------------------------
# Timeouts (seconds)
# ------------------------------------------------------------
LEDGER_CALL_TIMEOUT = float(os.getenv("LEDGER_CALL_TIMEOUT", "10"))
RECEIPT_TIMEOUT = float(os.getenv("RECEIPT_TIMEOUT", "120"))
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "6"))

# ------------------------------------------------------------
# Sync
# ------------------------------------------------------------
SCAN_CONCURRENCY = int(os.getenv("SCAN_CONCURRENCY", "8"))

# "join": a second scanAll() awaits the in-flight one. "reject": raise Busy.
SCAN_BUSY_POLICY = os.getenv("SCAN_BUSY_POLICY", "join").strip().lower()

# Background rescan period; 0 disables the refresher
REFRESH_INTERVAL = int(os.getenv("REFRESH_INTERVAL", "0"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
