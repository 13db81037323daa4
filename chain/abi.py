# chain/abi.py
"""
Loads the CarbonOffsetNFT ABI from the Hardhat build artifact.
Falls back to the inline ABI below when `npx hardhat compile` hasn't been run.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

logger = logging.getLogger(__name__)


def load_abi(artifact_path) -> Optional[List[Dict[str, Any]]]:
    """
    Load an ABI from a Hardhat artifact
    (artifacts/contracts/<Name>.sol/<Name>.json).

    Returns None if the artifact doesn't exist.
    Raises ValueError if it exists but carries no ABI.
    """
    if not artifact_path:
        return None
    artifact = Path(artifact_path)
    if not artifact.exists():
        return None

    with artifact.open() as f:
        data = json.load(f)

    abi = data.get("abi")
    if not abi:
        raise ValueError(f"No 'abi' key in {artifact}")
    return abi


def function_names(abi: List[Dict[str, Any]]) -> Set[str]:
    return {e["name"] for e in abi if e.get("type") == "function" and "name" in e}


def _fn(name, inputs, outputs, mutability="view"):
    return {
        "type": "function",
        "name": name,
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": [{"name": n, "type": t} for n, t in outputs],
        "stateMutability": mutability,
    }


# Minimal surface the sync layer calls. Output order of `claims` matters:
# it is decoded positionally in chain/ledger.py.
CARBON_OFFSET_NFT_ABI: List[Dict[str, Any]] = [
    _fn("getClaimCount", [], [("", "uint256")]),
    _fn("claims", [("", "uint256")], [
        ("claimant", "address"),
        ("projectName", "string"),
        ("description", "string"),
        ("co2Offset", "uint256"),
        ("ipfsHash", "string"),
        ("status", "uint8"),
        ("timestamp", "uint256"),
        ("approvalTimestamp", "uint256"),
        ("tokenId", "uint256"),
    ]),
    _fn("getUserClaimCount", [("user", "address")], [("", "uint256")]),
    _fn("userClaimIds", [("", "address"), ("", "uint256")], [("", "uint256")]),
    _fn("submitClaim", [
        ("co2Offset", "uint256"),
        ("projectName", "string"),
        ("description", "string"),
        ("ipfsHash", "string"),
    ], [], "nonpayable"),
    _fn("approveClaim", [("claimId", "uint256"), ("tokenURI", "string")], [], "nonpayable"),
    _fn("rejectClaim", [("claimId", "uint256"), ("reason", "string")], [], "nonpayable"),
    _fn("balanceOf", [("owner", "address")], [("", "uint256")]),
    _fn("tokenOfOwnerByIndex", [("owner", "address"), ("index", "uint256")], [("", "uint256")]),
    _fn("ownerOf", [("tokenId", "uint256")], [("", "address")]),
    _fn("tokenURI", [("tokenId", "uint256")], [("", "string")]),
    _fn("tokenListings", [("", "uint256")], [
        ("isListed", "bool"),
        ("seller", "address"),
        ("price", "uint256"),
    ]),
    _fn("listNFTForSale", [("tokenId", "uint256"), ("price", "uint256")], [], "nonpayable"),
]


def carbon_offset_abi(artifact_path=None) -> List[Dict[str, Any]]:
    try:
        abi = load_abi(artifact_path)
    except (OSError, ValueError) as e:
        logger.error("Failed to read ABI artifact %s: %s", artifact_path, e)
        abi = None
    if abi is None:
        logger.info("Using built-in CarbonOffsetNFT ABI (artifact not found: %s)", artifact_path)
        return CARBON_OFFSET_NFT_ABI
    return abi
