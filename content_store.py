# content_store.py
"""
Content-addressed document store backed by Pinata (IPFS pinning).

Only CIDv0 identifiers ("Qm" + 44 base58 chars, 46 total) are accepted;
anything else coming back from the pinning API is treated as a failed upload.
"""
from __future__ import annotations

import logging
import time
from typing import Optional

import requests

from chain.errors import InvalidContentId, Unavailable

logger = logging.getLogger(__name__)

CONTENT_ID_LENGTH = 46


def validate_content_id(content_id) -> str:
    if not isinstance(content_id, str) or len(content_id) != CONTENT_ID_LENGTH:
        raise InvalidContentId(content_id)
    return content_id


class PinataStore:
    def __init__(
        self,
        api_url: str,
        api_key: str,
        secret_api_key: str,
        gateway_url: str,
        *,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.secret_api_key = secret_api_key
        self.gateway_url = gateway_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def store(self, blob: bytes, filename: Optional[str] = None) -> str:
        """Pin a blob and return its content id."""
        if not self.api_key or not self.secret_api_key:
            raise RuntimeError("PINATA_API_KEY / PINATA_SECRET_API_KEY not set")

        filename = filename or f"blob-{int(time.time() * 1000)}.json"
        r = self.session.post(
            f"{self.api_url}/pinning/pinFileToIPFS",
            headers={
                "pinata_api_key": self.api_key,
                "pinata_secret_api_key": self.secret_api_key,
            },
            files={"file": (filename, blob)},
            timeout=self.timeout,
        )
        if r.status_code != 200:
            raise RuntimeError(f"Failed to upload to Pinata: HTTP {r.status_code} {r.reason}")

        content_id = validate_content_id(r.json().get("IpfsHash"))
        logger.info("Pinned %s (%d bytes) as %s", filename, len(blob), content_id)
        return content_id

    def fetch(self, content_id: str) -> bytes:
        validate_content_id(content_id)
        try:
            r = self.session.get(f"{self.gateway_url}/{content_id}", timeout=self.timeout)
        except requests.RequestException as e:
            raise Unavailable(content_id, str(e)) from e
        if r.status_code != 200:
            raise Unavailable(content_id, f"gateway returned HTTP {r.status_code}")
        return r.content
