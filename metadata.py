# metadata.py
"""
Resolves certificate metadata pointers ("ipfs://<cid>", "https://...")
to validated documents.

Resolved documents are immutable, so successful resolutions are cached for
the lifetime of the resolver. Failures are never cached.
"""
from __future__ import annotations

import logging
import threading
import time
from typing import Dict, Optional

import requests
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from chain.errors import Unavailable

logger = logging.getLogger(__name__)


class CertificateMetadata(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    project_name: str = Field(validation_alias=AliasChoices("projectName", "project_name"))
    project_description: str = Field(
        "", validation_alias=AliasChoices("projectDescription", "project_description")
    )
    co2_offset: int = Field(0, ge=0, validation_alias=AliasChoices("co2Offset", "co2_offset"))
    # Older documents call it documentationHash
    documentation_id: str = Field(
        "",
        validation_alias=AliasChoices("documentationId", "documentationHash", "documentation_id"),
    )


PLACEHOLDER = CertificateMetadata(
    project_name="Unknown",
    project_description="",
    co2_offset=0,
    documentation_id="",
)


def split_pointer(pointer: str):
    """ "ipfs://Qm..." -> ("ipfs", "Qm...") """
    scheme, sep, rest = (pointer or "").partition("://")
    if not sep or not scheme or not rest:
        raise Unavailable(pointer, "not a <scheme>://<id> pointer")
    return scheme.lower(), rest


class MetadataResolver:
    def __init__(
        self,
        gateway_url: str,
        *,
        timeout: float = 6.0,
        session: Optional[requests.Session] = None,
    ):
        self.gateway_url = gateway_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self._cache: Dict[str, CertificateMetadata] = {}
        self._lock = threading.Lock()

    def url_for(self, pointer: str) -> str:
        scheme, rest = split_pointer(pointer)
        if scheme == "ipfs":
            return f"{self.gateway_url}/{rest}"
        if scheme in ("http", "https"):
            return pointer
        raise Unavailable(pointer, f"unsupported scheme {scheme!r}")

    def resolve(self, pointer: str) -> CertificateMetadata:
        """Fetch and validate the document. Raises Unavailable on any failure."""
        with self._lock:
            cached = self._cache.get(pointer)
        if cached is not None:
            return cached

        url = self.url_for(pointer)
        try:
            # Gateways have been seen serving stale bodies for a CID
            r = self.session.get(
                url,
                params={"cacheBust": int(time.time() * 1000)},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise Unavailable(pointer, str(e)) from e

        if r.status_code != 200:
            raise Unavailable(pointer, f"gateway returned HTTP {r.status_code}")

        try:
            doc = CertificateMetadata.model_validate(r.json())
        except (ValueError, ValidationError) as e:
            raise Unavailable(pointer, f"malformed document: {e}") from e

        with self._lock:
            self._cache[pointer] = doc
        return doc

    def resolve_or_placeholder(self, pointer: str):
        """Returns (metadata, resolved)."""
        try:
            return self.resolve(pointer), True
        except Unavailable as e:
            logger.warning("Metadata unavailable, using placeholder: %s", e)
            return PLACEHOLDER, False
