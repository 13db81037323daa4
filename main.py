# main.py
import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Optional

from fastapi import FastAPI

import config
from chain.abi import carbon_offset_abi
from chain.certificates import CertificateResolver
from chain.claims import ClaimRepository
from chain.indexer import run_refresher
from chain.ledger import LedgerClient
from chain.lifecycle import LifecycleController
from content_store import PinataStore
from metadata import MetadataResolver
from routes import router as carbon_router
from wallet import Signer, connect

logger = logging.getLogger(__name__)


@dataclass
class Services:
    ledger: Any
    repository: ClaimRepository
    controller: LifecycleController
    certificates: CertificateResolver
    metadata: MetadataResolver
    store: Optional[PinataStore] = None


def build_services(ledger, *, metadata=None, store=None) -> Services:
    """Wire one repository/controller/resolver set around a ledger client."""
    metadata = metadata or MetadataResolver(config.IPFS_GATEWAY_URL, timeout=config.HTTP_TIMEOUT)
    repository = ClaimRepository(
        ledger,
        concurrency=config.SCAN_CONCURRENCY,
        call_timeout=config.LEDGER_CALL_TIMEOUT,
        busy_policy=config.SCAN_BUSY_POLICY,
    )
    return Services(
        ledger=ledger,
        repository=repository,
        controller=LifecycleController(
            ledger,
            repository,
            metadata_scheme=config.METADATA_SCHEME,
            call_timeout=config.LEDGER_CALL_TIMEOUT,
        ),
        certificates=CertificateResolver(
            ledger,
            metadata,
            concurrency=config.SCAN_CONCURRENCY,
            call_timeout=config.LEDGER_CALL_TIMEOUT,
        ),
        metadata=metadata,
        store=store,
    )


def services_from_config() -> Optional[Services]:
    if not config.CONTRACT_ADDRESS:
        logger.warning("CONTRACT_ADDRESS not set; ledger endpoints disabled")
        return None

    w3 = connect(config.RPC_URL, timeout=config.LEDGER_CALL_TIMEOUT, poa=config.POA_CHAIN)
    signer = None
    if config.SIGNER_PRIVATE_KEY:
        signer = Signer(w3, config.SIGNER_PRIVATE_KEY, config.SIGNER_ADDRESS or None)
    else:
        logger.warning("SIGNER_PRIVATE_KEY not set; running read-only")

    ledger = LedgerClient(
        w3,
        config.CONTRACT_ADDRESS,
        carbon_offset_abi(config.CONTRACT_ARTIFACT_PATH),
        signer=signer,
        receipt_timeout=config.RECEIPT_TIMEOUT,
    )
    store = None
    if config.PINATA_API_KEY and config.PINATA_SECRET_API_KEY:
        store = PinataStore(
            config.PINATA_API_URL,
            config.PINATA_API_KEY,
            config.PINATA_SECRET_API_KEY,
            config.IPFS_GATEWAY_URL,
        )
    logger.info(
        "Ledger ready: chain=%s contract=%s signer=%s",
        config.CHAIN_ID, config.CONTRACT_ADDRESS, signer.address if signer else None,
    )
    return build_services(ledger, store=store)


def create_app(services: Optional[Services] = None, *, refresh_interval: Optional[int] = None) -> FastAPI:
    interval = config.REFRESH_INTERVAL if refresh_interval is None else refresh_interval

    @asynccontextmanager
    async def lifespan(app):
        if getattr(app.state, "services", None) is None:
            app.state.services = services_from_config()

        refresher = None
        if app.state.services is not None and interval > 0:
            refresher = asyncio.create_task(run_refresher(app.state.services.repository, interval))
            logger.info("Claim refresher started")
        yield
        if refresher is not None:
            refresher.cancel()
            try:
                await refresher
            except asyncio.CancelledError:
                pass
            logger.info("Claim refresher stopped")

    app = FastAPI(title="Carbon Offset Ledger API", version="0.1.0", lifespan=lifespan)
    app.state.services = services
    app.include_router(carbon_router)

    @app.get("/healthz")
    def healthz():
        return {"ok": "true"}

    return app


logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app()
