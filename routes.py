# routes.py
"""
HTTP endpoints over the claim repository, lifecycle controller and
certificate resolver. Writes act as the configured signer account.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import Response
from pydantic import BaseModel, Field
from web3 import Web3

from chain.claims import newest_first
from chain.errors import (
    AlreadyDecided,
    Busy,
    CarbonLedgerError,
    Indeterminate,
    InvalidContentId,
    NotFound,
    Rejected,
    SubmissionFailed,
)
from chain.models import ClaimStatus
from chain.stats import summarize

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["carbon"])


def get_services(request: Request):
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(503, "Ledger not configured")
    return services


def _account(account: str) -> str:
    if not Web3.is_address(account):
        raise HTTPException(400, f"Not an account address: {account}")
    return Web3.to_checksum_address(account)


def _http_error(e: CarbonLedgerError) -> HTTPException:
    if isinstance(e, NotFound):
        return HTTPException(404, str(e))
    if isinstance(e, (AlreadyDecided, Busy)):
        return HTTPException(409, str(e))
    if isinstance(e, Rejected):
        return HTTPException(400, f"Transaction failed: {e.reason}")
    if isinstance(e, (SubmissionFailed, InvalidContentId)):
        return HTTPException(400, str(e))
    if isinstance(e, Indeterminate):
        return HTTPException(504, f"{e} Re-read the claim before retrying.")
    return HTTPException(502, str(e))


async def _current_snapshot(services, refresh: bool):
    if refresh or services.repository.snapshot.generation == 0:
        await services.repository.scan_all()
    return services.repository.snapshot


# ────────────────────────────────────────────────────────────
# Claims (read)
# ────────────────────────────────────────────────────────────

@router.get("/claims")
async def list_claims(
    status: Optional[ClaimStatus] = None,
    refresh: bool = False,
    services=Depends(get_services),
):
    try:
        snap = await _current_snapshot(services, refresh)
    except CarbonLedgerError as e:
        raise _http_error(e)
    claims = snap.partition.by_status(status) if status else snap.claims
    return {
        "generation": snap.generation,
        "bound": snap.bound,
        "skipped": list(snap.skipped),
        "taken_at": snap.taken_at,
        "claims": newest_first(claims),
    }


@router.get("/claims/{claim_id}")
async def get_claim(claim_id: int, services=Depends(get_services)):
    try:
        return await services.repository.read_claim(claim_id)
    except CarbonLedgerError as e:
        raise _http_error(e)


@router.get("/accounts/{account}/claims")
async def account_claims(account: str, services=Depends(get_services)):
    account = _account(account)
    try:
        return newest_first(await services.repository.scan_for_account(account))
    except CarbonLedgerError as e:
        raise _http_error(e)


@router.get("/accounts/{account}/stats")
async def account_stats(account: str, refresh: bool = False, services=Depends(get_services)):
    account = _account(account)
    try:
        snap = await _current_snapshot(services, refresh)
    except CarbonLedgerError as e:
        raise _http_error(e)
    return summarize(snap.claims, account)


# ────────────────────────────────────────────────────────────
# Certificates (read)
# ────────────────────────────────────────────────────────────

@router.get("/accounts/{account}/certificates")
async def account_certificates(account: str, services=Depends(get_services)):
    account = _account(account)
    try:
        return await services.certificates.owned_by(account)
    except CarbonLedgerError as e:
        raise _http_error(e)


@router.get("/marketplace")
async def marketplace(services=Depends(get_services)):
    try:
        return await services.certificates.available()
    except CarbonLedgerError as e:
        raise _http_error(e)


# ────────────────────────────────────────────────────────────
# Lifecycle (write)
# ────────────────────────────────────────────────────────────

class SubmitClaimRequest(BaseModel):
    producer: str
    co2_offset: int = Field(..., gt=0)
    project_name: str = Field(..., min_length=1)
    project_description: str = ""
    documentation_id: str = Field(..., min_length=1)


class RejectClaimRequest(BaseModel):
    reason: Optional[str] = None


class ListCertificateRequest(BaseModel):
    price_wei: int = Field(..., gt=0)


@router.post("/claims")
async def submit_claim(req: SubmitClaimRequest, services=Depends(get_services)):
    try:
        claim_id = await services.controller.submit(
            _account(req.producer),
            req.co2_offset,
            req.project_name,
            req.project_description,
            req.documentation_id,
        )
    except CarbonLedgerError as e:
        raise _http_error(e)
    return {"claim_id": claim_id}


@router.post("/claims/{claim_id}/approve")
async def approve_claim(claim_id: int, services=Depends(get_services)):
    try:
        certificate_id = await services.controller.approve(claim_id)
    except CarbonLedgerError as e:
        logger.warning("approve(%d) failed: %s", claim_id, e)
        raise _http_error(e)
    return {"claim_id": claim_id, "certificate_id": certificate_id}


@router.post("/claims/{claim_id}/reject")
async def reject_claim(claim_id: int, req: RejectClaimRequest, services=Depends(get_services)):
    try:
        await services.controller.reject(claim_id, req.reason)
    except CarbonLedgerError as e:
        logger.warning("reject(%d) failed: %s", claim_id, e)
        raise _http_error(e)
    return {"claim_id": claim_id, "status": ClaimStatus.REJECTED}


@router.post("/certificates/{certificate_id}/list")
async def list_certificate(certificate_id: int, req: ListCertificateRequest, services=Depends(get_services)):
    try:
        receipt = await services.controller.list_for_sale(certificate_id, req.price_wei)
    except CarbonLedgerError as e:
        raise _http_error(e)
    return {"certificate_id": certificate_id, "tx_hash": receipt.tx_hash}


# ────────────────────────────────────────────────────────────
# Documents
# ────────────────────────────────────────────────────────────

@router.post("/documents")
async def upload_document(request: Request, filename: Optional[str] = None, services=Depends(get_services)):
    if services.store is None:
        raise HTTPException(503, "Content store not configured")
    blob = await request.body()
    if not blob:
        raise HTTPException(400, "Empty document")
    try:
        content_id = await asyncio.to_thread(services.store.store, blob, filename)
    except CarbonLedgerError as e:
        raise _http_error(e)
    except Exception as e:
        logger.exception("Document upload failed")
        raise HTTPException(502, f"Failed to store document: {e}")
    return {"content_id": content_id}


@router.get("/documents/{content_id}")
async def get_document(content_id: str, services=Depends(get_services)):
    if services.store is None:
        raise HTTPException(503, "Content store not configured")
    try:
        blob = await asyncio.to_thread(services.store.fetch, content_id)
    except CarbonLedgerError as e:
        raise _http_error(e)
    return Response(content=blob, media_type="application/octet-stream")
