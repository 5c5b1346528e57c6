"""Maintenance routes for operators."""

from fastapi import APIRouter, Query
from fastapi.concurrency import run_in_threadpool

from controller.schemas.internal import LedgerStatsResponse, ReconcileResponse
from controller.service_locator import get_file_service

router = APIRouter(prefix="/internal", tags=["Internal"])


@router.post("/reconcile-deletions", response_model=ReconcileResponse)
async def reconcile_deletions(limit: int = Query(1000, ge=1, le=100000)):
    """
    Retry physical deletes of objects the ledger no longer references.
    """
    result = await run_in_threadpool(get_file_service().reconcile_pending_deletions, limit)
    return ReconcileResponse(deleted=result.deleted, skipped=result.skipped, failed=result.failed)


@router.get("/ledger/stats", response_model=LedgerStatsResponse)
async def ledger_stats():
    """
    Chunk counts, reference totals and the current dedup ratio.
    """
    stats = await run_in_threadpool(get_file_service().ledger_stats)
    return LedgerStatsResponse(
        chunk_count=stats.chunk_count,
        total_references=stats.total_references,
        stored_bytes=stats.stored_bytes,
        logical_bytes=stats.logical_bytes,
        dedup_ratio=stats.dedup_ratio,
    )
