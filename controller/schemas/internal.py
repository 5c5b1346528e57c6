"""Pydantic schemas for maintenance endpoints."""

from typing import List

from pydantic import BaseModel


class ReconcileResponse(BaseModel):
    """Response model for draining the pending object deletion queue."""
    deleted: List[str]
    skipped: List[str]
    failed: List[str]


class LedgerStatsResponse(BaseModel):
    """Response model for chunk ledger statistics."""
    chunk_count: int
    total_references: int
    stored_bytes: int
    logical_bytes: int
    dedup_ratio: float
