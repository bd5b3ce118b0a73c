"""
Search Cache Endpoints

Statistics, probing and maintenance of the travel search cache.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncEngine

from src.cache import CacheManager, InvalidationCriteria, generate_search_hash
from src.database.connection import get_engine

router = APIRouter()


class LookupRequest(BaseModel):
    category: str
    params: Dict[str, Any] = Field(default_factory=dict)


class LookupResponse(BaseModel):
    search_hash: str
    hit: bool
    needs_refresh: bool
    expires_at: Optional[datetime] = None
    results: List[Dict[str, Any]] = []


class InvalidateRequest(BaseModel):
    """At least one filter is required"""
    category: Optional[str] = None
    source_platform: Optional[str] = None
    location: Optional[str] = None
    older_than_hours: Optional[float] = Field(default=None, gt=0)


class InvalidateResponse(BaseModel):
    removed: int


@router.get("/stats")
async def cache_stats(engine: AsyncEngine = Depends(get_engine)) -> Dict[str, Any]:
    """Index entries per category and item ownership counts."""
    return await CacheManager(engine).stats()


@router.post("/lookup", response_model=LookupResponse)
async def cache_lookup(
    request: LookupRequest,
    engine: AsyncEngine = Depends(get_engine),
) -> LookupResponse:
    """Hash a search and probe the cache with it."""
    search_hash = generate_search_hash(request.category, request.params)
    lookup = await CacheManager(engine).check_cache_hit(search_hash, request.category)
    return LookupResponse(
        search_hash=search_hash,
        hit=lookup.hit,
        needs_refresh=lookup.needs_refresh,
        expires_at=lookup.expires_at,
        results=lookup.results,
    )


@router.post("/invalidate", response_model=InvalidateResponse)
async def invalidate_cache(
    request: InvalidateRequest,
    engine: AsyncEngine = Depends(get_engine),
) -> InvalidateResponse:
    """Drop unowned cached items matching the filters."""
    older_than = None
    if request.older_than_hours:
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        older_than = now - timedelta(hours=request.older_than_hours)

    removed = await CacheManager(engine).invalidate(
        InvalidationCriteria(
            category=request.category,
            source_platform=request.source_platform,
            location=request.location,
            older_than=older_than,
        )
    )
    return InvalidateResponse(removed=removed)


@router.post("/sweep")
async def sweep_cache(engine: AsyncEngine = Depends(get_engine)) -> Dict[str, int]:
    """Reclaim expired index rows and unowned items."""
    result = await CacheManager(engine).sweep_expired()
    return result.to_dict()
