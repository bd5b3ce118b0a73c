"""
Search Cache Module
"""
from .keys import generate_search_hash, normalize_search_params
from .manager import (
    DURABLE_EXPIRY,
    CacheLookup,
    CacheManager,
    InvalidationCriteria,
    SweepResult,
)
from .policies import DEFAULT_POLICIES, CachePolicy, UnknownCategoryError, get_policy

__all__ = [
    "generate_search_hash",
    "normalize_search_params",
    "DURABLE_EXPIRY",
    "CacheLookup",
    "CacheManager",
    "InvalidationCriteria",
    "SweepResult",
    "DEFAULT_POLICIES",
    "CachePolicy",
    "UnknownCategoryError",
    "get_policy",
]
