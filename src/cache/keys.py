"""
Search Cache Keys

Stable hash keys for search queries. Only the parameters that change a
category's results take part. They are normalized first, so two
searches that differ only in key order or destination spelling share a key.
"""

import hashlib
import json
from datetime import date, datetime
from typing import Any, Dict, Mapping, Optional, Tuple

from src.config import get_settings
from .policies import DEFAULT_POLICIES, UnknownCategoryError

settings = get_settings()

DESTINATION_KEYS = ("destination", "location", "city")
CHECK_IN_KEYS = ("check_in", "checkin", "start_date", "departure_date", "pickup_date")
CHECK_OUT_KEYS = ("check_out", "checkout", "end_date", "return_date", "dropoff_date")

CATEGORY_EXTRAS: Dict[str, Tuple[str, ...]] = {
    "hotel": ("min_stars", "star_rating"),
    "flight": ("origin", "cabin_class", "trip_type"),
    "rental_car": ("car_type", "pickup_location", "dropoff_location"),
    "transfer": ("vehicle_type", "pickup_location"),
    "excursion": ("activity_type",),
    "package": ("package_type",),
}


def _first(params: Mapping[str, Any], keys: Tuple[str, ...]) -> Any:
    for key in keys:
        value = params.get(key)
        if value not in (None, ""):
            return value
    return None


def _text(value: Any) -> str:
    return " ".join(str(value).split()).lower()


def _day(value: Any) -> Optional[str]:
    if value in (None, ""):
        return None
    if isinstance(value, (date, datetime)):
        return value.isoformat()[:10]
    return str(value).strip()[:10]


def _number(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return int(value) if float(value).is_integer() else float(value)
    text = str(value).strip()
    try:
        number = float(text)
    except ValueError:
        return text.lower()
    return int(number) if number.is_integer() else number


def normalize_search_params(category: str, params: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Reduce search parameters to the canonical subset for a category.

    Args:
        category: Service category, must have a cache policy
        params: Raw search parameters from the caller

    Returns:
        Canonical dictionary, None-valued fields dropped
    """
    if category not in DEFAULT_POLICIES:
        raise UnknownCategoryError(f"No cache policy for category: {category}")

    destination = _first(params, DESTINATION_KEYS)
    normalized: Dict[str, Any] = {
        "category": category,
        "destination": _text(destination) if destination is not None else None,
        "check_in": _day(_first(params, CHECK_IN_KEYS)),
        "check_out": _day(_first(params, CHECK_OUT_KEYS)),
        "adults": _number(params.get("adults", 1)),
        "children": _number(params.get("children", 0)),
    }
    if category == "hotel":
        normalized["rooms"] = _number(params.get("rooms", 1))

    for key in CATEGORY_EXTRAS.get(category, ()):
        value = params.get(key)
        if value in (None, ""):
            continue
        normalized[key] = _text(value) if isinstance(value, str) and not _is_numeric(value) else _number(value)

    return {k: v for k, v in normalized.items() if v is not None}


def _is_numeric(value: str) -> bool:
    try:
        float(value)
    except ValueError:
        return False
    return True


def generate_search_hash(
    category: str,
    params: Mapping[str, Any],
    length: Optional[int] = None,
) -> str:
    """
    Hash the canonical form of a search.

    SHA-256 over sorted-key JSON, truncated to ``length`` hex characters
    (16 by default: 64 bits, ample for tens of thousands of query shapes).
    """
    length = length or settings.cache.hash_length
    canonical = json.dumps(
        normalize_search_params(category, params),
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:length]
