"""
Cache Expiry Policies

Static category -> (TTL, refresh threshold) table. Hotel entries live for
a day, flight entries for two hours.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, Mapping

from src.database.models import ServiceCategory


class UnknownCategoryError(ValueError):
    """Raised for a service category without a cache policy"""


@dataclass(frozen=True)
class CachePolicy:
    """Expiry policy of one service category"""
    category: str
    ttl_hours: float
    refresh_threshold_hours: float

    def __post_init__(self):
        if self.ttl_hours <= 0:
            raise ValueError(f"ttl_hours must be positive for {self.category}")
        if not 0 <= self.refresh_threshold_hours < self.ttl_hours:
            raise ValueError(
                f"refresh_threshold_hours must be in [0, ttl_hours) for {self.category}"
            )

    @property
    def ttl(self) -> timedelta:
        return timedelta(hours=self.ttl_hours)

    @property
    def refresh_threshold(self) -> timedelta:
        return timedelta(hours=self.refresh_threshold_hours)

    @property
    def refresh_after(self) -> timedelta:
        """Age at which an entry is still served but flagged for repopulation"""
        return self.ttl - self.refresh_threshold


DEFAULT_POLICIES: Dict[str, CachePolicy] = {
    policy.category: policy
    for policy in (
        CachePolicy(ServiceCategory.HOTEL.value, ttl_hours=24, refresh_threshold_hours=4),
        CachePolicy(ServiceCategory.FLIGHT.value, ttl_hours=2, refresh_threshold_hours=0.5),
        CachePolicy(ServiceCategory.RENTAL_CAR.value, ttl_hours=12, refresh_threshold_hours=2),
        CachePolicy(ServiceCategory.TRANSFER.value, ttl_hours=12, refresh_threshold_hours=2),
        CachePolicy(ServiceCategory.EXCURSION.value, ttl_hours=12, refresh_threshold_hours=2),
        CachePolicy(ServiceCategory.PACKAGE.value, ttl_hours=6, refresh_threshold_hours=1),
    )
}


def get_policy(category: str, policies: Mapping[str, CachePolicy] = DEFAULT_POLICIES) -> CachePolicy:
    """Look up the policy of a category"""
    try:
        return policies[category]
    except KeyError:
        raise UnknownCategoryError(f"No cache policy for category: {category}") from None
