"""Provider tier -> synthesis concurrency ceiling."""

import logging
from typing import Optional

logger = logging.getLogger(__name__)

TIER_CONCURRENCY = {
    "free": 2,
    "trialing": 2,
    "starter": 3,
    "creator": 5,
    "pro": 10,
    "scale": 15,
    "business": 15,
    "enterprise": 15,
}

DEFAULT_CONCURRENCY = 3


def concurrency_for_tier(tier: Optional[str], default: int = DEFAULT_CONCURRENCY) -> int:
    """Map a subscription tier to the number of simultaneous synthesis calls.

    Unknown or missing tiers get ``default``.
    """
    if not tier:
        return default
    limit = TIER_CONCURRENCY.get(tier.strip().lower())
    if limit is None:
        logger.warning("Unknown subscription tier %r, using default concurrency %d", tier, default)
        return default
    return limit
