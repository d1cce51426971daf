"""Rate limiting for paced external resources.

Grants can persist in the ledger for cross-process pacing.
"""

from ledgerline.core.rate_limit.limiter import RateLimiter

__all__ = ["RateLimiter"]
