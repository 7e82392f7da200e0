"""
Utilities module for DDI mining.

Provides caching, rate limiting, circuit breaking, pair keys and logging.
"""

from ddi_mining.utils.cache import EvidenceCache, CacheEntry
from ddi_mining.utils.circuit_breaker import CircuitBreaker, CircuitState
from ddi_mining.utils.logger import setup_logger, get_logger
from ddi_mining.utils.pair_key import DrugPairKey, canonical_drug_name
from ddi_mining.utils.rate_limiter import RateLimiter

__all__ = [
    "EvidenceCache",
    "CacheEntry",
    "CircuitBreaker",
    "CircuitState",
    "setup_logger",
    "get_logger",
    "DrugPairKey",
    "canonical_drug_name",
    "RateLimiter",
]
