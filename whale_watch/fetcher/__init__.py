"""区块采集"""

from whale_watch.fetcher.rate_limiter import RateLimiter
from whale_watch.fetcher.rpc_client import RPCClient, is_rate_limit_error, rate_limit_backoff
from whale_watch.fetcher.block_fetcher import (
    BlockFetcher,
    FetchResult,
    FetchStats,
    plan_block_range,
    highest_block_number,
)

__all__ = [
    "RateLimiter",
    "RPCClient",
    "is_rate_limit_error",
    "rate_limit_backoff",
    "BlockFetcher",
    "FetchResult",
    "FetchStats",
    "plan_block_range",
    "highest_block_number",
]
