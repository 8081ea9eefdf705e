"""关注地址过滤"""

from whale_watch.filtering.whale_filter import (
    WhaleFilter,
    filter_whale_transactions,
    wei_to_eth,
    classify_direction,
    contract_creations,
    transactions_by_value,
)

__all__ = [
    "WhaleFilter",
    "filter_whale_transactions",
    "wei_to_eth",
    "classify_direction",
    "contract_creations",
    "transactions_by_value",
]
