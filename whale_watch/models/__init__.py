"""数据模型"""

from whale_watch.models.ethereum import (
    Block,
    Transaction,
    EventLog,
    WhaleAddress,
    WhaleMatch,
    TxType,
    TxStatus,
    Direction,
    UNKNOWN_SENDER,
)

__all__ = [
    "Block",
    "Transaction",
    "EventLog",
    "WhaleAddress",
    "WhaleMatch",
    "TxType",
    "TxStatus",
    "Direction",
    "UNKNOWN_SENDER",
]
