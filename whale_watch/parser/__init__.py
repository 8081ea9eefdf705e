"""解析模块"""

from whale_watch.parser.transaction_parser import TransactionParser, RawBlock, BlockHeader, ReceiptData
from whale_watch.parser.block_normalizer import BlockNormalizer
from whale_watch.parser.signers import recover_sender

__all__ = [
    "TransactionParser",
    "RawBlock",
    "BlockHeader",
    "ReceiptData",
    "BlockNormalizer",
    "recover_sender",
]
