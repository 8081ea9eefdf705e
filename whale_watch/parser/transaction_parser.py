"""
交易解析器

负责将节点返回的区块/交易/收据数据解析为结构化模型
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from whale_watch.exceptions import UnsupportedTransactionTypeError
from whale_watch.models.ethereum import (
    EventLog, Transaction, TxStatus, TxType, UNKNOWN_SENDER
)
from whale_watch.parser.signers import recover_sender
from whale_watch.parser.wire import optional_int, to_address, to_hex, to_int

logger = logging.getLogger(__name__)


# 解码器支持的交易类型
SUPPORTED_TX_TYPES = frozenset({TxType.LEGACY, TxType.ACCESS_LIST, TxType.FEE_MARKET})

# 降级解析的最少字段
MINIMAL_REQUIRED_FIELDS = ("hash", "from")


@dataclass
class BlockHeader:
    """区块头"""
    number: int
    hash: str
    parent_hash: str
    timestamp: int
    miner: str
    gas_used: int
    gas_limit: int
    base_fee_per_gas: Optional[int]
    transaction_count: int


@dataclass
class RawBlock:
    """RPC客户端返回的区块（交易已解码，尚未关联收据）"""
    header: BlockHeader
    transactions: List[Transaction] = field(default_factory=list)
    skipped: int = 0
    header_only: bool = False


@dataclass
class ReceiptData:
    """收据中需要的字段"""
    gas_used: Optional[int]
    status: Optional[TxStatus]
    contract_address: Optional[str]
    logs: List[EventLog]


class TransactionParser:
    """交易解析器"""

    def __init__(self, recover_senders: bool = True):
        """初始化解析器

        Args:
            recover_senders: 是否从签名恢复发送方（否则直接使用节点返回的from）
        """
        self.recover_senders = recover_senders

    def parse_block_header(self, raw_block: Mapping[str, Any]) -> BlockHeader:
        """解析区块头

        Raises:
            KeyError / ValueError / TypeError: 必要字段缺失或格式错误
        """
        transactions = raw_block.get("transactions") or []
        return BlockHeader(
            number=to_int(raw_block["number"]),
            hash=to_hex(raw_block["hash"]),
            parent_hash=to_hex(raw_block["parentHash"]),
            timestamp=to_int(raw_block["timestamp"]),
            miner=to_address(raw_block.get("miner")) or "",
            gas_used=to_int(raw_block.get("gasUsed")),
            gas_limit=to_int(raw_block.get("gasLimit")),
            base_fee_per_gas=optional_int(raw_block.get("baseFeePerGas")),
            transaction_count=len(transactions),
        )

    def transaction_type(self, tx: Mapping[str, Any]) -> int:
        """交易类型原始值"""
        return to_int(tx.get("type"), 0)

    def parse_transaction(
        self,
        tx: Mapping[str, Any],
        index: int,
        block_number: int,
        block_hash: str
    ) -> Transaction:
        """解析单笔交易

        Args:
            tx: 原始交易数据
            index: 交易在区块中的索引
            block_number: 区块高度
            block_hash: 区块哈希

        Returns:
            解析后的Transaction对象（收据字段为空）

        Raises:
            UnsupportedTransactionTypeError: 交易类型超出支持范围
        """
        raw_type = self.transaction_type(tx)
        tx_hash = to_hex(tx.get("hash"))

        if raw_type not in SUPPORTED_TX_TYPES:
            raise UnsupportedTransactionTypeError(raw_type, tx_hash)

        tx_type = TxType(raw_type)

        if self.recover_senders:
            sender = recover_sender(tx)
        else:
            sender = to_address(tx.get("from")) or UNKNOWN_SENDER

        # EIP-1559 字段只对类型2有意义，缺失视为不存在
        max_fee = None
        max_priority_fee = None
        if tx_type == TxType.FEE_MARKET:
            max_fee = optional_int(tx.get("maxFeePerGas"))
            max_priority_fee = optional_int(tx.get("maxPriorityFeePerGas"))

        return Transaction(
            hash=tx_hash,
            block_number=block_number,
            block_hash=block_hash,
            transaction_index=to_int(tx.get("transactionIndex"), index),
            from_address=sender,
            to_address=to_address(tx.get("to")),
            value=to_int(tx.get("value")),
            gas=to_int(tx.get("gas")),
            gas_price=to_int(tx.get("gasPrice")),
            max_fee_per_gas=max_fee,
            max_priority_fee_per_gas=max_priority_fee,
            nonce=to_int(tx.get("nonce")),
            input=to_hex(tx.get("input", tx.get("data"))),
            tx_type=tx_type,
        )

    def minimal_transaction(
        self,
        tx: Mapping[str, Any],
        index: int,
        block_number: int,
        block_hash: str
    ) -> Optional[Transaction]:
        """为不支持的交易类型构造最小记录

        只提取所有类型共有的字段 (hash, from, to, value, gas, gasPrice, nonce)，
        字段不足时返回 None
        """
        if any(not tx.get(name) for name in MINIMAL_REQUIRED_FIELDS):
            return None

        try:
            sender = to_address(tx.get("from")) or UNKNOWN_SENDER
            to_addr = to_address(tx.get("to"))
        except ValueError:
            return None

        return Transaction(
            hash=to_hex(tx["hash"]),
            block_number=block_number,
            block_hash=block_hash,
            transaction_index=index,
            from_address=sender,
            to_address=to_addr,
            value=optional_int(tx.get("value")) or 0,
            gas=optional_int(tx.get("gas")) or 0,
            gas_price=optional_int(tx.get("gasPrice")) or 0,
            nonce=optional_int(tx.get("nonce")) or 0,
            input="",
            tx_type=TxType.UNKNOWN,
        )

    def placeholder_transaction(
        self,
        tx: Mapping[str, Any],
        index: int,
        block_number: int,
        block_hash: str
    ) -> Transaction:
        """已解码区块中单笔交易解析失败时的占位记录"""
        return Transaction(
            hash=to_hex(tx.get("hash")) if tx.get("hash") else "",
            block_number=block_number,
            block_hash=block_hash,
            transaction_index=index,
            from_address=UNKNOWN_SENDER,
            value=0,
            input="parse_error",
            tx_type=TxType.UNKNOWN,
        )

    def parse_receipt(self, receipt: Mapping[str, Any]) -> ReceiptData:
        """解析交易收据"""
        status = optional_int(receipt.get("status"))
        return ReceiptData(
            gas_used=optional_int(receipt.get("gasUsed")),
            status=TxStatus(status) if status in (0, 1) else None,
            contract_address=to_address(receipt.get("contractAddress")),
            logs=self.parse_logs(receipt.get("logs") or []),
        )

    def parse_logs(self, logs: List[Mapping[str, Any]]) -> List[EventLog]:
        """解析日志列表"""
        return [self.parse_log(log) for log in logs]

    def parse_log(self, log: Mapping[str, Any]) -> EventLog:
        """解析单个日志"""
        return EventLog(
            address=to_address(log.get("address")) or "",
            topics=[to_hex(t) for t in log.get("topics", [])],
            data=to_hex(log.get("data")) or "0x",
            block_number=to_int(log.get("blockNumber")),
            block_hash=to_hex(log.get("blockHash")),
            tx_hash=to_hex(log.get("transactionHash")),
            transaction_index=to_int(log.get("transactionIndex")),
            log_index=to_int(log.get("logIndex")),
            removed=bool(log.get("removed", False)),
        )

    def decode_block(self, raw_block: Mapping[str, Any]) -> RawBlock:
        """标准解码：任意交易类型不受支持即抛出异常

        Raises:
            UnsupportedTransactionTypeError: 区块中存在不支持的交易类型
        """
        header = self.parse_block_header(raw_block)
        transactions = []

        for i, tx in enumerate(raw_block.get("transactions") or []):
            if not isinstance(tx, Mapping):
                raise TypeError(f"block {header.number} returned transaction hashes, not objects")
            try:
                transactions.append(self.parse_transaction(tx, i, header.number, header.hash))
            except UnsupportedTransactionTypeError:
                raise
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(
                    f"Failed to parse transaction {i} in block {header.number}: {e} (placeholder record)"
                )
                transactions.append(self.placeholder_transaction(tx, i, header.number, header.hash))

        return RawBlock(header=header, transactions=transactions)

    def decode_block_lenient(self, raw_block: Mapping[str, Any]) -> RawBlock:
        """降级解码：逐笔解析，不支持的类型转为最小记录或跳过

        区块头解析失败时由调用方处理
        """
        header = self.parse_block_header(raw_block)
        transactions = []
        skipped = 0

        for i, tx in enumerate(raw_block.get("transactions") or []):
            if not isinstance(tx, Mapping):
                logger.warning(f"Invalid transaction data at index {i} in block {header.number}")
                skipped += 1
                continue

            try:
                transactions.append(self.parse_transaction(tx, i, header.number, header.hash))
                continue
            except UnsupportedTransactionTypeError as e:
                minimal = self.minimal_transaction(tx, i, header.number, header.hash)
                if minimal is not None:
                    logger.info(
                        f"Created fallback transaction {minimal.hash} in block {header.number} "
                        f"(type {e.tx_type} unsupported)"
                    )
                    transactions.append(minimal)
                    continue
                logger.warning(f"Skipping transaction {i} in block {header.number}: {e}")
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"Failed to parse transaction {i} in block {header.number}: {e}")

            skipped += 1

        logger.info(
            f"Parsed block {header.number} with {len(transactions)} transactions "
            f"({skipped} skipped due to unsupported types)"
        )
        return RawBlock(header=header, transactions=transactions, skipped=skipped)

    def header_only_block(self, raw_block: Mapping[str, Any]) -> RawBlock:
        """仅区块头，交易列表为空"""
        header = self.parse_block_header(raw_block)
        return RawBlock(header=header, transactions=[], header_only=True)

    @staticmethod
    def to_dict(raw: Any) -> Dict[str, Any]:
        """web3 AttributeDict 转普通字典"""
        return dict(raw) if raw is not None else {}
