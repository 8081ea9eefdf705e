"""
区块标准化

将RPC客户端返回的区块与交易收据合并为标准化的 Block：
- 交易数超过阈值的大区块不获取收据（gas_used=0, status=NOT_FETCHED）
- 其他区块一次批量获取全部收据，按索引回填
- 单个收据缺失只影响对应交易
"""

import logging
import time
from typing import List, Optional, Protocol, Sequence

from whale_watch.models.ethereum import Block, Transaction, TxStatus
from whale_watch.parser.transaction_parser import RawBlock, ReceiptData, TransactionParser

logger = logging.getLogger(__name__)


class ReceiptSource(Protocol):
    def get_receipts_batch(self, tx_hashes: Sequence[str]) -> List[Optional[dict]]:
        ...


class BlockNormalizer:
    """区块标准化器"""

    def __init__(
        self,
        receipt_source: ReceiptSource,
        max_transactions_for_receipts: int = 50,
        skip_receipts_on_large_blocks: bool = True,
        include_logs: bool = False,
        parser: Optional[TransactionParser] = None
    ):
        """初始化

        Args:
            receipt_source: 提供 get_receipts_batch 的对象（通常是RPCClient）
            max_transactions_for_receipts: 大区块阈值
            skip_receipts_on_large_blocks: 是否启用大区块策略
            include_logs: 是否把收据日志附加到交易上
            parser: 收据解析器
        """
        self.receipt_source = receipt_source
        self.max_transactions_for_receipts = max_transactions_for_receipts
        self.skip_receipts_on_large_blocks = skip_receipts_on_large_blocks
        self.include_logs = include_logs
        self.parser = parser or TransactionParser()

    def is_large_block(self, raw_block: RawBlock) -> bool:
        return (
            self.skip_receipts_on_large_blocks
            and len(raw_block.transactions) > self.max_transactions_for_receipts
        )

    def normalize(self, raw_block: RawBlock) -> Block:
        """标准化区块

        Raises:
            RPCError: 批量获取收据重试耗尽
        """
        start_time = time.time()
        header = raw_block.header

        if self.is_large_block(raw_block):
            logger.info(
                f"Skipping receipts for block {header.number}: {len(raw_block.transactions)} "
                f"transactions exceeds limit of {self.max_transactions_for_receipts}"
            )
            transactions = [
                tx.model_copy(update={"gas_used": 0, "status": TxStatus.NOT_FETCHED})
                for tx in raw_block.transactions
            ]
        else:
            transactions = self._attach_receipts(header.number, raw_block.transactions)

        block = Block(
            number=header.number,
            hash=header.hash,
            parent_hash=header.parent_hash,
            timestamp=header.timestamp,
            miner=header.miner,
            gas_used=header.gas_used,
            gas_limit=header.gas_limit,
            base_fee_per_gas=header.base_fee_per_gas,
            transaction_count=header.transaction_count,
            transactions=sorted(transactions, key=lambda tx: tx.transaction_index),
            skipped_transactions=raw_block.skipped,
            header_only=raw_block.header_only,
        )

        logger.debug(
            f"Normalized block {block.number} with {len(block.transactions)} transactions "
            f"in {(time.time() - start_time) * 1000:.0f}ms"
        )
        return block

    def _attach_receipts(self, block_number: int, transactions: List[Transaction]) -> List[Transaction]:
        """批量获取收据并按索引回填"""
        positions = [i for i, tx in enumerate(transactions) if tx.hash]
        if not positions:
            return list(transactions)

        raw_receipts = self.receipt_source.get_receipts_batch([transactions[i].hash for i in positions])

        result = list(transactions)
        for position, raw_receipt in zip(positions, raw_receipts):
            if not raw_receipt:
                continue
            try:
                receipt = self.parser.parse_receipt(raw_receipt)
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(
                    f"Failed to parse receipt for tx {transactions[position].hash} "
                    f"in block {block_number}: {e}"
                )
                continue
            result[position] = self._apply_receipt(transactions[position], receipt)

        return result

    def _apply_receipt(self, tx: Transaction, receipt: ReceiptData) -> Transaction:
        update = {
            "gas_used": receipt.gas_used,
            "status": receipt.status,
        }
        # 只有合约创建交易才有合约地址
        if tx.is_contract_creation and receipt.contract_address:
            update["contract_address"] = receipt.contract_address
        if self.include_logs:
            update["logs"] = receipt.logs
        return tx.model_copy(update=update)
