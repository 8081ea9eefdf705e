"""
区块数据采集器

负责从以太坊网络并发获取区块范围
支持：
- 单区块获取（按区块号或哈希）
- 固定大小worker池并发获取区块范围
- 追赶窗口（落后过多时只处理最近的区块）
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from whale_watch.exceptions import RunCancelledError
from whale_watch.fetcher.rpc_client import RPCClient
from whale_watch.filtering.whale_filter import contract_creations
from whale_watch.models.ethereum import Block, Transaction
from whale_watch.parser.block_normalizer import BlockNormalizer

logger = logging.getLogger(__name__)


def plan_block_range(last_processed: int, latest: int, max_delta: int) -> Optional[Tuple[int, int]]:
    """计算本次需要处理的区块范围

    从水位线下一个区块到最新区块；落后超过 max_delta 时只处理最近 max_delta 个区块

    Returns:
        (start, end) 闭区间，没有新区块时为 None
    """
    start = last_processed + 1
    end = latest
    if end - start > max_delta:
        start = latest - max_delta
    if start > end:
        return None
    return start, end


def highest_block_number(blocks: Iterable[Block]) -> Optional[int]:
    """已获取区块中的最大高度（结果列表不保证有序）"""
    return max((block.number for block in blocks), default=None)


@dataclass
class FetchResult:
    """单个区块的采集结果"""
    block_number: int
    block: Optional[Block] = None
    error: Optional[Exception] = None
    fetch_time_ms: float = 0.0


@dataclass
class FetchStats:
    """采集统计（只由收集线程修改）"""
    blocks_requested: int = 0
    blocks_parsed: int = 0
    transactions_parsed: int = 0
    logs_parsed: int = 0
    skipped_transactions: int = 0
    incomplete_blocks: int = 0
    errors_encountered: int = 0
    failed_blocks: List[int] = field(default_factory=list)
    cancelled: bool = False
    total_fetch_time_ms: float = 0.0
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None

    def update(self, result: FetchResult):
        """合并单个区块的结果"""
        if result.error is not None or result.block is None:
            self.errors_encountered += 1
            self.failed_blocks.append(result.block_number)
            return

        block = result.block
        self.blocks_parsed += 1
        self.transactions_parsed += len(block.transactions)
        self.logs_parsed += block.log_count
        self.skipped_transactions += block.skipped_transactions
        self.total_fetch_time_ms += result.fetch_time_ms
        if block.header_only:
            self.incomplete_blocks += 1

    def finish(self):
        self.end_time = time.time()

    @property
    def duration(self) -> float:
        return (self.end_time or time.time()) - self.start_time

    def summary(self) -> Dict[str, Any]:
        """获取统计摘要"""
        return {
            "blocks_requested": self.blocks_requested,
            "blocks_parsed": self.blocks_parsed,
            "transactions_parsed": self.transactions_parsed,
            "logs_parsed": self.logs_parsed,
            "skipped_transactions": self.skipped_transactions,
            "incomplete_blocks": self.incomplete_blocks,
            "errors_encountered": self.errors_encountered,
            "failed_blocks": sorted(self.failed_blocks),
            "cancelled": self.cancelled,
            "avg_fetch_time_ms": self.total_fetch_time_ms / max(1, self.blocks_parsed),
            "elapsed_seconds": self.duration,
        }


# worker退出标记
_DONE = object()


class BlockFetcher:
    """区块采集器"""

    def __init__(
        self,
        client: RPCClient,
        normalizer: BlockNormalizer,
        workers: int = 5,
        cancel_event: Optional[threading.Event] = None
    ):
        """初始化采集器

        Args:
            client: RPC客户端
            normalizer: 区块标准化器
            workers: 并发worker数量
            cancel_event: 取消信号（默认与客户端共用）
        """
        if workers < 1:
            raise ValueError("workers must be >= 1")

        self.client = client
        self.normalizer = normalizer
        self.workers = workers
        self.cancel_event = cancel_event or client.cancel_event

    def fetch_block(self, block_number: int) -> FetchResult:
        """获取并标准化单个区块

        Raises:
            BlockNotFoundError / RPCError / RunCancelledError
        """
        start_time = time.time()
        raw_block = self.client.get_block(block_number)
        block = self.normalizer.normalize(raw_block)
        fetch_time = (time.time() - start_time) * 1000

        if block.header_only:
            logger.warning(f"Block {block_number} fetched without transactions (header only)")

        logger.info(
            f"Parsed block {block_number} with {len(block.transactions)} transactions in {fetch_time:.0f}ms"
        )
        return FetchResult(block_number=block_number, block=block, fetch_time_ms=fetch_time)

    def fetch_block_by_hash(self, block_hash: str) -> FetchResult:
        """按哈希获取并标准化单个区块"""
        start_time = time.time()
        block = self.normalizer.normalize(self.client.get_block_by_hash(block_hash))
        fetch_time = (time.time() - start_time) * 1000

        logger.info(f"Parsed block {block.number} ({block_hash}) in {fetch_time:.0f}ms")
        return FetchResult(block_number=block.number, block=block, fetch_time_ms=fetch_time)

    def fetch_contract_creations(self, start_block: int, end_block: int) -> List[Transaction]:
        """获取区块范围内的合约创建交易"""
        blocks, _ = self.fetch_range(start_block, end_block)
        blocks.sort(key=lambda block: block.number)
        return contract_creations(blocks)

    def _worker(self, work_queue: queue.Queue, result_queue: queue.Queue):
        while True:
            block_number = work_queue.get()
            if block_number is _DONE:
                result_queue.put(_DONE)
                return

            # 取消后队列中剩余的区块直接丢弃，不计为错误
            if self.cancel_event.is_set():
                logger.debug(f"Dropping queued block {block_number} after cancellation")
                continue

            try:
                result = self.fetch_block(block_number)
            except RunCancelledError as e:
                logger.warning(f"Block {block_number} abandoned: {e}")
                result = FetchResult(block_number=block_number, error=e)
            except Exception as e:
                logger.error(f"Error parsing block {block_number}: {e}")
                result = FetchResult(block_number=block_number, error=e)

            result_queue.put(result)

    def _feed(self, work_queue: queue.Queue, start_block: int, end_block: int):
        for block_number in range(start_block, end_block + 1):
            if self.cancel_event.is_set():
                logger.warning(f"Cancellation requested, stop feeding at block {block_number}")
                break
            work_queue.put(block_number)
        for _ in range(self.workers):
            work_queue.put(_DONE)

    def fetch_range(self, start_block: int, end_block: int) -> Tuple[List[Block], FetchStats]:
        """并发获取区块范围

        单个区块失败只计入统计，不中断整个范围。
        返回的区块列表按完成顺序排列，不保证按高度有序。

        Args:
            start_block: 起始区块（含）
            end_block: 结束区块（含）

        Returns:
            (区块列表, 统计)
        """
        if start_block > end_block:
            raise ValueError(f"invalid range: {start_block} > {end_block}")

        logger.info(f"Parsing blocks from {start_block} to {end_block}")

        stats = FetchStats(blocks_requested=end_block - start_block + 1)
        work_queue: queue.Queue = queue.Queue(maxsize=self.workers * 2)
        result_queue: queue.Queue = queue.Queue(maxsize=self.workers)

        threads = [
            threading.Thread(
                target=self._worker,
                args=(work_queue, result_queue),
                name=f"block-worker-{i}",
                daemon=True,
            )
            for i in range(self.workers)
        ]
        feeder = threading.Thread(
            target=self._feed,
            args=(work_queue, start_block, end_block),
            name="block-feeder",
            daemon=True,
        )

        for thread in threads:
            thread.start()
        feeder.start()

        # 当前线程即收集者
        blocks: List[Block] = []
        finished = 0
        while finished < self.workers:
            result = result_queue.get()
            if result is _DONE:
                finished += 1
                continue
            stats.update(result)
            if result.block is not None:
                blocks.append(result.block)

        feeder.join()
        for thread in threads:
            thread.join()

        if self.cancel_event.is_set():
            stats.cancelled = True
        stats.finish()

        logger.info(
            f"Parsing completed. Processed {stats.blocks_parsed} blocks, "
            f"{stats.transactions_parsed} transactions, {stats.logs_parsed} logs, "
            f"{stats.errors_encountered} errors"
        )
        return blocks, stats
