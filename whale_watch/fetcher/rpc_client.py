"""
RPC客户端

封装以太坊 JSON-RPC 端点：
- 连接管理（断线重连）
- 共享速率限制
- 重试与指数退避（限流错误）
- 不支持的交易类型降级解码
- 批量获取交易收据
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from web3 import Web3
from web3.exceptions import BlockNotFound

from whale_watch.exceptions import (
    BlockNotFoundError,
    RPCError,
    RunCancelledError,
    UnsupportedTransactionTypeError,
)
from whale_watch.fetcher.rate_limiter import RateLimiter
from whale_watch.models.ethereum import EventLog
from whale_watch.parser.transaction_parser import RawBlock, TransactionParser
from whale_watch.parser.wire import to_address

logger = logging.getLogger(__name__)

# 区块号或区块哈希
BlockId = Union[int, str]


# 限流错误特征
RATE_LIMIT_MARKERS = ("429", "too many requests", "rate limit", "exceeded")


def is_rate_limit_error(error: Exception) -> bool:
    """判断是否为限流错误"""
    response = getattr(error, "response", None)
    if getattr(response, "status_code", None) == 429:
        return True
    text = str(error).lower()
    return any(marker in text for marker in RATE_LIMIT_MARKERS)


def rate_limit_backoff(attempt: int, base: float = 1.0, cap: float = 60.0) -> float:
    """指数退避：base * 2^attempt，上限 cap"""
    return min(base * (2 ** attempt), cap)


class RPCClient:
    """以太坊RPC客户端"""

    def __init__(
        self,
        rpc_url: str,
        network: str = "mainnet",
        timeout: float = 30.0,
        retries: int = 3,
        requests_per_second: float = 2.0,
        backoff_base: float = 1.0,
        backoff_max: float = 60.0,
        reconnect_delay: float = 1.0,
        parser: Optional[TransactionParser] = None,
        rate_limiter: Optional[RateLimiter] = None,
        cancel_event: Optional[threading.Event] = None,
        w3_factory: Optional[Callable[[], Any]] = None,
        has_secret: bool = False
    ):
        """初始化客户端

        Args:
            rpc_url: RPC端点URL
            network: 网络名称（仅用于展示）
            timeout: 单次请求超时（秒）
            retries: 首次尝试之后的重试次数
            requests_per_second: 所有worker共享的请求频率
            backoff_base: 限流退避初始值（秒）
            backoff_max: 限流退避上限（秒）
            reconnect_delay: 重连前等待 reconnect_delay * attempt 秒
            parser: 交易解析器
            rate_limiter: 外部共享的速率限制器
            cancel_event: 取消信号，在每次重试决策点检查
            w3_factory: 创建Web3实例的工厂（测试注入）
            has_secret: 端点是否携带API secret
        """
        self.rpc_url = rpc_url
        self.network = network
        self.timeout = timeout
        self.retries = retries
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.reconnect_delay = reconnect_delay
        self.parser = parser or TransactionParser()
        self.rate_limiter = rate_limiter or RateLimiter(requests_per_second)
        self.cancel_event = cancel_event or threading.Event()
        self.has_secret = has_secret
        self._w3_factory = w3_factory or self._default_w3
        self._conn_lock = threading.Lock()
        self.w3 = None

        self.connect()

    def _default_w3(self) -> Web3:
        return Web3(Web3.HTTPProvider(self.rpc_url, request_kwargs={"timeout": self.timeout}))

    # ========== 连接管理 ==========

    def connect(self):
        """建立连接"""
        with self._conn_lock:
            self.w3 = self._w3_factory()
        logger.debug(f"RPC client ready for network {self.network}")

    def close(self):
        """关闭连接"""
        with self._conn_lock:
            self.w3 = None

    def reconnect(self):
        """重新建立连接

        其他worker可能正在使用旧连接，直接替换而不是先置空
        """
        with self._conn_lock:
            self.w3 = self._w3_factory()
        logger.info(f"Reconnected to {self.network} RPC endpoint")

    def is_connected(self) -> bool:
        """检查节点连通性"""
        try:
            self.rate_limiter.wait()
            return bool(self.w3.is_connected())
        except Exception as e:
            logger.warning(f"Connection check failed: {e}")
            return False

    def connection_info(self) -> Dict[str, Any]:
        """连接信息（不包含密钥本身）"""
        return {
            "network": self.network,
            "is_infura": ".infura.io" in self.rpc_url,
            "has_api_secret": self.has_secret,
            "requests_per_second": round(1.0 / self.rate_limiter.interval, 3),
            "retries": self.retries,
            "timeout": self.timeout,
        }

    # ========== 重试 ==========

    def _wait(self, seconds: float):
        """可被取消信号打断的等待"""
        if seconds > 0 and self.cancel_event.wait(seconds):
            raise RunCancelledError("cancelled while waiting to retry")

    def _execute_with_retry(self, method: str, fn: Callable[[], Any]) -> Any:
        """带重试执行RPC调用

        所有失败共用同一个尝试计数；限流错误按指数退避等待，
        其他错误在下一次尝试前先重连。

        Raises:
            RPCError: 重试耗尽
            BlockNotFoundError: 区块不存在（不重试）
            RunCancelledError: 在重试决策点发现已取消
        """
        last_error: Optional[Exception] = None
        needs_reconnect = False

        for attempt in range(self.retries + 1):
            if attempt > 0:
                if self.cancel_event.is_set():
                    raise RunCancelledError(f"{method} cancelled after {attempt} attempts")

                if needs_reconnect:
                    wait_time = self.reconnect_delay * attempt
                    logger.warning(f"Retrying {method} in {wait_time:.1f}s (attempt {attempt}/{self.retries})")
                    self._wait(wait_time)
                    try:
                        self.reconnect()
                    except Exception as e:
                        logger.warning(f"Failed to reconnect: {e}")
                        last_error = e
                        continue

            self.rate_limiter.wait()

            try:
                return fn()
            except (BlockNotFoundError, RunCancelledError):
                raise
            except Exception as e:
                last_error = e

            if is_rate_limit_error(last_error):
                needs_reconnect = False
                if attempt < self.retries:
                    wait_time = rate_limit_backoff(attempt, self.backoff_base, self.backoff_max)
                    logger.warning(
                        f"Rate limit exceeded on {method}, waiting {wait_time:.1f}s "
                        f"(attempt {attempt + 1}/{self.retries + 1})"
                    )
                    self._wait(wait_time)
            else:
                needs_reconnect = True
                logger.warning(f"{method} attempt {attempt + 1} failed: {last_error}")

        raise RPCError(method, self.retries + 1, last_error)

    # ========== 查询 ==========

    def chain_id(self) -> int:
        """获取链ID"""
        return self._execute_with_retry("eth_chainId", lambda: int(self.w3.eth.chain_id))

    def latest_block_number(self) -> int:
        """获取最新区块号"""
        return self._execute_with_retry("eth_blockNumber", lambda: int(self.w3.eth.block_number))

    def get_block(self, block_number: int) -> RawBlock:
        """获取区块（含完整交易）

        标准解码遇到不支持的交易类型时，直接对已获取的数据逐笔降级解析；
        web3 本身无法格式化区块时走原始JSON路径；
        连区块头都无法解析时返回交易列表为空的区块（header_only=True）。

        Raises:
            BlockNotFoundError: 区块不存在
            RPCError: 重试耗尽
        """
        return self._execute_with_retry(
            "eth_getBlockByNumber",
            lambda: self._fetch_block(block_number)
        )

    def get_block_by_hash(self, block_hash: str) -> RawBlock:
        """按哈希获取区块，降级规则与 get_block 相同"""
        return self._execute_with_retry(
            "eth_getBlockByHash",
            lambda: self._fetch_block(block_hash)
        )

    def _fetch_block(self, block_id: BlockId) -> RawBlock:
        try:
            raw = self.w3.eth.get_block(block_id, full_transactions=True)
        except BlockNotFound:
            raise BlockNotFoundError(block_id)
        except (KeyError, ValueError, TypeError) as e:
            if is_rate_limit_error(e):
                raise
            logger.warning(f"Standard decoding failed for block {block_id} ({e}), falling back to raw RPC decoding")
            return self._fetch_block_fallback(block_id)

        if raw is None:
            raise BlockNotFoundError(block_id)

        block = self.parser.to_dict(raw)
        try:
            return self.parser.decode_block(block)
        except UnsupportedTransactionTypeError as e:
            logger.warning(
                f"Block {block_id} contains unsupported transaction types ({e}), "
                f"decoding transactions individually"
            )
            return self.parser.decode_block_lenient(block)

    def _raw_request(self, method: str, params: List[Any]) -> Any:
        """原始JSON-RPC请求，返回 result 字段"""
        response = self.w3.provider.make_request(method, params)
        if response.get("error"):
            raise ValueError(f"{method} returned error: {response['error']}")
        return response.get("result")

    def _fetch_block_fallback(self, block_id: BlockId) -> RawBlock:
        """降级路径：原始JSON逐笔解析交易"""
        if isinstance(block_id, int):
            method, params = "eth_getBlockByNumber", [hex(block_id), True]
        else:
            method, params = "eth_getBlockByHash", [block_id, True]

        self.rate_limiter.wait()
        try:
            raw = self._raw_request(method, params)
        except Exception as e:
            if is_rate_limit_error(e):
                raise
            logger.warning(f"Raw RPC call failed for block {block_id}: {e}")
            return self._fetch_header_only(block_id)

        if raw is None:
            raise BlockNotFoundError(block_id)

        try:
            return self.parser.decode_block_lenient(raw)
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"Failed to parse block header for block {block_id}: {e}")
            return self._fetch_header_only(block_id)

    def _fetch_header_only(self, block_id: BlockId) -> RawBlock:
        """仅获取区块头"""
        self.rate_limiter.wait()
        try:
            raw = self.w3.eth.get_block(block_id, full_transactions=False)
        except BlockNotFound:
            raise BlockNotFoundError(block_id)

        if raw is None:
            raise BlockNotFoundError(block_id)

        block = self.parser.header_only_block(self.parser.to_dict(raw))
        logger.warning(
            f"Created fallback block {block_id} with header only "
            f"(transactions skipped due to unsupported types)"
        )
        return block

    def get_receipts_batch(self, tx_hashes: Sequence[str]) -> List[Optional[Dict[str, Any]]]:
        """批量获取交易收据（一次往返）

        单个收据失败不影响整批，对应位置为 None

        Args:
            tx_hashes: 交易哈希列表

        Returns:
            与 tx_hashes 一一对应的原始收据
        """
        if not tx_hashes:
            return []

        return self._execute_with_retry(
            "eth_getTransactionReceipt",
            lambda: self._fetch_receipts(list(tx_hashes))
        )

    def _fetch_receipts(self, tx_hashes: List[str]) -> List[Optional[Dict[str, Any]]]:
        requests = [("eth_getTransactionReceipt", [tx_hash]) for tx_hash in tx_hashes]
        responses = self.w3.provider.make_batch_request(requests)

        # 整批失败时节点返回单个错误对象
        if isinstance(responses, Mapping):
            raise ValueError(f"batch request failed: {responses.get('error', responses)}")

        responses = list(responses)
        if all(isinstance(r, Mapping) and isinstance(r.get("id"), int) for r in responses):
            responses.sort(key=lambda r: r["id"])

        receipts: List[Optional[Dict[str, Any]]] = [None] * len(tx_hashes)
        for i, response in enumerate(responses[:len(tx_hashes)]):
            if response.get("error"):
                logger.warning(f"Error getting receipt for tx {tx_hashes[i]}: {response['error']}")
                continue
            result = response.get("result")
            receipts[i] = dict(result) if result else None

        return receipts

    def get_logs(
        self,
        from_block: int,
        to_block: int,
        addresses: Optional[Sequence[str]] = None,
        topics: Optional[Sequence[Any]] = None
    ) -> List[EventLog]:
        """按过滤条件查询事件日志

        Args:
            from_block: 起始区块（含）
            to_block: 结束区块（含）
            addresses: 合约地址过滤
            topics: 主题过滤
        """
        params: Dict[str, Any] = {"fromBlock": from_block, "toBlock": to_block}
        if addresses:
            params["address"] = [to_address(a) for a in addresses]
        if topics:
            params["topics"] = list(topics)

        raw_logs = self._execute_with_retry("eth_getLogs", lambda: self.w3.eth.get_logs(params))
        return self.parser.parse_logs([dict(log) for log in raw_logs])
