"""
异常定义

- 可重试错误在RPC客户端内部消化
- 单区块错误在区块采集器中计入统计
- 配置错误与持久化错误终止本次运行
"""


class WhaleWatchError(Exception):
    """基础异常"""


class ConfigurationError(WhaleWatchError):
    """配置或凭证错误（启动时即失败）"""


class RPCError(WhaleWatchError):
    """RPC调用在重试耗尽后仍失败"""

    def __init__(self, method: str, attempts: int, cause: Exception):
        super().__init__(f"{method} failed after {attempts} attempts: {cause}")
        self.method = method
        self.attempts = attempts
        self.cause = cause


class BlockNotFoundError(WhaleWatchError):
    """节点返回空区块（按区块号或哈希查询）"""

    def __init__(self, block_number):
        super().__init__(f"block {block_number} not found")
        self.block_number = block_number


class UnsupportedTransactionTypeError(WhaleWatchError):
    """交易类型超出解码器支持范围"""

    def __init__(self, tx_type: int, tx_hash: str = ""):
        super().__init__(f"transaction type not supported: {tx_type} ({tx_hash or 'unknown hash'})")
        self.tx_type = tx_type
        self.tx_hash = tx_hash


class PersistenceError(WhaleWatchError):
    """存储不可用，本次运行必须在推进水位线之前停止"""


class RunCancelledError(WhaleWatchError):
    """运行已被取消"""
