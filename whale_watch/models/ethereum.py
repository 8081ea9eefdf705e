"""
以太坊数据模型

定义标准化区块、交易、日志以及关注地址、匹配记录等核心数据结构
"""

from datetime import datetime as dt
from enum import Enum, IntEnum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


# 无法恢复发送方时的占位地址
UNKNOWN_SENDER = "unknown"


class TxType(IntEnum):
    """交易类型判别值"""
    LEGACY = 0
    ACCESS_LIST = 1
    FEE_MARKET = 2
    UNKNOWN = 255


class TxStatus(IntEnum):
    """执行状态（三态）"""
    FAILED = 0
    SUCCESS = 1
    NOT_FETCHED = 2


class Direction(str, Enum):
    """相对于关注地址的转账方向"""
    FROM = "FROM"
    TO = "TO"
    INT = "INT"


class EventLog(BaseModel):
    """事件日志"""
    address: str = Field(..., description="合约地址")
    topics: List[str] = Field(default_factory=list, description="主题列表")
    data: str = Field(default="0x", description="数据")

    block_number: int = Field(..., description="区块高度")
    block_hash: str = Field(default="", description="区块哈希")
    tx_hash: str = Field(..., description="交易哈希")
    transaction_index: int = Field(default=0, description="交易索引")
    log_index: int = Field(default=0, description="日志索引")
    removed: bool = Field(default=False, description="是否因链重组被移除")

    class Config:
        frozen = True


class Transaction(BaseModel):
    """标准化交易"""
    hash: str = Field(..., description="交易哈希")
    block_number: int = Field(..., description="所在区块")
    block_hash: str = Field(default="", description="所在区块哈希")
    transaction_index: int = Field(..., description="交易在区块中的索引")

    # 交易主体
    from_address: str = Field(..., description="发送方地址(无法恢复时为unknown)")
    to_address: Optional[str] = Field(None, description="接收方地址(合约创建时为空)")
    value: int = Field(default=0, description="转账金额(wei)")

    # Gas信息
    gas: int = Field(default=0, description="Gas限额")
    gas_price: int = Field(default=0, description="Gas价格")
    max_fee_per_gas: Optional[int] = Field(None, description="最大Gas费(EIP-1559)")
    max_priority_fee_per_gas: Optional[int] = Field(None, description="最大优先费(EIP-1559)")
    gas_used: Optional[int] = Field(None, description="实际使用Gas(未获取收据时为空或0)")

    nonce: int = Field(default=0, description="发送方nonce")
    input: str = Field(default="", description="原始input数据")
    tx_type: TxType = Field(default=TxType.LEGACY, description="交易类型")

    # 执行结果
    status: Optional[TxStatus] = Field(None, description="执行状态")
    contract_address: Optional[str] = Field(None, description="创建的合约地址")
    logs: Optional[List[EventLog]] = Field(None, description="事件日志")

    class Config:
        frozen = True

    @model_validator(mode="after")
    def _check_contract_creation(self):
        if self.to_address is not None and self.contract_address is not None:
            raise ValueError("contract_address is only valid for contract creation (to_address is empty)")
        return self

    @property
    def is_contract_creation(self) -> bool:
        return self.to_address is None


class Block(BaseModel):
    """标准化区块"""
    number: int = Field(..., ge=0, description="区块高度")
    hash: str = Field(..., description="区块哈希")
    parent_hash: str = Field(..., description="父区块哈希")
    timestamp: int = Field(..., description="时间戳")
    miner: str = Field(..., description="矿工/验证者地址")
    gas_used: int = Field(..., description="已用Gas")
    gas_limit: int = Field(..., description="Gas上限")
    base_fee_per_gas: Optional[int] = Field(None, description="基础Gas费(EIP-1559)")
    transaction_count: int = Field(..., description="链上交易数量")
    transactions: List[Transaction] = Field(default_factory=list, description="按链上索引排序的交易")

    # 降级解析信息
    skipped_transactions: int = Field(default=0, description="因无法解析被跳过的交易数")
    header_only: bool = Field(default=False, description="仅获取到区块头，交易列表不可信")

    class Config:
        frozen = True

    @property
    def datetime(self) -> dt:
        return dt.fromtimestamp(self.timestamp)

    @property
    def log_count(self) -> int:
        return sum(len(tx.logs) for tx in self.transactions if tx.logs)


class WhaleAddress(BaseModel):
    """关注地址"""
    id: Optional[int] = Field(None, description="数据库ID")
    address: str = Field(..., description="地址(小写)")
    label: str = Field(default="", description="标签")
    is_watched: bool = Field(default=True, description="是否关注")
    created_at: dt = Field(default_factory=dt.now, description="创建时间")
    updated_at: dt = Field(default_factory=dt.now, description="更新时间")

    @field_validator("address")
    @classmethod
    def _lower(cls, value: str) -> str:
        return value.lower()


class WhaleMatch(BaseModel):
    """命中关注地址的大额交易（持久化记录）"""
    tx_hash: str = Field(..., description="交易哈希(唯一键)")
    block_number: int = Field(..., description="所在区块")
    block_hash: str = Field(default="", description="所在区块哈希")
    block_timestamp: int = Field(default=0, description="区块时间戳")
    transaction_index: int = Field(..., description="交易索引")

    from_address: str = Field(..., description="发送方")
    to_address: Optional[str] = Field(None, description="接收方")

    whale_address: str = Field(..., description="命中的关注地址(小写)")
    whale_label: str = Field(default="", description="关注地址标签")
    direction: Direction = Field(..., description="转账方向")
    value: str = Field(..., description="ETH金额(保留5位小数)")

    gas: int = Field(default=0)
    gas_price: int = Field(default=0)
    gas_used: Optional[int] = Field(None)
    status: Optional[TxStatus] = Field(None)
    nonce: int = Field(default=0)
    input_data: str = Field(default="")
    tx_type: TxType = Field(default=TxType.LEGACY)
    max_fee_per_gas: Optional[int] = Field(None)
    max_priority_fee_per_gas: Optional[int] = Field(None)
