"""
大额转账过滤

遍历标准化区块中的交易，筛选发送方或接收方在关注列表中、
且金额（换算为ETH并保留5位小数后）不低于阈值的交易。
"""

import logging
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Iterable, List, Mapping, Optional, Union

from whale_watch.models.ethereum import Block, Direction, Transaction, WhaleMatch

logger = logging.getLogger(__name__)


WEI_PER_ETH = Decimal(10) ** 18
ETH_QUANTUM = Decimal("0.00001")


def wei_to_eth_decimal(value: int) -> Decimal:
    """wei 转 ETH，四舍五入保留5位小数"""
    with localcontext() as ctx:
        ctx.prec = 100
        return (Decimal(value) / WEI_PER_ETH).quantize(ETH_QUANTUM, rounding=ROUND_HALF_UP)


def wei_to_eth(value: int) -> str:
    """wei 转 ETH 字符串

    保留5位小数并去掉末尾的0：10**18 -> "1"，0 -> "0"，
    1234567890123456789 -> "1.23457"
    """
    return format(wei_to_eth_decimal(value).normalize(), "f")


def classify_direction(is_from: bool, is_to: bool) -> Optional[Direction]:
    """判断相对关注地址的方向，两边都不是关注地址时返回 None"""
    if is_from and is_to:
        return Direction.INT
    if is_from:
        return Direction.FROM
    if is_to:
        return Direction.TO
    return None


class WhaleFilter:
    """关注地址过滤器

    关注列表在调用时注入，过滤器本身不持有任何地址
    """

    def __init__(self, watch_map: Mapping[str, str], min_eth: Union[float, str, Decimal] = 1):
        """初始化

        Args:
            watch_map: 地址 -> 标签（地址大小写不敏感）
            min_eth: 最小金额（ETH）
        """
        self.watch_map = {address.lower(): label for address, label in watch_map.items()}
        self.min_eth = Decimal(str(min_eth))

    def match_transaction(self, tx: Transaction, block_timestamp: int = 0) -> Optional[WhaleMatch]:
        """检查单笔交易，未命中返回 None"""
        sender = tx.from_address.lower()
        recipient = tx.to_address.lower() if tx.to_address else None

        is_from = sender in self.watch_map
        is_to = recipient is not None and recipient in self.watch_map

        direction = classify_direction(is_from, is_to)
        if direction is None:
            return None

        # 比较的是四舍五入后的金额
        value = wei_to_eth_decimal(tx.value)
        if value < self.min_eth:
            return None

        # INT 记到接收方名下
        whale = recipient if is_to else sender

        return WhaleMatch(
            tx_hash=tx.hash,
            block_number=tx.block_number,
            block_hash=tx.block_hash,
            block_timestamp=block_timestamp,
            transaction_index=tx.transaction_index,
            from_address=tx.from_address,
            to_address=tx.to_address,
            whale_address=whale,
            whale_label=self.watch_map[whale],
            direction=direction,
            value=wei_to_eth(tx.value),
            gas=tx.gas,
            gas_price=tx.gas_price,
            gas_used=tx.gas_used,
            status=tx.status,
            nonce=tx.nonce,
            input_data=tx.input,
            tx_type=tx.tx_type,
            max_fee_per_gas=tx.max_fee_per_gas,
            max_priority_fee_per_gas=tx.max_priority_fee_per_gas,
        )

    def filter(self, blocks: Iterable[Block]) -> List[WhaleMatch]:
        """按区块顺序、区块内交易顺序筛选"""
        matches = []
        for block in blocks:
            for tx in block.transactions:
                match = self.match_transaction(tx, block.timestamp)
                if match is not None:
                    matches.append(match)

        logger.info(f"Found {len(matches)} whale transactions (min {self.min_eth} ETH)")
        return matches


def filter_whale_transactions(
    blocks: Iterable[Block],
    watch_map: Mapping[str, str],
    min_eth: Union[float, str, Decimal] = 1
) -> List[WhaleMatch]:
    """筛选大额关注地址交易"""
    return WhaleFilter(watch_map, min_eth).filter(blocks)


def contract_creations(blocks: Iterable[Block]) -> List[Transaction]:
    """合约创建交易（没有接收方，或收据中带有合约地址）"""
    return [
        tx
        for block in blocks
        for tx in block.transactions
        if tx.to_address is None or tx.contract_address is not None
    ]


def transactions_by_value(transactions: Iterable[Transaction], min_value: int) -> List[Transaction]:
    """金额（wei）不低于 min_value 的交易，保持原顺序"""
    return [tx for tx in transactions if tx.value >= min_value]
