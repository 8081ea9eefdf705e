"""测试用的假RPC对象与数据构造函数"""

import threading
from typing import Dict, List, Optional

from whale_watch.models.ethereum import Block, Transaction, TxType
from whale_watch.parser.transaction_parser import BlockHeader, RawBlock


WATCHED_A = "0x742d35Cc6634C0532925a3b844Bc454e4438f44e"
WATCHED_B = "0xBE0eB53F46cd790Cd13851d5EFf43D12404d33E8"
OTHER_A = "0x1111111111111111111111111111111111111111"
OTHER_B = "0x2222222222222222222222222222222222222222"

WATCH_MAP = {
    WATCHED_A.lower(): "Bitfinex 2",
    WATCHED_B.lower(): "Binance 7",
}

ETH = 10 ** 18


def tx_hash(block_number: int, index: int) -> str:
    return "0x" + f"{block_number:032x}{index:032x}"


def block_hash(block_number: int) -> str:
    return "0x" + f"{block_number:064x}"


def raw_tx(
    block_number: int,
    index: int,
    sender: str = OTHER_A,
    to: Optional[str] = OTHER_B,
    value: int = 0,
    tx_type: int = 0,
    **extra
) -> Dict:
    """节点原始JSON格式的交易"""
    tx = {
        "hash": tx_hash(block_number, index),
        "blockNumber": hex(block_number),
        "blockHash": block_hash(block_number),
        "transactionIndex": hex(index),
        "type": hex(tx_type),
        "from": sender,
        "to": to,
        "value": hex(value),
        "gas": hex(21000),
        "gasPrice": hex(30 * 10 ** 9),
        "nonce": hex(index),
        "input": "0x",
    }
    tx.update(extra)
    return tx


def raw_block(block_number: int, transactions: List, **extra) -> Dict:
    """节点原始JSON格式的区块"""
    block = {
        "number": hex(block_number),
        "hash": block_hash(block_number),
        "parentHash": block_hash(block_number - 1),
        "timestamp": hex(1700000000 + block_number * 12),
        "miner": OTHER_A,
        "gasUsed": hex(21000 * len(transactions)),
        "gasLimit": hex(30000000),
        "baseFeePerGas": hex(10 ** 9),
        "transactions": transactions,
    }
    block.update(extra)
    return block


def raw_receipt(block_number: int, index: int, status: int = 1, gas_used: int = 21000, **extra) -> Dict:
    receipt = {
        "transactionHash": tx_hash(block_number, index),
        "transactionIndex": hex(index),
        "blockNumber": hex(block_number),
        "blockHash": block_hash(block_number),
        "gasUsed": hex(gas_used),
        "status": hex(status),
        "contractAddress": None,
        "logs": [],
    }
    receipt.update(extra)
    return receipt


def make_tx(
    block_number: int,
    index: int,
    sender: str = OTHER_A,
    to: Optional[str] = OTHER_B,
    value: int = 0
) -> Transaction:
    return Transaction(
        hash=tx_hash(block_number, index),
        block_number=block_number,
        block_hash=block_hash(block_number),
        transaction_index=index,
        from_address=sender,
        to_address=to,
        value=value,
        gas=21000,
        gas_price=30 * 10 ** 9,
        nonce=index,
        tx_type=TxType.LEGACY,
    )


def make_block(block_number: int, transactions: List[Transaction]) -> Block:
    return Block(
        number=block_number,
        hash=block_hash(block_number),
        parent_hash=block_hash(block_number - 1),
        timestamp=1700000000 + block_number * 12,
        miner=OTHER_A,
        gas_used=21000 * len(transactions),
        gas_limit=30000000,
        transaction_count=len(transactions),
        transactions=transactions,
    )


def make_raw_block(block_number: int, transactions: List[Transaction]) -> RawBlock:
    header = BlockHeader(
        number=block_number,
        hash=block_hash(block_number),
        parent_hash=block_hash(block_number - 1),
        timestamp=1700000000 + block_number * 12,
        miner=OTHER_A,
        gas_used=21000 * len(transactions),
        gas_limit=30000000,
        base_fee_per_gas=10 ** 9,
        transaction_count=len(transactions),
    )
    return RawBlock(header=header, transactions=transactions)


class RecordingEvent:
    """代替 threading.Event，记录等待时长而不真正休眠"""

    def __init__(self, cancelled: bool = False):
        self.cancelled = cancelled
        self.waits: List[float] = []

    def wait(self, timeout=None):
        self.waits.append(timeout)
        return self.cancelled

    def is_set(self):
        return self.cancelled

    def set(self):
        self.cancelled = True


class FakeEth:
    """web3.eth 的替身，按调用顺序返回预设结果"""

    def __init__(self, blocks=None, header_blocks=None, head=0):
        self.blocks = blocks or {}
        self.header_blocks = header_blocks or {}
        self.head = head
        self.head_outcomes: List = []
        self.block_outcomes: List = []
        self.calls: List = []
        self.logs: List[Dict] = []

    @property
    def block_number(self):
        self.calls.append("eth_blockNumber")
        if self.head_outcomes:
            outcome = self.head_outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        return self.head

    @property
    def chain_id(self):
        return 1

    def get_block(self, number, full_transactions=False):
        self.calls.append(("eth_getBlockByNumber", number, full_transactions))
        if self.block_outcomes:
            outcome = self.block_outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
        if not full_transactions and number in self.header_blocks:
            return self.header_blocks[number]
        return self.blocks.get(number)

    def get_logs(self, params):
        self.calls.append(("eth_getLogs", params))
        return self.logs


class FakeProvider:
    def __init__(self, raw_blocks=None, receipts=None):
        self.raw_blocks = raw_blocks or {}
        self.receipts = receipts or {}
        self.batch_calls: List = []
        self.requests: List = []
        self.reverse_batch = False

    def make_request(self, method, params):
        self.requests.append((method, params))
        if method == "eth_getBlockByNumber":
            return {"jsonrpc": "2.0", "id": 1, "result": self.raw_blocks.get(int(params[0], 16))}
        if method == "eth_getBlockByHash":
            return {"jsonrpc": "2.0", "id": 1, "result": self.raw_blocks.get(params[0])}
        return {"jsonrpc": "2.0", "id": 1, "error": {"code": -32601, "message": "method not found"}}

    def make_batch_request(self, requests):
        self.batch_calls.append(requests)
        responses = []
        for i, (method, params) in enumerate(requests):
            receipt = self.receipts.get(params[0])
            if isinstance(receipt, Exception):
                responses.append({"jsonrpc": "2.0", "id": i, "error": {"code": -32000, "message": str(receipt)}})
            else:
                responses.append({"jsonrpc": "2.0", "id": i, "result": receipt})
        if self.reverse_batch:
            responses.reverse()
        return responses


class FakeWeb3:
    def __init__(self, eth: FakeEth, provider: Optional[FakeProvider] = None):
        self.eth = eth
        self.provider = provider or FakeProvider()

    def is_connected(self):
        return True


class FakeRPCClient:
    """BlockFetcher/BlockNormalizer 用的假客户端"""

    def __init__(self, raw_blocks=None, receipts=None, failing=(), head=0):
        self.raw_blocks: Dict[int, RawBlock] = raw_blocks or {}
        self.receipts: Dict[str, Dict] = receipts or {}
        self.failing = set(failing)
        self.head = head
        self.cancel_event = threading.Event()
        self.receipt_calls: List[List[str]] = []
        self.fetched: List[int] = []
        self._lock = threading.Lock()

    def latest_block_number(self) -> int:
        return self.head

    def get_block(self, block_number: int) -> RawBlock:
        with self._lock:
            self.fetched.append(block_number)
        if block_number in self.failing:
            raise ValueError(f"cannot decode block {block_number}")
        return self.raw_blocks[block_number]

    def get_block_by_hash(self, block_hash):
        for raw_block in self.raw_blocks.values():
            if raw_block.header.hash == block_hash:
                return self.get_block(raw_block.header.number)
        raise KeyError(block_hash)

    def get_receipts_batch(self, tx_hashes):
        with self._lock:
            self.receipt_calls.append(list(tx_hashes))
        return [self.receipts.get(h) for h in tx_hashes]
