"""Tests for transaction decoding and sender recovery."""

import pytest
from eth_account import Account

from whale_watch.exceptions import UnsupportedTransactionTypeError
from whale_watch.models.ethereum import TxStatus, TxType, UNKNOWN_SENDER
from whale_watch.parser.signers import declared_chain_id, recover_sender
from whale_watch.parser.transaction_parser import TransactionParser

from tests.helpers import ETH, OTHER_A, OTHER_B, block_hash, raw_block, raw_receipt, raw_tx, tx_hash

PRIVATE_KEY = "0x" + "4c" * 32
ACCOUNT = Account.from_key(PRIVATE_KEY)
GWEI = 10 ** 9


def signed_json(unsigned: dict, tx_type: int = 0, forged_from: str = OTHER_A) -> dict:
    """签名后转换为节点JSON格式（from 字段故意填错）"""
    signed = Account.sign_transaction(unsigned, PRIVATE_KEY)
    tx = {
        "hash": tx_hash(1, 0),
        "type": hex(tx_type),
        "from": forged_from,
        "to": unsigned["to"],
        "value": hex(unsigned["value"]),
        "gas": hex(unsigned["gas"]),
        "nonce": hex(unsigned["nonce"]),
        "input": "0x",
        "v": hex(signed.v),
        "r": hex(signed.r),
        "s": hex(signed.s),
    }
    if tx_type == 2:
        tx.update({
            "chainId": hex(unsigned["chainId"]),
            "maxFeePerGas": hex(unsigned["maxFeePerGas"]),
            "maxPriorityFeePerGas": hex(unsigned["maxPriorityFeePerGas"]),
            "gasPrice": hex(unsigned["maxFeePerGas"]),
            "accessList": [],
            "yParity": hex(signed.v),
        })
    else:
        tx["gasPrice"] = hex(unsigned["gasPrice"])
    return tx


def legacy_unsigned(**extra) -> dict:
    tx = {"nonce": 7, "gasPrice": 30 * GWEI, "gas": 21000, "to": OTHER_B, "value": 2 * ETH, "data": b""}
    tx.update(extra)
    return tx


def fee_market_unsigned() -> dict:
    return {
        "type": 2,
        "chainId": 1,
        "nonce": 3,
        "maxFeePerGas": 40 * GWEI,
        "maxPriorityFeePerGas": 2 * GWEI,
        "gas": 21000,
        "to": OTHER_B,
        "value": 5 * ETH,
        "data": b"",
        "accessList": [],
    }


class TestSenderRecovery:

    def test_eip155_legacy(self):
        tx = signed_json(legacy_unsigned(chainId=1))
        assert declared_chain_id(tx) == 1
        assert recover_sender(tx) == ACCOUNT.address

    def test_homestead_legacy(self):
        tx = signed_json(legacy_unsigned())
        assert declared_chain_id(tx) is None
        assert recover_sender(tx) == ACCOUNT.address

    def test_fee_market(self):
        tx = signed_json(fee_market_unsigned(), tx_type=2)
        assert recover_sender(tx) == ACCOUNT.address

    def test_typed_without_chain_id_is_unknown(self):
        tx = signed_json(fee_market_unsigned(), tx_type=2)
        del tx["chainId"]
        assert recover_sender(tx) == UNKNOWN_SENDER

    def test_invalid_v_is_unknown(self):
        tx = signed_json(legacy_unsigned())
        tx["v"] = "0x5"
        assert recover_sender(tx) == UNKNOWN_SENDER

    def test_recovered_sender_replaces_rpc_from(self):
        tx = signed_json(legacy_unsigned(chainId=1), forged_from=OTHER_A)
        parsed = TransactionParser().parse_transaction(tx, 0, 1, block_hash(1))
        assert parsed.from_address == ACCOUNT.address


class TestParseTransaction:

    def setup_method(self):
        self.parser = TransactionParser(recover_senders=False)

    def test_legacy_fields(self):
        tx = self.parser.parse_transaction(raw_tx(9, 4, value=3 * ETH), 4, 9, block_hash(9))

        assert tx.hash == tx_hash(9, 4)
        assert tx.transaction_index == 4
        assert tx.from_address == OTHER_A
        assert tx.to_address == OTHER_B
        assert tx.value == 3 * ETH
        assert tx.gas_price == 30 * GWEI
        assert tx.tx_type == TxType.LEGACY
        assert tx.max_fee_per_gas is None
        assert tx.gas_used is None
        assert tx.status is None

    def test_fee_market_fields_missing(self):
        tx = self.parser.parse_transaction(raw_tx(9, 0, tx_type=2), 0, 9, block_hash(9))
        assert tx.tx_type == TxType.FEE_MARKET
        assert tx.max_fee_per_gas is None
        assert tx.max_priority_fee_per_gas is None

    def test_fee_fields_ignored_for_legacy(self):
        tx = self.parser.parse_transaction(raw_tx(9, 0, maxFeePerGas="0x1"), 0, 9, block_hash(9))
        assert tx.max_fee_per_gas is None

    def test_contract_creation(self):
        tx = self.parser.parse_transaction(raw_tx(9, 0, to=None), 0, 9, block_hash(9))
        assert tx.to_address is None
        assert tx.is_contract_creation

    def test_unsupported_type(self):
        with pytest.raises(UnsupportedTransactionTypeError) as exc_info:
            self.parser.parse_transaction(raw_tx(9, 0, tx_type=3), 0, 9, block_hash(9))
        assert exc_info.value.tx_type == 3

    def test_missing_from_without_recovery(self):
        tx = self.parser.parse_transaction(raw_tx(9, 0, sender=None), 0, 9, block_hash(9))
        assert tx.from_address == UNKNOWN_SENDER


class TestDecodeBlock:

    def setup_method(self):
        self.parser = TransactionParser(recover_senders=False)

    def test_malformed_transaction_becomes_placeholder(self):
        malformed = raw_tx(3, 1)
        malformed["value"] = "0xzz"
        block = self.parser.decode_block(raw_block(3, [raw_tx(3, 0), malformed]))

        assert len(block.transactions) == 2
        placeholder = block.transactions[1]
        assert placeholder.input == "parse_error"
        assert placeholder.from_address == UNKNOWN_SENDER
        assert placeholder.hash == tx_hash(3, 1)
        assert placeholder.tx_type == TxType.UNKNOWN
        assert placeholder.value == 0

    def test_hash_only_transactions_rejected(self):
        with pytest.raises(TypeError):
            self.parser.decode_block(raw_block(3, [tx_hash(3, 0)]))

    def test_lenient_skips_non_objects(self):
        block = self.parser.decode_block_lenient(raw_block(3, [tx_hash(3, 0), raw_tx(3, 1)]))
        assert block.skipped == 1
        assert len(block.transactions) == 1

    def test_header(self):
        header = self.parser.parse_block_header(raw_block(3, [raw_tx(3, 0)], baseFeePerGas=None))
        assert header.number == 3
        assert header.parent_hash == block_hash(2)
        assert header.base_fee_per_gas is None
        assert header.transaction_count == 1


class TestParseReceipt:

    def test_statuses(self):
        parser = TransactionParser()
        assert parser.parse_receipt(raw_receipt(1, 0, status=1)).status == TxStatus.SUCCESS
        assert parser.parse_receipt(raw_receipt(1, 0, status=0)).status == TxStatus.FAILED
        pending = raw_receipt(1, 0)
        pending["status"] = None
        assert parser.parse_receipt(pending).status is None

    def test_gas_used(self):
        receipt = TransactionParser().parse_receipt(raw_receipt(1, 0, gas_used=52000))
        assert receipt.gas_used == 52000
        assert receipt.contract_address is None
        assert receipt.logs == []
