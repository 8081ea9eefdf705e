"""
发送方地址恢复

交易的 from 并不是签名数据的一部分，需要从 (v, r, s) 签名恢复。
按顺序尝试:
1. EIP-155 签名方案（使用交易声明的 chain id）
2. 该 chain id 下的最新方案（支持 EIP-2930 / EIP-1559 类型交易）
3. Homestead 方案（无 chain id）

全部失败时返回 "unknown"，不抛出异常。
"""

import logging
from typing import Any, Callable, List, Mapping, Optional, Tuple

import rlp
from eth_keys import keys
from eth_keys.exceptions import BadSignature, ValidationError
from eth_utils import keccak

from whale_watch.models.ethereum import UNKNOWN_SENDER
from whale_watch.parser.wire import to_bytes, to_int

logger = logging.getLogger(__name__)


class SignerError(ValueError):
    """签名方案不适用于该交易"""


SigningHash = Tuple[bytes, int]


def _tx_type(tx: Mapping[str, Any]) -> int:
    return to_int(tx.get("type"), 0)


def _data(tx: Mapping[str, Any]) -> bytes:
    return to_bytes(tx.get("input", tx.get("data")))


def _legacy_fields(tx: Mapping[str, Any]) -> List[Any]:
    return [
        to_int(tx.get("nonce")),
        to_int(tx.get("gasPrice")),
        to_int(tx.get("gas")),
        to_bytes(tx.get("to")),
        to_int(tx.get("value")),
        _data(tx),
    ]


def _access_list(tx: Mapping[str, Any]) -> List[Any]:
    return [
        [to_bytes(entry["address"]), [to_bytes(key) for key in entry.get("storageKeys", [])]]
        for entry in tx.get("accessList") or []
    ]


def declared_chain_id(tx: Mapping[str, Any]) -> Optional[int]:
    """交易声明的 chain id

    类型交易直接携带 chainId；受保护的 legacy 交易从 v 推导（v = chainId*2 + 35/36）
    """
    chain_id = to_int(tx.get("chainId"), 0)
    if chain_id:
        return chain_id
    if _tx_type(tx) == 0:
        v = to_int(tx.get("v"), 0)
        if v >= 35:
            return (v - 35) // 2
    return None


def homestead_signing_hash(tx: Mapping[str, Any]) -> SigningHash:
    """Homestead: keccak(rlp([nonce, gasPrice, gas, to, value, data]))，v ∈ {27, 28}"""
    if _tx_type(tx) != 0:
        raise SignerError("homestead signer only supports legacy transactions")
    v = to_int(tx.get("v"))
    if v not in (27, 28):
        raise SignerError(f"invalid homestead v value: {v}")
    return keccak(rlp.encode(_legacy_fields(tx))), v - 27


def eip155_signing_hash(tx: Mapping[str, Any], chain_id: int) -> SigningHash:
    """EIP-155: 签名数据附加 [chainId, 0, 0]"""
    if _tx_type(tx) != 0:
        raise SignerError("eip155 signer only supports legacy transactions")
    v = to_int(tx.get("v"))
    if v in (27, 28):
        # 未受保护的交易
        return homestead_signing_hash(tx)
    parity = v - (chain_id * 2 + 35)
    if parity not in (0, 1):
        raise SignerError(f"v={v} does not match chain id {chain_id}")
    return keccak(rlp.encode(_legacy_fields(tx) + [chain_id, 0, 0])), parity


def latest_signing_hash(tx: Mapping[str, Any], chain_id: int) -> SigningHash:
    """最新方案: legacy 走 EIP-155，类型交易为 keccak(type || rlp(payload))"""
    tx_type = _tx_type(tx)
    if tx_type == 0:
        return eip155_signing_hash(tx, chain_id)

    tx_chain_id = to_int(tx.get("chainId"), 0)
    if tx_chain_id != chain_id:
        raise SignerError(f"chain id mismatch: {tx_chain_id} != {chain_id}")

    parity = to_int(tx.get("yParity", tx.get("v")))

    if tx_type == 1:
        payload = [
            chain_id,
            to_int(tx.get("nonce")),
            to_int(tx.get("gasPrice")),
            to_int(tx.get("gas")),
            to_bytes(tx.get("to")),
            to_int(tx.get("value")),
            _data(tx),
            _access_list(tx),
        ]
    elif tx_type == 2:
        payload = [
            chain_id,
            to_int(tx.get("nonce")),
            to_int(tx.get("maxPriorityFeePerGas")),
            to_int(tx.get("maxFeePerGas")),
            to_int(tx.get("gas")),
            to_bytes(tx.get("to")),
            to_int(tx.get("value")),
            _data(tx),
            _access_list(tx),
        ]
    else:
        raise SignerError(f"transaction type {tx_type} not supported by signer")

    return keccak(bytes([tx_type]) + rlp.encode(payload)), parity


def _recover(msg_hash: bytes, parity: int, tx: Mapping[str, Any]) -> str:
    signature = keys.Signature(vrs=(parity, to_int(tx.get("r")), to_int(tx.get("s"))))
    return signature.recover_public_key_from_msg_hash(msg_hash).to_checksum_address()


def recover_sender(tx: Mapping[str, Any]) -> str:
    """从签名恢复发送方地址

    Args:
        tx: 原始交易（节点JSON或web3格式化后的字典）

    Returns:
        校验和地址，全部方案失败时为 UNKNOWN_SENDER
    """
    schemes: List[Tuple[str, Callable[[Mapping[str, Any]], SigningHash]]] = []

    chain_id = declared_chain_id(tx)
    if chain_id:
        schemes.append(("eip155", lambda t: eip155_signing_hash(t, chain_id)))
        schemes.append(("latest", lambda t: latest_signing_hash(t, chain_id)))
    schemes.append(("homestead", homestead_signing_hash))

    for name, scheme in schemes:
        try:
            msg_hash, parity = scheme(tx)
            return _recover(msg_hash, parity, tx)
        except (BadSignature, ValidationError, ValueError, TypeError, KeyError) as e:
            logger.debug(f"{name} signer failed for tx {tx.get('hash')}: {e}")

    return UNKNOWN_SENDER
