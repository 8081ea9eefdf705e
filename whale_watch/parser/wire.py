"""
JSON-RPC 字段转换

节点原始响应中数值为十六进制字符串，web3格式化后为 int / HexBytes，
这里的函数对两种形式一视同仁。
"""

from typing import Any, Optional

from web3 import Web3


def to_int(value: Any, default: int = 0) -> int:
    """十六进制字符串 / 十进制字符串 / bytes / int 转 int"""
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, (bytes, bytearray)):
        return int.from_bytes(value, "big")
    if isinstance(value, str):
        text = value.strip()
        if text.lower().startswith("0x"):
            return int(text, 16) if len(text) > 2 else 0
        return int(text)
    raise TypeError(f"cannot convert {type(value).__name__} to int")


def optional_int(value: Any) -> Optional[int]:
    """字段缺失或无法解析时返回 None"""
    if value is None:
        return None
    try:
        return to_int(value)
    except (TypeError, ValueError):
        return None


def to_hex(value: Any) -> str:
    """bytes / HexBytes / str 统一为 0x 前缀的小写十六进制"""
    if value is None:
        return ""
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, str):
        text = value.lower()
        return text if text.startswith("0x") else "0x" + text
    raise TypeError(f"cannot convert {type(value).__name__} to hex")


def to_bytes(value: Any) -> bytes:
    """十六进制数据转 bytes（空值为 b''）"""
    if value is None:
        return b""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    text = str(value)
    if text.lower().startswith("0x"):
        text = text[2:]
    if len(text) % 2:
        text = "0" + text
    return bytes.fromhex(text)


def to_address(value: Any) -> Optional[str]:
    """地址转校验和格式，空地址返回 None"""
    if value is None or value == "" or value == b"":
        return None
    if isinstance(value, (bytes, bytearray)):
        value = "0x" + bytes(value).hex()
    return Web3.to_checksum_address(value)
