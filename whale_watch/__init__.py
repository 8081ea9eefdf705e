"""
Whale Watch

以太坊大额转账监控：轮询新区块，筛选与关注地址相关的大额交易并持久化
"""

__version__ = "0.1.0"
