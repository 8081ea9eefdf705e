"""
Configuration settings for Whale Watch

Uses pydantic-settings for type-safe configuration management.
"""

import json
from pathlib import Path
from typing import Dict, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from whale_watch.config.whales import DEFAULT_WHALE_ADDRESSES
from whale_watch.exceptions import ConfigurationError


# Infura 支持的网络及其 chain id
INFURA_NETWORKS: Dict[str, int] = {
    "mainnet": 1,
    "goerli": 5,
    "sepolia": 11155111,
    "polygon-mainnet": 137,
    "polygon-mumbai": 80001,
    "arbitrum-mainnet": 42161,
    "arbitrum-goerli": 421613,
    "optimism-mainnet": 10,
    "optimism-goerli": 420,
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Ethereum RPC
    eth_rpc_url: Optional[str] = Field(
        default=None,
        description="Explicit JSON-RPC endpoint, takes precedence over Infura settings"
    )

    infura_api_key: Optional[str] = Field(
        default=None,
        description="Infura project id"
    )

    infura_api_secret: Optional[str] = Field(
        default=None,
        description="Infura API secret (paid plans only)"
    )

    infura_network: str = Field(
        default="mainnet",
        description="Infura network name"
    )

    request_timeout: float = Field(
        default=30.0,
        description="HTTP timeout per RPC call in seconds"
    )

    # Rate limiting & retry
    rpc_requests_per_second: float = Field(
        default=2.0,
        description="Max RPC requests per second, shared by all workers"
    )

    rpc_retries: int = Field(
        default=3,
        description="Retries after the first attempt"
    )

    retry_backoff_base: float = Field(
        default=1.0,
        description="Initial backoff after a rate-limit response (seconds)"
    )

    retry_backoff_max: float = Field(
        default=60.0,
        description="Backoff cap (seconds)"
    )

    reconnect_delay: float = Field(
        default=1.0,
        description="Delay per attempt before reconnecting (seconds)"
    )

    # Block fetching
    workers: int = Field(
        default=5,
        description="Number of concurrent block fetch workers"
    )

    max_block_delta: int = Field(
        default=50,
        description="Max blocks behind head processed in one run"
    )

    max_transactions_for_receipts: int = Field(
        default=50,
        description="Skip receipts for blocks with more transactions than this"
    )

    skip_receipts_on_large_blocks: bool = Field(
        default=True,
        description="Enable the large-block receipt policy"
    )

    include_logs: bool = Field(
        default=False,
        description="Attach receipt logs to transactions"
    )

    recover_senders: bool = Field(
        default=True,
        description="Recover sender from signature instead of trusting the RPC 'from' field"
    )

    # Whale filtering
    min_eth_value: float = Field(
        default=1.0,
        description="Minimum transfer value in ETH"
    )

    whale_addresses: Dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_WHALE_ADDRESSES),
        description="Watched address -> label"
    )

    whales_file: Optional[Path] = Field(
        default=None,
        description="JSON file with an address -> label mapping"
    )

    explorer_tx_url: str = Field(
        default="https://etherscan.io/tx/",
        description="Explorer link prefix used in the CSV"
    )

    # Files & storage
    csv_path: Path = Field(default=Path("./whale_txns.csv"))
    last_block_path: Path = Field(default=Path("./last_block.dat"))
    database_path: Path = Field(default=Path("./data/whales.db"))
    lock_file: Path = Field(default=Path("./whale_watch.lock"))

    retention_days: int = Field(
        default=14,
        description="Persisted matches older than this are purged"
    )

    log_level: str = Field(default="INFO")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @field_validator("whale_addresses")
    @classmethod
    def _lower_addresses(cls, value: Dict[str, str]) -> Dict[str, str]:
        return {addr.lower(): label for addr, label in value.items()}

    @property
    def chain_id(self) -> int:
        """配置网络对应的 chain id"""
        return INFURA_NETWORKS.get(self.infura_network, 1)

    def resolve_rpc_url(self) -> str:
        """获取RPC端点

        显式配置的 eth_rpc_url 优先，否则根据 Infura 项目ID拼接
        """
        if self.eth_rpc_url:
            return self.eth_rpc_url

        if not self.infura_api_key:
            raise ConfigurationError(
                "No RPC endpoint configured: set ETH_RPC_URL or INFURA_API_KEY "
                "(the Infura 'API Key' is the project id from the dashboard)"
            )

        url = f"https://{self.infura_network}.infura.io/v3/{self.infura_api_key}"
        if self.infura_api_secret:
            url = f"{url}/{self.infura_api_secret}"
        return url

    def load_watch_map(self) -> Dict[str, str]:
        """加载关注地址映射（地址统一小写）"""
        if self.whales_file is None:
            return dict(self.whale_addresses)

        try:
            raw = json.loads(Path(self.whales_file).read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Cannot load whales file {self.whales_file}: {e}") from e

        if not isinstance(raw, dict):
            raise ConfigurationError(f"Whales file {self.whales_file} must contain a JSON object")

        return {str(addr).lower(): str(label) for addr, label in raw.items()}

    def validate_startup(self):
        """启动前校验配置，任何问题都抛出 ConfigurationError"""
        if not self.eth_rpc_url and self.infura_network not in INFURA_NETWORKS:
            raise ConfigurationError(f"Unsupported infura network: {self.infura_network}")

        # 触发缺少端点/凭证的检查
        self.resolve_rpc_url()

        if self.workers < 1:
            raise ConfigurationError(f"workers must be >= 1, got {self.workers}")
        if self.rpc_requests_per_second <= 0:
            raise ConfigurationError("rpc_requests_per_second must be positive")
        if self.rpc_retries < 0:
            raise ConfigurationError("rpc_retries must be >= 0")
        if self.max_block_delta < 0:
            raise ConfigurationError("max_block_delta must be >= 0")


# Global settings instance
settings = Settings()
