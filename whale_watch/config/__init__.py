"""配置"""

from whale_watch.config.settings import Settings, settings, INFURA_NETWORKS
from whale_watch.config.whales import DEFAULT_WHALE_ADDRESSES

__all__ = [
    "Settings",
    "settings",
    "INFURA_NETWORKS",
    "DEFAULT_WHALE_ADDRESSES",
]
