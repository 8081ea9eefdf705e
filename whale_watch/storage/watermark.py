"""
水位线存储

单个文件保存最后一个已完整处理的区块号。
文件不存在或内容无法解析时视为 0，首次运行无需预置。
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Union

from whale_watch.exceptions import PersistenceError

logger = logging.getLogger(__name__)


class WatermarkStore:
    """水位线存储"""

    def __init__(self, path: Union[str, Path] = "last_block.dat"):
        self.path = Path(path)

    def read(self) -> int:
        """读取水位线，失败时返回 0"""
        try:
            content = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return 0
        except OSError as e:
            logger.warning(f"Cannot read watermark file {self.path}: {e}, starting from 0")
            return 0

        for line in content.splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                value = int(line)
            except ValueError:
                logger.warning(f"Could not convert line '{line}' to int in {self.path}")
                continue
            if value >= 0:
                return value

        return 0

    def write(self, block_number: int):
        """写入水位线

        先写临时文件再原子替换，读取方不会看到写了一半的内容

        Raises:
            PersistenceError: 写入失败
        """
        if block_number < 0:
            raise ValueError(f"watermark must be non-negative, got {block_number}")

        directory = self.path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=str(directory), prefix=f".{self.path.name}.")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(str(block_number))
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise PersistenceError(f"Cannot write watermark {block_number} to {self.path}: {e}") from e

    def advance(self, block_number: int) -> int:
        """只在新值更大时写入，返回写入后的水位线"""
        current = self.read()
        if block_number <= current:
            logger.info(f"Watermark stays at {current} (highest fetched block {block_number})")
            return current
        self.write(block_number)
        logger.info(f"Watermark advanced {current} -> {block_number}")
        return block_number
