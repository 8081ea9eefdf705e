"""
SQLite 存储模块

保存命中的大额交易和关注地址，供只读查询接口使用。
交易按哈希 upsert，重复处理同一区块不会产生重复记录。
"""

import sqlite3
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from whale_watch.exceptions import PersistenceError
from whale_watch.models.ethereum import WhaleAddress, WhaleMatch

logger = logging.getLogger(__name__)


class SQLiteStorage:
    """SQLite存储"""

    def __init__(self, db_path: Union[str, Path] = "data/whales.db"):
        """初始化存储

        Args:
            db_path: 数据库文件路径（":memory:" 为内存库）

        Raises:
            PersistenceError: 无法打开数据库
        """
        self.db_path = str(db_path)
        try:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            self.conn = sqlite3.connect(self.db_path)
            self.conn.row_factory = sqlite3.Row
            self._create_tables()
        except (sqlite3.Error, OSError) as e:
            raise PersistenceError(f"Cannot open database {self.db_path}: {e}") from e

    def _create_tables(self):
        """创建数据表"""
        cursor = self.conn.cursor()

        # 关注地址表
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS whale_addresses (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                address TEXT UNIQUE NOT NULL,
                label TEXT NOT NULL DEFAULT '',
                is_watched INTEGER NOT NULL DEFAULT 1,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        # 交易表
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS transactions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                tx_hash TEXT UNIQUE NOT NULL,
                block_number INTEGER NOT NULL,
                block_hash TEXT NOT NULL,
                block_timestamp INTEGER NOT NULL,
                transaction_index INTEGER NOT NULL,
                from_address TEXT NOT NULL,
                to_address TEXT,
                whale_address_id INTEGER,
                whale_address TEXT NOT NULL,
                direction TEXT NOT NULL,
                value TEXT NOT NULL,
                gas INTEGER NOT NULL,
                gas_price TEXT NOT NULL,
                gas_used INTEGER,
                status INTEGER,
                nonce INTEGER NOT NULL,
                input_data TEXT NOT NULL,
                tx_type INTEGER NOT NULL,
                max_fee_per_gas TEXT,
                max_priority_fee_per_gas TEXT,
                created_at TEXT NOT NULL,
                FOREIGN KEY (whale_address_id) REFERENCES whale_addresses(id)
            )
        """)

        cursor.execute("CREATE INDEX IF NOT EXISTS idx_tx_block ON transactions(block_number)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_tx_from ON transactions(from_address)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_tx_to ON transactions(to_address)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_tx_whale ON transactions(whale_address)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_tx_created ON transactions(created_at)")

        self.conn.commit()

    def _run(self, action: str, fn):
        """在事务中执行，失败回滚并转换为 PersistenceError"""
        try:
            with self.conn:
                return fn(self.conn.cursor())
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to {action}: {e}") from e

    # ========== 写入 ==========

    def save_matches(self, matches: Iterable[WhaleMatch]) -> int:
        """批量保存命中交易（按 tx_hash upsert）"""
        now = datetime.now().isoformat()
        rows = [
            (
                m.tx_hash,
                m.block_number,
                m.block_hash,
                m.block_timestamp,
                m.transaction_index,
                m.from_address,
                m.to_address,
                m.whale_address.lower(),
                m.whale_address.lower(),
                m.direction.value,
                m.value,
                m.gas,
                str(m.gas_price),
                m.gas_used,
                int(m.status) if m.status is not None else None,
                m.nonce,
                m.input_data[:1000] if len(m.input_data) > 1000 else m.input_data,  # 限制input长度
                int(m.tx_type),
                str(m.max_fee_per_gas) if m.max_fee_per_gas is not None else None,
                str(m.max_priority_fee_per_gas) if m.max_priority_fee_per_gas is not None else None,
                now,
            )
            for m in matches
        ]
        if not rows:
            return 0

        def insert(cursor):
            cursor.executemany("""
                INSERT OR REPLACE INTO transactions
                (tx_hash, block_number, block_hash, block_timestamp, transaction_index,
                 from_address, to_address, whale_address_id, whale_address, direction,
                 value, gas, gas_price, gas_used, status, nonce, input_data, tx_type,
                 max_fee_per_gas, max_priority_fee_per_gas, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?,
                        (SELECT id FROM whale_addresses WHERE address = ?),
                        ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, rows)
            return len(rows)

        count = self._run("save transactions", insert)
        logger.info(f"Saved {count} whale transactions")
        return count

    def save_whale_addresses(self, whales: Iterable[WhaleAddress]) -> int:
        """批量保存关注地址（按 address upsert）"""
        rows = [
            (w.address, w.label, int(w.is_watched), w.created_at.isoformat(), w.updated_at.isoformat())
            for w in whales
        ]
        if not rows:
            return 0

        def upsert(cursor):
            cursor.executemany("""
                INSERT INTO whale_addresses (address, label, is_watched, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(address) DO UPDATE SET
                    label = excluded.label,
                    is_watched = excluded.is_watched,
                    updated_at = excluded.updated_at
            """, rows)
            return len(rows)

        return self._run("save whale addresses", upsert)

    def delete_all_whale_addresses(self) -> int:
        """删除全部关注地址"""
        return self._run(
            "delete whale addresses",
            lambda cursor: cursor.execute("DELETE FROM whale_addresses").rowcount
        )

    def reinitialize_whales(self, watch_map: Mapping[str, str]) -> int:
        """用配置中的映射整体替换关注地址（同一事务内先删后插）"""
        now = datetime.now().isoformat()
        rows = [(address.lower(), label, 1, now, now) for address, label in watch_map.items()]

        def replace(cursor):
            cursor.execute("DELETE FROM whale_addresses")
            cursor.executemany("""
                INSERT INTO whale_addresses (address, label, is_watched, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
            """, rows)
            return len(rows)

        count = self._run("reinitialize whale addresses", replace)
        logger.info(f"Reinitialized {count} whale addresses")
        return count

    def clear_old_transactions(self, days: int) -> int:
        """删除 days 天前保存的交易"""
        cutoff = (datetime.now() - timedelta(days=days)).isoformat()
        count = self._run(
            "clear old transactions",
            lambda cursor: cursor.execute(
                "DELETE FROM transactions WHERE created_at < ?", (cutoff,)
            ).rowcount
        )
        logger.info(f"Removed {count} transactions older than {days} days")
        return count

    # ========== 查询方法 ==========

    def get_watch_map(self) -> Dict[str, str]:
        """关注中的地址 -> 标签"""
        cursor = self.conn.cursor()
        cursor.execute("SELECT address, label FROM whale_addresses WHERE is_watched = 1")
        return {row["address"]: row["label"] for row in cursor.fetchall()}

    def get_transaction(self, tx_hash: str) -> Optional[Dict]:
        """获取交易"""
        cursor = self.conn.cursor()
        cursor.execute("SELECT * FROM transactions WHERE tx_hash = ?", (tx_hash,))
        row = cursor.fetchone()
        return dict(row) if row else None

    def get_transactions_by_block(self, block_number: int) -> List[Dict]:
        """获取区块内的交易（按交易索引升序）"""
        cursor = self.conn.cursor()
        cursor.execute("""
            SELECT * FROM transactions
            WHERE block_number = ?
            ORDER BY transaction_index ASC
        """, (block_number,))
        return [dict(row) for row in cursor.fetchall()]

    def get_transactions_by_address(self, address: str, limit: int = 100) -> List[Dict]:
        """获取关注地址相关交易"""
        cursor = self.conn.cursor()
        cursor.execute("""
            SELECT * FROM transactions
            WHERE whale_address = ? OR lower(from_address) = ? OR lower(to_address) = ?
            ORDER BY block_number DESC, transaction_index DESC
            LIMIT ?
        """, (address.lower(), address.lower(), address.lower(), limit))
        return [dict(row) for row in cursor.fetchall()]

    def get_recent_transactions(self, limit: int = 100) -> List[Dict]:
        """最近的交易"""
        cursor = self.conn.cursor()
        cursor.execute("""
            SELECT t.*, w.label AS whale_label
            FROM transactions t
            LEFT JOIN whale_addresses w ON w.id = t.whale_address_id
            ORDER BY t.block_number DESC, t.transaction_index DESC
            LIMIT ?
        """, (limit,))
        return [dict(row) for row in cursor.fetchall()]

    def search_whale_addresses(self, query: str, limit: int = 50) -> List[Dict]:
        """按地址或标签模糊搜索"""
        pattern = f"%{query.lower()}%"
        cursor = self.conn.cursor()
        cursor.execute("""
            SELECT * FROM whale_addresses
            WHERE address LIKE ? OR lower(label) LIKE ?
            ORDER BY label
            LIMIT ?
        """, (pattern, pattern, limit))
        return [dict(row) for row in cursor.fetchall()]

    def get_stats(self) -> Dict[str, Any]:
        """获取统计信息"""
        cursor = self.conn.cursor()

        cursor.execute("SELECT COUNT(*), MIN(block_number), MAX(block_number) FROM transactions")
        tx_count, min_block, max_block = cursor.fetchone()

        cursor.execute("SELECT COUNT(*) FROM whale_addresses")
        whale_count = cursor.fetchone()[0]

        cursor.execute("""
            SELECT direction, COUNT(*)
            FROM transactions
            GROUP BY direction
        """)
        direction_stats = dict(cursor.fetchall())

        return {
            "transaction_count": tx_count,
            "min_block": min_block,
            "max_block": max_block,
            "whale_count": whale_count,
            "direction_distribution": direction_stats,
        }

    def close(self):
        """关闭连接"""
        self.conn.close()
