"""
CSV 旁路输出

每条命中记录追加一行，7个带引号的字段：
"<浏览器链接>","<金额> ETH","<FROM|TO>","<关注地址>","<标签>","<YYYY-MM-DD HH:MM:SS>","<区块号>"

INT（双方都是关注地址）记录输出 FROM 和 TO 两行。
"""

import csv
import io
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Mapping, Optional, Sequence, Union

from whale_watch.exceptions import PersistenceError
from whale_watch.models.ethereum import Direction, WhaleMatch

logger = logging.getLogger(__name__)


TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def _csv_line(fields: Sequence[str]) -> str:
    buffer = io.StringIO()
    csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n").writerow(fields)
    return buffer.getvalue()


def render_csv_lines(
    matches: Sequence[WhaleMatch],
    watch_map: Mapping[str, str],
    explorer_url: str = "https://etherscan.io/tx/",
    now: Optional[datetime] = None
) -> List[str]:
    """把命中记录渲染为CSV行（每行以换行结尾）"""
    labels = {address.lower(): label for address, label in watch_map.items()}
    timestamp = (now or datetime.now()).strftime(TIME_FORMAT)

    lines = []
    for match in matches:
        sides = []
        if match.direction in (Direction.FROM, Direction.INT):
            sides.append(("FROM", match.from_address))
        if match.direction in (Direction.TO, Direction.INT) and match.to_address:
            sides.append(("TO", match.to_address))

        for direction, address in sides:
            lines.append(_csv_line([
                f"{explorer_url}{match.tx_hash}",
                f"{match.value} ETH",
                direction,
                address,
                labels.get(address.lower(), match.whale_label),
                timestamp,
                str(match.block_number),
            ]))

    return lines


class CSVSink:
    """追加写入CSV文件"""

    def __init__(self, path: Union[str, Path], explorer_url: str = "https://etherscan.io/tx/"):
        self.path = Path(path)
        self.explorer_url = explorer_url

    def append(
        self,
        matches: Sequence[WhaleMatch],
        watch_map: Mapping[str, str],
        now: Optional[datetime] = None
    ) -> int:
        """追加命中记录，返回写入的行数

        Raises:
            PersistenceError: 文件无法写入
        """
        lines = render_csv_lines(matches, watch_map, self.explorer_url, now)
        if not lines:
            return 0

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8", newline="") as f:
                f.write("".join(lines))
        except OSError as e:
            raise PersistenceError(f"Cannot append to {self.path}: {e}") from e

        logger.info(f"Appended {len(lines)} lines to {self.path}")
        return len(lines)
