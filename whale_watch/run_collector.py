#!/usr/bin/env python3
"""
大额转账采集任务
================

每次调用执行一轮：读取水位线 -> 并发获取新区块 -> 筛选关注地址交易
-> 写入数据库与CSV -> 推进水位线。由外部调度器按固定间隔启动。

运行方式：
    whale-watch                         # 处理水位线之后的新区块
    whale-watch --range 19000000 19000005
    whale-watch --init-whales           # 用配置中的地址列表重建关注地址表
    whale-watch --dry-run --deadline 30
"""

import argparse
import fcntl
import logging
import os
import signal
import sys
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from whale_watch.config.settings import Settings
from whale_watch.exceptions import (
    ConfigurationError,
    PersistenceError,
    RPCError,
    RunCancelledError,
    WhaleWatchError,
)
from whale_watch.fetcher.block_fetcher import BlockFetcher, FetchStats, highest_block_number, plan_block_range
from whale_watch.fetcher.rpc_client import RPCClient
from whale_watch.filtering.whale_filter import WhaleFilter
from whale_watch.models.ethereum import WhaleMatch
from whale_watch.parser.block_normalizer import BlockNormalizer
from whale_watch.parser.transaction_parser import TransactionParser
from whale_watch.storage.csv_sink import CSVSink
from whale_watch.storage.sqlite_storage import SQLiteStorage
from whale_watch.storage.watermark import WatermarkStore

console = Console()
logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_LOCKED = 2


class LockHeldError(WhaleWatchError):
    """另一个实例正在运行"""


class ProcessLock:
    """独占文件锁，保证同一时间只有一个实例运行"""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._fd: Optional[int] = None

    def acquire(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(self.path), os.O_RDWR | os.O_CREAT, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError as e:
            os.close(fd)
            raise LockHeldError(f"Another instance holds {self.path}") from e
        os.ftruncate(fd, 0)
        os.write(fd, str(os.getpid()).encode())
        self._fd = fd

    def release(self):
        if self._fd is None:
            return
        fcntl.flock(self._fd, fcntl.LOCK_UN)
        os.close(self._fd)
        self._fd = None

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()


@dataclass
class RunSummary:
    """一轮运行的结果"""
    latest_block: Optional[int] = None
    start_block: Optional[int] = None
    end_block: Optional[int] = None
    watermark_before: int = 0
    watermark_after: int = 0
    stats: FetchStats = field(default_factory=FetchStats)
    matches: List[WhaleMatch] = field(default_factory=list)
    csv_lines: int = 0
    dry_run: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "latest_block": self.latest_block,
            "start_block": self.start_block,
            "end_block": self.end_block,
            "watermark_before": self.watermark_before,
            "watermark_after": self.watermark_after,
            "matches_found": len(self.matches),
            "csv_lines": self.csv_lines,
            "dry_run": self.dry_run,
            **self.stats.summary(),
        }


def run_cycle(
    client: RPCClient,
    fetcher: BlockFetcher,
    watermark: WatermarkStore,
    storage: Optional[SQLiteStorage],
    csv_sink: Optional[CSVSink],
    watch_map: Mapping[str, str],
    min_eth: float,
    max_block_delta: int,
    block_range: Optional[Tuple[int, int]] = None,
    dry_run: bool = False
) -> RunSummary:
    """执行一轮 获取 -> 筛选 -> 持久化 -> 推进水位线

    持久化成功之后才推进水位线；持久化失败时抛出 PersistenceError，水位线保持不变。

    Raises:
        PersistenceError: 存储不可用
        RPCError: 无法获取最新区块
    """
    summary = RunSummary(dry_run=dry_run)
    summary.watermark_before = watermark.read()
    summary.watermark_after = summary.watermark_before

    if block_range is not None:
        start, end = block_range
    else:
        summary.latest_block = client.latest_block_number()
        planned = plan_block_range(summary.watermark_before, summary.latest_block, max_block_delta)
        if planned is None:
            logger.info(f"No new blocks after {summary.watermark_before}")
            return summary
        start, end = planned
        if start > summary.watermark_before + 1:
            logger.warning(
                f"Watermark {summary.watermark_before} is more than {max_block_delta} blocks behind "
                f"head {summary.latest_block}, skipping to {start}"
            )

    summary.start_block, summary.end_block = start, end

    blocks, summary.stats = fetcher.fetch_range(start, end)
    summary.matches = WhaleFilter(watch_map, min_eth).filter(blocks)

    if dry_run:
        return summary

    if storage is not None:
        storage.save_matches(summary.matches)
    if csv_sink is not None:
        summary.csv_lines = csv_sink.append(summary.matches, watch_map)

    highest = highest_block_number(blocks)
    if highest is not None:
        summary.watermark_after = watermark.advance(highest)

    return summary


def setup_logging(level: str = "INFO"):
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
    )


def display_summary(summary: RunSummary):
    """显示运行摘要"""
    data = summary.to_dict()

    table = Table(title="采集统计")
    table.add_column("指标", style="cyan")
    table.add_column("值", style="green")

    if data["start_block"] is not None:
        table.add_row("区块范围", f"#{data['start_block']:,} - #{data['end_block']:,}")
    else:
        table.add_row("区块范围", "无新区块")
    table.add_row("处理区块数", f"{data['blocks_parsed']:,}")
    table.add_row("处理交易数", f"{data['transactions_parsed']:,}")
    table.add_row("事件日志数", f"{data['logs_parsed']:,}")
    table.add_row("跳过交易数", f"{data['skipped_transactions']:,}")
    table.add_row("不完整区块", f"{data['incomplete_blocks']:,}")
    table.add_row("错误", f"[red]{data['errors_encountered']}[/red]")
    table.add_row("命中交易", f"[yellow]{data['matches_found']}[/yellow]")
    table.add_row("水位线", f"{data['watermark_before']:,} -> {data['watermark_after']:,}")
    table.add_row("耗时", f"{data['elapsed_seconds']:.1f} s")
    if data["cancelled"]:
        table.add_row("状态", "[yellow]已取消[/yellow]")
    if data["dry_run"]:
        table.add_row("模式", "[dim]dry-run（未持久化）[/dim]")

    console.print(table)

    if summary.matches:
        matches = Table(title="大额交易")
        matches.add_column("区块", style="cyan")
        matches.add_column("方向")
        matches.add_column("金额", style="green", justify="right")
        matches.add_column("关注地址")
        matches.add_column("交易哈希", style="dim")
        for match in summary.matches:
            matches.add_row(
                f"{match.block_number:,}",
                match.direction.value,
                f"{match.value} ETH",
                match.whale_label or match.whale_address,
                f"{match.tx_hash[:20]}...",
            )
        console.print(matches)


def build_client(settings: Settings, cancel_event: threading.Event) -> RPCClient:
    """根据配置创建RPC客户端"""
    return RPCClient(
        rpc_url=settings.resolve_rpc_url(),
        network=settings.infura_network,
        timeout=settings.request_timeout,
        retries=settings.rpc_retries,
        requests_per_second=settings.rpc_requests_per_second,
        backoff_base=settings.retry_backoff_base,
        backoff_max=settings.retry_backoff_max,
        reconnect_delay=settings.reconnect_delay,
        parser=TransactionParser(recover_senders=settings.recover_senders),
        cancel_event=cancel_event,
        has_secret=bool(settings.infura_api_secret),
    )


def build_fetcher(settings: Settings, client: RPCClient) -> BlockFetcher:
    normalizer = BlockNormalizer(
        client,
        max_transactions_for_receipts=settings.max_transactions_for_receipts,
        skip_receipts_on_large_blocks=settings.skip_receipts_on_large_blocks,
        include_logs=settings.include_logs,
        parser=client.parser,
    )
    return BlockFetcher(client, normalizer, workers=settings.workers)


def install_cancellation(cancel_event: threading.Event, deadline: Optional[float]) -> Optional[threading.Timer]:
    """SIGINT/SIGTERM 与截止时间都只设置取消信号"""
    def handle_signal(signum, frame):
        logger.warning(f"Received signal {signum}, finishing in-flight blocks")
        cancel_event.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    if deadline is None:
        return None
    timer = threading.Timer(deadline, cancel_event.set)
    timer.daemon = True
    timer.start()
    return timer


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="以太坊大额转账监控")

    group = parser.add_mutually_exclusive_group()
    group.add_argument(
        "--once",
        action="store_true",
        help="处理水位线之后的新区块（默认）"
    )
    group.add_argument(
        "--range", "-r",
        nargs=2,
        type=int,
        metavar=("START", "END"),
        help="处理指定区块范围"
    )
    group.add_argument(
        "--init-whales",
        action="store_true",
        help="用配置中的地址列表重建关注地址表"
    )
    group.add_argument(
        "--purge",
        action="store_true",
        help="删除超过保留期限的交易"
    )

    parser.add_argument("--dry-run", action="store_true", help="不写数据库、CSV和水位线")
    parser.add_argument("--deadline", type=float, default=None, metavar="SECONDS", help="超时后停止派发新区块")
    parser.add_argument("--env-file", default=".env", help="环境变量文件")

    args = parser.parse_args(argv)
    if args.range and args.range[0] > args.range[1]:
        parser.error("START must be <= END")
    return args


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    load_dotenv(args.env_file)

    try:
        settings = Settings(_env_file=args.env_file)
    except ValueError as e:
        console.print(f"[red]配置错误: {e}[/red]")
        return EXIT_FAILURE

    setup_logging(settings.log_level)

    try:
        with ProcessLock(settings.lock_file):
            return _run(args, settings)
    except LockHeldError as e:
        console.print(f"[yellow]{e}，本次跳过[/yellow]")
        return EXIT_LOCKED


def _run(args: argparse.Namespace, settings: Settings) -> int:
    storage: Optional[SQLiteStorage] = None
    try:
        if args.init_whales or args.purge:
            storage = SQLiteStorage(settings.database_path)
            if args.init_whales:
                count = storage.reinitialize_whales(settings.load_watch_map())
                console.print(f"[green]✓ 已写入 {count} 个关注地址[/green]")
            else:
                count = storage.clear_old_transactions(settings.retention_days)
                console.print(f"[green]✓ 已删除 {count} 笔过期交易[/green]")
            return EXIT_OK

        settings.validate_startup()
        config_watch_map = settings.load_watch_map()

        cancel_event = threading.Event()
        timer = install_cancellation(cancel_event, args.deadline)

        client = build_client(settings, cancel_event)
        fetcher = build_fetcher(settings, client)

        info = client.connection_info()
        console.print(Panel.fit(
            f"[bold]以太坊大额转账监控[/bold]\n"
            f"网络: {info['network']} | 速率: {info['requests_per_second']} req/s | "
            f"workers: {settings.workers}",
            border_style="blue"
        ))

        csv_sink = None
        if not args.dry_run:
            storage = SQLiteStorage(settings.database_path)
            csv_sink = CSVSink(settings.csv_path, settings.explorer_tx_url)

        watch_map = (storage.get_watch_map() if storage is not None else {}) or config_watch_map

        try:
            summary = run_cycle(
                client=client,
                fetcher=fetcher,
                watermark=WatermarkStore(settings.last_block_path),
                storage=storage,
                csv_sink=csv_sink,
                watch_map=watch_map,
                min_eth=settings.min_eth_value,
                max_block_delta=settings.max_block_delta,
                block_range=tuple(args.range) if args.range else None,
                dry_run=args.dry_run,
            )
        finally:
            if timer is not None:
                timer.cancel()
            client.close()

        display_summary(summary)
        return EXIT_OK

    except ConfigurationError as e:
        console.print(f"[red]配置错误: {e}[/red]")
        return EXIT_FAILURE
    except PersistenceError as e:
        console.print(f"[red]持久化失败，水位线未推进: {e}[/red]")
        return EXIT_FAILURE
    except RPCError as e:
        console.print(f"[red]RPC不可用: {e}[/red]")
        return EXIT_FAILURE
    except RunCancelledError as e:
        # 尚未获取任何区块，水位线未变，下一轮重新处理
        console.print(f"[yellow]运行已取消，水位线未推进: {e}[/yellow]")
        return EXIT_OK
    finally:
        if storage is not None:
            storage.close()


if __name__ == "__main__":
    sys.exit(main())
