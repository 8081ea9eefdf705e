"""Tests for the concurrent range fetcher."""

import pytest

from whale_watch.fetcher.block_fetcher import BlockFetcher, FetchStats, FetchResult, highest_block_number, plan_block_range
from whale_watch.parser.block_normalizer import BlockNormalizer

from tests.helpers import (
    ETH,
    FakeRPCClient,
    WATCHED_A,
    block_hash,
    make_block,
    make_raw_block,
    make_tx,
    raw_receipt,
    tx_hash,
)


def build_fetcher(client, workers=3, **normalizer_kwargs):
    normalizer = BlockNormalizer(client, **normalizer_kwargs)
    return BlockFetcher(client, normalizer, workers=workers)


def blocks_with_transactions(numbers, tx_per_block=2):
    return {
        n: make_raw_block(n, [make_tx(n, i, value=i * ETH) for i in range(tx_per_block)])
        for n in numbers
    }


class TestPlanBlockRange:

    def test_resumes_after_watermark(self):
        assert plan_block_range(100, 110, 50) == (101, 110)

    def test_no_new_blocks(self):
        assert plan_block_range(110, 110, 50) is None
        assert plan_block_range(120, 110, 50) is None

    def test_single_new_block(self):
        assert plan_block_range(109, 110, 50) == (110, 110)

    @pytest.mark.parametrize("watermark", [0, 1000, 18999000, 19000000 - 52])
    def test_clamps_to_max_delta(self, watermark):
        latest = 19000000
        assert plan_block_range(watermark, latest, 50) == (latest - 50, latest)

    def test_gap_of_exactly_max_delta_not_clamped(self):
        assert plan_block_range(950, 1000, 50) == (951, 1000)


class TestFetchRange:

    def test_fetches_every_block(self):
        client = FakeRPCClient(raw_blocks=blocks_with_transactions(range(10, 20)))
        fetcher = build_fetcher(client, workers=4)

        blocks, stats = fetcher.fetch_range(10, 19)

        assert sorted(b.number for b in blocks) == list(range(10, 20))
        assert sorted(client.fetched) == list(range(10, 20))
        assert stats.blocks_parsed == 10
        assert stats.transactions_parsed == 20
        assert stats.errors_encountered == 0
        assert stats.blocks_requested == 10

    def test_failed_block_only_counted(self):
        client = FakeRPCClient(raw_blocks=blocks_with_transactions(range(1, 6)), failing={3})
        fetcher = build_fetcher(client)

        blocks, stats = fetcher.fetch_range(1, 5)

        assert sorted(b.number for b in blocks) == [1, 2, 4, 5]
        assert stats.errors_encountered == 1
        assert stats.failed_blocks == [3]
        assert stats.blocks_parsed == 4
        assert highest_block_number(blocks) == 5

    def test_single_worker(self):
        client = FakeRPCClient(raw_blocks=blocks_with_transactions([7]))
        blocks, stats = build_fetcher(client, workers=1).fetch_range(7, 7)
        assert [b.number for b in blocks] == [7]
        assert stats.summary()["blocks_parsed"] == 1

    def test_cancelled_before_start(self):
        client = FakeRPCClient(raw_blocks=blocks_with_transactions(range(1, 6)))
        client.cancel_event.set()
        fetcher = build_fetcher(client)

        blocks, stats = fetcher.fetch_range(1, 5)

        assert blocks == []
        assert client.fetched == []
        assert stats.cancelled is True
        assert stats.errors_encountered == 0

    def test_cancel_during_fetch_drops_queued_blocks(self):
        class CancellingClient(FakeRPCClient):
            def get_block(self, block_number):
                self.cancel_event.set()
                return super().get_block(block_number)

        client = CancellingClient(raw_blocks=blocks_with_transactions(range(1, 101)))
        fetcher = build_fetcher(client, workers=4)

        blocks, stats = fetcher.fetch_range(1, 100)

        # 只有取消时已在处理中的区块（每个worker至多一个）会完成
        assert 1 <= len(client.fetched) <= 4
        assert sorted(b.number for b in blocks) == sorted(client.fetched)
        assert stats.cancelled is True
        assert stats.errors_encountered == 0

    def test_logs_counted(self):
        raw_blocks = {1: make_raw_block(1, [make_tx(1, 0), make_tx(1, 1)])}
        log = {
            "address": WATCHED_A,
            "topics": ["0x" + "ab" * 32],
            "data": "0x",
            "blockNumber": "0x1",
            "transactionHash": tx_hash(1, 0),
            "transactionIndex": "0x0",
            "logIndex": "0x0",
        }
        receipts = {
            tx_hash(1, 0): raw_receipt(1, 0, logs=[log, dict(log, logIndex="0x1")]),
            tx_hash(1, 1): raw_receipt(1, 1),
        }
        client = FakeRPCClient(raw_blocks=raw_blocks, receipts=receipts)
        fetcher = build_fetcher(client, include_logs=True)

        _, stats = fetcher.fetch_range(1, 1)

        assert stats.logs_parsed == 2

    def test_invalid_range(self):
        fetcher = build_fetcher(FakeRPCClient())
        with pytest.raises(ValueError):
            fetcher.fetch_range(5, 4)

    def test_invalid_worker_count(self):
        client = FakeRPCClient()
        with pytest.raises(ValueError):
            BlockFetcher(client, BlockNormalizer(client), workers=0)


class TestLookups:

    def test_fetch_block_by_hash(self):
        client = FakeRPCClient(raw_blocks=blocks_with_transactions(range(5, 8)))
        fetcher = build_fetcher(client)

        result = fetcher.fetch_block_by_hash(block_hash(6))
        assert result.block_number == 6
        assert result.block.hash == block_hash(6)
        assert len(result.block.transactions) == 2
        assert client.fetched == [6]

    def test_unknown_hash_propagates(self):
        client = FakeRPCClient(raw_blocks=blocks_with_transactions([5]))
        with pytest.raises(KeyError):
            build_fetcher(client).fetch_block_by_hash(block_hash(99))

    def test_fetch_contract_creations_in_block_order(self):
        raw_blocks = blocks_with_transactions(range(1, 5), tx_per_block=1)
        raw_blocks[4] = make_raw_block(4, [make_tx(4, 0), make_tx(4, 1, to=None)])
        raw_blocks[2] = make_raw_block(2, [make_tx(2, 0, to=None)])
        client = FakeRPCClient(raw_blocks=raw_blocks)

        creations = build_fetcher(client, workers=3).fetch_contract_creations(1, 4)
        assert [tx.hash for tx in creations] == [tx_hash(2, 0), tx_hash(4, 1)]


class TestHighestBlock:

    def test_uses_max_not_last_element(self):
        blocks = [make_block(12, []), make_block(15, []), make_block(13, [])]
        assert highest_block_number(blocks) == 15

    def test_empty(self):
        assert highest_block_number([]) is None


class TestFetchStats:

    def test_update_counts_incomplete_blocks(self):
        stats = FetchStats()
        header_only = make_block(3, []).model_copy(update={"header_only": True, "skipped_transactions": 4})
        stats.update(FetchResult(block_number=3, block=header_only, fetch_time_ms=10.0))
        stats.update(FetchResult(block_number=4, error=ValueError("boom")))
        stats.finish()

        summary = stats.summary()
        assert summary["incomplete_blocks"] == 1
        assert summary["skipped_transactions"] == 4
        assert summary["errors_encountered"] == 1
        assert summary["failed_blocks"] == [4]
        assert summary["avg_fetch_time_ms"] == 10.0
