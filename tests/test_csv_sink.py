"""Tests for the append-only CSV side channel."""

import csv
from datetime import datetime

import pytest

from whale_watch.exceptions import PersistenceError
from whale_watch.filtering.whale_filter import filter_whale_transactions
from whale_watch.storage.csv_sink import CSVSink, render_csv_lines

from tests.helpers import ETH, OTHER_B, WATCH_MAP, WATCHED_A, WATCHED_B, make_block, make_tx


NOW = datetime(2024, 5, 6, 7, 8, 9)


def test_internal_match_renders_from_and_to_lines():
    block = make_block(7, [make_tx(7, 0, sender=WATCHED_A, to=WATCHED_B, value=3 * ETH)])
    matches = filter_whale_transactions([block], WATCH_MAP, 1)

    rows = [next(csv.reader([line])) for line in render_csv_lines(matches, WATCH_MAP, now=NOW)]

    assert [row[2] for row in rows] == ["FROM", "TO"]
    assert [row[3] for row in rows] == [WATCHED_A, WATCHED_B]
    assert [row[4] for row in rows] == ["Bitfinex 2", "Binance 7"]
    assert all(len(row) == 7 for row in rows)


def test_custom_explorer_url():
    block = make_block(7, [make_tx(7, 0, sender=WATCHED_A, to=OTHER_B, value=3 * ETH)])
    matches = filter_whale_transactions([block], WATCH_MAP, 1)

    lines = render_csv_lines(matches, WATCH_MAP, "https://sepolia.etherscan.io/tx/", now=NOW)

    assert lines[0].startswith(f'"https://sepolia.etherscan.io/tx/{matches[0].tx_hash}"')


def test_label_with_comma_and_quote_stays_seven_fields():
    watch_map = {WATCHED_A.lower(): 'Exchange, "hot" wallet'}
    block = make_block(7, [make_tx(7, 0, sender=WATCHED_A, to=OTHER_B, value=3 * ETH)])
    matches = filter_whale_transactions([block], watch_map, 1)

    row = next(csv.reader(render_csv_lines(matches, watch_map, now=NOW)))

    assert len(row) == 7
    assert row[4] == 'Exchange, "hot" wallet'


def test_append_accumulates(tmp_path):
    sink = CSVSink(tmp_path / "out" / "whales.csv")
    block = make_block(7, [make_tx(7, 0, sender=WATCHED_A, to=OTHER_B, value=3 * ETH)])
    matches = filter_whale_transactions([block], WATCH_MAP, 1)

    assert sink.append(matches, WATCH_MAP, now=NOW) == 1
    assert sink.append(matches, WATCH_MAP, now=NOW) == 1
    assert sink.append([], WATCH_MAP, now=NOW) == 0

    content = (tmp_path / "out" / "whales.csv").read_text(encoding="utf-8")
    assert len(content.splitlines()) == 2


def test_append_failure_is_persistence_error(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("x")
    sink = CSVSink(blocker / "whales.csv")
    block = make_block(7, [make_tx(7, 0, sender=WATCHED_A, to=OTHER_B, value=3 * ETH)])
    matches = filter_whale_transactions([block], WATCH_MAP, 1)

    with pytest.raises(PersistenceError):
        sink.append(matches, WATCH_MAP, now=NOW)
