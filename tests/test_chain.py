"""Tests for chain-data access (no node required)."""

from unittest.mock import MagicMock, PropertyMock

import pytest
from hexbytes import HexBytes

from chain import (
    BlockWithReceipts,
    ChainError,
    HeadPoller,
    fetch_block_with_receipts,
    network_name,
    to_hex_str,
)

MINER_LOWER = "0xea674fdde714fd979de3edf0f56aa9716b898ec8"


def fake_w3(heads=None, block=None, receipts=None):
    w3 = MagicMock()
    if heads is not None:
        type(w3.eth).block_number = PropertyMock(side_effect=heads)
    w3.eth.get_block.return_value = block
    w3.eth.get_block_receipts.return_value = receipts
    return w3


class TestHelpers:

    def test_network_name(self):
        assert network_name(1) == "Ethereum Mainnet"
        assert network_name(None) == "Unknown"
        assert network_name(999) == "Unknown (chainId 999)"

    def test_to_hex_str(self):
        assert to_hex_str(HexBytes("0xABcd")) == "0xabcd"
        assert to_hex_str(b"\x01\x02") == "0x0102"
        assert to_hex_str("0xABCD") == "0xabcd"


class TestBlockWithReceipts:

    def test_from_web3(self):
        tx_hash = HexBytes("0x" + "11" * 32)
        block = {
            "number": 100,
            "miner": MINER_LOWER,
            "timestamp": 1_630_000_000,
            "baseFeePerGas": 30 * 10**9,
            "transactions": [{"hash": tx_hash, "gasPrice": 1}],
        }
        receipts = [{"transactionHash": tx_hash, "status": 1}]

        b = BlockWithReceipts.from_web3(block, receipts)
        assert b.number == 100
        assert b.miner == "0xEA674fdDe714fd979de3EdF0F56AA9716B898ec8"
        assert b.receipt_for(b.transactions[0])["status"] == 1
        assert "Block 100" in b.summary()

    def test_immutable(self):
        b = BlockWithReceipts(number=1, miner=MINER_LOWER)
        with pytest.raises(Exception):
            b.number = 2


class TestFetchBlock:

    def test_fetch(self):
        w3 = fake_w3(block={"number": 7, "miner": MINER_LOWER, "transactions": []}, receipts=[])
        b = fetch_block_with_receipts(w3, 7)
        assert b.number == 7
        w3.eth.get_block.assert_called_once_with(7, full_transactions=True)

    def test_fetch_retries_then_raises(self):
        w3 = fake_w3()
        w3.eth.get_block.side_effect = ConnectionError("refused")
        sleeps = []
        with pytest.raises(ChainError):
            fetch_block_with_receipts(w3, 7, retries=3, sleep=sleeps.append)
        assert w3.eth.get_block.call_count == 3
        assert sleeps == [1.0, 2.0]


class TestHeadPoller:

    def test_first_poll_yields_current_head(self):
        poller = HeadPoller(fake_w3(heads=[100]))
        assert poller.poll() == [100]

    def test_fills_gaps_and_skips_stale_heads(self):
        poller = HeadPoller(fake_w3(heads=[103, 103, 102, 105]), start_height=100)
        assert poller.poll() == [101, 102, 103]
        assert poller.poll() == []
        assert poller.poll() == []
        assert poller.poll() == [104, 105]

    def test_iteration_reconnects_after_errors(self):
        sleeps = []
        heads = [ConnectionError("drop"), ConnectionError("drop"), 11]
        poller = HeadPoller(fake_w3(heads=heads), poll_interval=2.0, start_height=10, sleep=sleeps.append)
        it = iter(poller)
        assert next(it) == 11
        assert sleeps == [2, 4]

    def test_too_many_failures_is_fatal(self):
        heads = [ConnectionError("drop")] * 3
        poller = HeadPoller(fake_w3(heads=heads), max_failures=3, sleep=lambda s: None)
        with pytest.raises(ChainError):
            next(iter(poller))
