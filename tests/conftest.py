"""Shared fixtures for block-watch tests."""

import pytest

from block_check import BlockCheck
from chain import BlockWithReceipts
from flashbots_api import ApiBlock, GetBlocksResponse

GWEI = 10**9
MINER = "0xEA674fdDe714fd979de3EdF0F56AA9716B898ec8"
OTHER_MINER = "0x829BD824B016326A401d083B33D092293333A830"


def make_block(number: int, miner: str = MINER, txs=(), receipts=()) -> BlockWithReceipts:
    return BlockWithReceipts(
        number=number,
        miner=miner,
        timestamp=1_630_000_000,
        transactions=tuple(txs),
        receipts={r["transactionHash"].lower(): r for r in receipts},
    )


def make_check(number: int, miner: str = MINER, errors=(), **flags) -> BlockCheck:
    check = BlockCheck(number=number, miner=miner)
    for err in errors:
        check.add_error(err)
    for name, value in flags.items():
        setattr(check, name, value)
    return check


def api_response(latest: int, blocks=()) -> GetBlocksResponse:
    return GetBlocksResponse(
        latest_block_number=latest,
        blocks=[ApiBlock.from_json(b) for b in blocks],
    )


class RecordingSink:
    """NotificationSink stand-in that remembers what it was asked to do."""

    def __init__(self):
        self.reports = []
        self.lines = []

    def report(self, check):
        self.reports.append(check)

    def progress(self, line):
        self.lines.append(line)


@pytest.fixture
def sink():
    return RecordingSink()
