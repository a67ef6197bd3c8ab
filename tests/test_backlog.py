"""Tests for the block backlog."""

import pytest

from backlog import Backlog
from conftest import make_block


@pytest.fixture
def backlog():
    b = Backlog()
    for h in (101, 98, 100, 99):
        b.insert(h, make_block(h))
    return b


class TestBacklog:

    def test_insert_and_contains(self, backlog):
        assert len(backlog) == 4
        assert 98 in backlog
        assert 97 not in backlog
        assert backlog.max_height == 101

    def test_insert_overwrites_same_height(self):
        b = Backlog()
        b.insert(5, make_block(5, miner="0x1"))
        b.insert(5, make_block(5, miner="0x2"))
        assert len(b) == 1
        assert next(b.releasable(5))[1].miner == "0x2"

    def test_releasable_is_ascending_and_bounded(self, backlog):
        assert [h for h, _ in backlog.releasable(100)] == [98, 99, 100]

    def test_releasable_is_lazy_and_survives_removal(self, backlog):
        released = []
        for h, block in backlog.releasable(100):
            assert block.number == h
            backlog.remove(h)
            released.append(h)
        assert released == [98, 99, 100]
        assert backlog.heights() == [101]

    def test_releasable_below_everything(self, backlog):
        assert list(backlog.releasable(10)) == []

    def test_remove_unknown_height_raises(self, backlog):
        with pytest.raises(KeyError):
            backlog.remove(42)
        assert len(backlog) == 4

    def test_empty(self):
        b = Backlog()
        assert b.max_height is None
        assert b.heights() == []
