"""Tests for per-miner error aggregation."""

from block_check import ErrorCounts
from conftest import MINER, OTHER_MINER
from miner_ledger import MinerErrorLedger


class TestMinerErrorLedger:

    def test_record_creates_entry(self):
        ledger = MinerErrorLedger()
        entry = ledger.record(MINER, "Ethermine", 100, ErrorCounts(bundle_has_0_fee=1))
        assert len(ledger) == 1
        assert entry.miner_name == "Ethermine"
        assert entry.blocks == {100}
        assert entry.error_counts.bundle_has_0_fee == 1

    def test_counts_sum_per_occurrence_blocks_per_height(self):
        ledger = MinerErrorLedger()
        ledger.record(MINER, "", 100, ErrorCounts(failed_0gas_tx=2))
        ledger.record(MINER, "", 100, ErrorCounts(failed_0gas_tx=1, bundle_has_negative_fee=1))
        ledger.record(MINER, "", 101, ErrorCounts(failed_flashbots_tx=3))

        entry = ledger.get(MINER)
        assert entry.blocks == {100, 101}
        assert entry.error_counts == ErrorCounts(
            failed_0gas_tx=3, failed_flashbots_tx=3, bundle_has_negative_fee=1,
        )

    def test_display_name_set_by_first_non_empty(self):
        ledger = MinerErrorLedger()
        ledger.record(MINER, "", 1, ErrorCounts())
        ledger.record(MINER, "Ethermine", 2, ErrorCounts())
        ledger.record(MINER, "Other", 3, ErrorCounts())
        assert ledger.get(MINER).miner_name == "Ethermine"

    def test_totals_never_decrease(self):
        ledger = MinerErrorLedger()
        previous = 0
        for h, n in enumerate([1, 0, 4, 2]):
            ledger.record(MINER, "", h, ErrorCounts(bundle_pays_more_than_prev_bundle=n))
            total = ledger.get(MINER).error_counts.total()
            assert total >= previous
            previous = total
        assert previous == 7

    def test_report_sorted_and_idempotent(self):
        ledger = MinerErrorLedger()
        ledger.record(OTHER_MINER, "", 5, ErrorCounts(bundle_has_0_fee=1))
        ledger.record(MINER, "Ethermine", 6, ErrorCounts(failed_flashbots_tx=2))

        first = ledger.report()
        assert first == ledger.report()
        assert len(first) == 2
        assert first[0].startswith(OTHER_MINER)
        assert "has0fee=1" in first[0]
        assert first[1].startswith(MINER + " (Ethermine)")
        assert "blocks=1" in first[1]
        assert "failedFbTx=2" in first[1]

    def test_unknown_miner(self):
        assert MinerErrorLedger().get(MINER) is None
