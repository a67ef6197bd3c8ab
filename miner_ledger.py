"""Per-miner error counts, accumulated over the lifetime of the process."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from block_check import ErrorCounts


@dataclass
class MinerErrorCount:
    miner: str
    miner_name: str = ""
    blocks: Set[int] = field(default_factory=set)
    error_counts: ErrorCounts = field(default_factory=ErrorCounts)

    def line(self) -> str:
        info = self.miner
        if self.miner_name:
            info += f" ({self.miner_name})"
        c = self.error_counts
        return (
            f"{info:<66} blocks={len(self.blocks)} \t failed0gas={c.failed_0gas_tx} \t "
            f"failedFbTx={c.failed_flashbots_tx} \t bundlePaysMore={c.bundle_pays_more_than_prev_bundle} \t "
            f"bundleTooLowFee={c.bundle_has_lower_fee_than_lowest_non_fb_tx} \t "
            f"has0fee={c.bundle_has_0_fee} \t hasNegativeFee={c.bundle_has_negative_fee}"
        )


class MinerErrorLedger:
    """
    One entry per miner that ever produced a block with findings.

    A miner is credited once per block in `blocks`, while error counts are
    summed per occurrence, so recording the same height twice adds the
    counts twice but leaves the block set unchanged.
    """

    def __init__(self) -> None:
        self._miners: Dict[str, MinerErrorCount] = {}

    def record(self, miner: str, miner_name: str, block_height: int, counts: ErrorCounts) -> MinerErrorCount:
        entry = self._miners.get(miner)
        if entry is None:
            entry = MinerErrorCount(miner=miner)
            self._miners[miner] = entry
        if miner_name and not entry.miner_name:
            entry.miner_name = miner_name
        entry.blocks.add(block_height)
        entry.error_counts.add(counts)
        return entry

    def get(self, miner: str) -> Optional[MinerErrorCount]:
        return self._miners.get(miner)

    def report(self) -> List[str]:
        return [self._miners[m].line() for m in sorted(self._miners)]

    def __len__(self) -> int:
        return len(self._miners)
