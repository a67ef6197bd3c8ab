"""
reconcile.py — The watch loop.

For every new head:
  fetch block + receipts -> add to backlog -> ask the Flashbots API how far
  it has indexed -> check every backlog block at or below that height.
"""
from __future__ import annotations

import sys
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional

import flashbots_api
from backlog import Backlog
from chain import BlockWithReceipts
from dispatcher import CheckDispatcher, Outcome
from flashbots_api import FlashbotsApiError, GetBlocksResponse
from notify import NotificationSink

PACING_DELAY = 1.0


@dataclass
class CycleResult:
    height: int
    confirmed_height: Optional[int] = None
    checked: List[int] = field(default_factory=list)
    retained: List[int] = field(default_factory=list)


class ReconciliationLoop:
    def __init__(
        self,
        fetch_block: Callable[[int], BlockWithReceipts],
        dispatcher: CheckDispatcher,
        sink: NotificationSink,
        get_blocks: Callable[..., GetBlocksResponse] = flashbots_api.get_blocks,
        backlog: Optional[Backlog] = None,
        pacing_delay: float = PACING_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.fetch_block = fetch_block
        self.dispatcher = dispatcher
        self.sink = sink
        self.get_blocks = get_blocks
        self.backlog = backlog if backlog is not None else Backlog()
        self.pacing_delay = pacing_delay
        self._sleep = sleep

    def run(self, heads: Iterable[int]) -> None:
        """Process heads one at a time until the stream ends or fails."""
        for height in heads:
            self.on_head(height)

    def on_head(self, height: int) -> CycleResult:
        result = CycleResult(height=height)

        # ChainError propagates: a block we cannot fetch must stop the watcher
        block = self.fetch_block(height)
        self.backlog.insert(height, block)
        self.sink.progress(f"Queueing new block {block.number} (backlog={len(self.backlog)})")

        try:
            response = self.get_blocks(block_number=height)
        except FlashbotsApiError as e:
            print(f"⚠️ Flashbots API error: {e}", file=sys.stderr)
            result.retained = self.backlog.heights()
            return result
        result.confirmed_height = response.latest_block_number

        for h, queued in self.backlog.releasable(response.latest_block_number):
            self.sink.progress(queued.summary())
            outcome = self.dispatcher.dispatch(queued)
            if not outcome.done:
                break
            self.backlog.remove(h)
            result.checked.append(h)
            if outcome is Outcome.SERIOUS:
                self._sleep(self.pacing_delay)

        result.retained = self.backlog.heights()
        return result
