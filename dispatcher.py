"""Run the block check on a released backlog entry and act on the result."""
from __future__ import annotations

import enum
import sys
from typing import Callable

from block_check import BlockCheck, BlockCheckError, RetryableCheckError, Severity, check_block
from chain import BlockWithReceipts
from miner_ledger import MinerErrorLedger
from notify import NotificationSink


class Outcome(enum.Enum):
    NO_FINDINGS = "no_findings"
    LESS_SERIOUS = "less_serious"
    SERIOUS = "serious"
    FAILED = "failed"
    RETRY = "retry"

    @property
    def done(self) -> bool:
        """True when the backlog entry can be dropped."""
        return self is not Outcome.RETRY


class CheckDispatcher:
    def __init__(
        self,
        ledger: MinerErrorLedger,
        sink: NotificationSink,
        checker: Callable[[BlockWithReceipts], BlockCheck] = check_block,
    ):
        self.ledger = ledger
        self.sink = sink
        self.checker = checker
        self.serious_count = 0
        self.less_serious_count = 0

    def dispatch(self, block: BlockWithReceipts) -> Outcome:
        try:
            check = self.checker(block)
        except RetryableCheckError as e:
            print(f"⚠️ CheckBlock from backlog error: {e} block: {block.number}", file=sys.stderr)
            return Outcome.RETRY
        except BlockCheckError as e:
            print(f"⚠️ CheckBlock from backlog failed, dropping block: {e} block: {block.number}",
                  file=sys.stderr)
            return Outcome.FAILED

        severity = check.severity
        if severity is Severity.NONE:
            return Outcome.NO_FINDINGS

        if severity is Severity.SERIOUS:
            self.serious_count += 1
            self.sink.report(check)
            outcome = Outcome.SERIOUS
        else:
            self.less_serious_count += 1
            outcome = Outcome.LESS_SERIOUS

        print(f"stats - 50p_errors: {self.serious_count}, 25p_errors: {self.less_serious_count}")
        self.ledger.record(check.miner, check.miner_name, check.number, check.error_counts)
        for line in self.ledger.report():
            print(line)
        return outcome
