"""
block_check.py — Check a block for Flashbots bundle anomalies.

Issues found:
1. Failed Flashbots (or other 0-gas) transactions
2. Bundles out of order by effective gas price
3. Bundle effective gas price lower than the lowest non-Flashbots tx gas price
4. Bundles paying zero or negative fees

Findings carry a severity: serious ones (>=50% price difference, failed
Flashbots tx, 0/negative fee bundles) are alert-worthy, less serious ones
(>=25%, failed 0-gas tx) are only counted.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from web3 import Web3

from chain import BlockWithReceipts, get_field, to_hex_str
import flashbots_api
from flashbots_api import ApiBlock, FlashbotsApiError, GetBlocksResponse, MalformedResponseError

SERIOUS_PERCENT_DIFF = 50.0
LESS_SERIOUS_PERCENT_DIFF = 25.0

KNOWN_MINERS = {
    "0xea674fdde714fd979de3edf0f56aa9716b898ec8": "Ethermine",
    "0x829bd824b016326a401d083b33d092293333a830": "F2Pool",
    "0x5a0b54d5dc17e0aadc383d2db43b0a0d3e029c4c": "SparkPool",
    "0x1ad91ee08f21be3de0ba2ba6918e714da6b45836": "Hiveon",
    "0x52bc44d5378309ee2abf1539bf71de1b7d7be3b5": "Nanopool",
}


class BlockCheckError(RuntimeError):
    """The block cannot be checked (e.g. malformed API data). Not retried."""


class RetryableCheckError(BlockCheckError):
    """The check hit a transient external error and should be retried later."""


class Severity(enum.Enum):
    NONE = "none"
    LESS_SERIOUS = "less_serious"
    SERIOUS = "serious"


@dataclass
class ErrorCounts:
    failed_0gas_tx: int = 0
    failed_flashbots_tx: int = 0
    bundle_pays_more_than_prev_bundle: int = 0
    bundle_has_lower_fee_than_lowest_non_fb_tx: int = 0
    bundle_has_0_fee: int = 0
    bundle_has_negative_fee: int = 0

    def add(self, other: "ErrorCounts") -> None:
        self.failed_0gas_tx += other.failed_0gas_tx
        self.failed_flashbots_tx += other.failed_flashbots_tx
        self.bundle_pays_more_than_prev_bundle += other.bundle_pays_more_than_prev_bundle
        self.bundle_has_lower_fee_than_lowest_non_fb_tx += other.bundle_has_lower_fee_than_lowest_non_fb_tx
        self.bundle_has_0_fee += other.bundle_has_0_fee
        self.bundle_has_negative_fee += other.bundle_has_negative_fee

    def total(self) -> int:
        return (
            self.failed_0gas_tx + self.failed_flashbots_tx
            + self.bundle_pays_more_than_prev_bundle
            + self.bundle_has_lower_fee_than_lowest_non_fb_tx
            + self.bundle_has_0_fee + self.bundle_has_negative_fee
        )


def fmt_gwei(wei: int, digits: int = 4) -> str:
    # from_wei rejects negative amounts
    sign = "-" if wei < 0 else ""
    return f"{sign}{float(Web3.from_wei(abs(wei), 'gwei')):.{digits}f} gwei"


@dataclass
class BlockCheck:
    number: int
    miner: str
    miner_name: str = ""
    errors: List[str] = field(default_factory=list)
    error_counts: ErrorCounts = field(default_factory=ErrorCounts)
    bundle_count: int = 0

    has_failed_0gas_tx: bool = False
    has_failed_flashbots_tx: bool = False
    has_bundle_with_0_effective_gas_price: bool = False
    has_bundle_with_negative_effective_gas_price: bool = False
    has_serious_bundle_order_error: bool = False
    has_less_serious_bundle_order_error: bool = False
    has_serious_low_fee_bundle: bool = False
    has_less_serious_low_fee_bundle: bool = False

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def has_serious_errors(self) -> bool:
        return (
            self.has_failed_flashbots_tx
            or self.has_bundle_with_0_effective_gas_price
            or self.has_bundle_with_negative_effective_gas_price
            or self.has_serious_bundle_order_error
            or self.has_serious_low_fee_bundle
        )

    def has_less_serious_errors(self) -> bool:
        return (
            self.has_failed_0gas_tx
            or self.has_less_serious_bundle_order_error
            or self.has_less_serious_low_fee_bundle
        )

    @property
    def severity(self) -> Severity:
        if self.has_serious_errors():
            return Severity.SERIOUS
        if self.has_less_serious_errors():
            return Severity.LESS_SERIOUS
        return Severity.NONE

    def sprint_header(self, markdown: bool = False) -> str:
        miner = self.miner
        if self.miner_name:
            miner = f"{self.miner} ({self.miner_name})"
        if markdown:
            return (
                f"Block [{self.number}](<https://etherscan.io/block/{self.number}>) "
                f"([bundle-explorer](<https://flashbots-explorer.marto.lol/?block={self.number}>)), "
                f"miner [{miner}](<https://etherscan.io/address/{self.miner}>)"
            )
        return f"Block {self.number}, miner {miner}"

    def sprint(self, markdown: bool = False) -> str:
        msg = self.sprint_header(markdown)
        msg += f" - {self.bundle_count} bundles, {len(self.errors)} errors\n"
        for err in self.errors:
            msg += f"- {err}\n"
        return msg


def _percent_diff(cur: int, prev: int) -> float:
    if prev <= 0:
        return 100.0
    return (cur - prev) / prev * 100.0


def _check_failed_txs(check: BlockCheck, block: BlockWithReceipts, api_block: Optional[ApiBlock]) -> None:
    for tx in block.transactions:
        receipt = block.receipt_for(tx)
        if receipt is None or int(get_field(receipt, "status", 1)) == 1:
            continue

        tx_hash = to_hex_str(get_field(tx, "hash"))
        if api_block is not None and api_block.has_tx(tx_hash):
            check.has_failed_flashbots_tx = True
            check.error_counts.failed_flashbots_tx += 1
            check.add_error(f"failed Flashbots tx {tx_hash}")
            continue

        gas_price = int(get_field(tx, "gasPrice", 0) or 0)
        data = get_field(tx, "input", b"") or b""
        if gas_price == 0 and len(data) > 0 and data != "0x":
            check.has_failed_0gas_tx = True
            check.error_counts.failed_0gas_tx += 1
            check.add_error(f"failed 0-gas tx {tx_hash}")


def _lowest_non_fb_gas_price(block: BlockWithReceipts, api_block: ApiBlock) -> Optional[int]:
    lowest: Optional[int] = None
    for tx in block.transactions:
        if api_block.has_tx(to_hex_str(get_field(tx, "hash"))):
            continue
        receipt = block.receipt_for(tx)
        price = get_field(receipt, "effectiveGasPrice") if receipt is not None else None
        if price is None:
            price = get_field(tx, "gasPrice", 0)
        price = int(price or 0)
        if lowest is None or price < lowest:
            lowest = price
    return lowest


def _check_bundles(check: BlockCheck, block: BlockWithReceipts, api_block: ApiBlock) -> None:
    bundles = api_block.bundles()
    check.bundle_count = len(bundles)
    lowest = _lowest_non_fb_gas_price(block, api_block)

    prev = None
    for b in bundles:
        reward = b.total_miner_reward
        if reward == 0:
            check.has_bundle_with_0_effective_gas_price = True
            check.error_counts.bundle_has_0_fee += 1
            check.add_error(f"bundle {b.index} has 0 effective gas price")
        elif reward < 0:
            check.has_bundle_with_negative_effective_gas_price = True
            check.error_counts.bundle_has_negative_fee += 1
            check.add_error(f"bundle {b.index} has negative fee ({reward} wei)")

        cur = b.reward_div_gas_used
        if prev is not None and cur > prev.reward_div_gas_used:
            diff = _percent_diff(cur, prev.reward_div_gas_used)
            if diff >= LESS_SERIOUS_PERCENT_DIFF:
                if diff >= SERIOUS_PERCENT_DIFF:
                    check.has_serious_bundle_order_error = True
                else:
                    check.has_less_serious_bundle_order_error = True
                check.error_counts.bundle_pays_more_than_prev_bundle += 1
                check.add_error(
                    f"bundle {b.index} pays {diff:.2f}% more ({fmt_gwei(cur)}) "
                    f"than previous bundle {prev.index} ({fmt_gwei(prev.reward_div_gas_used)})"
                )

        if lowest is not None and lowest > 0 and reward > 0 and cur < lowest:
            diff = (1 - cur / lowest) * 100.0
            if diff >= LESS_SERIOUS_PERCENT_DIFF:
                if diff >= SERIOUS_PERCENT_DIFF:
                    check.has_serious_low_fee_bundle = True
                else:
                    check.has_less_serious_low_fee_bundle = True
                check.error_counts.bundle_has_lower_fee_than_lowest_non_fb_tx += 1
                check.add_error(
                    f"bundle {b.index} has {diff:.2f}% lower effective gas price ({fmt_gwei(cur)}) "
                    f"than lowest non-fb tx ({fmt_gwei(lowest)})"
                )
        prev = b


def check_block(
    block: BlockWithReceipts,
    get_blocks: Callable[..., GetBlocksResponse] = flashbots_api.get_blocks,
) -> BlockCheck:
    try:
        response = get_blocks(block_number=block.number)
    except MalformedResponseError as e:
        raise BlockCheckError(f"Bad Flashbots API data for block {block.number}: {e}") from e
    except FlashbotsApiError as e:
        raise RetryableCheckError(f"Flashbots API unavailable for block {block.number}: {e}") from e

    if len(response.blocks) > 1:
        raise BlockCheckError(
            f"Expected at most 1 Flashbots block for {block.number}, got {len(response.blocks)}"
        )
    api_block = response.blocks[0] if response.blocks else None

    check = BlockCheck(
        number=block.number,
        miner=block.miner,
        miner_name=KNOWN_MINERS.get(block.miner.lower(), ""),
    )
    _check_failed_txs(check, block, api_block)
    if api_block is not None:
        _check_bundles(check, block, api_block)
    return check
