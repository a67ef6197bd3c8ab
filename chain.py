"""
chain.py — Chain-data access for block-watch.

- connect() to an Ethereum node over HTTP (with request timeout)
- fetch a block together with all of its transaction receipts
- HeadPoller: a live stream of new block heights, built on polling
  eth_blockNumber, that reconnects with backoff on errors
"""
from __future__ import annotations

import sys
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Tuple

from web3 import Web3


NETWORKS: Dict[int, str] = {
    1: "Ethereum Mainnet",
    5: "Goerli Testnet",
    11155111: "Sepolia Testnet",
    17000: "Holesky Testnet",
}


class ChainError(RuntimeError):
    """Chain node unreachable or a block could not be fetched."""


def network_name(cid: Optional[int]) -> str:
    if cid is None:
        return "Unknown"
    return NETWORKS.get(cid, f"Unknown (chainId {cid})")


def to_hex_str(value: Any) -> str:
    """Lower-case 0x-prefixed hex for HexBytes/bytes/str values."""
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    s = str(value).lower()
    return s if s.startswith("0x") else "0x" + s


def get_field(obj: Any, key: str, default: Any = None) -> Any:
    # web3 may return AttributeDict or dict; normalize access
    if isinstance(obj, Mapping):
        return obj.get(key, default)
    return getattr(obj, key, default)


def connect(uri: str, timeout: int = 20) -> Web3:
    """Connect to an Ethereum node. Raises ChainError if unreachable."""
    w3 = Web3(Web3.HTTPProvider(uri, request_kwargs={"timeout": timeout}))
    if not w3.is_connected():
        raise ChainError(f"Failed to connect to node: {uri}")
    return w3


@dataclass(frozen=True)
class BlockWithReceipts:
    number: int
    miner: str
    timestamp: int = 0
    base_fee: int = 0
    transactions: Tuple[Any, ...] = ()
    receipts: Mapping[str, Any] = field(default_factory=dict)

    def receipt_for(self, tx: Any) -> Optional[Any]:
        return self.receipts.get(to_hex_str(get_field(tx, "hash")))

    @classmethod
    def from_web3(cls, block: Any, receipts: Any) -> "BlockWithReceipts":
        by_hash = {to_hex_str(get_field(r, "transactionHash")): r for r in (receipts or [])}
        return cls(
            number=int(get_field(block, "number")),
            miner=Web3.to_checksum_address(get_field(block, "miner")),
            timestamp=int(get_field(block, "timestamp", 0) or 0),
            base_fee=int(get_field(block, "baseFeePerGas", 0) or 0),
            transactions=tuple(get_field(block, "transactions", []) or []),
            receipts=by_hash,
        )

    def summary(self) -> str:
        ts_utc = time.strftime("%Y-%m-%d %H:%M:%S", time.gmtime(self.timestamp))
        return (
            f"🧱 Block {self.number}  {ts_utc} UTC  miner={self.miner}  "
            f"txs={len(self.transactions)}  baseFee={float(Web3.from_wei(self.base_fee, 'gwei')):.2f} gwei"
        )


def fetch_block_with_receipts(
    w3: Web3,
    height: int,
    retries: int = 3,
    sleep: Callable[[float], None] = time.sleep,
) -> BlockWithReceipts:
    """Fetch block `height` with full transactions and receipts."""
    last_err: Optional[Exception] = None
    for attempt in range(retries):
        try:
            block = w3.eth.get_block(height, full_transactions=True)
            receipts = w3.eth.get_block_receipts(height)
            return BlockWithReceipts.from_web3(block, receipts)
        except Exception as e:
            last_err = e
            if attempt < retries - 1:
                sleep(1.0 * (attempt + 1))
    raise ChainError(f"Fetching block {height} failed after {retries} attempts: {last_err}")


class HeadPoller:
    """
    Iterable stream of new block heights.

    Yields every height above the last one seen, in ascending order, so a
    slow consumer never skips blocks. Consecutive polling failures back off
    and are retried; after `max_failures` of them ChainError is raised.
    """

    def __init__(
        self,
        w3: Web3,
        poll_interval: float = 2.0,
        max_failures: int = 10,
        start_height: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.w3 = w3
        self.poll_interval = poll_interval
        self.max_failures = max_failures
        self.last_height = start_height
        self._sleep = sleep

    def poll(self) -> list:
        """One poll: the list of heights that appeared since the last poll."""
        head = int(self.w3.eth.block_number)
        if self.last_height is None:
            self.last_height = head
            return [head]
        if head <= self.last_height:
            return []
        new = list(range(self.last_height + 1, head + 1))
        self.last_height = head
        return new

    def __iter__(self) -> Iterator[int]:
        failures = 0
        while True:
            try:
                heights = self.poll()
                failures = 0
            except Exception as e:
                failures += 1
                if failures >= self.max_failures:
                    raise ChainError(f"Head polling failed {failures} times in a row: {e}") from e
                wait = min(30, 2 * failures)
                print(f"⚠️ Head polling error ({failures}/{self.max_failures}), retrying in {wait}s: {e}",
                      file=sys.stderr)
                self._sleep(wait)
                continue

            yield from heights
            self._sleep(self.poll_interval)
