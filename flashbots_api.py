"""
flashbots_api.py — Client for the Flashbots blocks API.

The API reports, per block, which transactions were submitted as bundles,
plus `latest_block_number`: the highest block it has fully indexed. It
lags a few blocks behind the chain head.

  GET https://blocks.flashbots.net/v1/blocks?block_number=<n>
  GET https://blocks.flashbots.net/v1/blocks?limit=<n>
"""
from __future__ import annotations

import os
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import requests

DEFAULT_API_URL = os.getenv("FLASHBOTS_API_URL", "https://blocks.flashbots.net/v1/blocks")


class FlashbotsApiError(RuntimeError):
    pass


class MalformedResponseError(FlashbotsApiError):
    """The API answered, but the payload cannot be decoded. Not retried."""


@dataclass
class ApiTransaction:
    transaction_hash: str
    tx_index: int
    bundle_index: int
    bundle_type: str = "flashbots"
    eoa_address: str = ""
    to_address: str = ""
    gas_used: int = 0
    gas_price: int = 0
    coinbase_transfer: int = 0
    total_miner_reward: int = 0

    @classmethod
    def from_json(cls, d: Dict[str, Any]) -> "ApiTransaction":
        return cls(
            transaction_hash=str(d["transaction_hash"]).lower(),
            tx_index=int(d.get("tx_index", 0)),
            bundle_index=int(d.get("bundle_index", 0)),
            bundle_type=str(d.get("bundle_type", "flashbots")),
            eoa_address=d.get("eoa_address") or "",
            to_address=d.get("to_address") or "",
            gas_used=int(d.get("gas_used", 0)),
            gas_price=int(d.get("gas_price", 0)),
            coinbase_transfer=int(d.get("coinbase_transfer", 0)),
            total_miner_reward=int(d.get("total_miner_reward", 0)),
        )


@dataclass
class Bundle:
    index: int
    transactions: List[ApiTransaction]

    @property
    def total_miner_reward(self) -> int:
        return sum(tx.total_miner_reward for tx in self.transactions)

    @property
    def gas_used(self) -> int:
        return sum(tx.gas_used for tx in self.transactions)

    @property
    def reward_div_gas_used(self) -> int:
        """Effective gas price of the bundle (wei per gas), truncated toward zero."""
        if self.gas_used == 0:
            return 0
        q = abs(self.total_miner_reward) // self.gas_used
        return -q if self.total_miner_reward < 0 else q


@dataclass
class ApiBlock:
    block_number: int
    miner: str
    miner_reward: int = 0
    gas_used: int = 0
    transactions: List[ApiTransaction] = field(default_factory=list)

    @classmethod
    def from_json(cls, d: Dict[str, Any]) -> "ApiBlock":
        return cls(
            block_number=int(d["block_number"]),
            miner=d.get("miner") or "",
            miner_reward=int(d.get("miner_reward", 0)),
            gas_used=int(d.get("gas_used", 0)),
            transactions=[ApiTransaction.from_json(t) for t in d.get("transactions", [])],
        )

    def bundles(self) -> List[Bundle]:
        grouped: Dict[int, List[ApiTransaction]] = {}
        for tx in sorted(self.transactions, key=lambda t: t.tx_index):
            grouped.setdefault(tx.bundle_index, []).append(tx)
        return [Bundle(index=i, transactions=grouped[i]) for i in sorted(grouped)]

    def has_tx(self, tx_hash: str) -> bool:
        h = tx_hash.lower()
        return any(tx.transaction_hash == h for tx in self.transactions)


@dataclass
class GetBlocksResponse:
    latest_block_number: int
    blocks: List[ApiBlock] = field(default_factory=list)

    @classmethod
    def from_json(cls, d: Dict[str, Any]) -> "GetBlocksResponse":
        try:
            return cls(
                latest_block_number=int(d["latest_block_number"]),
                blocks=[ApiBlock.from_json(b) for b in d.get("blocks", [])],
            )
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedResponseError(f"Malformed blocks API response: {e}") from e

    def has_tx(self, tx_hash: str) -> bool:
        return any(b.has_tx(tx_hash) for b in self.blocks)


def get_blocks(
    block_number: Optional[int] = None,
    limit: Optional[int] = None,
    url: str = DEFAULT_API_URL,
    timeout: int = 15,
    retries: int = 3,
    sleep: Callable[[float], None] = time.sleep,
) -> GetBlocksResponse:
    params: Dict[str, int] = {}
    if block_number is not None:
        params["block_number"] = block_number
    if limit is not None:
        params["limit"] = limit

    last_err: Optional[Exception] = None
    for attempt in range(retries):
        try:
            r = requests.get(url, params=params, timeout=timeout)
            r.raise_for_status()
            return GetBlocksResponse.from_json(r.json())
        except (requests.RequestException, ValueError) as e:
            last_err = e
            if attempt < retries - 1:
                sleep(1.0 * (attempt + 1))
    raise FlashbotsApiError(f"GET {url} {params} failed after {retries} attempts: {last_err}")
