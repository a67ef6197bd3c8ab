"""
Backlog of fetched blocks that the Flashbots API has not indexed yet.

The API lags a few blocks behind the chain head, so a block is held here
from the moment it is fetched until a check of it completes.
"""
from __future__ import annotations

from typing import Dict, Iterator, List, Optional, Tuple

from chain import BlockWithReceipts


class Backlog:
    def __init__(self) -> None:
        self._blocks: Dict[int, BlockWithReceipts] = {}

    def insert(self, height: int, block: BlockWithReceipts) -> None:
        self._blocks[height] = block

    def releasable(self, confirmed_height: int) -> Iterator[Tuple[int, BlockWithReceipts]]:
        """
        Lazily yield (height, block) for every entry at or below
        `confirmed_height`, lowest height first.

        Heights are snapshotted up front, so entries may be removed while
        iterating.
        """
        for height in sorted(h for h in self._blocks if h <= confirmed_height):
            block = self._blocks.get(height)
            if block is not None:
                yield height, block

    def remove(self, height: int) -> None:
        del self._blocks[height]

    def heights(self) -> List[int]:
        return sorted(self._blocks)

    @property
    def max_height(self) -> Optional[int]:
        return max(self._blocks) if self._blocks else None

    def __len__(self) -> int:
        return len(self._blocks)

    def __contains__(self, height: object) -> bool:
        return height in self._blocks
