"""Dataclasses representing stored simulation records."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(slots=True)
class TokenRecord:
    id: int
    symbol: str
    mint_address: str
    discovered_at: Optional[datetime]


@dataclass(slots=True)
class PositionRecord:
    id: int
    symbol: str
    mint_address: str
    bought_at: Optional[datetime]
    buy_price: float
    sell_price: Optional[float]
    sold_at: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.sell_price is None


@dataclass(slots=True)
class NewPosition:
    symbol: str
    mint_address: str
    bought_at: datetime
    buy_price: float
