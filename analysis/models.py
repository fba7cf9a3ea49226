#!/usr/bin/env python3
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class Candle:
    """One minute bar; only the open time and the high are kept."""
    timestamp: int
    high: float


@dataclass(frozen=True)
class BestExitResult:
    """Best theoretical exit after a purchase. All fields are set or all are None."""
    best_sell_at: Optional[str] = None
    best_sell_price: Optional[float] = None
    best_return_percent: Optional[float] = None

    @classmethod
    def absent(cls) -> "BestExitResult":
        return cls()

    @property
    def is_absent(self) -> bool:
        return self.best_sell_at is None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "bestSellAt": self.best_sell_at,
            "bestSellPrice": self.best_sell_price,
            "bestReturnPercent": self.best_return_percent,
        }


@dataclass
class BestExitEnvelope:
    """Query outcome: a result plus the upstream failure message, if any."""
    result: BestExitResult
    warning: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload = self.result.to_payload()
        if self.warning:
            payload["warning"] = self.warning
        return payload


@dataclass(frozen=True)
class DiscoveredToken:
    """A token descriptor from the new-listings feed."""
    symbol: str
    mint_address: str


@dataclass
class PassSummary:
    """What one lifecycle pass did."""
    opened: int = 0
    closed: int = 0
    new_symbols: List[str] = field(default_factory=list)
    closed_symbols: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "opened": self.opened,
            "closed": self.closed,
            "new_symbols": list(self.new_symbols),
            "closed_symbols": list(self.closed_symbols),
            "errors": list(self.errors),
        }
