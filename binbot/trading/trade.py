from dataclasses import asdict, dataclass, replace
from enum import Enum
from typing import Optional

from binbot.constants import Direction, TradeResult
from binbot.errors import InvariantViolation


class TradeState(Enum):
    OPEN = "open"
    CLOSED = "closed"


@dataclass(frozen=True)
class Trade:
    id: str
    instrument: str
    direction: Direction
    stake: float
    opened_at: float
    expires_at: float
    entry_price: float
    confidence: float
    result: Optional[TradeResult] = None
    profit: Optional[float] = None
    closed_at: Optional[float] = None

    def __post_init__(self):
        if not self.expires_at > self.opened_at:
            raise InvariantViolation(
                f"Trade {self.id}: expires_at {self.expires_at} must be after opened_at {self.opened_at}"
            )

    @property
    def state(self) -> TradeState:
        return TradeState.OPEN if self.result is None else TradeState.CLOSED

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def closed(self, result: TradeResult, payout_rate: float, now: float) -> "Trade":
        """Return the CLOSED copy of this trade."""
        if self.state is not TradeState.OPEN:
            raise InvariantViolation(f"Trade {self.id} is already closed ({self.result.value})")
        if not self.is_expired(now):
            raise InvariantViolation(f"Trade {self.id} settled before expiry")
        profit = self.stake * payout_rate if result is TradeResult.WIN else -self.stake
        return replace(self, result=result, profit=profit, closed_at=now)

    def to_dict(self) -> dict:
        d = asdict(self)
        d["direction"] = self.direction.value
        d["result"] = self.result.value if self.result else None
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "Trade":
        d = dict(d)
        d["direction"] = Direction(d["direction"])
        d["result"] = TradeResult(d["result"]) if d.get("result") else None
        return cls(**d)
