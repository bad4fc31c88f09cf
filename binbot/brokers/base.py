"""
Abstract broker interface.

The trading loop only talks to brokers through this capability set, so a
live Deriv or PocketOption account and the offline paper broker are
interchangeable.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from binbot.constants import Direction, TradeResult


@dataclass(frozen=True)
class OrderFill:
    """Broker acknowledgement of a placed order."""

    id: str
    entry_price: float


class Broker(ABC):
    """Capability set every broker adapter provides.

    ``place_order`` raises ``OrderRejected`` when the broker refuses an order
    and ``ConnectionFailure`` when the broker cannot be reached at all.
    """

    name = "broker"

    def __init__(self, token: str = ""):
        self.token = token
        self.connected = False

    @abstractmethod
    async def connect(self) -> bool:
        """Open and authorize the connection. False when refused."""

    @abstractmethod
    async def balance(self) -> float:
        """Current account balance."""

    @abstractmethod
    def subscribe_balance(self) -> AsyncIterator[float]:
        """Stream of balance updates."""

    @abstractmethod
    def subscribe_price(self, instrument: str) -> AsyncIterator[float]:
        """Stream of prices for ``instrument``."""

    @abstractmethod
    async def place_order(self, instrument: str, direction: Direction,
                          stake: float, duration: int) -> OrderFill:
        """Buy a rise/fall contract of ``duration`` seconds."""

    @abstractmethod
    async def check_result(self, order_id: str) -> Optional[TradeResult]:
        """Outcome of a finished contract, or None if not known yet."""

    async def close(self):
        self.connected = False
