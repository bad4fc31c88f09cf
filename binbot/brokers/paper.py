"""
Paper broker for demo mode.

Fills orders instantly at the synthetic price and resolves contracts by
comparing the price when they expire against the entry price. No network.
"""

import asyncio
import time
import uuid
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional

from binbot.brokers.base import Broker, OrderFill
from binbot.constants import Direction, TradeResult
from binbot.core.price_feed import SyntheticPriceSource
from binbot.errors import OrderRejected
from binbot.utils.logger import log


@dataclass
class _PaperOrder:
    direction: Direction
    stake: float
    entry_price: float
    expires_at: float
    result: Optional[TradeResult] = None


class PaperBroker(Broker):
    name = "paper"

    def __init__(self, initial_balance: float = 10000.0, source: Optional[SyntheticPriceSource] = None,
                 tick_interval: float = 1.0, payout_rate: float = 0.85,
                 clock: Callable[[], float] = time.time):
        super().__init__(token="")
        self._balance = float(initial_balance)
        self.source = source or SyntheticPriceSource()
        self.tick_interval = tick_interval
        self.payout_rate = payout_rate
        self.clock = clock
        self.orders: dict[str, _PaperOrder] = {}

    async def connect(self) -> bool:
        self.connected = True
        log.info("Paper broker ready (balance $%.2f)", self._balance)
        return True

    async def balance(self) -> float:
        return self._balance

    async def subscribe_balance(self) -> AsyncIterator[float]:
        while self.connected:
            yield self._balance
            await asyncio.sleep(self.tick_interval)

    async def subscribe_price(self, instrument: str) -> AsyncIterator[float]:
        while self.connected:
            yield await self.source.next_price()
            await asyncio.sleep(self.tick_interval)

    async def place_order(self, instrument: str, direction: Direction,
                          stake: float, duration: int) -> OrderFill:
        if stake <= 0:
            raise OrderRejected(f"Stake must be positive, got {stake}")
        if stake > self._balance:
            raise OrderRejected(f"Insufficient paper balance ${self._balance:.2f} for stake ${stake:.2f}")
        order_id = uuid.uuid4().hex[:12]
        entry = self.source.price
        self.orders[order_id] = _PaperOrder(direction, stake, entry, self.clock() + duration)
        self._balance -= stake
        return OrderFill(id=order_id, entry_price=entry)

    def adopt(self, order_id: str, direction: Direction, stake: float,
              entry_price: float, expires_at: float):
        """Track an order placed before a restart. The stake was already paid."""
        if order_id not in self.orders:
            self.orders[order_id] = _PaperOrder(direction, stake, entry_price, expires_at)

    async def check_result(self, order_id: str) -> Optional[TradeResult]:
        order = self.orders.get(order_id)
        if order is None:
            raise OrderRejected(f"Unknown paper order {order_id}")
        if order.result is None and self.clock() >= order.expires_at:
            exit_price = self.source.price
            moved_up = exit_price > order.entry_price
            moved_down = exit_price < order.entry_price
            won = (order.direction is Direction.UP and moved_up) or \
                  (order.direction is Direction.DOWN and moved_down)
            order.result = TradeResult.WIN if won else TradeResult.LOSS
            if won:
                self._balance += order.stake * (1 + self.payout_rate)
        return order.result
