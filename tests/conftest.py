"""Shared fixtures: a controllable clock, a scripted broker and a temp state store."""

import itertools
from typing import AsyncIterator, Optional

import pytest

from binbot.brokers.base import Broker, OrderFill
from binbot.config import BotConfig, Settings
from binbot.constants import Direction, TradeResult
from binbot.core.signals import Prediction
from binbot.storage.journal import StateStore
from binbot.trading.account import AccountState
from binbot.trading.trade import Trade


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.t = start

    def __call__(self) -> float:
        return self.t

    def advance(self, seconds: float):
        self.t += seconds


class FakeBroker(Broker):
    name = "fake"

    def __init__(self, fill_price: float = 100.0, balance: float = 1000.0):
        super().__init__(token="test")
        self.fill_price = fill_price
        self._balance = balance
        self.reject_next: Optional[Exception] = None
        self.refuse_connect = False
        self.results: dict[str, Optional[TradeResult]] = {}
        self.default_result: Optional[TradeResult] = None
        self.orders: list[tuple] = []
        self._ids = itertools.count(1)

    async def connect(self) -> bool:
        if self.refuse_connect:
            return False
        self.connected = True
        return True

    async def balance(self) -> float:
        return self._balance

    async def subscribe_balance(self) -> AsyncIterator[float]:
        yield self._balance

    async def subscribe_price(self, instrument: str) -> AsyncIterator[float]:
        for p in (100.0, 101.0, 102.0):
            yield p

    async def place_order(self, instrument, direction, stake, duration) -> OrderFill:
        if self.reject_next is not None:
            err, self.reject_next = self.reject_next, None
            raise err
        order_id = f"T{next(self._ids)}"
        self.orders.append((order_id, instrument, direction, stake, duration))
        return OrderFill(id=order_id, entry_price=self.fill_price)

    async def check_result(self, order_id: str) -> Optional[TradeResult]:
        return self.results.get(order_id, self.default_result)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def broker():
    return FakeBroker()


@pytest.fixture
def store(tmp_path):
    s = StateStore(str(tmp_path / "state.db"))
    yield s
    s.close()


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def cfg(tmp_path):
    return BotConfig(
        instrument="R_50",
        trade_duration=60,
        price_interval=0.01,
        decision_interval=0.01,
        settle_interval=0.01,
        db_path=str(tmp_path / "bot.db"),
    )


@pytest.fixture
def account():
    return AccountState(balance=100.0)


def make_prediction(direction=Direction.UP, confidence=0.75, factors=("MACD Bullish",)):
    return Prediction(direction=direction, confidence=confidence, factors=tuple(factors))


def make_trade(trade_id="T1", stake=10.0, opened_at=1000.0, duration=60.0,
               direction=Direction.UP, entry_price=100.0, confidence=0.7, **kwargs):
    return Trade(
        id=trade_id, instrument="R_50", direction=direction, stake=stake,
        opened_at=opened_at, expires_at=opened_at + duration,
        entry_price=entry_price, confidence=confidence, **kwargs,
    )
