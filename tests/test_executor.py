"""Tests for TradeExecutor."""

import pytest

from binbot.constants import Direction
from binbot.errors import ConnectionFailure, OrderRejected
from binbot.trading.account import AccountState
from binbot.trading.executor import TradeExecutor
from binbot.trading.trade import TradeState
from conftest import make_prediction


@pytest.fixture
def executor(broker, account, clock):
    return TradeExecutor(broker, account, clock)


class TestOpen:
    @pytest.mark.asyncio
    async def test_success_opens_trade_and_debits(self, executor, broker, account, clock):
        trade = await executor.open("R_50", make_prediction(Direction.DOWN, 0.8), 10.0, 300)

        assert trade.state is TradeState.OPEN
        assert trade.id == "T1"
        assert trade.direction is Direction.DOWN
        assert trade.entry_price == broker.fill_price
        assert trade.opened_at == clock.t
        assert trade.expires_at == clock.t + 300
        assert trade.confidence == 0.8
        assert account.balance == 90.0
        assert account.daily_trade_count == 1
        assert account.total_trades == 1
        assert broker.orders == [("T1", "R_50", Direction.DOWN, 10.0, 300)]

    @pytest.mark.asyncio
    async def test_rejection_leaves_account_untouched(self, executor, broker, account):
        broker.reject_next = OrderRejected("market closed")
        before = account.to_dict()

        with pytest.raises(OrderRejected):
            await executor.open("R_50", make_prediction(), 10.0, 300)
        assert account.to_dict() == before

    @pytest.mark.asyncio
    async def test_connection_failure_propagates(self, executor, broker, account):
        broker.reject_next = ConnectionFailure("socket closed")

        with pytest.raises(ConnectionFailure):
            await executor.open("R_50", make_prediction(), 10.0, 300)
        assert account.balance == 100.0

    @pytest.mark.asyncio
    async def test_unexpected_broker_error_becomes_rejection(self, executor, broker, account):
        broker.reject_next = RuntimeError("boom")

        with pytest.raises(OrderRejected):
            await executor.open("R_50", make_prediction(), 10.0, 300)
        assert account.total_trades == 0

    @pytest.mark.asyncio
    async def test_fallback_price_when_broker_gives_none(self, broker, clock):
        broker.fill_price = 0.0
        executor = TradeExecutor(broker, AccountState(balance=50.0), clock)
        trade = await executor.open("R_50", make_prediction(), 5.0, 60, fallback_price=123.4)
        assert trade.entry_price == 123.4

    @pytest.mark.asyncio
    async def test_no_entry_price_rejects(self, executor, broker, account):
        broker.fill_price = 0.0
        before = account.to_dict()

        with pytest.raises(OrderRejected):
            await executor.open("R_50", make_prediction(), 10.0, 300)
        assert account.to_dict() == before

    @pytest.mark.asyncio
    async def test_no_retry_on_failure(self, executor, broker):
        broker.reject_next = OrderRejected("no")
        with pytest.raises(OrderRejected):
            await executor.open("R_50", make_prediction(), 10.0, 300)
        assert broker.orders == []

    @pytest.mark.asyncio
    async def test_invalid_duration(self, executor):
        with pytest.raises(ValueError):
            await executor.open("R_50", make_prediction(), 10.0, 0)
