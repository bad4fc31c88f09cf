"""Where win/loss results come from.

The ledger asks a resolver for each expired trade. ``None`` means the
outcome is not known yet and the trade stays open for the next sweep.
"""

from typing import Callable, Iterable, Optional, Union

from binbot.brokers.base import Broker
from binbot.constants import Direction, TradeResult
from binbot.trading.trade import Trade


class OutcomeResolver:
    async def resolve(self, trade: Trade, now: float) -> Optional[TradeResult]:
        raise NotImplementedError


class BrokerOutcomeResolver(OutcomeResolver):
    """Ask the broker how the contract finished."""

    def __init__(self, broker: Broker):
        self.broker = broker

    async def resolve(self, trade: Trade, now: float) -> Optional[TradeResult]:
        return await self.broker.check_result(trade.id)


class PriceOutcomeResolver(OutcomeResolver):
    """Compare the price at expiry against the entry price. A tie is a loss."""

    def __init__(self, price_at: Callable[[float], Optional[float]]):
        self.price_at = price_at

    async def resolve(self, trade: Trade, now: float) -> Optional[TradeResult]:
        exit_price = self.price_at(trade.expires_at)
        if exit_price is None or not trade.entry_price:
            return None
        if trade.direction is Direction.UP:
            won = exit_price > trade.entry_price
        else:
            won = exit_price < trade.entry_price
        return TradeResult.WIN if won else TradeResult.LOSS


class ScriptedOutcomeResolver(OutcomeResolver):
    """Deterministic resolver: per-trade overrides, then a queue, then a default."""

    def __init__(self, results: Iterable[TradeResult] = (),
                 default: Optional[TradeResult] = TradeResult.WIN,
                 by_id: Optional[dict[str, Union[TradeResult, None]]] = None):
        self.queue = list(results)
        self.default = default
        self.by_id = dict(by_id or {})
        self.calls: list[str] = []

    async def resolve(self, trade: Trade, now: float) -> Optional[TradeResult]:
        self.calls.append(trade.id)
        if trade.id in self.by_id:
            return self.by_id[trade.id]
        if self.queue:
            return self.queue.pop(0)
        return self.default
