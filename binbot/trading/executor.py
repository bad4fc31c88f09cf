import time
from typing import Callable, Optional

from binbot.brokers.base import Broker
from binbot.core.signals import Prediction
from binbot.errors import ConnectionFailure, OrderRejected
from binbot.trading.account import AccountState
from binbot.trading.trade import Trade
from binbot.utils.logger import log


class TradeExecutor:
    """Places admitted trades with the broker and opens them on the account.

    A broker failure leaves the account untouched and propagates; retrying
    is left to the next decision cycle.
    """

    def __init__(self, broker: Broker, account: AccountState,
                 clock: Callable[[], float] = time.time):
        self.broker = broker
        self.account = account
        self.clock = clock

    async def open(self, instrument: str, prediction: Prediction, stake: float, duration: int,
                   fallback_price: Optional[float] = None) -> Trade:
        if duration <= 0:
            raise ValueError(f"duration must be positive, got {duration}")
        if stake <= 0:
            raise ValueError(f"stake must be positive, got {stake}")

        log.info(
            "▶ TRADE  %s  %s  $%.2f  conf=%.1f%%  expiry=%ds  [%s]",
            prediction.direction.value.upper(), instrument, stake,
            prediction.confidence * 100, duration, ", ".join(prediction.factors),
        )
        try:
            fill = await self.broker.place_order(instrument, prediction.direction, stake, duration)
        except (OrderRejected, ConnectionFailure):
            raise
        except Exception as e:
            raise OrderRejected(f"Order for {instrument} failed: {e}") from e

        entry = fill.entry_price or fallback_price
        if not entry:
            log.error("Broker gave no fill price for %s and no price is known", fill.id)
            raise OrderRejected(f"Order {fill.id} for {instrument} has no entry price")

        opened_at = self.clock()
        trade = Trade(
            id=fill.id,
            instrument=instrument,
            direction=prediction.direction,
            stake=stake,
            opened_at=opened_at,
            expires_at=opened_at + duration,
            entry_price=float(entry),
            confidence=prediction.confidence,
        )
        self.account.apply_open(trade)
        return trade
