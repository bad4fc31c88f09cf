import asyncio
from typing import AsyncIterator, Optional

from BinaryOptionsToolsV2.pocketoption import PocketOptionAsync

from binbot.brokers.base import Broker, OrderFill
from binbot.constants import Direction, TradeResult
from binbot.errors import ConnectionFailure, OrderRejected
from binbot.utils.logger import log
from binbot.utils.ticks import parse_tick


class PocketOptionBroker(Broker):
    """PocketOption through BinaryOptionsToolsV2. ``token`` is the session SSID."""

    name = "pocket_option"

    def __init__(self, token: str, handshake_delay: float = 3.0, poll_interval: float = 2.0):
        super().__init__(token)
        self.client: Optional[PocketOptionAsync] = None
        self.handshake_delay = handshake_delay
        self.poll_interval = poll_interval

    def _require_client(self) -> PocketOptionAsync:
        if self.client is None:
            raise ConnectionFailure("PocketOption client not connected")
        return self.client

    async def connect(self) -> bool:
        log.info("Connecting to PocketOption …")
        try:
            self.client = PocketOptionAsync(ssid=self.token)
            await asyncio.sleep(self.handshake_delay)  # allow websocket handshake
            balance = await self.client.balance()
        except Exception as e:
            log.error("PocketOption connection failed: %s", e)
            self.client = None
            return False
        self.connected = True
        log.info("Connected!  Balance: $%.2f", balance)
        return True

    async def balance(self) -> float:
        try:
            return float(await self._require_client().balance())
        except ConnectionFailure:
            raise
        except Exception as e:
            raise ConnectionFailure(f"Balance query failed: {e}") from e

    async def subscribe_balance(self) -> AsyncIterator[float]:
        # The library exposes no balance stream; poll instead
        while self.connected:
            yield await self.balance()
            await asyncio.sleep(self.poll_interval)

    async def subscribe_price(self, instrument: str) -> AsyncIterator[float]:
        stream = await self._require_client().subscribe_symbol(instrument)
        async for raw in stream:
            price, _ = parse_tick(raw)
            yield price

    async def place_order(self, instrument: str, direction: Direction,
                          stake: float, duration: int) -> OrderFill:
        client = self._require_client()
        try:
            if direction is Direction.UP:
                trade_id, trade = await client.buy(instrument, stake, duration)
            else:
                trade_id, trade = await client.sell(instrument, stake, duration)
        except Exception as e:
            raise OrderRejected(f"PocketOption refused {direction.value} ${stake:.2f}: {e}") from e

        if not trade_id:
            raise OrderRejected(f"PocketOption returned no trade id: {trade!r}")
        entry = 0.0
        if isinstance(trade, dict):
            entry = float(trade.get("openPrice", trade.get("open_price", 0)) or 0)
        return OrderFill(id=str(trade_id), entry_price=entry)

    async def check_result(self, order_id: str) -> Optional[TradeResult]:
        result = await self._require_client().check_win(order_id)
        # Handle both dict and string responses
        if isinstance(result, dict):
            result_str = str(result.get("result", result.get("status", ""))).lower().strip()
        else:
            result_str = str(result).lower().strip()

        log.debug("check_win(%s) raw=%r  parsed=%s", order_id, result, result_str)
        if "win" in result_str:
            return TradeResult.WIN
        if "loss" in result_str or "lose" in result_str or "draw" in result_str:
            return TradeResult.LOSS
        return None

    async def close(self):
        await super().close()
        self.client = None
