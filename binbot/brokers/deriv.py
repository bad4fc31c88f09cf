"""Deriv (binary.com) websocket API adapter.

websocket-client is blocking, so every socket call runs in a worker thread.
Requests share one authorized socket guarded by a lock; each subscription
stream opens its own socket so a long recv never blocks an order.
"""

import asyncio
import itertools
import json
import threading
from typing import AsyncIterator, Optional

import websocket

from binbot.brokers.base import Broker, OrderFill
from binbot.constants import Direction, TradeResult
from binbot.errors import ConnectionFailure, OrderRejected
from binbot.utils.logger import log
from binbot.utils.ticks import parse_tick

DERIV_WS_URL = "wss://ws.derivws.com/websockets/v3?app_id={app_id}"


class DerivBroker(Broker):
    name = "deriv"

    def __init__(self, token: str, app_id: str = "1089", currency: str = "USD",
                 timeout: float = 15.0):
        super().__init__(token)
        self.url = DERIV_WS_URL.format(app_id=app_id)
        self.currency = currency
        self.timeout = timeout
        self.ws: Optional[websocket.WebSocket] = None
        self.last_price: dict[str, float] = {}
        self._req_ids = itertools.count(1)
        self._lock = asyncio.Lock()
        self._streams: list[websocket.WebSocket] = []
        self._streams_lock = threading.Lock()

    # ---- socket plumbing (runs in threads) ----
    def _open_socket(self) -> websocket.WebSocket:
        ws = websocket.create_connection(self.url, timeout=self.timeout)
        if self.token:
            ws.send(json.dumps({"authorize": self.token}))
            reply = json.loads(ws.recv())
            if "error" in reply:
                ws.close()
                raise ConnectionFailure(f"Deriv authorization rejected: {reply['error'].get('message')}")
        return ws

    @staticmethod
    def _exchange(ws: websocket.WebSocket, payload: dict) -> dict:
        ws.send(json.dumps(payload))
        req_id = payload.get("req_id")
        while True:
            reply = json.loads(ws.recv())
            if req_id is None or reply.get("req_id") == req_id:
                return reply

    async def _request(self, payload: dict) -> dict:
        if self.ws is None:
            raise ConnectionFailure("Deriv socket not connected")
        payload = dict(payload, req_id=next(self._req_ids))
        async with self._lock:
            try:
                reply = await asyncio.to_thread(self._exchange, self.ws, payload)
            except (websocket.WebSocketException, OSError) as e:
                self.connected = False
                raise ConnectionFailure(f"Deriv socket error: {e}") from e
        return reply

    async def _stream(self, payload: dict) -> AsyncIterator[dict]:
        ws = await asyncio.to_thread(self._open_socket)
        with self._streams_lock:
            self._streams.append(ws)
        try:
            await asyncio.to_thread(ws.send, json.dumps(payload))
            while self.connected:
                try:
                    raw = await asyncio.to_thread(ws.recv)
                except websocket.WebSocketTimeoutException:
                    continue
                msg = json.loads(raw)
                if "error" in msg:
                    raise ConnectionFailure(f"Deriv stream error: {msg['error'].get('message')}")
                yield msg
        finally:
            with self._streams_lock:
                if ws in self._streams:
                    self._streams.remove(ws)
            await asyncio.to_thread(ws.close)

    # ---- Broker API ----
    async def connect(self) -> bool:
        log.info("Connecting to Deriv WebSocket …")
        try:
            self.ws = await asyncio.to_thread(self._open_socket)
        except ConnectionFailure as e:
            log.error("%s", e)
            return False
        except (websocket.WebSocketException, OSError) as e:
            log.error("Deriv connection failed: %s", e)
            return False
        self.connected = True
        log.info("🟢 Connected to Deriv")
        return True

    async def balance(self) -> float:
        reply = await self._request({"balance": 1})
        if "error" in reply:
            raise ConnectionFailure(f"Balance query failed: {reply['error'].get('message')}")
        return float(reply["balance"]["balance"])

    async def subscribe_balance(self) -> AsyncIterator[float]:
        async for msg in self._stream({"balance": 1, "subscribe": 1}):
            if msg.get("msg_type") == "balance":
                yield float(msg["balance"]["balance"])

    async def subscribe_price(self, instrument: str) -> AsyncIterator[float]:
        async for msg in self._stream({"ticks": instrument, "subscribe": 1}):
            if msg.get("msg_type") == "tick":
                price, _ = parse_tick(msg)
                self.last_price[instrument] = price
                yield price

    async def place_order(self, instrument: str, direction: Direction,
                          stake: float, duration: int) -> OrderFill:
        reply = await self._request({
            "buy": 1,
            "price": stake,
            "parameters": {
                "amount": stake,
                "basis": "stake",
                "contract_type": "CALL" if direction is Direction.UP else "PUT",
                "currency": self.currency,
                "duration": int(duration),
                "duration_unit": "s",
                "symbol": instrument,
            },
        })
        if "error" in reply:
            raise OrderRejected(f"Deriv refused order: {reply['error'].get('message')}")
        buy = reply["buy"]
        entry = buy.get("start_spot") or self.last_price.get(instrument, 0.0)
        return OrderFill(id=str(buy["contract_id"]), entry_price=float(entry))

    async def check_result(self, order_id: str) -> Optional[TradeResult]:
        reply = await self._request({"proposal_open_contract": 1, "contract_id": int(order_id)})
        if "error" in reply:
            log.warning("Contract %s lookup failed: %s", order_id, reply["error"].get("message"))
            return None
        contract = reply.get("proposal_open_contract") or {}
        status = str(contract.get("status", "")).lower()
        if status == "won":
            return TradeResult.WIN
        if status == "lost":
            return TradeResult.LOSS
        return None

    async def close(self):
        await super().close()
        with self._streams_lock:
            streams, self._streams = self._streams, []
        for ws in streams:
            await asyncio.to_thread(ws.close)
        if self.ws is not None:
            await asyncio.to_thread(self.ws.close)
            self.ws = None
