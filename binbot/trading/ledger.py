import asyncio
import time
from typing import Callable, Iterable, Optional

from binbot.constants import TradeResult
from binbot.errors import InvariantViolation
from binbot.trading.account import AccountState
from binbot.trading.outcomes import OutcomeResolver
from binbot.trading.trade import Trade, TradeState
from binbot.utils.logger import log


class PositionLedger:
    """Open positions plus closed-trade history for one account.

    ``sweep`` settles every expired position it can resolve and applies the
    whole batch to the account in a single call. A trade whose outcome is
    unknown stays open and is retried on the next sweep.
    """

    def __init__(self, account: AccountState, resolver: OutcomeResolver,
                 payout_rate: float = 0.85, clock: Callable[[], float] = time.time):
        self.account = account
        self.resolver = resolver
        self.payout_rate = payout_rate
        self.clock = clock
        self.open_trades: dict[str, Trade] = {}
        self.history: list[Trade] = []
        self._closed_ids: set[str] = set()
        self._sweep_lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self.open_trades)

    def add(self, trade: Trade):
        if trade.state is not TradeState.OPEN:
            raise InvariantViolation(f"Trade {trade.id} is not open")
        if trade.id in self.open_trades or trade.id in self._closed_ids:
            raise InvariantViolation(f"Duplicate trade id {trade.id}")
        self.open_trades[trade.id] = trade

    def restore(self, open_trades: Iterable[Trade], history: Iterable[Trade]):
        """Reload persisted state without touching the account."""
        self.open_trades.clear()
        self.history.clear()
        self._closed_ids.clear()
        for t in history:
            if t.state is not TradeState.CLOSED:
                raise InvariantViolation(f"History trade {t.id} has no result")
            self.history.append(t)
            self._closed_ids.add(t.id)
        for t in open_trades:
            self.add(t)

    def recent(self, n: int = 10) -> list[Trade]:
        return self.history[-n:] if n > 0 else []

    def _close(self, trade_id: str, result: TradeResult, now: float) -> Trade:
        trade = self.open_trades.get(trade_id)
        if trade is None:
            state = "already settled" if trade_id in self._closed_ids else "unknown"
            raise InvariantViolation(f"Cannot settle trade {trade_id}: {state}")
        closed = trade.closed(result, self.payout_rate, now)
        del self.open_trades[trade_id]
        self._closed_ids.add(trade_id)
        return closed

    def _commit(self, closed: list[Trade]):
        closed.sort(key=lambda t: (t.expires_at, t.id))
        self.history.extend(closed)
        self.account.apply_settlements(closed)

    def settle(self, trade_id: str, result: TradeResult, now: Optional[float] = None) -> Trade:
        """Settle one trade with a known result."""
        now = self.clock() if now is None else now
        closed = self._close(trade_id, result, now)
        self._commit([closed])
        return closed

    async def _resolve(self, trade: Trade, now: float) -> Optional[TradeResult]:
        try:
            return await self.resolver.resolve(trade, now)
        except Exception as e:
            log.warning("Outcome lookup failed for %s (will retry): %s", trade.id, e)
            return None

    async def sweep(self, now: Optional[float] = None) -> list[Trade]:
        """Settle every expired, resolvable open trade. Returns the newly closed trades."""
        async with self._sweep_lock:
            now = self.clock() if now is None else now
            expired = [t for t in self.open_trades.values() if t.is_expired(now)]
            if not expired:
                return []

            results = await asyncio.gather(*(self._resolve(t, now) for t in expired))

            closed = [
                self._close(trade.id, result, now)
                for trade, result in zip(expired, results)
                # settle() may have closed a trade while outcomes were awaited
                if result is not None and trade.id in self.open_trades
            ]
            if closed:
                self._commit(closed)
            return closed
