from dataclasses import asdict, dataclass, fields
from datetime import datetime, timezone
from typing import Iterable, Optional

from binbot.constants import TradeResult
from binbot.errors import InvariantViolation
from binbot.trading.trade import Trade, TradeState


def utc_today(now: Optional[float] = None) -> str:
    ts = datetime.now(timezone.utc) if now is None else datetime.fromtimestamp(now, tz=timezone.utc)
    return ts.date().isoformat()


@dataclass
class AccountState:
    """Balance and trade counters for the single account a bot drives.

    Only ``apply_open`` and ``apply_settlements`` change money or counters.
    Every component holds a reference to the same instance.
    """

    balance: float = 0.0
    daily_trade_count: int = 0
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    total_profit: float = 0.0
    trading_day: str = ""
    day_open_balance: float = 0.0

    @property
    def win_rate(self) -> float:
        settled = self.winning_trades + self.losing_trades
        return self.winning_trades / settled * 100 if settled else 0.0

    def apply_open(self, trade: Trade):
        if trade.state is not TradeState.OPEN:
            raise InvariantViolation(f"Cannot open already-closed trade {trade.id}")
        self.balance -= trade.stake
        self.daily_trade_count += 1
        self.total_trades += 1

    def apply_settlements(self, trades: Iterable[Trade]):
        """Apply a whole sweep's results at once."""
        trades = list(trades)
        for t in trades:
            if t.state is not TradeState.CLOSED:
                raise InvariantViolation(f"Trade {t.id} has no result to apply")

        credit = 0.0
        profit = 0.0
        wins = losses = 0
        for t in trades:
            profit += t.profit
            if t.result is TradeResult.WIN:
                credit += t.stake + t.profit
                wins += 1
            else:
                losses += 1

        self.balance += credit
        self.total_profit += profit
        self.winning_trades += wins
        self.losing_trades += losses

    def roll_day(self, today: str) -> bool:
        """Reset the daily counter on a new UTC day. Returns True if rolled."""
        if today == self.trading_day:
            return False
        self.trading_day = today
        self.daily_trade_count = 0
        self.day_open_balance = self.balance
        return True

    def summary(self) -> str:
        return (
            f"Bal:${self.balance:.2f} "
            f"W:{self.winning_trades} L:{self.losing_trades} "
            f"WR:{self.win_rate:.1f}% "
            f"P&L:${self.total_profit:+.2f} "
            f"Today:{self.daily_trade_count}"
        )

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> "AccountState":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in d.items() if k in known})
