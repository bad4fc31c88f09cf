import time
import uuid
from dataclasses import asdict, dataclass, replace
from typing import Callable, Optional

from binbot.constants import TradeResult
from binbot.errors import SessionError
from binbot.trading.trade import Trade


@dataclass(frozen=True)
class Session:
    id: str
    started_at: float
    initial_balance: float
    strategy_tag: str = ""
    ended_at: Optional[float] = None
    final_balance: Optional[float] = None
    total_trades: int = 0
    winning_trades: int = 0
    win_rate: float = 0.0
    max_drawdown: float = 0.0
    peak_drawdown: float = 0.0
    low_balance: Optional[float] = None

    @property
    def is_open(self) -> bool:
        return self.ended_at is None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> "Session":
        return cls(**d)


class SessionTracker:
    """Brackets demo trades between start/end markers for strategy comparison."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self.current: Optional[Session] = None
        self.history: list[Session] = []

    def start(self, initial_balance: float, strategy_tag: str = "") -> Session:
        if self.current is not None:
            raise SessionError(f"Session {self.current.id} is still open")
        if initial_balance <= 0:
            raise SessionError(f"initial_balance must be positive, got {initial_balance}")
        self.current = Session(
            id=uuid.uuid4().hex[:8],
            started_at=self.clock(),
            initial_balance=float(initial_balance),
            strategy_tag=strategy_tag,
            low_balance=float(initial_balance),
        )
        return self.current

    def record(self, trade: Trade, balance: Optional[float] = None):
        """Count a settled trade into the open session; no-op without one."""
        if self.current is None or trade.result is None:
            return
        s = self.current
        low = s.low_balance if s.low_balance is not None else s.initial_balance
        if balance is not None:
            low = min(low, balance)
        self.current = replace(
            s,
            total_trades=s.total_trades + 1,
            winning_trades=s.winning_trades + (1 if trade.result is TradeResult.WIN else 0),
            low_balance=low,
        )

    def end(self, current_balance: float) -> Session:
        if self.current is None:
            raise SessionError("No open session to end")
        s = self.current
        win_rate = s.winning_trades * 100 / s.total_trades if s.total_trades else 0.0
        initial = s.initial_balance
        # max_drawdown compares start and end only; peak_drawdown also sees intra-session lows
        max_drawdown = max(0.0, (initial - min(initial, current_balance)) * 100 / initial)
        low = min(initial, current_balance, s.low_balance if s.low_balance is not None else initial)
        peak_drawdown = max(0.0, (initial - low) * 100 / initial)
        closed = replace(
            s,
            ended_at=self.clock(),
            final_balance=float(current_balance),
            win_rate=win_rate,
            max_drawdown=max_drawdown,
            peak_drawdown=peak_drawdown,
        )
        self.history.append(closed)
        self.current = None
        return closed

    def restore(self, sessions: list[Session]):
        self.history = [s for s in sessions if not s.is_open]
        open_ones = [s for s in sessions if s.is_open]
        self.current = open_ones[-1] if open_ones else None
