from enum import Enum

class Direction(Enum):
    UP = "up"
    DOWN = "down"

    @property
    def opposite(self) -> "Direction":
        return Direction.DOWN if self is Direction.UP else Direction.UP

class TradeResult(Enum):
    WIN = "win"
    LOSS = "loss"

class RiskLevel(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

class BrokerName(Enum):
    PAPER = "paper"
    DERIV = "deriv"
    POCKET_OPTION = "pocket_option"

# Persistence keys
KEY_TRADES = "trades"
KEY_SETTINGS = "settings"
KEY_STATS = "stats"
KEY_SESSIONS = "sessions"
