import math
import os
from dataclasses import asdict, dataclass, fields

from dotenv import load_dotenv

from binbot.constants import BrokerName, RiskLevel
from binbot.errors import ConfigurationInvalid


@dataclass
class BotConfig:
    """All tuneable knobs in one place."""

    # --- connection ---
    broker: BrokerName = BrokerName.PAPER
    token: str = ""                          # Deriv API token / PocketOption SSID
    instrument: str = "R_50"                 # symbol to trade

    # --- trade shape ---
    trade_duration: int = 300                # seconds until a contract expires
    payout_rate: float = 0.85                # profit fraction of stake on a win

    # --- cadences (seconds) ---
    price_interval: float = 2.0              # price sample tick
    decision_interval: float = 10.0          # trade decision tick
    settle_interval: float = 1.0             # settlement sweep tick
    diag_interval: float = 30.0              # throttle for "why no trade" logs

    # --- indicators ---
    window_size: int = 100                   # rolling price window capacity
    min_period: int = 20                     # samples before indicators are real
    rsi_period: int = 14
    sma_period: int = 20
    ema_period: int = 12

    # --- synthetic feed (paper broker) ---
    synthetic_start: float = 1000.0
    synthetic_volatility: float = 0.002
    seed: int = 42

    # --- persistence ---
    db_path: str = "binbot_state.db"

    @classmethod
    def from_env(cls) -> "BotConfig":
        """Build a config from BINBOT_* environment variables (and a .env file)."""
        load_dotenv()
        default = cls()
        broker_str = os.environ.get("BINBOT_BROKER", default.broker.value).strip().lower()
        try:
            broker = BrokerName(broker_str)
        except ValueError:
            raise ConfigurationInvalid(
                f"Unknown broker {broker_str!r}; expected one of "
                f"{[b.value for b in BrokerName]}"
            ) from None

        try:
            return cls(
                broker=broker,
                token=os.environ.get("BINBOT_TOKEN", ""),
                instrument=os.environ.get("BINBOT_INSTRUMENT", default.instrument),
                trade_duration=int(os.environ.get("BINBOT_DURATION", default.trade_duration)),
                payout_rate=float(os.environ.get("BINBOT_PAYOUT", default.payout_rate)),
                price_interval=float(os.environ.get("BINBOT_PRICE_INTERVAL", default.price_interval)),
                decision_interval=float(os.environ.get("BINBOT_DECISION_INTERVAL", default.decision_interval)),
                settle_interval=float(os.environ.get("BINBOT_SETTLE_INTERVAL", default.settle_interval)),
                window_size=int(os.environ.get("BINBOT_WINDOW", default.window_size)),
                db_path=os.environ.get("BINBOT_DB", default.db_path),
            )
        except ValueError as e:
            raise ConfigurationInvalid(f"Bad numeric environment value: {e}") from e


@dataclass
class Settings:
    """Operator-adjustable trading settings. Read-only to the core each cycle."""

    stop_loss: float = 80.0                  # % of the day's opening balance
    stop_win: float = 85.0                   # % of the day's opening balance
    entry_amount: float = 10.0               # stake per trade ($)
    max_daily_trades: int = 20
    min_confidence: float = 0.65
    risk_level: RiskLevel = RiskLevel.MEDIUM
    enable_ml: bool = True                   # history-aware signal rules
    is_demo_mode: bool = True
    demo_balance: float = 10000.0

    def validate(self) -> "Settings":
        for name in ("stop_loss", "stop_win", "entry_amount", "min_confidence", "demo_balance"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
                raise ConfigurationInvalid(f"{name} must be a finite number, got {value!r}")
        if self.entry_amount <= 0:
            raise ConfigurationInvalid(f"entry_amount must be positive, got {self.entry_amount}")
        if not 0 < self.stop_loss <= 100:
            raise ConfigurationInvalid(f"stop_loss must be in (0, 100], got {self.stop_loss}")
        if self.stop_win <= 0:
            raise ConfigurationInvalid(f"stop_win must be positive, got {self.stop_win}")
        if isinstance(self.max_daily_trades, bool) or not isinstance(self.max_daily_trades, int) \
                or self.max_daily_trades < 0:
            raise ConfigurationInvalid(
                f"max_daily_trades must be a non-negative integer, got {self.max_daily_trades!r}"
            )
        if not 0.0 <= self.min_confidence <= 1.0:
            raise ConfigurationInvalid(f"min_confidence must be in [0, 1], got {self.min_confidence}")
        if not isinstance(self.risk_level, RiskLevel):
            raise ConfigurationInvalid(f"risk_level must be a RiskLevel, got {self.risk_level!r}")
        if self.demo_balance < 0:
            raise ConfigurationInvalid(f"demo_balance must not be negative, got {self.demo_balance}")
        return self

    def updated(self, **changes) -> "Settings":
        """Return a validated copy with ``changes`` applied."""
        known = {f.name for f in fields(self)}
        unknown = set(changes) - known
        if unknown:
            raise ConfigurationInvalid(f"Unknown settings: {sorted(unknown)}")
        if "risk_level" in changes and not isinstance(changes["risk_level"], RiskLevel):
            try:
                changes["risk_level"] = RiskLevel(str(changes["risk_level"]).lower())
            except ValueError:
                raise ConfigurationInvalid(f"Unknown risk_level {changes['risk_level']!r}") from None
        data = asdict(self)
        data.update(changes)
        return Settings(**data).validate()

    def to_dict(self) -> dict:
        data = asdict(self)
        data["risk_level"] = self.risk_level.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Settings":
        return cls().updated(**data)
