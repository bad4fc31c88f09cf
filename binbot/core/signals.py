from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from binbot.constants import Direction, TradeResult
from binbot.core.indicators import IndicatorSnapshot
from binbot.trading.trade import Trade


@dataclass(frozen=True)
class Prediction:
    direction: Direction
    confidence: float
    factors: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "direction": self.direction.value,
            "confidence": self.confidence,
            "factors": list(self.factors),
        }


@dataclass(frozen=True)
class Rule:
    """One step of the signal fold.

    When ``predicate`` matches, ``adjustment`` is added to confidence, the
    rule name is recorded as a factor, and the direction is set to
    ``direction`` (or inverted when ``flip``).
    """

    name: str
    predicate: Callable[[IndicatorSnapshot, Sequence[Trade]], bool]
    adjustment: float
    direction: Optional[Direction] = None
    flip: bool = False
    uses_history: bool = False


BASELINE_CONFIDENCE = 0.5
MAX_CONFIDENCE = 0.95
HISTORY_WINDOW = 10
HISTORY_MIN = 5


def _recent_win_rate(trades: Sequence[Trade]) -> Optional[float]:
    closed = [t for t in trades if t.result is not None][-HISTORY_WINDOW:]
    if len(closed) < HISTORY_MIN:
        return None
    return sum(1 for t in closed if t.result is TradeResult.WIN) / len(closed)


def _winning(_s, trades) -> bool:
    wr = _recent_win_rate(trades)
    return wr is not None and wr >= 0.6


def _losing(_s, trades) -> bool:
    wr = _recent_win_rate(trades)
    return wr is not None and wr <= 0.4


# Order matters: MACD Bearish inverts whatever the RSI rules decided.
DEFAULT_RULES: tuple[Rule, ...] = (
    Rule("RSI Oversold", lambda s, _t: s.rsi < 30, 0.15, direction=Direction.UP),
    Rule("RSI Overbought", lambda s, _t: s.rsi > 70, 0.15, direction=Direction.DOWN),
    Rule("MACD Bullish", lambda s, _t: s.macd_histogram > 0, 0.10),
    Rule("MACD Bearish", lambda s, _t: s.macd_histogram <= 0, 0.10, flip=True),
    Rule("Winning streak", _winning, 0.05, uses_history=True),
    Rule("Losing streak", _losing, -0.05, uses_history=True),
)


class SignalGenerator:
    def __init__(self, rules: Sequence[Rule] = DEFAULT_RULES,
                 default_direction: Direction = Direction.UP):
        self.rules = tuple(rules)
        self.default_direction = default_direction

    def predict(self, snapshot: Optional[IndicatorSnapshot], recent_trades: Sequence[Trade] = (),
                use_history: bool = True) -> Optional[Prediction]:
        """Fold the rule list over a snapshot. None when there is no usable snapshot."""
        if snapshot is None or not snapshot.ready:
            return None

        confidence = BASELINE_CONFIDENCE
        direction = self.default_direction
        factors: list[str] = []

        for rule in self.rules:
            if rule.uses_history and not use_history:
                continue
            if not rule.predicate(snapshot, recent_trades):
                continue
            confidence += rule.adjustment
            factors.append(rule.name)
            if rule.direction is not None:
                direction = rule.direction
            elif rule.flip:
                direction = direction.opposite

        return Prediction(
            direction=direction,
            confidence=min(max(confidence, 0.0), MAX_CONFIDENCE),
            factors=tuple(factors),
        )
