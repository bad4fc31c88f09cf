from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np


@dataclass(frozen=True)
class Bollinger:
    upper: float
    middle: float
    lower: float


@dataclass(frozen=True)
class IndicatorSnapshot:
    rsi: float = 50.0
    macd: float = 0.0                      # MACD line (fast EMA - slow EMA)
    macd_signal: float = 0.0
    macd_histogram: float = 0.0
    sma: float = 0.0
    ema: float = 0.0
    bollinger: Optional[Bollinger] = None
    ready: bool = False                    # False = not enough data, neutral values

    def to_dict(self) -> dict:
        d = {
            "rsi": self.rsi, "macd": self.macd, "macd_signal": self.macd_signal,
            "macd_histogram": self.macd_histogram, "sma": self.sma, "ema": self.ema,
            "ready": self.ready,
        }
        if self.bollinger is not None:
            d["bollinger"] = {
                "upper": self.bollinger.upper,
                "middle": self.bollinger.middle,
                "lower": self.bollinger.lower,
            }
        return d


NEUTRAL = IndicatorSnapshot()


class IndicatorEngine:
    """Turns a price window into an IndicatorSnapshot.

    Wilder RSI, EMA-based MACD, plain SMA/EMA and Bollinger bands. Output is
    a pure function of the window; there is no internal state between calls.
    Windows shorter than ``min_period`` yield the neutral snapshot.
    """

    def __init__(self, min_period: int = 20, rsi_period: int = 14,
                 sma_period: int = 20, ema_period: int = 12,
                 macd_fast: int = 12, macd_slow: int = 26, macd_signal: int = 9,
                 bb_period: int = 20, bb_std: float = 2.0):
        self.min_period = min_period
        self.rsi_period = rsi_period
        self.sma_period = sma_period
        self.ema_period = ema_period
        self.macd_fast = macd_fast
        self.macd_slow = macd_slow
        self.macd_signal = macd_signal
        self.bb_period = bb_period
        self.bb_std = bb_std

    def compute(self, window: Sequence[float]) -> IndicatorSnapshot:
        if len(window) < self.min_period:
            return NEUTRAL

        prices = np.asarray(window, dtype=np.float64)

        macd_line = self._ema_array(prices, self.macd_fast) - self._ema_array(prices, self.macd_slow)
        signal_line = self._ema_array(macd_line, self.macd_signal)

        return IndicatorSnapshot(
            rsi=self._rsi(prices, self.rsi_period),
            macd=float(macd_line[-1]),
            macd_signal=float(signal_line[-1]),
            macd_histogram=float(macd_line[-1] - signal_line[-1]),
            sma=float(np.mean(prices[-self.sma_period:])),
            ema=self._ema(prices[-self.ema_period:], self.ema_period),
            bollinger=self._bollinger(prices, self.bb_period, self.bb_std),
            ready=True,
        )

    # ---- Helpers ----
    @staticmethod
    def _ema(data: np.ndarray, span: int) -> float:
        return float(IndicatorEngine._ema_array(data, span)[-1])

    @staticmethod
    def _ema_array(data: np.ndarray, span: int) -> np.ndarray:
        alpha = 2.0 / (span + 1)
        out = np.empty_like(data, dtype=np.float64)
        out[0] = data[0]
        for i in range(1, len(data)):
            out[i] = out[i - 1] + alpha * (data[i] - out[i - 1])
        return out

    @staticmethod
    def _rsi(prices: np.ndarray, period: int = 14) -> float:
        deltas = np.diff(prices)
        if len(deltas) < period:
            period = max(len(deltas), 1)
        gains = np.maximum(deltas, 0.0)
        losses = np.maximum(-deltas, 0.0)

        # Wilder smoothing seeded with the simple mean of the first period
        avg_gain = float(np.mean(gains[:period]))
        avg_loss = float(np.mean(losses[:period]))
        for g, l in zip(gains[period:], losses[period:]):
            avg_gain = (avg_gain * (period - 1) + g) / period
            avg_loss = (avg_loss * (period - 1) + l) / period

        if avg_loss < 1e-12 and avg_gain < 1e-12:
            return 50.0
        if avg_loss < 1e-12:
            return 100.0
        rs = avg_gain / avg_loss
        return float(100.0 - 100.0 / (1.0 + rs))

    @staticmethod
    def _bollinger(prices: np.ndarray, period: int, width: float) -> Bollinger:
        recent = prices[-period:]
        mid = float(np.mean(recent))
        std = float(np.std(recent))
        return Bollinger(upper=mid + width * std, middle=mid, lower=mid - width * std)
