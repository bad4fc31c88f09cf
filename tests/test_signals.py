"""Tests for the rule-fold SignalGenerator."""

import numpy as np
import pytest

from binbot.constants import Direction, TradeResult
from binbot.core.indicators import NEUTRAL, IndicatorSnapshot
from binbot.core.signals import DEFAULT_RULES, MAX_CONFIDENCE, Rule, SignalGenerator
from conftest import make_trade


def snap(rsi=50.0, hist=0.5):
    return IndicatorSnapshot(rsi=rsi, macd=hist, macd_histogram=hist, sma=100, ema=100, ready=True)


def closed_trades(results):
    trades = []
    for i, r in enumerate(results):
        t = make_trade(f"H{i}", opened_at=1000.0 + i)
        trades.append(t.closed(r, 0.85, t.expires_at))
    return trades


@pytest.fixture
def gen():
    return SignalGenerator()


class TestAbsence:
    def test_no_snapshot_no_prediction(self, gen):
        assert gen.predict(None, []) is None

    def test_neutral_snapshot_no_prediction(self, gen):
        assert gen.predict(NEUTRAL, []) is None


class TestRuleOrder:
    def test_oversold_and_bullish(self, gen):
        p = gen.predict(snap(rsi=25, hist=0.5))
        assert p.direction is Direction.UP
        assert p.confidence == pytest.approx(0.75)
        assert p.factors == ("RSI Oversold", "MACD Bullish")

    def test_overbought_then_bearish_flips_back_up(self, gen):
        p = gen.predict(snap(rsi=80, hist=-0.5))
        assert p.direction is Direction.UP
        assert p.confidence == pytest.approx(0.75)
        assert p.factors == ("RSI Overbought", "MACD Bearish")

    def test_oversold_then_bearish_flips_down(self, gen):
        p = gen.predict(snap(rsi=20, hist=-0.1))
        assert p.direction is Direction.DOWN

    def test_overbought_and_bullish_stays_down(self, gen):
        p = gen.predict(snap(rsi=75, hist=0.2))
        assert p.direction is Direction.DOWN
        assert p.confidence == pytest.approx(0.75)

    def test_mid_rsi_bearish_flips_default(self, gen):
        p = gen.predict(snap(rsi=50, hist=0.0))
        assert p.direction is Direction.DOWN
        assert p.confidence == pytest.approx(0.6)
        assert p.factors == ("MACD Bearish",)

    def test_rsi_thresholds_are_strict(self, gen):
        assert "RSI Oversold" not in gen.predict(snap(rsi=30)).factors
        assert "RSI Overbought" not in gen.predict(snap(rsi=70)).factors


class TestHistoryRules:
    def test_winning_streak_adds_confidence(self, gen):
        history = closed_trades([TradeResult.WIN] * 5)
        p = gen.predict(snap(rsi=50, hist=0.5), history)
        assert "Winning streak" in p.factors
        assert p.confidence == pytest.approx(0.65)

    def test_losing_streak_subtracts_confidence(self, gen):
        history = closed_trades([TradeResult.LOSS] * 4 + [TradeResult.WIN])
        p = gen.predict(snap(rsi=50, hist=0.5), history)
        assert "Losing streak" in p.factors
        assert p.confidence == pytest.approx(0.55)

    def test_too_little_history_is_ignored(self, gen):
        history = closed_trades([TradeResult.WIN] * 4)
        p = gen.predict(snap(rsi=50, hist=0.5), history)
        assert p.factors == ("MACD Bullish",)

    def test_history_rules_disabled(self, gen):
        history = closed_trades([TradeResult.WIN] * 10)
        p = gen.predict(snap(rsi=50, hist=0.5), history, use_history=False)
        assert "Winning streak" not in p.factors


class TestClamping:
    def test_confidence_capped(self):
        rules = (Rule("Huge", lambda s, t: True, 2.0, direction=Direction.DOWN),)
        p = SignalGenerator(rules).predict(snap())
        assert p.confidence == MAX_CONFIDENCE
        assert p.direction is Direction.DOWN

    def test_confidence_floored(self):
        rules = (Rule("Terrible", lambda s, t: True, -2.0),)
        assert SignalGenerator(rules).predict(snap()).confidence == 0.0

    def test_random_snapshots_stay_in_range(self, gen):
        rng = np.random.default_rng(11)
        history = closed_trades([TradeResult.WIN] * 6)
        for _ in range(200):
            s = snap(rsi=float(rng.uniform(0, 100)), hist=float(rng.normal()))
            p = gen.predict(s, history)
            assert 0.0 <= p.confidence <= MAX_CONFIDENCE
            assert p.direction in (Direction.UP, Direction.DOWN)


def test_default_rules_are_ordered():
    names = [r.name for r in DEFAULT_RULES]
    assert names.index("RSI Overbought") < names.index("MACD Bearish")
