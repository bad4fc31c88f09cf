import asyncio
import time
from dataclasses import asdict
from typing import Callable, Optional

from binbot.brokers.base import Broker
from binbot.brokers.factory import create_broker
from binbot.brokers.paper import PaperBroker
from binbot.config import BotConfig, Settings
from binbot.constants import (
    KEY_SESSIONS, KEY_SETTINGS, KEY_STATS, KEY_TRADES, BrokerName, TradeResult,
)
from binbot.core.indicators import NEUTRAL, IndicatorEngine, IndicatorSnapshot
from binbot.core.price_feed import BrokerPriceSource, PriceFeed, PriceSource, SyntheticPriceSource
from binbot.core.signals import Prediction, SignalGenerator
from binbot.errors import (
    ConfigurationInvalid, ConnectionFailure, InvariantViolation, OrderRejected, SessionError,
)
from binbot.storage.journal import StateStore
from binbot.trading.account import AccountState
from binbot.trading.executor import TradeExecutor
from binbot.trading.ledger import PositionLedger
from binbot.trading.money_manager import MoneyManager
from binbot.trading.outcomes import BrokerOutcomeResolver, OutcomeResolver
from binbot.trading.risk import RiskGate
from binbot.trading.session import Session, SessionTracker
from binbot.trading.trade import Trade
from binbot.utils.logger import log

HISTORY_FOR_SIGNALS = 10


class TradingBot:
    def __init__(self, cfg: BotConfig, settings: Optional[Settings] = None,
                 broker: Optional[Broker] = None, store: Optional[StateStore] = None,
                 resolver: Optional[OutcomeResolver] = None,
                 price_source: Optional[PriceSource] = None,
                 clock: Callable[[], float] = time.time):
        self.cfg = cfg
        self.clock = clock
        self.settings = (settings or Settings()).validate()
        self._owns_store = store is None
        self.store = store if store is not None else StateStore(cfg.db_path)
        self.broker = broker or create_broker(cfg.broker, cfg.token, **self._broker_kwargs())

        self.account = AccountState()
        self.feed = PriceFeed(price_source or self._default_source(), cfg.window_size, clock)
        self.indicators = IndicatorEngine(
            min_period=cfg.min_period, rsi_period=cfg.rsi_period,
            sma_period=cfg.sma_period, ema_period=cfg.ema_period,
        )
        self.signals = SignalGenerator()
        self.money_mgr = MoneyManager()
        self.executor = TradeExecutor(self.broker, self.account, clock)
        self.ledger = PositionLedger(
            self.account, resolver or BrokerOutcomeResolver(self.broker),
            payout_rate=cfg.payout_rate, clock=clock,
        )
        self.sessions = SessionTracker(clock)

        self.snapshot: IndicatorSnapshot = NEUTRAL
        self.prediction: Optional[Prediction] = None
        self.connected = False
        self._running = False           # trade admission allowed
        self._stopping = False          # stop requested; drain open positions
        self._fresh_account = True
        self._last_diag = 0.0
        self._decision_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    def _broker_kwargs(self) -> dict:
        if self.cfg.broker is BrokerName.PAPER:
            return {
                "initial_balance": self.settings.demo_balance,
                "source": SyntheticPriceSource(
                    self.cfg.synthetic_start, self.cfg.synthetic_volatility, self.cfg.seed,
                ),
                "payout_rate": self.cfg.payout_rate,
                "clock": self.clock,
            }
        return {}

    def _default_source(self) -> PriceSource:
        # The paper broker fills at its own walk, so sample that same walk
        if isinstance(self.broker, PaperBroker):
            return self.broker.source
        return BrokerPriceSource(self.broker, self.cfg.instrument)

    # ------------------------------------------------------------------
    def _restore(self):
        """Reload settings, account, trades and sessions from the state store."""
        saved_settings = self.store.load(KEY_SETTINGS)
        if saved_settings:
            self.settings = Settings.from_dict(saved_settings)

        stats = self.store.load(KEY_STATS)
        if stats:
            for k, v in asdict(AccountState.from_dict(stats)).items():
                setattr(self.account, k, v)
            self._fresh_account = False

        trades = self.store.load(KEY_TRADES) or {}
        self.ledger.restore(
            [Trade.from_dict(t) for t in trades.get("open", [])],
            [Trade.from_dict(t) for t in trades.get("history", [])],
        )
        self.sessions.restore([Session.from_dict(s) for s in self.store.load(KEY_SESSIONS, [])])

        # Paper orders only live in memory; hand restored positions back to the walk
        if isinstance(self.broker, PaperBroker):
            for t in self.ledger.open_trades.values():
                self.broker.adopt(t.id, t.direction, t.stake, t.entry_price, t.expires_at)

        if self.ledger.history or self.ledger.open_trades:
            log.info("🔄 Restored %d closed / %d open trades — %s",
                     len(self.ledger.history), len(self.ledger.open_trades), self.account.summary())

    def _persist(self):
        self.store.save(KEY_TRADES, {
            "open": [t.to_dict() for t in self.ledger.open_trades.values()],
            "history": [t.to_dict() for t in self.ledger.history],
        })
        self.store.save(KEY_STATS, self.account.to_dict())
        sessions = list(self.sessions.history)
        if self.sessions.current is not None:
            sessions.append(self.sessions.current)
        self.store.save(KEY_SESSIONS, [s.to_dict() for s in sessions])

    def _diag(self, reason: str):
        now = self.clock()
        if now - self._last_diag >= self.cfg.diag_interval:
            log.info("⏸ %s", reason)
            self._last_diag = now
        else:
            log.debug("⏸ %s", reason)

    # ------------------------------------------------------------------
    async def connect(self):
        try:
            ok = await self.broker.connect()
        except Exception as e:
            log.error("Broker connect error: %s", e)
            ok = False
        if not ok:
            self.connected = False
            raise ConnectionFailure(f"Could not connect to {self.broker.name}")
        self.connected = True

        if self.settings.is_demo_mode:
            if self._fresh_account:
                self.account.balance = self.settings.demo_balance
        else:
            self.account.balance = await self.broker.balance()
        self.money_mgr.reset_if_new_day(self.account, self.clock())
        log.info("Connected to %s  |  %s", self.broker.name, self.account.summary())

    async def start(self):
        """Main entry point. Returns once stopped and every open trade has settled."""
        log.info("═" * 60)
        log.info("  BinBot auto-trader — %s", self.broker.name)
        log.info("  Instrument: %s  |  Expiry: %ds  |  Payout: %.0f%%",
                 self.cfg.instrument, self.cfg.trade_duration, self.cfg.payout_rate * 100)
        log.info("  Mode: %s  |  Min confidence: %.0f%%",
                 "DEMO" if self.settings.is_demo_mode else "LIVE", self.settings.min_confidence * 100)
        log.info("═" * 60)

        try:
            self._restore()
        except (ConfigurationInvalid, KeyError, TypeError, ValueError) as e:
            log.error("Failed to restore saved state, starting fresh: %s", e)

        await self.connect()
        self.store.save(KEY_SETTINGS, self.settings.to_dict())

        self._running = True
        self._stopping = False
        background = [asyncio.create_task(self._price_loop())]
        if not self.settings.is_demo_mode:
            background.append(asyncio.create_task(self._balance_loop()))

        try:
            await asyncio.gather(self._decision_loop(), self._settlement_loop())
        finally:
            self._running = False
            for task in background:
                task.cancel()
            await asyncio.gather(*background, return_exceptions=True)
            await self.feed.source.close()
            await self.broker.close()
            self.connected = False
            self._persist()
            if self._owns_store:
                self.store.close()
            log.info("Bot stopped.  Final stats: %s", self.account.summary())

    async def stop(self):
        """Stop admitting trades. Open positions still run to expiry and settle."""
        if not self._running and self._stopping:
            return
        self._running = False
        self._stopping = True
        log.info("Stop requested — %d open trade(s) will settle before shutdown",
                 len(self.ledger.open_trades))

    # ------------------------------------------------------------------
    def refresh_signal(self) -> Optional[Prediction]:
        self.snapshot = self.indicators.compute(self.feed.window())
        self.prediction = self.signals.predict(
            self.snapshot, self.ledger.recent(HISTORY_FOR_SIGNALS),
            use_history=self.settings.enable_ml,
        )
        return self.prediction

    async def _price_loop(self):
        """Sample the feed on a fixed cadence and keep indicators/prediction current.

        Runs until cancelled so settlement can still see prices while draining.
        """
        while True:
            try:
                await self.feed.next_sample()
                self.refresh_signal()
            except ValueError as e:
                log.warning("Skipping bad price sample: %s", e)
            except Exception as e:
                log.error("Price feed lost: %s", e)
                self.connected = False
                self._running = False
                return
            await asyncio.sleep(self.cfg.price_interval)

    async def _balance_loop(self):
        """Watch the broker balance and report drift from the local ledger."""
        try:
            async for balance in self.broker.subscribe_balance():
                if not self.ledger.open_trades and abs(balance - self.account.balance) > 0.01:
                    log.warning("Broker balance $%.2f differs from local $%.2f",
                                balance, self.account.balance)
        except ConnectionFailure as e:
            log.error("Balance stream lost: %s", e)

    async def _decision_loop(self):
        while self._running:
            await asyncio.sleep(self.cfg.decision_interval)
            if not self._running:
                break
            try:
                await self.decision_cycle()
            except InvariantViolation:
                raise
            except Exception as e:
                log.error("Trade loop error: %s", e, exc_info=True)

    async def decision_cycle(self) -> Optional[Trade]:
        """One trade-decision tick. Returns the opened trade, if any."""
        async with self._decision_lock:
            now = self.clock()
            max_open = self.money_mgr.max_open_positions(self.settings.risk_level)

            reason = None
            if not self._running:
                reason = "Bot not running"
            elif not self.connected:
                reason = "Disconnected"
            else:
                reason = self.money_mgr.halt_reason(self.account, self.settings, now)
            if reason is None and len(self.ledger) >= max_open:
                reason = f"Max trades open ({len(self.ledger)}/{max_open})"

            prediction = None
            if reason is None:
                prediction = self.refresh_signal()
                reason = RiskGate.rejection_reason(prediction, self.account, self.settings)
            if reason:
                self._diag(reason)
                return None

            latest = self.feed.latest
            try:
                trade = await self.executor.open(
                    self.cfg.instrument, prediction, self.settings.entry_amount,
                    self.cfg.trade_duration, fallback_price=latest.value if latest else None,
                )
            except OrderRejected as e:
                log.warning("Order rejected: %s", e)
                return None
            except ConnectionFailure as e:
                log.error("Connection failure while placing order: %s", e)
                self.connected = False
                self._running = False
                return None

            self.ledger.add(trade)
            self._persist()
            return trade

    async def _settlement_loop(self):
        """Settle expired positions until stopped and nothing is left open.

        An order still waiting on the broker holds the decision lock; it may
        yet become a position, so keep going until it lands.
        """
        while ((self._running and not self._stopping) or self.ledger.open_trades
               or self._decision_lock.locked()):
            await asyncio.sleep(self.cfg.settle_interval)
            await self.settle_once()

    async def settle_once(self) -> list[Trade]:
        closed = await self.ledger.sweep()
        for t in closed:
            self.sessions.record(t, self.account.balance)
            icon = "✅" if t.result is TradeResult.WIN else "❌"
            log.info("%s  %s  %s  $%+.2f  |  %s",
                     icon, t.result.value.upper(), t.id, t.profit, self.account.summary())
        if closed:
            self._persist()
        return closed

    # ------------------------------------------------------------------
    def configure(self, **changes) -> Settings:
        """Validate and apply a settings update. Raises ConfigurationInvalid."""
        self.settings = self.settings.updated(**changes)
        self.store.save(KEY_SETTINGS, self.settings.to_dict())
        log.info("Settings updated: %s", ", ".join(f"{k}={v}" for k, v in changes.items()))
        return self.settings

    def start_session(self, strategy_tag: str = "") -> Session:
        if not self.settings.is_demo_mode:
            raise SessionError("Sessions are only available in demo mode")
        session = self.sessions.start(self.account.balance, strategy_tag)
        self._persist()
        log.info("Session %s started (%s) at $%.2f", session.id, strategy_tag or "untagged",
                 session.initial_balance)
        return session

    def end_session(self) -> Session:
        session = self.sessions.end(self.account.balance)
        self._persist()
        log.info("Session %s ended: %d trades  WR %.1f%%  MaxDD %.1f%%",
                 session.id, session.total_trades, session.win_rate, session.max_drawdown)
        return session

    def status(self) -> dict:
        """Read-only snapshot for a presentation layer."""
        latest = self.feed.latest
        return {
            "connected": self.connected,
            "running": self._running,
            "instrument": self.cfg.instrument,
            "price": latest.value if latest else None,
            "account": self.account.to_dict(),
            "win_rate": self.account.win_rate,
            "indicators": self.snapshot.to_dict(),
            "prediction": self.prediction.to_dict() if self.prediction else None,
            "open_trades": [t.to_dict() for t in self.ledger.open_trades.values()],
            "history": [t.to_dict() for t in self.ledger.history],
            "session": self.sessions.current.to_dict() if self.sessions.current else None,
            "sessions": [s.to_dict() for s in self.sessions.history],
        }
