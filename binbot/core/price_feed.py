import asyncio
import math
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from binbot.utils.logger import log


@dataclass(frozen=True)
class PriceSample:
    value: float
    timestamp: float


class PriceSource:
    """Anything that can hand the feed its next price."""

    async def next_price(self) -> float:
        raise NotImplementedError

    async def close(self):
        pass


class SyntheticPriceSource(PriceSource):
    """Seeded geometric random walk. Deterministic for a given seed."""

    def __init__(self, start: float = 1000.0, volatility: float = 0.002, seed: Optional[int] = 42):
        if start <= 0:
            raise ValueError(f"start price must be positive, got {start}")
        self.price = float(start)
        self.volatility = volatility
        self.rng = np.random.default_rng(seed)

    async def next_price(self) -> float:
        self.price *= math.exp(self.rng.normal(0.0, self.volatility))
        return self.price


class BrokerPriceSource(PriceSource):
    """Drains a broker's live price stream and serves the latest tick."""

    def __init__(self, broker, instrument: str):
        self.broker = broker
        self.instrument = instrument
        self.latest: Optional[float] = None
        self._ready = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    async def _consume(self):
        try:
            async for price in self.broker.subscribe_price(self.instrument):
                self.latest = price
                self._ready.set()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.error("Price stream error: %s", e)
            raise

    async def next_price(self) -> float:
        if self._task is None:
            self._task = asyncio.create_task(self._consume())
        elif self._task.done():
            self._task.result()
            raise ConnectionError(f"Price stream for {self.instrument} ended")
        if not self._ready.is_set():
            waiter = asyncio.create_task(self._ready.wait())
            await asyncio.wait({waiter, self._task}, return_when=asyncio.FIRST_COMPLETED)
            waiter.cancel()
            if not self._ready.is_set():
                # stream ended before a single tick arrived
                self._task.result()
                raise ConnectionError(f"Price stream for {self.instrument} closed without data")
        return self.latest

    async def close(self):
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                log.debug("Price stream closed with error: %s", e)
            self._task = None


class PriceFeed:
    """Bounded FIFO window of price samples for one instrument."""

    def __init__(self, source: PriceSource, capacity: int = 100,
                 clock: Callable[[], float] = time.time):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self.source = source
        self.capacity = capacity
        self.clock = clock
        self.samples: deque[PriceSample] = deque(maxlen=capacity)

    def __len__(self) -> int:
        return len(self.samples)

    @property
    def latest(self) -> Optional[PriceSample]:
        return self.samples[-1] if self.samples else None

    def record(self, value: float, timestamp: Optional[float] = None) -> PriceSample:
        value = float(value)
        if not math.isfinite(value) or value <= 0:
            raise ValueError(f"Refusing non-positive or non-finite price {value!r}")
        ts = self.clock() if timestamp is None else float(timestamp)
        # Keep the window time-ordered even if a source replays an old tick
        if self.samples and ts < self.samples[-1].timestamp:
            ts = self.samples[-1].timestamp
        sample = PriceSample(value=value, timestamp=ts)
        self.samples.append(sample)
        return sample

    async def next_sample(self) -> PriceSample:
        price = await self.source.next_price()
        return self.record(price)

    def window(self) -> list[float]:
        """Prices oldest first, most recent last."""
        return [s.value for s in self.samples]

    def price_at(self, timestamp: float) -> Optional[float]:
        """Last recorded price at or before ``timestamp``."""
        found = None
        for s in self.samples:
            if s.timestamp > timestamp:
                break
            found = s.value
        return found
