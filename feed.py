"""Candle history and live price ticks for the chart."""

from __future__ import annotations

import dataclasses
import random
import time

from PySide6.QtCore import QObject, QTimer, Signal

from chart_view import Candle
from log import get_logger

log = get_logger("feed")


@dataclasses.dataclass(frozen=True)
class Timeframe:
  label: str
  minutes: int
  bars: int
  description: str
  volatility: float


TIMEFRAMES = {
  "1M": Timeframe("1M", 1, 60, "1 Minute", 0.003),
  "5M": Timeframe("5M", 5, 60, "5 Minutes", 0.005),
  "1H": Timeframe("1H", 60, 48, "1 Hour", 0.01),
  "1D": Timeframe("1D", 1440, 60, "1 Day", 0.025),
}

DEFAULT_ASSETS = {
  "SPACEX": 185.00,
  "OPENAI": 157.50,
  "STRIPE": 70.25,
  "DATABRICKS": 62.00,
  "ANTHROPIC": 61.50,
  "CANVA": 32.00,
}


def _seeded(symbol: str, timeframe: str):
  """Deterministic [0, 1) stream keyed by symbol + timeframe."""
  seed = sum(ord(ch) for ch in symbol + timeframe)
  while True:
    seed = (seed * 9301 + 49297) % 233280
    yield seed / 233280


def generate_candles(base_price: float, symbol: str, timeframe: str,
                     now: float | None = None) -> list[Candle]:
  """Synthetic history ending with the bar that contains `now`.

  Starts 15% below base_price and drifts toward it; bars are aligned to
  timeframe boundaries so live ticks land on the newest bar. The same
  symbol and timeframe always give the same shape.
  """
  tf = TIMEFRAMES[timeframe]
  rnd = _seeded(symbol, timeframe)
  now = time.time() if now is None else now
  price = base_price * 0.85
  last_bar = bar_time(now, timeframe)
  candles = []
  for i in range(tf.bars, -1, -1):
    bar_start = last_bar - i * tf.minutes * 60
    volatility = tf.volatility + next(rnd) * tf.volatility
    trend = (base_price - price) / base_price * 0.05
    change = (next(rnd) - 0.45 + trend) * volatility
    open_ = price
    close = price * (1 + change)
    high = max(open_, close) * (1 + next(rnd) * volatility * 0.5)
    low = min(open_, close) * (1 - next(rnd) * volatility * 0.5)
    candles.append(Candle(bar_start, open_, high, low, close))
    price = close
  return candles


def bar_time(timestamp: float, timeframe: str) -> int:
  """Start of the bar containing `timestamp`."""
  now = int(timestamp)
  return now - now % (TIMEFRAMES[timeframe].minutes * 60)


def tick_candle(price: float, timestamp: float, timeframe: str) -> Candle:
  """Candle for the bar a live tick falls into."""
  return Candle(
    time=bar_time(timestamp, timeframe),
    open=price * 0.998,
    high=price * 1.002,
    low=price * 0.997,
    close=price,
  )


class SimulatedPriceFeed(QObject):
  """Random-walk price ticks on a QTimer, standing in for a live oracle."""

  price_updated = Signal(float, int)  # price, epoch seconds

  def __init__(self, start_price: float, interval_ms: int = 2000,
               step: float = 0.002, seed: int | None = None,
               parent: QObject | None = None):
    super().__init__(parent)
    self._price = start_price
    self._step = step
    self._rng = random.Random(seed)
    self._timer = QTimer(self)
    self._timer.setInterval(interval_ms)
    self._timer.timeout.connect(self.tick)

  @property
  def price(self) -> float:
    return self._price

  def reset(self, start_price: float) -> None:
    self._price = start_price

  def start(self) -> None:
    self._timer.start()
    log.debug("Price feed started (every %d ms)", self._timer.interval())

  def stop(self) -> None:
    self._timer.stop()

  def is_running(self) -> bool:
    return self._timer.isActive()

  def tick(self) -> None:
    self._price *= 1 + self._rng.uniform(-self._step, self._step)
    self.price_updated.emit(self._price, int(time.time()))
