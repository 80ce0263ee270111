"""Renderer creation and teardown across asset and timeframe changes."""

from __future__ import annotations

from typing import Callable

from drawing_machine import DrawingStateMachine
from feed import tick_candle
from input_controller import InputController
from log import get_logger

log = get_logger("lifecycle")


class LifecycleCoordinator:
  """Owns the current chart renderer.

  Replacing the renderer always finishes tearing down the old one first:
  the pending construction is cancelled, every overlay handle is released
  through the old renderer (stale-handle errors are ignored), and only then
  is the new renderer built. Drawings are not carried over to the new
  renderer.
  """

  def __init__(self, machine: DrawingStateMachine, input_controller: InputController,
               chart_factory: Callable[[str, str], object],
               key_target=None):
    self._machine = machine
    self._input = input_controller
    self._factory = chart_factory
    self._key_target = key_target
    self._chart = None
    self._asset: str | None = None
    self._timeframe: str | None = None

  @property
  def chart(self):
    return self._chart

  @property
  def asset(self) -> str | None:
    return self._asset

  @property
  def timeframe(self) -> str | None:
    return self._timeframe

  def attach(self, asset: str, timeframe: str):
    """Build a renderer for asset/timeframe, replacing any current one."""
    if self._chart is not None:
      self.teardown()
    chart = self._factory(asset, timeframe)
    self._chart = chart
    self._asset = asset
    self._timeframe = timeframe
    self._machine.attach_chart(chart)
    self._input.attach(chart, self._key_target)
    log.info("Chart attached: %s %s", asset, timeframe)
    return chart

  def replace(self, asset: str | None = None, timeframe: str | None = None):
    asset = asset or self._asset
    timeframe = timeframe or self._timeframe
    if asset is None or timeframe is None:
      raise ValueError("No asset/timeframe to attach a chart for")
    return self.attach(asset, timeframe)

  def teardown(self) -> None:
    chart = self._chart
    if chart is None:
      return
    self._input.detach()
    self._machine.detach_chart()
    try:
      chart.dispose()
    except Exception as e:
      log.warning("Failed to dispose chart: %s", e)
    self._chart = None
    log.info("Chart torn down: %s %s", self._asset, self._timeframe)

  def apply_tick(self, price: float, timestamp: float) -> None:
    """Push a live price into the newest candle; drawings are untouched."""
    if self._chart is None or self._timeframe is None:
      return
    try:
      self._chart.update_candle(tick_candle(price, timestamp, self._timeframe))
    except Exception as e:
      log.debug("Ignoring tick update failure: %s", e)
