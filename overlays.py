"""Turn finalized drawings into renderer overlays, and tear them down again."""

from __future__ import annotations

import dataclasses
from typing import Callable

from PySide6.QtGui import QColor

from drawings import DomainPoint, Drawing, OverlayHandle
from log import get_logger
from tools import ToolId

log = get_logger("overlays")

FIB_LEVELS = (0, 0.236, 0.382, 0.5, 0.618, 0.786, 1)
RAY_EXTENSION_FACTOR = 10
DEFAULT_PRICE_PRECISION = 2

LINE_SOLID = "solid"
LINE_DASHED = "dashed"
LINE_DOTTED = "dotted"


class DegenerateDrawingError(ValueError):
  """Two points share a timestamp where the tool needs a slope."""


# -- Derived math -------------------------------------------------------------

def format_price(price: float, precision: int = DEFAULT_PRICE_PRECISION) -> str:
  return "${:,.{}f}".format(price, precision)


def format_level(level: float) -> str:
  """0.236 -> '23.6%', 1 -> '100%'."""
  return "%g%%" % round(level * 100, 1)


def fibonacci_levels(p1: DomainPoint, p2: DomainPoint) -> list[tuple[float, float]]:
  """(level, price) pairs, measured back from p2 toward p1."""
  if p1.time == p2.time:
    raise DegenerateDrawingError("Fibonacci anchors share time %d" % p1.time)
  diff = p2.price - p1.price
  return [(level, p2.price - diff * level) for level in FIB_LEVELS]


@dataclasses.dataclass(frozen=True)
class PriceRangeStats:
  high: float
  low: float
  mid: float
  span: float
  pct: float | None  # None when low is zero

  def label(self, precision: int = DEFAULT_PRICE_PRECISION) -> str:
    span = "{:,.{}f}".format(self.span, precision)
    if self.pct is None:
      return span
    return "%s (%.2f%%)" % (span, self.pct)


def price_range_stats(p1: DomainPoint, p2: DomainPoint) -> PriceRangeStats:
  high = max(p1.price, p2.price)
  low = min(p1.price, p2.price)
  span = high - low
  pct = span / low * 100 if low != 0 else None
  return PriceRangeStats(high=high, low=low, mid=(high + low) / 2, span=span, pct=pct)


def ray_extension(p0: DomainPoint, p1: DomainPoint,
                  factor: int = RAY_EXTENSION_FACTOR) -> tuple[int, float]:
  """Synthetic far point along p0->p1, `factor` segment lengths past p1."""
  dt = p1.time - p0.time
  if dt == 0:
    raise DegenerateDrawingError("Ray anchors share time %d" % p0.time)
  slope = (p1.price - p0.price) / dt
  return p1.time + factor * dt, p1.price + slope * factor * dt


def validate_points(slope_based: bool, points: list[DomainPoint]) -> None:
  """Raise DegenerateDrawingError if the points cannot define the drawing."""
  if slope_based and len(points) == 2 and points[0].time == points[1].time:
    raise DegenerateDrawingError(
      "Both points at time %d; slope is undefined" % points[0].time)


# -- Rendering ----------------------------------------------------------------

class OverlayRenderer:
  """Creates renderer-native overlays for a drawing.

  Every created handle is appended to drawing.overlay_handles as soon as the
  renderer returns it. If the renderer fails part way, the error is logged
  and the handles created so far stay registered, so removing the drawing
  still cleans up everything that exists.
  """

  def __init__(self, precision: int = DEFAULT_PRICE_PRECISION):
    self.precision = precision
    self._strategies: dict[ToolId, Callable[[Drawing, object], None]] = {
      ToolId.HORIZONTAL_LINE: self._render_horizontal_line,
      ToolId.TREND_LINE: self._render_trend_line,
      ToolId.RAY: self._render_ray,
      ToolId.RECTANGLE: self._render_rectangle,
      ToolId.FIBONACCI_RETRACEMENT: self._render_fibonacci,
      ToolId.PRICE_RANGE: self._render_price_range,
      ToolId.TEXT: self._render_text,
    }

  def render(self, drawing: Drawing, chart) -> list[OverlayHandle]:
    strategy = self._strategies.get(drawing.type)
    if strategy is None:
      raise ValueError("No overlay strategy for tool '%s'" % drawing.type)
    try:
      strategy(drawing, chart)
    except DegenerateDrawingError:
      raise
    except Exception:
      log.exception("Renderer failed while drawing %s (%s); kept %d overlay(s)",
        drawing.id, drawing.type.value, len(drawing.overlay_handles))
    return list(drawing.overlay_handles)

  # -- Primitives -------------------------------------------------------------

  def _price_line(self, drawing: Drawing, chart, price: float, label: str,
                  style: str = LINE_SOLID) -> None:
    native = chart.create_price_line(price, QColor(drawing.color), style, label)
    drawing.overlay_handles.append(OverlayHandle("price_line", native))

  def _series(self, drawing: Drawing, chart, points: list[tuple[int, float]]) -> None:
    native = chart.create_line_series(QColor(drawing.color))
    # Register before filling so a failing set_points still gets cleaned up
    drawing.overlay_handles.append(OverlayHandle("series", native))
    native.set_points([{"time": t, "value": v} for t, v in points])

  # -- Strategies -------------------------------------------------------------

  def _render_horizontal_line(self, drawing: Drawing, chart) -> None:
    price = drawing.points[0].price
    self._price_line(drawing, chart, price, format_price(price, self.precision))

  def _render_trend_line(self, drawing: Drawing, chart) -> None:
    p0, p1 = sorted(drawing.points, key=lambda p: p.time)
    self._series(drawing, chart, [(p0.time, p0.price), (p1.time, p1.price)])

  def _render_ray(self, drawing: Drawing, chart) -> None:
    p0, p1 = drawing.points
    far_time, far_value = ray_extension(p0, p1)
    pts = [(p0.time, p0.price), (p1.time, p1.price), (far_time, far_value)]
    # Rays drawn right-to-left extend into the past
    pts.sort(key=lambda tv: tv[0])
    self._series(drawing, chart, pts)

  def _render_rectangle(self, drawing: Drawing, chart) -> None:
    p0, p1 = drawing.points
    left, right = sorted((p0.time, p1.time))
    high, low = max(p0.price, p1.price), min(p0.price, p1.price)
    self._series(drawing, chart, [(left, high), (right, high)])
    self._series(drawing, chart, [(left, low), (right, low)])
    self._series(drawing, chart, [(left, high), (left, low)])
    self._series(drawing, chart, [(right, high), (right, low)])

  def _render_fibonacci(self, drawing: Drawing, chart) -> None:
    p1, p2 = drawing.points
    for level, price in fibonacci_levels(p1, p2):
      style = LINE_SOLID if level in (0, 1) else LINE_DASHED
      self._price_line(drawing, chart, price, format_level(level), style)

  def _render_price_range(self, drawing: Drawing, chart) -> None:
    stats = price_range_stats(*drawing.points)
    self._price_line(drawing, chart, stats.high, "High")
    self._price_line(drawing, chart, stats.low, "Low")
    self._price_line(drawing, chart, stats.mid, stats.label(self.precision), LINE_DOTTED)

  def _render_text(self, drawing: Drawing, chart) -> None:
    point = drawing.points[0]
    native = chart.create_text_label(
      point.time, point.price, drawing.text or "", QColor(drawing.color))
    drawing.overlay_handles.append(OverlayHandle("text", native))


# -- Teardown -----------------------------------------------------------------

def release_handle(chart, handle: OverlayHandle) -> bool:
  """Remove one overlay. Returns False if the renderer refused."""
  try:
    if handle.kind == "price_line":
      chart.remove_price_line(handle.native)
    elif handle.kind == "series":
      chart.remove_series(handle.native)
    elif handle.kind == "text":
      chart.remove_text_label(handle.native)
    else:
      log.warning("Unknown overlay kind '%s'", handle.kind)
      return False
  except Exception as e:
    # Stale handle or destroyed renderer
    log.debug("Ignoring failed %s removal: %s", handle.kind, e)
    return False
  return True


def release_drawing(drawing: Drawing, chart) -> int:
  """Release every handle of a drawing; returns how many were removed.

  The handle list is emptied either way, so releasing twice is a no-op.
  """
  handles = drawing.overlay_handles
  drawing.overlay_handles = []
  if chart is None:
    return 0
  return sum(1 for h in handles if release_handle(chart, h))
