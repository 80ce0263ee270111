"""Candlestick chart widget that serves as the annotation engine's renderer."""

from __future__ import annotations

import bisect
import dataclasses
import math
from datetime import datetime
from typing import Callable, TYPE_CHECKING

from PySide6.QtCore import Qt, QPointF, QRectF
from PySide6.QtGui import QColor, QPainter, QPen, QBrush, QFont, QFontMetricsF
from PySide6.QtWidgets import QWidget

from log import get_logger

if TYPE_CHECKING:
  from PySide6.QtGui import QPaintEvent, QMouseEvent, QWheelEvent, QResizeEvent

log = get_logger("chart")

UP_COLOR = QColor("#10B981")
DOWN_COLOR = QColor("#EF4444")
CROSSHAIR_COLOR = QColor("#F7B731")
BACKGROUND_COLOR = QColor("#111827")
GRID_COLOR = QColor(255, 255, 255, 13)
AXIS_TEXT_COLOR = QColor("#9CA3AF")

PRICE_AXIS_WIDTH = 80
TIME_AXIS_HEIGHT = 24
TOP_MARGIN = 10
SCALE_MARGIN = 0.1  # fraction of the price span padded above and below
MIN_VISIBLE_BARS = 10
ZOOM_STEP = 5

_PEN_STYLES = {
  "solid": Qt.PenStyle.SolidLine,
  "dashed": Qt.PenStyle.DashLine,
  "dotted": Qt.PenStyle.DotLine,
}


# -- Chart primitives ---------------------------------------------------------

@dataclasses.dataclass
class Candle:
  time: int
  open: float
  high: float
  low: float
  close: float


@dataclasses.dataclass(frozen=True)
class PointerEvent:
  x: float
  y: float
  time: int | None  # bar under the pointer, None outside the data


@dataclasses.dataclass(eq=False)
class PriceLine:
  price: float
  color: QColor
  style: str
  label: str


@dataclasses.dataclass(eq=False)
class TextLabel:
  time: int
  price: float
  text: str
  color: QColor


class LineSeries:
  """Polyline through (time, value) points, drawn in domain space."""

  def __init__(self, color: QColor, on_change: Callable[[], None] | None = None):
    self.color = QColor(color)
    self.points: list[tuple[int, float]] = []
    self._on_change = on_change

  def set_points(self, points: list[dict]) -> None:
    pts = []
    for p in points:
      t, v = int(p["time"]), float(p["value"])
      if not math.isfinite(v):
        raise ValueError("Series value must be finite, got %r" % v)
      pts.append((t, v))
    if any(b[0] < a[0] for a, b in zip(pts, pts[1:])):
      raise ValueError("Series times must be non-decreasing")
    self.points = pts
    if self._on_change:
      self._on_change()


# -- Chart widget -------------------------------------------------------------

class ChartView(QWidget):
  """QPainter candlestick chart with price lines, line series and labels.

  Coordinates: bars are laid out left to right at a fixed spacing; the
  newest bar sits at the right edge unless the view is scrolled back. The
  price scale auto-fits the visible bars.
  """

  def __init__(self, parent: QWidget | None = None):
    super().__init__(parent)
    self.setMouseTracking(True)
    self.setFocusPolicy(Qt.FocusPolicy.StrongFocus)
    self.setMinimumSize(400, 300)
    self.setCursor(Qt.CursorShape.CrossCursor)

    self._candles: list[Candle] = []
    self._times: list[int] = []
    self._visible_bars = 0
    self._scroll = 0  # bars scrolled back from the newest
    self._cursor: QPointF | None = None
    self._disposed = False

    self._price_lines: list[PriceLine] = []
    self._series: list[LineSeries] = []
    self._text_labels: list[TextLabel] = []

    self._click_cbs: list[Callable] = []
    self._move_cbs: list[Callable] = []
    self._resize_cbs: list[Callable] = []

  # -- Data -------------------------------------------------------------------

  def set_candles(self, candles: list[Candle]) -> None:
    self._candles = sorted(candles, key=lambda c: c.time)
    self._times = [c.time for c in self._candles]
    self._visible_bars = len(self._candles)
    self._scroll = 0
    self.update()

  def candles(self) -> list[Candle]:
    return list(self._candles)

  def update_candle(self, candle: Candle) -> None:
    """Replace the newest bar if the times match, else append a new bar."""
    if self._disposed:
      return
    if self._candles and candle.time == self._candles[-1].time:
      self._candles[-1] = candle
    elif not self._candles or candle.time > self._candles[-1].time:
      self._candles.append(candle)
      self._times.append(candle.time)
      # Full view stays full as bars arrive
      if self._scroll == 0 and self._visible_bars == len(self._candles) - 1:
        self._visible_bars += 1
    else:
      log.debug("Ignoring out-of-order candle at %d", candle.time)
      return
    self.update()

  # -- Geometry ---------------------------------------------------------------

  def plot_rect(self) -> QRectF:
    return QRectF(
      0, TOP_MARGIN,
      max(1.0, self.width() - PRICE_AXIS_WIDTH),
      max(1.0, self.height() - TOP_MARGIN - TIME_AXIS_HEIGHT),
    )

  def _visible_range(self) -> tuple[int, int] | None:
    if not self._candles:
      return None
    last = len(self._candles) - 1 - self._scroll
    first = max(0, last - max(self._visible_bars, 1) + 1)
    return first, last

  def _bar_spacing(self) -> float:
    return self.plot_rect().width() / max(self._visible_bars, 1)

  def _bar_interval(self) -> int:
    if len(self._times) < 2:
      return 60
    return max(1, self._times[-1] - self._times[-2])

  def _price_bounds(self) -> tuple[float, float]:
    rng = self._visible_range()
    if rng is None:
      return 0.0, 1.0
    first, last = rng
    visible = self._candles[first:last + 1]
    lo = min(c.low for c in visible)
    hi = max(c.high for c in visible)
    span = hi - lo
    if span <= 0:
      span = abs(hi) * 0.01 or 1.0
    return lo - span * SCALE_MARGIN, hi + span * SCALE_MARGIN

  def price_to_y(self, price: float) -> float:
    lo, hi = self._price_bounds()
    r = self.plot_rect()
    return r.top() + (hi - price) / (hi - lo) * r.height()

  def inverse_project_price(self, y: float) -> float | None:
    r = self.plot_rect()
    if not self._candles or y < r.top() or y > r.bottom():
      return None
    lo, hi = self._price_bounds()
    return hi - (y - r.top()) / r.height() * (hi - lo)

  def _index_for_time(self, t: int) -> float:
    """Fractional bar index; extrapolates past either end of the data."""
    times = self._times
    i = bisect.bisect_left(times, t)
    if i < len(times) and times[i] == t:
      return float(i)
    if i == 0:
      return (t - times[0]) / self._bar_interval()
    if i == len(times):
      return len(times) - 1 + (t - times[-1]) / self._bar_interval()
    lo, hi = times[i - 1], times[i]
    return i - 1 + (t - lo) / (hi - lo)

  def time_to_x(self, t: int) -> float | None:
    rng = self._visible_range()
    if rng is None:
      return None
    return self.plot_rect().left() + (self._index_for_time(t) - rng[0] + 0.5) * self._bar_spacing()

  def time_at(self, x: float) -> int | None:
    rng = self._visible_range()
    r = self.plot_rect()
    if rng is None or x < r.left() or x > r.right():
      return None
    idx = rng[0] + int((x - r.left()) // self._bar_spacing())
    if idx < rng[0] or idx > rng[1]:
      return None
    return self._times[idx]

  def time_domain(self) -> tuple[int, int] | None:
    rng = self._visible_range()
    if rng is None:
      return None
    return self._times[rng[0]], self._times[rng[1]]

  # -- Overlays ---------------------------------------------------------------

  def _check_alive(self) -> None:
    if self._disposed:
      raise RuntimeError("Chart has been disposed")

  def create_price_line(self, price: float, color: QColor, style: str,
                        label: str) -> PriceLine:
    self._check_alive()
    if not math.isfinite(price):
      raise ValueError("Price line needs a finite price, got %r" % price)
    line = PriceLine(price, QColor(color), style, label)
    self._price_lines.append(line)
    self.update()
    return line

  def remove_price_line(self, line: PriceLine) -> None:
    self._check_alive()
    try:
      self._price_lines.remove(line)
    except ValueError:
      raise ValueError("Unknown price line handle") from None
    self.update()

  def create_line_series(self, color: QColor) -> LineSeries:
    self._check_alive()
    series = LineSeries(color, on_change=self.update)
    self._series.append(series)
    return series

  def remove_series(self, series: LineSeries) -> None:
    self._check_alive()
    try:
      self._series.remove(series)
    except ValueError:
      raise ValueError("Unknown series handle") from None
    self.update()

  def create_text_label(self, time: int, price: float, text: str,
                        color: QColor) -> TextLabel:
    self._check_alive()
    label = TextLabel(int(time), float(price), text, QColor(color))
    self._text_labels.append(label)
    self.update()
    return label

  def remove_text_label(self, label: TextLabel) -> None:
    self._check_alive()
    try:
      self._text_labels.remove(label)
    except ValueError:
      raise ValueError("Unknown text label handle") from None
    self.update()

  def overlay_count(self) -> int:
    return len(self._price_lines) + len(self._series) + len(self._text_labels)

  # -- Subscriptions ----------------------------------------------------------

  def subscribe_click(self, cb: Callable[[PointerEvent], None]) -> None:
    self._click_cbs.append(cb)

  def unsubscribe_click(self, cb: Callable[[PointerEvent], None]) -> None:
    if cb in self._click_cbs:
      self._click_cbs.remove(cb)

  def subscribe_crosshair_move(self, cb: Callable[[PointerEvent | None], None]) -> None:
    self._move_cbs.append(cb)

  def unsubscribe_crosshair_move(self, cb: Callable[[PointerEvent | None], None]) -> None:
    if cb in self._move_cbs:
      self._move_cbs.remove(cb)

  def on_resize(self, cb: Callable[[int, int], None]) -> None:
    self._resize_cbs.append(cb)

  def off_resize(self, cb: Callable[[int, int], None]) -> None:
    if cb in self._resize_cbs:
      self._resize_cbs.remove(cb)

  def _pointer_event(self, pos: QPointF) -> PointerEvent:
    return PointerEvent(pos.x(), pos.y(), self.time_at(pos.x()))

  # -- Lifecycle --------------------------------------------------------------

  def is_disposed(self) -> bool:
    return self._disposed

  def dispose(self) -> None:
    """Drop every overlay and subscriber and schedule the widget for deletion."""
    if self._disposed:
      return
    self._disposed = True
    self._price_lines.clear()
    self._series.clear()
    self._text_labels.clear()
    self._click_cbs.clear()
    self._move_cbs.clear()
    self._resize_cbs.clear()
    self.hide()
    self.deleteLater()

  # -- Paint ------------------------------------------------------------------

  def paintEvent(self, event: QPaintEvent) -> None:
    painter = QPainter(self)
    painter.setRenderHint(QPainter.RenderHint.Antialiasing)
    painter.fillRect(self.rect(), BACKGROUND_COLOR)

    rng = self._visible_range()
    if rng is None:
      painter.setPen(AXIS_TEXT_COLOR)
      painter.drawText(self.rect(), Qt.AlignmentFlag.AlignCenter, "No data")
      painter.end()
      return

    plot = self.plot_rect()
    self._paint_grid(painter, plot)

    painter.save()
    painter.setClipRect(plot)
    self._paint_candles(painter, rng)
    for series in self._series:
      self._paint_series(painter, series)
    for label in self._text_labels:
      self._paint_text_label(painter, label)
    painter.restore()

    for line in self._price_lines:
      self._paint_price_line(painter, plot, line)
    self._paint_time_axis(painter, plot, rng)
    self._paint_crosshair(painter, plot)
    painter.end()

  def _paint_grid(self, painter: QPainter, plot: QRectF) -> None:
    lo, hi = self._price_bounds()
    steps = 6
    font = QFont(self.font())
    font.setPointSize(8)
    painter.setFont(font)
    for i in range(steps + 1):
      price = lo + (hi - lo) * i / steps
      y = self.price_to_y(price)
      painter.setPen(QPen(GRID_COLOR, 1))
      painter.drawLine(QPointF(plot.left(), y), QPointF(plot.right(), y))
      painter.setPen(AXIS_TEXT_COLOR)
      painter.drawText(QPointF(plot.right() + 6, y + 4), "%.2f" % price)

  def _paint_candles(self, painter: QPainter, rng: tuple[int, int]) -> None:
    spacing = self._bar_spacing()
    body_w = max(1.0, spacing * 0.7)
    for c in self._candles[rng[0]:rng[1] + 1]:
      x = self.time_to_x(c.time)
      color = UP_COLOR if c.close >= c.open else DOWN_COLOR
      painter.setPen(QPen(color, 1))
      painter.drawLine(QPointF(x, self.price_to_y(c.high)),
                       QPointF(x, self.price_to_y(c.low)))
      top = self.price_to_y(max(c.open, c.close))
      bottom = self.price_to_y(min(c.open, c.close))
      painter.fillRect(QRectF(x - body_w / 2, top, body_w, max(1.0, bottom - top)), color)

  def _paint_series(self, painter: QPainter, series: LineSeries) -> None:
    if len(series.points) < 2:
      return
    painter.setPen(QPen(series.color, 2, Qt.PenStyle.SolidLine, Qt.PenCapStyle.RoundCap))
    pts = [QPointF(self.time_to_x(t), self.price_to_y(v)) for t, v in series.points]
    for a, b in zip(pts, pts[1:]):
      painter.drawLine(a, b)

  def _paint_text_label(self, painter: QPainter, label: TextLabel) -> None:
    font = QFont(self.font())
    font.setPointSize(10)
    painter.setFont(font)
    painter.setPen(label.color)
    painter.drawText(QPointF(self.time_to_x(label.time), self.price_to_y(label.price)), label.text)

  def _paint_price_line(self, painter: QPainter, plot: QRectF, line: PriceLine) -> None:
    y = self.price_to_y(line.price)
    if y < plot.top() or y > plot.bottom():
      return
    pen = QPen(line.color, 1, _PEN_STYLES.get(line.style, Qt.PenStyle.SolidLine))
    painter.setPen(pen)
    painter.drawLine(QPointF(plot.left(), y), QPointF(plot.right(), y))

    font = QFont(self.font())
    font.setPointSize(8)
    painter.setFont(font)
    fm = QFontMetricsF(font)
    w = fm.horizontalAdvance(line.label) + 8
    box = QRectF(plot.right() - w, y - fm.height() - 2, w, fm.height() + 2)
    painter.fillRect(box, QBrush(line.color))
    painter.setPen(QColor(255, 255, 255))
    painter.drawText(box, Qt.AlignmentFlag.AlignCenter, line.label)

  def _paint_time_axis(self, painter: QPainter, plot: QRectF, rng: tuple[int, int]) -> None:
    painter.setPen(AXIS_TEXT_COLOR)
    count = rng[1] - rng[0] + 1
    step = max(1, count // 6)
    for idx in range(rng[0], rng[1] + 1, step):
      x = self.time_to_x(self._times[idx])
      stamp = datetime.fromtimestamp(self._times[idx]).strftime("%m-%d %H:%M")
      painter.drawText(QPointF(x - 30, plot.bottom() + 16), stamp)

  def _paint_crosshair(self, painter: QPainter, plot: QRectF) -> None:
    if self._cursor is None or not plot.contains(self._cursor):
      return
    painter.setPen(QPen(CROSSHAIR_COLOR, 1, Qt.PenStyle.DashLine))
    painter.drawLine(QPointF(plot.left(), self._cursor.y()), QPointF(plot.right(), self._cursor.y()))
    painter.drawLine(QPointF(self._cursor.x(), plot.top()), QPointF(self._cursor.x(), plot.bottom()))

  # -- Input events -----------------------------------------------------------

  def mousePressEvent(self, event: QMouseEvent) -> None:
    if event.button() != Qt.MouseButton.LeftButton:
      super().mousePressEvent(event)
      return
    self.setFocus()
    ev = self._pointer_event(event.position())
    for cb in list(self._click_cbs):
      cb(ev)
    event.accept()

  def mouseMoveEvent(self, event: QMouseEvent) -> None:
    pos = event.position()
    self._cursor = pos
    ev = self._pointer_event(pos) if self.plot_rect().contains(pos) else None
    for cb in list(self._move_cbs):
      cb(ev)
    self.update()

  def leaveEvent(self, event) -> None:
    self._cursor = None
    for cb in list(self._move_cbs):
      cb(None)
    self.update()
    super().leaveEvent(event)

  def wheelEvent(self, event: QWheelEvent) -> None:
    if not self._candles:
      return
    delta = event.angleDelta().y() or event.angleDelta().x()
    if event.modifiers() & Qt.KeyboardModifier.ShiftModifier:
      # Shift + wheel scrolls through history
      step = -ZOOM_STEP if delta > 0 else ZOOM_STEP
      max_scroll = max(0, len(self._candles) - self._visible_bars)
      self._scroll = max(0, min(self._scroll - step, max_scroll))
    else:
      step = -ZOOM_STEP if delta > 0 else ZOOM_STEP
      lo = min(MIN_VISIBLE_BARS, len(self._candles))
      self._visible_bars = max(lo, min(self._visible_bars + step, len(self._candles)))
      self._scroll = min(self._scroll, len(self._candles) - self._visible_bars)
    self.update()
    event.accept()

  def resizeEvent(self, event: QResizeEvent) -> None:
    super().resizeEvent(event)
    for cb in list(self._resize_cbs):
      cb(self.width(), self.height())
