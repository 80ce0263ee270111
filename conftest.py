"""Shared pytest fixtures."""

import os

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest


class FakeSeries:
  def __init__(self, chart, color):
    self.chart = chart
    self.color = color
    self.points = []

  def set_points(self, points):
    if self.chart.fail_set_points:
      raise RuntimeError("set_points failed")
    self.points = list(points)


class FakeChart:
  """Records every renderer call the engine makes.

  Prices map linearly: pixel y == 1000 - price, for y in [0, 1000].
  The visible time domain is [0, 1000].
  """

  def __init__(self, domain=(0, 1000)):
    self.domain = domain
    self.price_lines = []
    self.series = []
    self.text_labels = []
    self.removed = []
    self.click_cbs = []
    self.move_cbs = []
    self.resize_cbs = []
    self.disposed = False
    self.fail_after = None  # raise on the Nth overlay creation
    self.fail_set_points = False
    self.candles = []
    self._created = 0

  # -- projections

  def time_domain(self):
    return self.domain

  def inverse_project_price(self, y):
    if y < 0 or y > 1000:
      return None
    return 1000.0 - y

  # -- overlays

  def _count_creation(self):
    if self.disposed:
      raise RuntimeError("disposed")
    if self.fail_after is not None and self._created >= self.fail_after:
      raise RuntimeError("renderer exploded")
    self._created += 1

  def create_price_line(self, price, color, style, label):
    self._count_creation()
    line = {"price": price, "color": color, "style": style, "label": label}
    self.price_lines.append(line)
    return line

  def create_line_series(self, color):
    self._count_creation()
    s = FakeSeries(self, color)
    self.series.append(s)
    return s

  def create_text_label(self, time, price, text, color):
    self._count_creation()
    label = {"time": time, "price": price, "text": text, "color": color}
    self.text_labels.append(label)
    return label

  def _remove(self, pool, handle):
    if self.disposed:
      raise RuntimeError("disposed")
    for i, h in enumerate(pool):
      if h is handle:
        pool.pop(i)
        self.removed.append(handle)
        return
    raise ValueError("unknown handle")

  def remove_price_line(self, handle):
    self._remove(self.price_lines, handle)

  def remove_series(self, handle):
    self._remove(self.series, handle)

  def remove_text_label(self, handle):
    self._remove(self.text_labels, handle)

  def overlay_count(self):
    return len(self.price_lines) + len(self.series) + len(self.text_labels)

  # -- subscriptions

  def subscribe_click(self, cb):
    self.click_cbs.append(cb)

  def unsubscribe_click(self, cb):
    self.click_cbs.remove(cb)

  def subscribe_crosshair_move(self, cb):
    self.move_cbs.append(cb)

  def unsubscribe_crosshair_move(self, cb):
    self.move_cbs.remove(cb)

  def on_resize(self, cb):
    self.resize_cbs.append(cb)

  def off_resize(self, cb):
    self.resize_cbs.remove(cb)

  # -- lifecycle

  def update_candle(self, candle):
    self.candles.append(candle)

  def dispose(self):
    self.disposed = True


@pytest.fixture
def fake_chart():
  return FakeChart()
