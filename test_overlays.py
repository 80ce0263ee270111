"""Tests for overlay rendering, derived math and handle release."""

import pytest
from PySide6.QtGui import QColor

from conftest import FakeChart
from drawings import DomainPoint, Drawing, OverlayHandle, next_drawing_id
from overlays import (
  DegenerateDrawingError, OverlayRenderer, fibonacci_levels, format_level,
  format_price, price_range_stats, ray_extension, release_drawing,
  release_handle, validate_points,
)
from tools import ToolId


def make_drawing(tool, *points, text=None):
  return Drawing(
    id=next_drawing_id(), type=tool, color=QColor(0, 128, 255),
    points=[DomainPoint(t, p) for t, p in points], text=text,
  )


# -- Derived math -------------------------------------------------------------

class TestFibonacci:
  def test_levels_100_to_200(self):
    prices = [p for _, p in fibonacci_levels(DomainPoint(0, 100), DomainPoint(10, 200))]
    assert prices == pytest.approx([200, 176.4, 161.2, 150, 123.6, 84.2, 100])

  def test_levels_reported_with_prices(self):
    levels = [lvl for lvl, _ in fibonacci_levels(DomainPoint(0, 100), DomainPoint(10, 200))]
    assert levels == [0, 0.236, 0.382, 0.5, 0.618, 0.786, 1]

  def test_downward_swing(self):
    prices = [p for _, p in fibonacci_levels(DomainPoint(0, 200), DomainPoint(10, 100))]
    assert prices[0] == pytest.approx(100)
    assert prices[3] == pytest.approx(150)
    assert prices[-1] == pytest.approx(200)

  def test_same_time_is_degenerate(self):
    with pytest.raises(DegenerateDrawingError):
      fibonacci_levels(DomainPoint(5, 100), DomainPoint(5, 200))


class TestPriceRange:
  def test_stats(self):
    stats = price_range_stats(DomainPoint(0, 100), DomainPoint(5, 150))
    assert stats.high == 150
    assert stats.low == 100
    assert stats.mid == 125
    assert stats.span == 50
    assert stats.pct == pytest.approx(50.0)
    assert stats.label() == "50.00 (50.00%)"

  def test_order_independent(self):
    a = price_range_stats(DomainPoint(0, 150), DomainPoint(5, 100))
    b = price_range_stats(DomainPoint(0, 100), DomainPoint(5, 150))
    assert a == b

  def test_zero_low_has_no_percentage(self):
    stats = price_range_stats(DomainPoint(0, 0), DomainPoint(5, 10))
    assert stats.pct is None
    assert stats.label() == "10.00"


class TestRay:
  def test_extension(self):
    assert ray_extension(DomainPoint(0, 10), DomainPoint(10, 20)) == (110, pytest.approx(120))

  def test_falling_ray(self):
    t, v = ray_extension(DomainPoint(0, 20), DomainPoint(10, 10))
    assert t == 110
    assert v == pytest.approx(-80)

  def test_same_time_is_degenerate(self):
    with pytest.raises(DegenerateDrawingError):
      ray_extension(DomainPoint(3, 10), DomainPoint(3, 20))


class TestValidatePoints:
  def test_slope_based_same_time_rejected(self):
    with pytest.raises(DegenerateDrawingError):
      validate_points(True, [DomainPoint(1, 1), DomainPoint(1, 2)])

  def test_not_slope_based_same_time_allowed(self):
    validate_points(False, [DomainPoint(1, 1), DomainPoint(1, 2)])

  def test_single_point_allowed(self):
    validate_points(True, [DomainPoint(1, 1)])


class TestFormatting:
  def test_format_price(self):
    assert format_price(1234.5) == "$1,234.50"
    assert format_price(0.12345, 4) == "$0.1235"

  def test_format_level(self):
    assert format_level(0) == "0%"
    assert format_level(0.236) == "23.6%"
    assert format_level(0.786) == "78.6%"
    assert format_level(1) == "100%"


# -- Rendering ----------------------------------------------------------------

class TestRender:
  def test_horizontal_line(self):
    chart = FakeChart()
    d = make_drawing(ToolId.HORIZONTAL_LINE, (10, 123.456))
    handles = OverlayRenderer().render(d, chart)
    assert len(handles) == 1
    assert handles[0].kind == "price_line"
    assert chart.price_lines[0]["price"] == 123.456
    assert chart.price_lines[0]["label"] == "$123.46"

  def test_trend_line_uses_exactly_two_points(self):
    chart = FakeChart()
    d = make_drawing(ToolId.TREND_LINE, (0, 10), (10, 20))
    OverlayRenderer().render(d, chart)
    assert len(chart.series) == 1
    assert chart.series[0].points == [{"time": 0, "value": 10}, {"time": 10, "value": 20}]

  def test_trend_line_drawn_backwards_is_time_ordered(self):
    chart = FakeChart()
    d = make_drawing(ToolId.TREND_LINE, (10, 20), (0, 10))
    OverlayRenderer().render(d, chart)
    assert [p["time"] for p in chart.series[0].points] == [0, 10]

  def test_ray_appends_extrapolated_point(self):
    chart = FakeChart()
    d = make_drawing(ToolId.RAY, (0, 10), (10, 20))
    OverlayRenderer().render(d, chart)
    pts = chart.series[0].points
    assert len(pts) == 3
    assert pts[2]["time"] == 110
    assert pts[2]["value"] == pytest.approx(120)

  def test_rectangle_bounds_both_corners(self):
    chart = FakeChart()
    d = make_drawing(ToolId.RECTANGLE, (10, 50), (30, 80))
    handles = OverlayRenderer().render(d, chart)
    assert len(handles) == 4
    corners = {(p["time"], p["value"]) for s in chart.series for p in s.points}
    assert {(10, 80), (30, 80), (10, 50), (30, 50)} == corners

  def test_fibonacci_creates_seven_tracked_lines(self):
    chart = FakeChart()
    d = make_drawing(ToolId.FIBONACCI_RETRACEMENT, (0, 100), (10, 200))
    handles = OverlayRenderer().render(d, chart)
    assert len(handles) == 7
    assert d.overlay_handles == handles
    assert [l["label"] for l in chart.price_lines] == [
      "0%", "23.6%", "38.2%", "50%", "61.8%", "78.6%", "100%",
    ]
    assert [l["price"] for l in chart.price_lines] == pytest.approx(
      [200, 176.4, 161.2, 150, 123.6, 84.2, 100])

  def test_price_range_lines(self):
    chart = FakeChart()
    d = make_drawing(ToolId.PRICE_RANGE, (0, 100), (10, 150))
    OverlayRenderer().render(d, chart)
    labels = [(l["price"], l["label"]) for l in chart.price_lines]
    assert labels == [(150, "High"), (100, "Low"), (125, "50.00 (50.00%)")]

  def test_text_label_at_point(self):
    chart = FakeChart()
    d = make_drawing(ToolId.TEXT, (40, 99.5), text="breakout")
    handles = OverlayRenderer().render(d, chart)
    assert handles[0].kind == "text"
    assert chart.text_labels[0]["time"] == 40
    assert chart.text_labels[0]["price"] == 99.5
    assert chart.text_labels[0]["text"] == "breakout"

  def test_uses_drawing_color(self):
    chart = FakeChart()
    d = make_drawing(ToolId.HORIZONTAL_LINE, (0, 1))
    OverlayRenderer().render(d, chart)
    assert chart.price_lines[0]["color"] == QColor(0, 128, 255)

  def test_precision_applies_to_labels(self):
    chart = FakeChart()
    d = make_drawing(ToolId.HORIZONTAL_LINE, (0, 1.23456))
    OverlayRenderer(precision=4).render(d, chart)
    assert chart.price_lines[0]["label"] == "$1.2346"

  def test_non_drawing_tool_has_no_strategy(self):
    with pytest.raises(ValueError):
      OverlayRenderer().render(make_drawing(ToolId.CURSOR, (0, 1)), FakeChart())


class TestPartialCreation:
  def test_fibonacci_failure_keeps_created_handles(self):
    chart = FakeChart()
    chart.fail_after = 4
    d = make_drawing(ToolId.FIBONACCI_RETRACEMENT, (0, 100), (10, 200))
    handles = OverlayRenderer().render(d, chart)
    assert len(handles) == 4
    assert len(d.overlay_handles) == 4

  def test_partial_handles_released_without_leak(self):
    chart = FakeChart()
    chart.fail_after = 4
    d = make_drawing(ToolId.FIBONACCI_RETRACEMENT, (0, 100), (10, 200))
    OverlayRenderer().render(d, chart)
    assert release_drawing(d, chart) == 4
    assert chart.overlay_count() == 0

  def test_series_registered_before_points_set(self):
    chart = FakeChart()
    chart.fail_set_points = True
    d = make_drawing(ToolId.TREND_LINE, (0, 10), (10, 20))
    handles = OverlayRenderer().render(d, chart)
    assert len(handles) == 1
    release_drawing(d, chart)
    assert chart.series == []


# -- Release ------------------------------------------------------------------

class TestRelease:
  def test_release_removes_every_handle(self):
    chart = FakeChart()
    d = make_drawing(ToolId.PRICE_RANGE, (0, 100), (10, 150))
    OverlayRenderer().render(d, chart)
    assert release_drawing(d, chart) == 3
    assert chart.overlay_count() == 0
    assert d.overlay_handles == []

  def test_second_release_is_noop(self):
    chart = FakeChart()
    d = make_drawing(ToolId.HORIZONTAL_LINE, (0, 100))
    OverlayRenderer().render(d, chart)
    release_drawing(d, chart)
    removed = len(chart.removed)
    assert release_drawing(d, chart) == 0
    assert len(chart.removed) == removed

  def test_disposed_chart_errors_swallowed(self):
    chart = FakeChart()
    d = make_drawing(ToolId.HORIZONTAL_LINE, (0, 100))
    OverlayRenderer().render(d, chart)
    chart.dispose()
    assert release_drawing(d, chart) == 0
    assert d.overlay_handles == []

  def test_unknown_handle_swallowed(self):
    assert release_handle(FakeChart(), OverlayHandle("price_line", object())) is False

  def test_unknown_kind(self):
    assert release_handle(FakeChart(), OverlayHandle("hologram", object())) is False

  def test_release_without_chart_drops_handles(self):
    d = make_drawing(ToolId.HORIZONTAL_LINE, (0, 100))
    d.overlay_handles.append(OverlayHandle("price_line", object()))
    assert release_drawing(d, None) == 0
    assert d.overlay_handles == []
