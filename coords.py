"""Pixel to (time, price) mapping on top of the renderer's projections."""

from __future__ import annotations

import math

from drawings import DomainPoint


class CoordinateMapper:
  """Turns a pointer position into a DomainPoint.

  The renderer resolves X to a bar time itself (it owns bar spacing, scroll
  and zoom); this class only checks that time against the visible domain
  and maps Y through the renderer's inverse price projection.
  """

  def __init__(self, chart):
    self._chart = chart

  def to_domain_point(self, pixel_y: float, time: int | None) -> DomainPoint | None:
    """Return the domain point under the pointer, or None to ignore it."""
    if time is None:
      return None
    domain = self._chart.time_domain()
    if domain is None:
      return None
    first, last = domain
    if time < first or time > last:
      return None
    price = self._chart.inverse_project_price(pixel_y)
    if price is None or not math.isfinite(price):
      return None
    return DomainPoint(int(time), float(price))

  def from_event(self, event) -> DomainPoint | None:
    if event is None:
      return None
    return self.to_domain_point(event.y, event.time)
