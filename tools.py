"""Catalogue of chart annotation tools and their keyboard shortcuts."""

from __future__ import annotations

import dataclasses
import enum
from typing import Iterator, Mapping

from log import get_logger

log = get_logger("tools")


class ToolId(str, enum.Enum):
  CURSOR = "cursor"
  CROSSHAIR = "crosshair"
  HORIZONTAL_LINE = "horizontal_line"
  TREND_LINE = "trend_line"
  RAY = "ray"
  RECTANGLE = "rectangle"
  FIBONACCI_RETRACEMENT = "fibonacci_retracement"
  PRICE_RANGE = "price_range"
  TEXT = "text"


class ToolConfigError(ValueError):
  """Raised when the tool catalogue is misconfigured (e.g. shortcut clash)."""


@dataclasses.dataclass(frozen=True)
class ToolDescriptor:
  id: ToolId
  label: str
  required_points: int  # 0 for non-drawing modes
  shortcut: str | None = None
  slope_based: bool = False  # both points must differ in time

  @property
  def is_drawing(self) -> bool:
    return self.required_points > 0


DEFAULT_TOOLS = (
  ToolDescriptor(ToolId.CURSOR, "Cursor", 0),
  ToolDescriptor(ToolId.CROSSHAIR, "Crosshair", 0),
  ToolDescriptor(ToolId.HORIZONTAL_LINE, "Horizontal Line", 1, "h"),
  ToolDescriptor(ToolId.TREND_LINE, "Trend Line", 2, "t"),
  ToolDescriptor(ToolId.RAY, "Ray", 2, "r", slope_based=True),
  ToolDescriptor(ToolId.RECTANGLE, "Rectangle", 2, "b"),
  ToolDescriptor(ToolId.FIBONACCI_RETRACEMENT, "Fibonacci Retracement", 2, "f",
                 slope_based=True),
  ToolDescriptor(ToolId.PRICE_RANGE, "Price Range", 2, "p"),
  ToolDescriptor(ToolId.TEXT, "Text Note", 1, "n"),
)


class ToolRegistry:
  """Static lookup of tools by id and by shortcut key.

  Shortcuts are single characters and case-insensitive. Construction fails
  with ToolConfigError on any clash, so a bad config is caught at startup
  rather than when a key is pressed.
  """

  def __init__(self, descriptors=DEFAULT_TOOLS):
    self._by_id: dict[ToolId, ToolDescriptor] = {}
    self._by_shortcut: dict[str, ToolId] = {}
    for desc in descriptors:
      if desc.id in self._by_id:
        raise ToolConfigError("Tool '%s' registered twice" % desc.id.value)
      self._by_id[desc.id] = desc
      if desc.shortcut is None:
        continue
      if len(desc.shortcut) != 1:
        raise ToolConfigError(
          "Shortcut for '%s' must be a single character, got %r"
          % (desc.id.value, desc.shortcut))
      if not desc.is_drawing:
        raise ToolConfigError(
          "Non-drawing tool '%s' cannot have a shortcut" % desc.id.value)
      key = desc.shortcut.lower()
      if key in self._by_shortcut:
        raise ToolConfigError(
          "Shortcut '%s' bound to both '%s' and '%s'"
          % (key, self._by_shortcut[key].value, desc.id.value))
      self._by_shortcut[key] = desc.id

  @classmethod
  def from_config(cls, shortcuts: Mapping[str, str | None] | None) -> ToolRegistry:
    """Build a registry with per-tool shortcut overrides.

    A None or empty value unbinds the tool's shortcut.
    """
    if shortcuts is not None and not isinstance(shortcuts, Mapping):
      raise ToolConfigError("Shortcuts must map tool names to keys, got %r" % (shortcuts,))
    overrides: dict[ToolId, str | None] = {}
    for tool_key, key in (shortcuts or {}).items():
      try:
        tool = ToolId(tool_key)
      except ValueError:
        raise ToolConfigError("Unknown tool in shortcuts: %r" % tool_key) from None
      if key is not None and not isinstance(key, str):
        raise ToolConfigError("Shortcut for %s must be a string, got %r" % (tool_key, key))
      overrides[tool] = key or None

    descriptors = []
    for desc in DEFAULT_TOOLS:
      if desc.id in overrides:
        desc = dataclasses.replace(desc, shortcut=overrides[desc.id])
      descriptors.append(desc)
    if overrides:
      log.debug("Shortcut overrides: %s",
        {t.value: k for t, k in overrides.items()})
    return cls(descriptors)

  def by_id(self, tool: ToolId | str) -> ToolDescriptor:
    return self._by_id[ToolId(tool)]

  def by_shortcut(self, key: str) -> ToolId | None:
    if not key:
      return None
    return self._by_shortcut.get(key.lower())

  def drawing_tools(self) -> list[ToolDescriptor]:
    return [d for d in self._by_id.values() if d.is_drawing]

  def __iter__(self) -> Iterator[ToolDescriptor]:
    return iter(self._by_id.values())

  def __contains__(self, tool) -> bool:
    try:
      return ToolId(tool) in self._by_id
    except ValueError:
      return False
