"""Tool selection and multi-click construction of chart drawings."""

from __future__ import annotations

from typing import Callable

from PySide6.QtCore import QObject, Signal
from PySide6.QtGui import QColor

from drawings import (
  ConstructionState, DomainPoint, Drawing, DrawingStore, next_drawing_id,
)
from log import get_logger
from overlays import (
  DegenerateDrawingError, OverlayRenderer, release_drawing, validate_points,
)
from tools import ToolId, ToolRegistry

log = get_logger("machine")

DEFAULT_COLOR = QColor(59, 130, 246)  # #3B82F6
DEFAULT_TEXT = "Note"


class DrawingStateMachine(QObject):
  """Idle(tool) / AwaitingSecondPoint(tool, anchor) state machine.

  The state is the active tool plus an optional ConstructionState; there is
  never more than one construction in flight. Every change to the drawing
  store goes through this object.
  """

  tool_changed = Signal(str)
  construction_changed = Signal(object)  # ConstructionState | None
  drawing_added = Signal(object)
  drawing_removed = Signal(object)

  def __init__(self, registry: ToolRegistry | None = None,
               store: DrawingStore | None = None,
               overlay_renderer: OverlayRenderer | None = None,
               color: QColor = DEFAULT_COLOR,
               text_provider: Callable[[DomainPoint], str | None] | None = None,
               parent: QObject | None = None):
    super().__init__(parent)
    self.registry = registry or ToolRegistry()
    self.store = store if store is not None else DrawingStore()
    self.overlay_renderer = overlay_renderer or OverlayRenderer()
    self.text_provider = text_provider
    self._color = QColor(color)
    self._tool = ToolId.CURSOR
    self._construction: ConstructionState | None = None
    self._chart = None

  # -- State ------------------------------------------------------------------

  @property
  def tool(self) -> ToolId:
    return self._tool

  @property
  def construction(self) -> ConstructionState | None:
    return self._construction

  @property
  def chart(self):
    return self._chart

  def color(self) -> QColor:
    return QColor(self._color)

  def set_color(self, color: QColor) -> None:
    self._color = QColor(color)

  def _set_construction(self, state: ConstructionState | None) -> None:
    if state is self._construction:
      return
    self._construction = state
    self.construction_changed.emit(state)

  # -- Renderer binding -------------------------------------------------------

  def attach_chart(self, chart) -> None:
    if self._chart is not None and self._chart is not chart:
      self.detach_chart()
    self._chart = chart

  def detach_chart(self) -> None:
    """Drop the renderer: cancel construction, release and forget drawings."""
    self._set_construction(None)
    chart = self._chart
    self._chart = None
    dropped = self.store.clear()
    for d in dropped:
      release_drawing(d, chart)
      self.drawing_removed.emit(d)
    if dropped:
      log.info("Discarded %d drawing(s) with detached chart", len(dropped))

  # -- Transitions ------------------------------------------------------------

  def select_tool(self, tool: ToolId | str) -> None:
    tool = self.registry.by_id(tool).id
    if self._construction is not None:
      log.debug("Tool switch discards pending %s", self._construction.tool.value)
    self._set_construction(None)
    changed = tool != self._tool
    self._tool = tool
    if changed:
      log.debug("Active tool: %s", tool.value)
      self.tool_changed.emit(tool.value)

  def escape(self) -> None:
    self.select_tool(ToolId.CURSOR)

  def pointer_click(self, point: DomainPoint | None) -> Drawing | None:
    """Feed one click. Returns the finalized drawing, if the click made one."""
    desc = self.registry.by_id(self._tool)
    if not desc.is_drawing:
      return None

    if point is None:
      if self._construction is not None:
        log.debug("Click outside plot; aborting %s", self._tool.value)
        self._set_construction(None)
      return None

    if self._chart is None:
      log.debug("Click ignored: no chart attached")
      return None

    if desc.required_points == 1:
      text = None
      if desc.id == ToolId.TEXT:
        text = self._ask_text(point)
        if not text:
          return None
      return self._finalize([point], text)

    if self._construction is None:
      self._set_construction(ConstructionState(self._tool, point))
      return None

    anchor = self._construction.anchor
    self._set_construction(None)
    return self._finalize([anchor, point])

  def _ask_text(self, point: DomainPoint) -> str | None:
    if self.text_provider is None:
      return DEFAULT_TEXT
    text = self.text_provider(point)
    return text.strip() if text else None

  def _finalize(self, points: list[DomainPoint], text: str | None = None) -> Drawing | None:
    desc = self.registry.by_id(self._tool)
    try:
      validate_points(desc.slope_based, points)
    except DegenerateDrawingError as e:
      log.info("Rejected %s: %s", desc.id.value, e)
      return None

    drawing = Drawing(
      id=next_drawing_id(), type=desc.id, color=QColor(self._color),
      points=list(points), text=text,
    )
    self.overlay_renderer.render(drawing, self._chart)
    if not drawing.overlay_handles:
      # Nothing on the chart to remove later
      log.warning("Dropped %s %s: renderer created no overlays",
        drawing.type.value, drawing.id)
      return None
    self.store.append(drawing)
    log.debug("Added %s %s with %d overlay(s)",
      drawing.type.value, drawing.id, len(drawing.overlay_handles))
    self.drawing_added.emit(drawing)
    return drawing

  # -- Removal ----------------------------------------------------------------

  def delete_last(self) -> Drawing | None:
    drawing = self.store.pop_last()
    if drawing is None:
      return None
    release_drawing(drawing, self._chart)
    self.drawing_removed.emit(drawing)
    return drawing

  def remove(self, drawing_id: str) -> bool:
    drawing = self.store.remove(drawing_id)
    if drawing is None:
      return False
    release_drawing(drawing, self._chart)
    self.drawing_removed.emit(drawing)
    return True

  def clear_all(self) -> int:
    dropped = self.store.clear()
    for d in dropped:
      release_drawing(d, self._chart)
      self.drawing_removed.emit(d)
    return len(dropped)
