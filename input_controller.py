"""Pointer and keyboard bindings between the chart and the drawing machine."""

from __future__ import annotations

from PySide6.QtCore import Qt, QEvent, QObject, Signal
from PySide6.QtWidgets import (
  QApplication, QLineEdit, QTextEdit, QPlainTextEdit, QAbstractSpinBox, QWidget,
)

from coords import CoordinateMapper
from drawing_machine import DrawingStateMachine
from log import get_logger
from tools import ToolRegistry

log = get_logger("input")

_TEXT_INPUTS = (QLineEdit, QTextEdit, QPlainTextEdit, QAbstractSpinBox)
_BLOCKING_MODIFIERS = (
  Qt.KeyboardModifier.ControlModifier
  | Qt.KeyboardModifier.AltModifier
  | Qt.KeyboardModifier.MetaModifier
)


def text_input_has_focus() -> bool:
  return isinstance(QApplication.focusWidget(), _TEXT_INPUTS)


class InputController(QObject):
  """Routes chart clicks, pointer moves and key presses to the machine.

  Everything is acquired in attach() and released in detach(); nothing is
  left listening once the controller is detached.
  """

  cursor_moved = Signal(object)  # DomainPoint | None

  def __init__(self, machine: DrawingStateMachine,
               registry: ToolRegistry | None = None,
               parent: QObject | None = None):
    super().__init__(parent)
    self._machine = machine
    self._registry = registry or machine.registry
    self._chart = None
    self._mapper: CoordinateMapper | None = None
    self._key_target: QWidget | None = None

  @property
  def attached(self) -> bool:
    return self._chart is not None

  def attach(self, chart, key_target: QWidget | None = None) -> None:
    if self._chart is not None:
      self.detach()
    self._chart = chart
    self._mapper = CoordinateMapper(chart)
    chart.subscribe_click(self.handle_click)
    chart.subscribe_crosshair_move(self.handle_crosshair)
    chart.on_resize(self.handle_resize)
    if key_target is not None:
      key_target.installEventFilter(self)
      self._key_target = key_target

  def detach(self) -> None:
    chart = self._chart
    if chart is not None:
      try:
        chart.unsubscribe_click(self.handle_click)
        chart.unsubscribe_crosshair_move(self.handle_crosshair)
        chart.off_resize(self.handle_resize)
      except RuntimeError as e:
        log.debug("Chart already gone while unsubscribing: %s", e)
    if self._key_target is not None:
      try:
        self._key_target.removeEventFilter(self)
      except RuntimeError as e:
        log.debug("Key target already gone: %s", e)
    self._chart = None
    self._mapper = None
    self._key_target = None
    self.cursor_moved.emit(None)

  # -- Pointer ----------------------------------------------------------------

  def handle_click(self, event) -> None:
    if self._mapper is None:
      return
    point = self._mapper.from_event(event)
    if point is None:
      log.debug("Click outside plottable domain")
    self._machine.pointer_click(point)

  def handle_crosshair(self, event) -> None:
    if self._mapper is None:
      return
    self.cursor_moved.emit(self._mapper.from_event(event))

  def handle_resize(self, width: int, height: int) -> None:
    # Last readout refers to the old pixel layout
    self.cursor_moved.emit(None)

  # -- Keyboard ---------------------------------------------------------------

  def handle_key(self, key: int, text: str = "",
                 modifiers=Qt.KeyboardModifier.NoModifier, auto_repeat: bool = False) -> bool:
    """Apply one key press. Returns True if it was consumed.

    A held Delete/Backspace removes only one drawing; repeats are swallowed.
    """
    if text_input_has_focus():
      return False

    if key == Qt.Key.Key_Escape:
      self._machine.escape()
      return True
    if key in (Qt.Key.Key_Delete, Qt.Key.Key_Backspace):
      if not auto_repeat:
        self._machine.delete_last()
      return True

    if modifiers & _BLOCKING_MODIFIERS:
      return False
    if len(text) != 1:
      return False
    tool = self._registry.by_shortcut(text)
    if tool is None:
      return False
    self._machine.select_tool(tool)
    return True

  def eventFilter(self, obj: QObject, event: QEvent) -> bool:
    if event.type() == QEvent.Type.KeyPress:
      return self.handle_key(
        event.key(), event.text(), event.modifiers(), event.isAutoRepeat())
    return super().eventFilter(obj, event)
