"""Drawing tool palette shown above the chart."""

from __future__ import annotations

from PySide6.QtCore import Qt, QPointF, QRect, Signal
from PySide6.QtGui import QColor, QIcon, QPainter, QPainterPath, QPen, QPixmap
from PySide6.QtWidgets import (
  QButtonGroup, QColorDialog, QHBoxLayout, QLabel, QPushButton, QWidget,
)

from drawing_machine import DEFAULT_COLOR
from tools import ToolDescriptor, ToolId, ToolRegistry

ICON_SIZE = 24
_ICON_COLOR = QColor(200, 200, 200)


# -- Icon drawing helpers -----------------------------------------------------

def _make_icon(draw_fn) -> QIcon:
  """Create a QIcon by painting onto a 24x24 pixmap."""
  pixmap = QPixmap(ICON_SIZE, ICON_SIZE)
  pixmap.fill(QColor(0, 0, 0, 0))
  painter = QPainter(pixmap)
  painter.setRenderHint(QPainter.RenderHint.Antialiasing)
  painter.setPen(QPen(_ICON_COLOR, 2))
  painter.setBrush(Qt.BrushStyle.NoBrush)
  draw_fn(painter, ICON_SIZE)
  painter.end()
  return QIcon(pixmap)


def _draw_cursor_icon(painter: QPainter, size: int) -> None:
  path = QPainterPath()
  path.moveTo(7, 4)
  path.lineTo(7, size - 5)
  path.lineTo(11, size - 9)
  path.lineTo(16, size - 9)
  path.closeSubpath()
  painter.drawPath(path)


def _draw_crosshair_icon(painter: QPainter, size: int) -> None:
  painter.drawLine(size // 2, 3, size // 2, size - 3)
  painter.drawLine(3, size // 2, size - 3, size // 2)


def _draw_hline_icon(painter: QPainter, size: int) -> None:
  painter.drawLine(3, size // 2, size - 3, size // 2)


def _draw_trend_icon(painter: QPainter, size: int) -> None:
  painter.drawLine(4, size - 5, size - 4, 5)
  painter.drawEllipse(QPointF(4, size - 5), 2, 2)
  painter.drawEllipse(QPointF(size - 4, 5), 2, 2)


def _draw_ray_icon(painter: QPainter, size: int) -> None:
  painter.drawLine(4, size - 5, size - 2, 3)
  painter.drawEllipse(QPointF(4, size - 5), 2, 2)


def _draw_rect_icon(painter: QPainter, size: int) -> None:
  painter.drawRect(3, 5, size - 6, size - 10)


def _draw_fib_icon(painter: QPainter, size: int) -> None:
  painter.setPen(QPen(_ICON_COLOR, 1))
  for y in (4, 8, 11, 14, 17, 20):
    painter.drawLine(3, y, size - 3, y)


def _draw_range_icon(painter: QPainter, size: int) -> None:
  painter.drawLine(3, 5, size - 3, 5)
  painter.drawLine(3, size - 5, size - 3, size - 5)
  painter.drawLine(size // 2, 7, size // 2, size - 7)


def _draw_text_icon(painter: QPainter, size: int) -> None:
  font = painter.font()
  font.setPointSize(14)
  font.setBold(True)
  painter.setFont(font)
  painter.drawText(QRect(0, 0, size, size), Qt.AlignmentFlag.AlignCenter, "T")


_ICONS = {
  ToolId.CURSOR: _draw_cursor_icon,
  ToolId.CROSSHAIR: _draw_crosshair_icon,
  ToolId.HORIZONTAL_LINE: _draw_hline_icon,
  ToolId.TREND_LINE: _draw_trend_icon,
  ToolId.RAY: _draw_ray_icon,
  ToolId.RECTANGLE: _draw_rect_icon,
  ToolId.FIBONACCI_RETRACEMENT: _draw_fib_icon,
  ToolId.PRICE_RANGE: _draw_range_icon,
  ToolId.TEXT: _draw_text_icon,
}


def tool_tooltip(desc: ToolDescriptor) -> str:
  if desc.shortcut:
    return "%s (%s)" % (desc.label, desc.shortcut.upper())
  return desc.label


# -- Color button -------------------------------------------------------------

class ColorButton(QPushButton):
  """Color swatch button that opens a QColorDialog on click."""
  color_changed = Signal(QColor)

  def __init__(self, color: QColor = DEFAULT_COLOR, parent: QWidget | None = None):
    super().__init__(parent)
    self._color = QColor(color)
    self.setFixedSize(28, 28)
    self.setToolTip("Drawing color")
    self._update_style()
    self.clicked.connect(self._pick_color)

  def color(self) -> QColor:
    return QColor(self._color)

  def set_color(self, color: QColor) -> None:
    self._color = QColor(color)
    self._update_style()
    self.color_changed.emit(QColor(color))

  def _update_style(self) -> None:
    self.setStyleSheet(
      "QPushButton { background-color: %s; border: 2px solid #555; border-radius: 4px; }"
      "QPushButton:hover { border-color: #aaa; }"
      % self._color.name()
    )

  def _pick_color(self) -> None:
    c = QColorDialog.getColor(self._color, self.parentWidget(), "Drawing Color")
    if c.isValid():
      self.set_color(c)


# -- Toolbar ------------------------------------------------------------------

class ChartToolbar(QWidget):
  """One checkable button per tool, plus color and removal actions."""

  tool_changed = Signal(str)
  delete_last_requested = Signal()
  clear_requested = Signal()

  def __init__(self, registry: ToolRegistry, color: QColor = DEFAULT_COLOR,
               parent: QWidget | None = None):
    super().__init__(parent)
    self.setAttribute(Qt.WidgetAttribute.WA_StyledBackground, True)
    self.setStyleSheet(
      "ChartToolbar { background: rgba(40, 40, 40, 220); border-radius: 8px; padding: 4px; }"
    )

    layout = QHBoxLayout(self)
    layout.setContentsMargins(8, 4, 8, 4)
    layout.setSpacing(4)

    self._tool_group = QButtonGroup(self)
    self._tool_group.setExclusive(True)
    self._buttons: dict[ToolId, QPushButton] = {}

    btn_style = (
      "QPushButton { background: transparent; border: 1px solid #555; border-radius: 4px; padding: 2px; }"
      "QPushButton:checked { background: rgba(255, 255, 255, 40); border-color: #aaa; }"
      "QPushButton:hover { background: rgba(255, 255, 255, 20); }"
    )
    for desc in registry:
      btn = QPushButton()
      btn.setIcon(_make_icon(_ICONS[desc.id]))
      btn.setFixedSize(32, 32)
      btn.setCheckable(True)
      btn.setToolTip(tool_tooltip(desc))
      btn.setStyleSheet(btn_style)
      btn.setFocusPolicy(Qt.FocusPolicy.NoFocus)
      btn.clicked.connect(lambda checked, t=desc.id: self.tool_changed.emit(t.value))
      self._tool_group.addButton(btn)
      self._buttons[desc.id] = btn
      layout.addWidget(btn)
      if desc.id == ToolId.CROSSHAIR:
        layout.addWidget(self._separator())
    self.set_active_tool_button(ToolId.CURSOR)

    layout.addWidget(self._separator())

    self.color_btn = ColorButton(color, self)
    layout.addWidget(self.color_btn)

    layout.addWidget(self._separator())

    action_style = (
      "QPushButton { color: #ccc; background: transparent; border: 1px solid #555; border-radius: 4px; font-size: 11px; padding: 2px 8px; }"
      "QPushButton:hover { background: rgba(255, 255, 255, 20); }"
      "QPushButton:disabled { color: #555; border-color: #444; }"
    )
    self.delete_btn = QPushButton("Delete")
    self.delete_btn.setFixedHeight(28)
    self.delete_btn.setToolTip("Remove last drawing (Del)")
    self.delete_btn.setStyleSheet(action_style)
    self.delete_btn.setFocusPolicy(Qt.FocusPolicy.NoFocus)
    self.delete_btn.clicked.connect(self.delete_last_requested)
    layout.addWidget(self.delete_btn)

    self.clear_btn = QPushButton("Clear")
    self.clear_btn.setFixedHeight(28)
    self.clear_btn.setToolTip("Clear all drawings")
    self.clear_btn.setStyleSheet(action_style.replace("color: #ccc", "color: #f88", 1))
    self.clear_btn.setFocusPolicy(Qt.FocusPolicy.NoFocus)
    self.clear_btn.clicked.connect(self.clear_requested)
    layout.addWidget(self.clear_btn)
    self.set_removal_enabled(False)

  @staticmethod
  def _separator() -> QLabel:
    sep = QLabel("|")
    sep.setStyleSheet("QLabel { color: #555; }")
    return sep

  def current_tool(self) -> ToolId:
    for tool, btn in self._buttons.items():
      if btn.isChecked():
        return tool
    return ToolId.CURSOR

  def current_color(self) -> QColor:
    return self.color_btn.color()

  def button_for(self, tool: ToolId | str) -> QPushButton:
    return self._buttons[ToolId(tool)]

  def set_active_tool_button(self, tool: ToolId | str) -> None:
    """Visually check the button for the given tool."""
    btn = self._buttons.get(ToolId(tool))
    if btn:
      btn.setChecked(True)

  def set_removal_enabled(self, enabled: bool) -> None:
    self.delete_btn.setEnabled(enabled)
    self.clear_btn.setEnabled(enabled)
