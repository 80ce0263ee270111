from __future__ import annotations

import json
import os
import sys
from datetime import datetime
from typing import Any

from PySide6.QtCore import Qt
from PySide6.QtGui import QColor
from PySide6.QtWidgets import (
  QApplication, QButtonGroup, QComboBox, QHBoxLayout, QInputDialog, QLabel,
  QPushButton, QVBoxLayout, QWidget,
)

from chart_view import ChartView
from drawing_machine import DrawingStateMachine
from drawings import DomainPoint
from feed import DEFAULT_ASSETS, TIMEFRAMES, SimulatedPriceFeed, generate_candles
from input_controller import InputController
from lifecycle import LifecycleCoordinator
from log import get_logger, set_level
from overlays import OverlayRenderer, format_price
from toolbar import ChartToolbar
from tools import DEFAULT_TOOLS, ToolConfigError, ToolRegistry

log = get_logger("main")

# When frozen as exe, config lives next to the executable
if getattr(sys, "frozen", False):
  APP_DIR = os.path.dirname(sys.executable)
else:
  APP_DIR = os.path.dirname(os.path.abspath(__file__))
CONFIG_PATH = os.path.join(APP_DIR, "config.json")


CONFIG_VERSION = 2
MAX_PRICE_PRECISION = 8

DEFAULT_CONFIG = {
  "config_version": CONFIG_VERSION,
  "default_asset": "SPACEX",
  "default_timeframe": "1D",
  "drawing_color": "#3B82F6",
  "price_precision": 2,
  "shortcuts": {d.id.value: d.shortcut for d in DEFAULT_TOOLS if d.shortcut},
  "live_feed_interval_ms": 2000,
  "log_level": "INFO",
}


def migrate_config(config: dict[str, Any]) -> bool:
  """Fill in missing keys from defaults and bump version. Returns True if changed."""
  version = config.get("config_version", 1)
  changed = False

  for key, default_val in DEFAULT_CONFIG.items():
    if key not in config:
      config[key] = json.loads(json.dumps(default_val))
      log.info("Config migration: added '%s' = %r", key, default_val)
      changed = True

  if config.get("default_timeframe") not in TIMEFRAMES:
    log.warning("Unknown timeframe %r, using %s",
      config.get("default_timeframe"), DEFAULT_CONFIG["default_timeframe"])
    config["default_timeframe"] = DEFAULT_CONFIG["default_timeframe"]
    changed = True

  precision = config.get("price_precision")
  if (isinstance(precision, bool) or not isinstance(precision, int)
      or not 0 <= precision <= MAX_PRICE_PRECISION):
    log.warning("Invalid price precision %r, using %d",
      precision, DEFAULT_CONFIG["price_precision"])
    config["price_precision"] = DEFAULT_CONFIG["price_precision"]
    changed = True

  if version < CONFIG_VERSION:
    config["config_version"] = CONFIG_VERSION
    changed = True
    log.info("Config migrated from v%d to v%d", version, CONFIG_VERSION)

  return changed


def load_config() -> dict[str, Any]:
  if not os.path.exists(CONFIG_PATH):
    log.info("No config found, creating defaults at %s", CONFIG_PATH)
    save_config(DEFAULT_CONFIG)
    return json.loads(json.dumps(DEFAULT_CONFIG))
  try:
    with open(CONFIG_PATH) as f:
      config = json.load(f)
  except json.JSONDecodeError as e:
    log.error("Corrupted config file, resetting to defaults: %s", e)
    save_config(DEFAULT_CONFIG)
    return json.loads(json.dumps(DEFAULT_CONFIG))
  except OSError as e:
    log.error("Cannot read config file: %s", e)
    return json.loads(json.dumps(DEFAULT_CONFIG))

  if migrate_config(config):
    save_config(config)
  return config


def save_config(config: dict[str, Any]) -> None:
  try:
    with open(CONFIG_PATH, "w") as f:
      json.dump(config, f, indent=2)
      f.write("\n")
  except OSError as e:
    log.error("Failed to save config: %s", e)


def format_readout(point: DomainPoint | None, precision: int = 2) -> str:
  if point is None:
    return ""
  stamp = datetime.fromtimestamp(point.time).strftime("%Y-%m-%d %H:%M")
  return "%s   %s" % (stamp, format_price(point.price, precision))


class ChartWindow(QWidget):
  """Chart with tool palette, asset and timeframe selectors, and live price."""

  def __init__(self, config: dict[str, Any], parent: QWidget | None = None):
    super().__init__(parent)
    self.config = config
    self.setWindowTitle("PriceMarks")
    self.resize(1100, 680)
    self.setStyleSheet("ChartWindow { background: #0B0F19; } QLabel { color: #ccc; }")

    self._precision = int(config.get("price_precision", 2))
    color = QColor(config.get("drawing_color", DEFAULT_CONFIG["drawing_color"]))
    if not color.isValid():
      color = QColor(DEFAULT_CONFIG["drawing_color"])

    # Raises ToolConfigError on clashing shortcuts
    self.registry = ToolRegistry.from_config(config.get("shortcuts"))
    self.machine = DrawingStateMachine(
      self.registry,
      overlay_renderer=OverlayRenderer(self._precision),
      color=color,
      text_provider=self._ask_note_text,
      parent=self,
    )
    self.input = InputController(self.machine, self.registry, parent=self)
    self.coordinator = LifecycleCoordinator(
      self.machine, self.input, self._create_chart, key_target=self,
    )

    asset = config.get("default_asset")
    if asset not in DEFAULT_ASSETS:
      asset = next(iter(DEFAULT_ASSETS))
    timeframe = config.get("default_timeframe", "1D")
    if timeframe not in TIMEFRAMES:
      timeframe = "1D"

    layout = QVBoxLayout(self)
    layout.setContentsMargins(8, 8, 8, 8)

    # Header: asset, live price, cursor readout
    header = QHBoxLayout()
    self.asset_combo = QComboBox()
    self.asset_combo.addItems(list(DEFAULT_ASSETS))
    self.asset_combo.setCurrentText(asset)
    self.asset_combo.setFocusPolicy(Qt.FocusPolicy.NoFocus)
    header.addWidget(self.asset_combo)
    self.price_label = QLabel("")
    self.price_label.setStyleSheet("QLabel { color: #fff; font-size: 16px; font-weight: bold; }")
    header.addWidget(self.price_label)
    header.addStretch()
    self.readout_label = QLabel("")
    self.readout_label.setStyleSheet("QLabel { color: #F7B731; font-family: monospace; }")
    header.addWidget(self.readout_label)
    layout.addLayout(header)

    self.toolbar = ChartToolbar(self.registry, color, self)
    layout.addWidget(self.toolbar, 0, Qt.AlignmentFlag.AlignLeft)

    self._chart_container = QWidget(self)
    self._chart_layout = QVBoxLayout(self._chart_container)
    self._chart_layout.setContentsMargins(0, 0, 0, 0)
    layout.addWidget(self._chart_container, 1)

    # Timeframe selector
    footer = QHBoxLayout()
    self._tf_group = QButtonGroup(self)
    self._tf_group.setExclusive(True)
    self._tf_buttons: dict[str, QPushButton] = {}
    for key, tf in TIMEFRAMES.items():
      btn = QPushButton(tf.label)
      btn.setCheckable(True)
      btn.setToolTip(tf.description)
      btn.setFocusPolicy(Qt.FocusPolicy.NoFocus)
      btn.setFixedWidth(44)
      btn.clicked.connect(lambda checked, k=key: self.set_timeframe(k))
      self._tf_group.addButton(btn)
      self._tf_buttons[key] = btn
      footer.addWidget(btn)
    self._tf_buttons[timeframe].setChecked(True)
    footer.addStretch()
    layout.addLayout(footer)

    self.feed = SimulatedPriceFeed(
      DEFAULT_ASSETS[asset], interval_ms=int(config.get("live_feed_interval_ms", 2000)),
      parent=self,
    )

    # Wiring
    self.toolbar.tool_changed.connect(self.machine.select_tool)
    self.toolbar.color_btn.color_changed.connect(self._on_color_changed)
    self.toolbar.delete_last_requested.connect(self.machine.delete_last)
    self.toolbar.clear_requested.connect(self.machine.clear_all)
    self.machine.tool_changed.connect(self.toolbar.set_active_tool_button)
    self.machine.drawing_added.connect(self._update_removal_buttons)
    self.machine.drawing_removed.connect(self._update_removal_buttons)
    self.input.cursor_moved.connect(self._update_readout)
    self.asset_combo.currentTextChanged.connect(self.set_asset)
    self.feed.price_updated.connect(self._on_tick)

    self.coordinator.attach(asset, timeframe)
    self._show_price(DEFAULT_ASSETS[asset])

  # -- Chart lifecycle --------------------------------------------------------

  def _create_chart(self, asset: str, timeframe: str) -> ChartView:
    chart = ChartView(self._chart_container)
    chart.set_candles(generate_candles(DEFAULT_ASSETS[asset], asset, timeframe))
    self._chart_layout.addWidget(chart)
    chart.setFocus()
    return chart

  def set_asset(self, asset: str) -> None:
    if asset == self.coordinator.asset or asset not in DEFAULT_ASSETS:
      return
    self.feed.reset(DEFAULT_ASSETS[asset])
    self.coordinator.replace(asset=asset)
    self._show_price(DEFAULT_ASSETS[asset])
    self.config["default_asset"] = asset
    save_config(self.config)

  def set_timeframe(self, timeframe: str) -> None:
    if timeframe == self.coordinator.timeframe or timeframe not in TIMEFRAMES:
      return
    self.coordinator.replace(timeframe=timeframe)
    self._tf_buttons[timeframe].setChecked(True)
    self.config["default_timeframe"] = timeframe
    save_config(self.config)

  def _on_tick(self, price: float, timestamp: int) -> None:
    self.coordinator.apply_tick(price, timestamp)
    self._show_price(price)

  # -- UI updates -------------------------------------------------------------

  def _show_price(self, price: float) -> None:
    self.price_label.setText(format_price(price, self._precision))

  def _update_readout(self, point: DomainPoint | None) -> None:
    self.readout_label.setText(format_readout(point, self._precision))

  def _update_removal_buttons(self, *_args: Any) -> None:
    self.toolbar.set_removal_enabled(len(self.machine.store) > 0)

  def _on_color_changed(self, color: QColor) -> None:
    self.machine.set_color(color)
    self.config["drawing_color"] = color.name()
    save_config(self.config)

  def _ask_note_text(self, point: DomainPoint) -> str | None:
    text, ok = QInputDialog.getText(
      self, "Text Note", "Note at %s:" % format_price(point.price, self._precision))
    return text if ok else None

  def showEvent(self, event) -> None:
    super().showEvent(event)
    if not self.feed.is_running():
      self.feed.start()

  def closeEvent(self, event) -> None:
    self.feed.stop()
    self.coordinator.teardown()
    super().closeEvent(event)


class PriceMarks:
  def __init__(self) -> None:
    self.config: dict[str, Any] = load_config()
    set_level(self.config.get("log_level", "INFO"))
    self.window: ChartWindow | None = None

  def run(self) -> None:
    self.app = QApplication(sys.argv)
    try:
      self.window = ChartWindow(self.config)
    except ToolConfigError as e:
      log.critical("Invalid tool configuration in %s: %s", CONFIG_PATH, e)
      sys.exit(1)
    self.window.show()
    log.info("PriceMarks running (asset=%s, timeframe=%s)",
      self.window.coordinator.asset, self.window.coordinator.timeframe)
    exit_code = self.app.exec()
    log.info("PriceMarks exiting")
    sys.exit(exit_code)


if __name__ == "__main__":
  PriceMarks().run()
