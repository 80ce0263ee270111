"""Data model for finalized chart drawings and the store that owns them."""

from __future__ import annotations

import dataclasses
import itertools
from typing import Any, Iterator

from PySide6.QtGui import QColor

from tools import ToolId


# -- Data model ---------------------------------------------------------------

@dataclasses.dataclass(frozen=True)
class DomainPoint:
  time: int  # epoch seconds
  price: float


@dataclasses.dataclass
class OverlayHandle:
  kind: str  # "price_line", "series" or "text"
  native: Any


@dataclasses.dataclass
class ConstructionState:
  tool: ToolId
  anchor: DomainPoint


@dataclasses.dataclass
class Drawing:
  id: str
  type: ToolId
  color: QColor
  points: list[DomainPoint]
  text: str | None = None
  overlay_handles: list[OverlayHandle] = dataclasses.field(default_factory=list)


_ids = itertools.count(1)


def next_drawing_id() -> str:
  """Unique, creation-ordered drawing id."""
  return "drawing-%d" % next(_ids)


# -- Store --------------------------------------------------------------------

class DrawingStore:
  """Ordered collection of finalized drawings, oldest first.

  The store only tracks drawings; releasing their renderer handles is the
  caller's job (see overlays.release_drawing).
  """

  def __init__(self) -> None:
    self._drawings: list[Drawing] = []

  def append(self, drawing: Drawing) -> None:
    self._drawings.append(drawing)

  def get(self, drawing_id: str) -> Drawing | None:
    for d in self._drawings:
      if d.id == drawing_id:
        return d
    return None

  def remove(self, drawing_id: str) -> Drawing | None:
    for i, d in enumerate(self._drawings):
      if d.id == drawing_id:
        return self._drawings.pop(i)
    return None

  def pop_last(self) -> Drawing | None:
    if not self._drawings:
      return None
    return self._drawings.pop()

  def clear(self) -> list[Drawing]:
    """Remove everything and return what was removed, oldest first."""
    removed = self._drawings
    self._drawings = []
    return removed

  @property
  def last(self) -> Drawing | None:
    return self._drawings[-1] if self._drawings else None

  def __len__(self) -> int:
    return len(self._drawings)

  def __iter__(self) -> Iterator[Drawing]:
    return iter(list(self._drawings))
