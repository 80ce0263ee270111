"""Tests for the drawing data model and store."""

from PySide6.QtGui import QColor

from drawings import DomainPoint, Drawing, DrawingStore, next_drawing_id
from tools import ToolId


def make_drawing(tool=ToolId.HORIZONTAL_LINE, price=100.0):
  return Drawing(
    id=next_drawing_id(), type=tool, color=QColor(255, 0, 0),
    points=[DomainPoint(10, price)],
  )


class TestDataModel:
  def test_domain_point_is_immutable_value(self):
    assert DomainPoint(5, 1.5) == DomainPoint(5, 1.5)
    assert hash(DomainPoint(5, 1.5)) == hash(DomainPoint(5, 1.5))

  def test_drawing_starts_without_handles(self):
    d = make_drawing()
    assert d.overlay_handles == []
    assert d.text is None

  def test_ids_are_unique_and_ordered(self):
    a = next_drawing_id()
    b = next_drawing_id()
    assert a != b
    assert int(b.split("-")[1]) > int(a.split("-")[1])


class TestDrawingStore:
  def test_append_keeps_order(self):
    store = DrawingStore()
    a, b = make_drawing(), make_drawing()
    store.append(a)
    store.append(b)
    assert list(store) == [a, b]
    assert store.last is b
    assert len(store) == 2

  def test_remove_by_id(self):
    store = DrawingStore()
    a, b = make_drawing(), make_drawing()
    store.append(a)
    store.append(b)
    assert store.remove(a.id) is a
    assert list(store) == [b]

  def test_remove_unknown_id_returns_none(self):
    store = DrawingStore()
    store.append(make_drawing())
    assert store.remove("drawing-0") is None
    assert len(store) == 1

  def test_remove_matches_id_not_contents(self):
    store = DrawingStore()
    a, b = make_drawing(price=1.0), make_drawing(price=1.0)
    store.append(a)
    store.append(b)
    assert store.remove(b.id) is b
    assert store.last is a

  def test_pop_last_is_lifo(self):
    store = DrawingStore()
    a, b = make_drawing(), make_drawing()
    store.append(a)
    store.append(b)
    assert store.pop_last() is b
    assert store.pop_last() is a
    assert store.pop_last() is None

  def test_clear_returns_removed(self):
    store = DrawingStore()
    a, b = make_drawing(), make_drawing()
    store.append(a)
    store.append(b)
    assert store.clear() == [a, b]
    assert len(store) == 0
    assert store.last is None

  def test_iteration_is_a_snapshot(self):
    store = DrawingStore()
    store.append(make_drawing())
    for d in store:
      store.remove(d.id)
    assert len(store) == 0

  def test_get(self):
    store = DrawingStore()
    a = make_drawing()
    store.append(a)
    assert store.get(a.id) is a
    assert store.get("missing") is None
