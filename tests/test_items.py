from __future__ import annotations

from pkgfeed.models.item import Item, ItemKind, MarkerItem, Tombstone
from pkgfeed.models.package import PackageRef
from pkgfeed.state.classifier import build_item, classify

_PKG = PackageRef(name="acme", version="1.0")


def test_all_marker_fields_classify_as_marker() -> None:
    assert classify({"g": 1, "o": 2, "t": 3}) is ItemKind.MARKER
    assert classify({"g": "u4pruyd", "o": 0, "t": 0, "label": "x"}) is ItemKind.MARKER


def test_missing_marker_field_classifies_as_generic() -> None:
    assert classify({"x": 1}) is ItemKind.GENERIC
    assert classify({"g": 1, "o": 2}) is ItemKind.GENERIC
    assert classify({}) is ItemKind.GENERIC


def test_null_marker_field_classifies_as_generic() -> None:
    assert classify({"g": 1, "o": None, "t": 3}) is ItemKind.GENERIC


def test_build_item_returns_marker_item() -> None:
    item = build_item("m1", _PKG, {"g": "u4pruyd", "o": 7, "t": 1700000000})

    assert isinstance(item, MarkerItem)
    assert item.kind is ItemKind.MARKER
    assert item.geo == "u4pruyd"
    assert item.ordinal == 7
    assert item.timestamp == 1700000000
    assert item.active is True


def test_build_item_returns_generic_item() -> None:
    item = build_item("i1", _PKG, {"x": 1})

    assert type(item) is Item
    assert item.kind is ItemKind.GENERIC
    assert item.data == {"x": 1}


def test_build_item_copies_fields() -> None:
    fields = {"x": 1}
    item = build_item("i1", _PKG, fields)
    fields["x"] = 2

    assert item.data == {"x": 1}


def test_refresh_merges_and_removes_fields() -> None:
    item = Item(id="i1", package=_PKG, data={"a": 1, "b": 2})

    item.refresh({"a": 10, "c": 3, "b": None})

    assert item.data == {"a": 10, "c": 3}


def test_tombstone_keeps_last_known_item() -> None:
    item = Item(id="i1", package=_PKG, data={"a": 1})

    tombstone = Tombstone.of(item)

    assert tombstone.id == "i1"
    assert tombstone.package == _PKG
    assert tombstone.item is item
    assert item.active is False
    assert tombstone.removed_at.tzinfo is not None
