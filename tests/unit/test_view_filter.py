from stackviz.MANAGERS.layout_engine import LayoutEngine
from stackviz.MANAGERS.view_filter import ViewFilter
from stackviz.MODELS.graph_model import EdgeKind, GraphModel

import pytest


@pytest.fixture
def graph():
    return GraphModel.build(
        ["web", "api", "db", "cache"],
        [("web", "api"), ("api", "db"), ("api", "cache", "links")],
    )


def test_default_view_shows_depends_on(graph):
    view = ViewFilter()
    assert view.visible_kinds == {EdgeKind.DEPENDS_ON}
    assert [(e.source, e.target) for e in view.visible_edges(graph)] == [("web", "api"), ("api", "db")]
    assert view.markers_visible


def test_set_view_modes(graph):
    view = ViewFilter()
    view.set_view("links")
    assert view.is_visible(EdgeKind.LINKS)
    assert not view.is_visible("depends_on")

    view.set_view([EdgeKind.LINKS, "depends_on"])
    assert len(view.visible_edges(graph)) == 3

    view.set_view(None)
    assert view.visible_edges(graph) == []
    assert not view.markers_visible


def test_unknown_kind_rejected():
    view = ViewFilter()
    with pytest.raises(ValueError):
        view.set_view("volumes")
    assert view.visible_kinds == {EdgeKind.DEPENDS_ON}


def test_listeners_notified_on_change_only():
    view = ViewFilter()
    changes = []
    view.on_change(changes.append)
    view.set_view(EdgeKind.DEPENDS_ON)
    view.set_view(None)
    assert changes == [frozenset()]


def test_toggling_does_not_change_layout(graph):
    plain = LayoutEngine()
    toggled = LayoutEngine()
    view = ViewFilter()
    for i in range(100):
        if i % 10 == 0:
            view.set_view(None if i % 20 == 0 else EdgeKind.DEPENDS_ON)
        expected = plain.tick(graph)
        actual = toggled.tick(graph)
        assert actual == expected
