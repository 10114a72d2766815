import asyncio
import math

import pytest

from stackviz.MANAGERS.layout_engine import ArrowMarker, LayoutEngine
from stackviz.MODELS.graph_model import GraphModel
from stackviz.MODELS.settings import StackvizSettings


def assert_finite(positions):
    for p in positions.values():
        assert math.isfinite(p.x) and math.isfinite(p.y)


def distance(positions, a, b):
    return math.hypot(positions[a].x - positions[b].x, positions[a].y - positions[b].y)


@pytest.mark.parametrize("nodes,edges", [
    (["solo"], []),
    (["a", "b", "c"], [("a", "b"), ("b", "c"), ("c", "a")]),
    (["a", "b"], [("a", "a"), ("a", "b"), ("b", "a")]),
    (["a", "b", "c", "d"], [("a", "b")]),
    ([], []),
])
def test_positions_stay_finite(nodes, edges):
    graph = GraphModel.build(nodes, edges)
    engine = LayoutEngine()
    for _ in range(500):
        positions = engine.tick(graph)
    assert set(positions) == set(nodes)
    assert_finite(positions)


def test_coincident_nodes_are_separated():
    graph = GraphModel.build(["a", "b"], [("a", "b")])
    engine = LayoutEngine()
    engine.load(graph)
    for node in engine.nodes:
        node.x = node.y = 0.0
    positions = engine.tick(graph)
    assert_finite(positions)
    assert distance(positions, "a", "b") > 0


def test_simulation_cools_down():
    graph = GraphModel.build(["a", "b", "c", "d"], [("a", "b"), ("b", "c"), ("c", "a")])
    engine = LayoutEngine()
    for _ in range(20):
        engine.tick(graph)
    early = engine.energy()
    for _ in range(400):
        engine.tick(graph)
    assert engine.cooled
    assert engine.energy() < early


def test_spring_pulls_distant_nodes_together():
    settings = StackvizSettings(charge_strength=0)
    graph = GraphModel.build(["a", "b"], [("a", "b")])
    engine = LayoutEngine(settings)
    engine.load(graph)
    engine.nodes[0].x, engine.nodes[0].y = 0.0, 0.0
    engine.nodes[1].x, engine.nodes[1].y = 1000.0, 0.0
    positions = engine.tick(graph)
    assert distance(positions, "a", "b") < 1000


def test_spring_pushes_close_nodes_to_rest_length():
    settings = StackvizSettings(charge_strength=0)
    graph = GraphModel.build(["a", "b"], [("a", "b")])
    engine = LayoutEngine(settings)
    engine.load(graph)
    engine.nodes[0].x, engine.nodes[0].y = 0.0, 0.0
    engine.nodes[1].x, engine.nodes[1].y = 10.0, 0.0
    positions = engine.tick(graph)
    assert distance(positions, "a", "b") > 10


def test_nodes_repel():
    graph = GraphModel.build(["a", "b"])
    engine = LayoutEngine()
    engine.load(graph)
    engine.nodes[0].x, engine.nodes[0].y = 0.0, 0.0
    engine.nodes[1].x, engine.nodes[1].y = 10.0, 0.0
    positions = engine.tick(graph)
    assert distance(positions, "a", "b") > 10


def test_new_graph_reseeds():
    engine = LayoutEngine()
    first = GraphModel.build(["a", "b"], [("a", "b")])
    for _ in range(50):
        engine.tick(first)
    second = GraphModel.build(["x", "y", "z"])
    positions = engine.tick(second)
    assert set(positions) == {"x", "y", "z"}
    assert engine.graph is second
    assert engine.alpha > 0.9


def test_invalid_dt():
    graph = GraphModel.build(["a"])
    engine = LayoutEngine()
    for dt in (0, -1, float("nan"), float("inf")):
        with pytest.raises(ValueError):
            engine.tick(graph, dt)


def test_edge_paths_follow_positions():
    graph = GraphModel.build(["web", "db"], [("web", "db")])
    engine = LayoutEngine()
    positions = engine.tick(graph)
    (path,) = engine.edge_paths()
    assert (path.x1, path.y1) == tuple(positions["web"])
    assert (path.x2, path.y2) == tuple(positions["db"])


def test_clock_driven_ticks_and_teardown(clock):
    graph = GraphModel.build(["web", "db"], [("web", "db")])
    received = []

    async def scenario():
        engine = LayoutEngine(sleep=clock.sleep)
        engine.on_tick(received.append)
        engine.start(graph)
        assert engine.markers == {"end": ArrowMarker()}
        assert engine.running

        await clock.wait_armed()
        clock.fire()
        await clock.wait_armed()
        clock.fire()
        await clock.wait_armed()
        assert len(received) == 2

        engine.stop()
        assert not engine.running
        assert engine.markers == {}
        assert clock.fire() is False
        await asyncio.sleep(0)
        assert len(received) == 2

    asyncio.run(scenario())
    assert set(received[-1]) == {"web", "db"}


def test_clock_stops_when_cooled():
    settings = StackvizSettings(tick_interval=0.0001, alpha_ticks=5)
    graph = GraphModel.build(["a", "b"], [("a", "b")])

    async def scenario():
        engine = LayoutEngine(settings)
        ticks = []
        engine.on_tick(ticks.append)
        engine.start(graph)
        for _ in range(1000):
            if not engine.running:
                break
            await asyncio.sleep(0.001)
        return engine, ticks

    engine, ticks = asyncio.run(scenario())
    assert engine.cooled
    assert not engine.running
    assert 5 <= len(ticks) <= 6


def test_unsubscribed_callback_not_called(clock):
    graph = GraphModel.build(["a"])
    received = []

    async def scenario():
        engine = LayoutEngine(sleep=clock.sleep)
        unsubscribe = engine.on_tick(received.append)
        engine.start(graph)
        unsubscribe()
        await clock.wait_armed()
        clock.fire()
        await clock.wait_armed()
        engine.stop()

    asyncio.run(scenario())
    assert received == []


def test_start_without_graph():
    async def scenario():
        LayoutEngine().start()

    with pytest.raises(RuntimeError):
        asyncio.run(scenario())


def test_clear_drops_graph_and_nodes(clock):
    graph = GraphModel.build(["a", "b"], [("a", "b")])

    async def scenario():
        engine = LayoutEngine(sleep=clock.sleep)
        engine.start(graph)
        await clock.wait_armed()
        engine.clear()
        await asyncio.sleep(0)
        return engine

    engine = asyncio.run(scenario())
    assert engine.graph is None
    assert engine.nodes == []
    assert engine.positions() == {}
    assert engine.edge_paths() == []
    assert not engine.running
    assert not engine.markers
