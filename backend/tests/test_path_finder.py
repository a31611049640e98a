from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from maprouter.errors import SearchDeadlineExceeded, VertexNotFoundError
from maprouter.path_finder import (
    PathNotFoundError,
    PathResult,
    astar_shortest_path,
    path_coordinates,
    path_cost,
    route_with_stats,
    shortest_path,
)
from maprouter.spatial_graph import SpatialGraph, Vertex


def _graph(points: dict[int, tuple[float, float]], edges: list[tuple[int, int]]) -> SpatialGraph:
    graph = SpatialGraph(grid_bucket_deg=0.5)
    for vid, (lon, lat) in points.items():
        graph.add_node(Vertex(id=vid, lon=lon, lat=lat))
    for a, b in edges:
        graph.connect(a, b)
    graph.finalize()
    return graph


def _line() -> SpatialGraph:
    return _graph({1: (0.0, 0.0), 2: (1.0, 0.0), 3: (2.0, 0.0)}, [(1, 2), (2, 3)])


def test_route_along_a_line() -> None:
    graph = _line()

    path = shortest_path(graph, 0.05, 0.01, 1.95, -0.02)

    assert path == [1, 2, 3]
    assert path_cost(graph, path) == pytest.approx(2.0)
    assert path_coordinates(graph, path) == [(0.0, 0.0), (1.0, 0.0), (2.0, 0.0)]


def test_route_with_stats_reports_cost_and_termination() -> None:
    graph = _line()
    result, stats = route_with_stats(graph, start_lon=0.0, start_lat=0.0, dest_lon=2.0, dest_lat=0.0)

    assert isinstance(result, PathResult)
    assert result.nodes == (1, 2, 3)
    assert result.cost == pytest.approx(path_cost(graph, result.nodes))
    assert stats["start_id"] == 1
    assert stats["goal_id"] == 3
    assert stats["termination_reason"] == "goal_reached"
    assert stats["explored_states"] >= 3


def test_same_nearest_vertex_gives_single_vertex_path() -> None:
    graph = _line()
    assert shortest_path(graph, 1.01, 0.0, 0.99, 0.02) == [2]


def test_disconnected_components_give_empty_path() -> None:
    graph = _graph(
        {1: (0.0, 0.0), 2: (1.0, 0.0), 3: (5.0, 0.0), 4: (6.0, 0.0)},
        [(1, 2), (3, 4)],
    )

    assert shortest_path(graph, 0.0, 0.0, 6.0, 0.0) == []
    result, stats = route_with_stats(graph, start_lon=0.0, start_lat=0.0, dest_lon=6.0, dest_lat=0.0)
    assert result is None
    assert stats["termination_reason"] == "no_path"
    with pytest.raises(PathNotFoundError):
        astar_shortest_path(graph, start=1, goal=4)


def test_astar_prefers_shorter_detour_over_fewer_hops() -> None:
    # 1-2-4 is two short hops; 1-3-4 dips far south.
    graph = _graph(
        {1: (0.0, 0.0), 2: (1.0, 0.1), 3: (1.0, -2.0), 4: (2.0, 0.0)},
        [(1, 3), (3, 4), (1, 2), (2, 4)],
    )

    result = astar_shortest_path(graph, start=1, goal=4)

    assert result.nodes == (1, 2, 4)
    assert result.cost == pytest.approx(2 * (1.0 + 0.01) ** 0.5)


def test_astar_improves_a_vertex_first_reached_by_a_worse_route() -> None:
    # 4 is first pushed via 2 (expanded earlier), then improved via 3.
    graph = _graph(
        {1: (0.0, 0.0), 2: (1.0, 0.0), 3: (1.0, 0.9), 4: (2.0, 1.0), 5: (3.0, 1.0)},
        [(1, 2), (2, 4), (1, 3), (3, 4), (4, 5)],
    )

    result = astar_shortest_path(graph, start=1, goal=5)

    assert result.nodes == (1, 3, 4, 5)
    assert result.cost == pytest.approx(1.81 ** 0.5 + 1.01 ** 0.5 + 1.0)


def test_equal_cost_paths_are_resolved_deterministically() -> None:
    graph = _graph(
        {1: (0.0, 0.0), 2: (1.0, 1.0), 3: (1.0, -1.0), 4: (2.0, 0.0)},
        [(1, 2), (1, 3), (2, 4), (3, 4)],
    )

    first = astar_shortest_path(graph, start=1, goal=4)
    for _ in range(10):
        assert astar_shortest_path(graph, start=1, goal=4) == first


def test_expired_deadline_raises() -> None:
    graph = _line()
    with pytest.raises(SearchDeadlineExceeded):
        astar_shortest_path(graph, start=1, goal=3, deadline_monotonic_s=time.monotonic() - 1.0)
    with pytest.raises(TimeoutError):
        shortest_path(graph, 0.0, 0.0, 2.0, 0.0, deadline_monotonic_s=time.monotonic() - 1.0)


def test_unknown_vertex_id_fails_fast() -> None:
    with pytest.raises(VertexNotFoundError):
        astar_shortest_path(_line(), start=1, goal=404)
    with pytest.raises(VertexNotFoundError):
        astar_shortest_path(_line(), start=404, goal=404)


def test_snap_radius_excludes_far_endpoints() -> None:
    graph = _line()
    result, stats = route_with_stats(
        graph,
        start_lon=0.0,
        start_lat=0.0,
        dest_lon=2.0,
        dest_lat=10.0,
        max_snap_distance=1.0,
    )
    assert result is None
    assert stats["termination_reason"] == "endpoint_out_of_range"
    assert shortest_path(graph, 0.0, 0.0, 2.0, 10.0, max_snap_distance=1.0) == []


def test_concurrent_searches_share_graph_safely() -> None:
    points = {i: (float(i % 10), float(i // 10)) for i in range(100)}
    edges = []
    for i in range(100):
        if i % 10 < 9:
            edges.append((i, i + 1))
        if i < 90:
            edges.append((i, i + 10))
    graph = _graph(points, edges)
    queries = [(float(a % 10), float(a // 10), float(b % 10), float(b // 10)) for a, b in [(0, 99), (9, 90), (45, 54), (0, 9)]]

    expected = [shortest_path(graph, *q) for q in queries]
    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda q: shortest_path(graph, *q), queries * 25))

    assert results == expected * 25
    for q, path in zip(queries, expected):
        # Manhattan lattice with unit edges: cost equals grid distance.
        assert path_cost(graph, path) == pytest.approx(abs(q[0] - q[2]) + abs(q[1] - q[3]))
