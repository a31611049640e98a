from __future__ import annotations

import math
import random

import pytest

from maprouter.path_finder import PathNotFoundError, astar_shortest_path, path_cost, shortest_path
from maprouter.spatial_graph import SpatialGraph, Vertex, euclidean


def _random_graph(rng: random.Random, *, n: int, m: int, bucket: float) -> SpatialGraph:
    graph = SpatialGraph(grid_bucket_deg=bucket)
    for vid in range(n):
        graph.add_node(Vertex(id=vid, lon=round(rng.uniform(-1.0, 1.0), 6), lat=round(rng.uniform(-1.0, 1.0), 6)))
    for _ in range(m):
        a, b = rng.randrange(n), rng.randrange(n)
        if a != b:
            graph.connect(a, b)
    graph.finalize()
    return graph


def _all_pairs(graph: SpatialGraph) -> dict[tuple[int, int], float]:
    ids = sorted(graph.vertices())
    dist = {(a, b): (0.0 if a == b else math.inf) for a in ids for b in ids}
    for a in ids:
        for edge in graph.edges(a):
            dist[(a, edge.target)] = min(dist[(a, edge.target)], edge.length)
    for k in ids:
        for i in ids:
            dik = dist[(i, k)]
            if dik == math.inf:
                continue
            for j in ids:
                via = dik + dist[(k, j)]
                if via < dist[(i, j)]:
                    dist[(i, j)] = via
    return dist


def test_astar_matches_exhaustive_shortest_distances() -> None:
    rng = random.Random(20261019)

    for _ in range(12):
        graph = _random_graph(rng, n=18, m=26, bucket=0.25)
        dist = _all_pairs(graph)
        ids = sorted(graph.vertices())
        for _ in range(20):
            a, b = rng.choice(ids), rng.choice(ids)
            if dist[(a, b)] == math.inf:
                with pytest.raises(PathNotFoundError):
                    astar_shortest_path(graph, start=a, goal=b)
                continue
            result = astar_shortest_path(graph, start=a, goal=b)
            assert result.nodes[0] == a
            assert result.nodes[-1] == b
            assert result.cost == pytest.approx(dist[(a, b)])
            assert path_cost(graph, result.nodes) == pytest.approx(result.cost)
            for u, v in zip(result.nodes, result.nodes[1:]):
                assert v in graph.adjacent(u)


def test_indexed_nearest_matches_brute_force() -> None:
    rng = random.Random(7)

    for bucket in (0.05, 0.3, 2.0):
        graph = _random_graph(rng, n=60, m=90, bucket=bucket)
        ids = sorted(graph.vertices())
        for _ in range(150):
            lon = rng.uniform(-3.0, 3.0)
            lat = rng.uniform(-3.0, 3.0)
            best = min(ids, key=lambda vid: (euclidean(graph.lon(vid), graph.lat(vid), lon, lat), vid))
            assert graph.nearest(lon, lat) == best


def test_routes_are_symmetric_in_cost() -> None:
    rng = random.Random(99)
    graph = _random_graph(rng, n=40, m=80, bucket=0.2)
    ids = sorted(graph.vertices())

    for _ in range(40):
        a, b = rng.choice(ids), rng.choice(ids)
        forward = shortest_path(graph, graph.lon(a), graph.lat(a), graph.lon(b), graph.lat(b))
        backward = shortest_path(graph, graph.lon(b), graph.lat(b), graph.lon(a), graph.lat(a))
        assert bool(forward) == bool(backward)
        if forward:
            assert path_cost(graph, forward) == pytest.approx(path_cost(graph, backward))
