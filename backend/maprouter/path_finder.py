from __future__ import annotations

import heapq
import time
from dataclasses import dataclass
from typing import Any

from .errors import SearchDeadlineExceeded
from .spatial_graph import SpatialGraph


@dataclass(frozen=True)
class PathResult:
    nodes: tuple[int, ...]
    cost: float


class PathNotFoundError(ValueError):
    pass


def astar_shortest_path(
    graph: SpatialGraph,
    *,
    start: int,
    goal: int,
    deadline_monotonic_s: float | None = None,
    explored_counter: list[int] | None = None,
) -> PathResult:
    """A* between two vertex ids, straight-line distance as the heuristic.

    All per-query scores live in local maps. The heap uses lazy invalidation:
    a vertex is re-pushed whenever its g-score improves and stale entries are
    dropped when popped, so only the best score for a vertex is ever expanded.
    """
    if start == goal:
        graph.vertex(start)
        return PathResult(nodes=(start,), cost=0.0)
    g_score: dict[int, float] = {start: 0.0}
    previous: dict[int, int] = {}
    finalized: set[int] = set()
    seq = 0
    heap: list[tuple[float, int, int, float]] = [(graph.distance(start, goal), seq, start, 0.0)]
    while heap:
        if deadline_monotonic_s is not None and time.monotonic() >= float(deadline_monotonic_s):
            raise SearchDeadlineExceeded("search deadline exceeded")
        _f, _seq, node, g = heapq.heappop(heap)
        if node in finalized or g > g_score[node]:
            continue
        if explored_counter is not None:
            explored_counter[0] += 1
        if node == goal:
            return PathResult(nodes=_reconstruct(previous, goal), cost=g)
        finalized.add(node)
        for edge in graph.edges(node):
            nxt = edge.target
            if nxt in finalized:
                continue
            tentative = g + edge.length
            prev_best = g_score.get(nxt)
            if prev_best is not None and tentative >= prev_best:
                continue
            g_score[nxt] = tentative
            previous[nxt] = node
            seq += 1
            heapq.heappush(heap, (tentative + graph.distance(nxt, goal), seq, nxt, tentative))
    raise PathNotFoundError("no path")


def _reconstruct(previous: dict[int, int], goal: int) -> tuple[int, ...]:
    out = [goal]
    while out[-1] in previous:
        out.append(previous[out[-1]])
    out.reverse()
    return tuple(out)


def route_with_stats(
    graph: SpatialGraph,
    *,
    start_lon: float,
    start_lat: float,
    dest_lon: float,
    dest_lat: float,
    deadline_monotonic_s: float | None = None,
    max_snap_distance: float | None = None,
) -> tuple[PathResult | None, dict[str, Any]]:
    start_id = graph.nearest(start_lon, start_lat, max_distance=max_snap_distance)
    goal_id = graph.nearest(dest_lon, dest_lat, max_distance=max_snap_distance)
    stats: dict[str, Any] = {
        "start_id": start_id,
        "goal_id": goal_id,
        "explored_states": 0,
        "termination_reason": "goal_reached",
    }
    if start_id is None or goal_id is None:
        stats["termination_reason"] = "endpoint_out_of_range"
        return None, stats
    explored_counter = [0]
    try:
        result = astar_shortest_path(
            graph,
            start=start_id,
            goal=goal_id,
            deadline_monotonic_s=deadline_monotonic_s,
            explored_counter=explored_counter,
        )
    except PathNotFoundError:
        stats["explored_states"] = explored_counter[0]
        stats["termination_reason"] = "no_path"
        return None, stats
    stats["explored_states"] = explored_counter[0]
    return result, stats


def shortest_path(
    graph: SpatialGraph,
    start_lon: float,
    start_lat: float,
    dest_lon: float,
    dest_lat: float,
    *,
    deadline_monotonic_s: float | None = None,
    max_snap_distance: float | None = None,
) -> list[int]:
    """Vertex ids from the vertex nearest the start to the one nearest the
    destination, both included. Empty when the two are not connected."""
    result, _stats = route_with_stats(
        graph,
        start_lon=start_lon,
        start_lat=start_lat,
        dest_lon=dest_lon,
        dest_lat=dest_lat,
        deadline_monotonic_s=deadline_monotonic_s,
        max_snap_distance=max_snap_distance,
    )
    if result is None:
        return []
    return list(result.nodes)


def path_cost(graph: SpatialGraph, nodes: list[int] | tuple[int, ...]) -> float:
    total = 0.0
    for idx in range(1, len(nodes)):
        total += graph.distance(nodes[idx - 1], nodes[idx])
    return total


def path_coordinates(graph: SpatialGraph, nodes: list[int] | tuple[int, ...]) -> list[tuple[float, float]]:
    return [(graph.lon(node), graph.lat(node)) for node in nodes]
