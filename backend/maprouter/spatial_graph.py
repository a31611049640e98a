from __future__ import annotations

import math
import re
from collections.abc import Iterator, KeysView
from dataclasses import dataclass, replace
from typing import Any

from .errors import GraphDataError, GraphFinalizedError, VertexNotFoundError
from .logging_utils import log_event
from .settings import settings


@dataclass(frozen=True)
class Vertex:
    id: int
    lon: float
    lat: float
    name: str | None = None


@dataclass(frozen=True)
class Edge:
    """Directed half of a road segment; `connect` always creates two."""

    target: int
    length: float


def euclidean(lon1: float, lat1: float, lon2: float, lat2: float) -> float:
    # Plain degree-space distance, not great-circle.
    return math.hypot(lon1 - lon2, lat1 - lat2)


def clean_string(s: str) -> str:
    return re.sub(r"[^a-zA-Z ]", "", s).lower()


def _grid_key(lon: float, lat: float, bucket_deg: float) -> tuple[int, int]:
    return (int(math.floor(lon / bucket_deg)), int(math.floor(lat / bucket_deg)))


def _ring_cells(
    cx: int,
    cy: int,
    radius: int,
    bounds: tuple[int, int, int, int],
) -> Iterator[tuple[int, int]]:
    min_x, max_x, min_y, max_y = bounds
    if radius == 0:
        if min_x <= cx <= max_x and min_y <= cy <= max_y:
            yield (cx, cy)
        return
    x_lo = max(min_x, cx - radius)
    x_hi = min(max_x, cx + radius)
    for y in (cy - radius, cy + radius):
        if min_y <= y <= max_y:
            for x in range(x_lo, x_hi + 1):
                yield (x, y)
    y_lo = max(min_y, cy - radius + 1)
    y_hi = min(max_y, cy + radius - 1)
    for x in (cx - radius, cx + radius):
        if min_x <= x <= max_x:
            for y in range(y_lo, y_hi + 1):
                yield (x, y)


class SpatialGraph:
    """Road graph keyed by OSM vertex id.

    Vertices and their adjacency lists live in two id-keyed maps; edges hold
    the neighbour id rather than a reference, so there are no object cycles.
    The graph is mutable until `finalize()` and read-only afterwards, which
    makes it safe to share between concurrent queries.
    """

    def __init__(self, *, grid_bucket_deg: float | None = None) -> None:
        bucket = settings.graph_grid_bucket_deg if grid_bucket_deg is None else grid_bucket_deg
        if not (bucket > 0.0 and math.isfinite(bucket)):
            raise ValueError("grid_bucket_deg must be a positive finite number")
        self._grid_bucket_deg = float(bucket)
        self._vertices: dict[int, Vertex] = {}
        self._adjacency: dict[int, list[Edge]] = {}
        self._grid_index: dict[tuple[int, int], tuple[int, ...]] = {}
        self._grid_bounds: tuple[int, int, int, int] | None = None
        self._finalized = False

    # -- construction ---------------------------------------------------

    def _require_mutable(self) -> None:
        if self._finalized:
            raise GraphFinalizedError("graph is finalized and read-only")

    def _vertex(self, vertex_id: int) -> Vertex:
        try:
            return self._vertices[vertex_id]
        except KeyError:
            raise VertexNotFoundError(vertex_id) from None

    def add_node(self, vertex: Vertex) -> None:
        # Last write wins for the vertex record. Existing edges are kept and
        # their lengths follow the new coordinates.
        self._require_mutable()
        previous = self._vertices.get(vertex.id)
        self._vertices[vertex.id] = vertex
        self._adjacency.setdefault(vertex.id, [])
        if previous is not None and (previous.lon, previous.lat) != (vertex.lon, vertex.lat):
            self._remeasure(vertex.id)

    def _remeasure(self, vertex_id: int) -> None:
        for nbr in {edge.target for edge in self._adjacency[vertex_id]}:
            length = self.distance(vertex_id, nbr)
            self._adjacency[vertex_id] = [
                Edge(target=e.target, length=length) if e.target == nbr else e
                for e in self._adjacency[vertex_id]
            ]
            self._adjacency[nbr] = [
                Edge(target=e.target, length=length) if e.target == vertex_id else e
                for e in self._adjacency[nbr]
            ]

    def connect(self, a: int, b: int) -> float:
        self._require_mutable()
        va = self._vertex(a)
        vb = self._vertex(b)
        length = euclidean(va.lon, va.lat, vb.lon, vb.lat)
        self._adjacency[a].append(Edge(target=b, length=length))
        self._adjacency[b].append(Edge(target=a, length=length))
        return length

    def set_name(self, vertex_id: int, name: str | None) -> None:
        self._require_mutable()
        self._vertices[vertex_id] = replace(self._vertex(vertex_id), name=name)

    def cleanup(self) -> int:
        """Drop every vertex with no edges. Returns how many were removed."""
        isolated = [vid for vid, edges in self._adjacency.items() if not edges]
        if isolated:
            self._require_mutable()
        for vid in isolated:
            del self._vertices[vid]
            del self._adjacency[vid]
        if isolated:
            log_event("graph_cleanup", removed=len(isolated), remaining=len(self._vertices))
        return len(isolated)

    def finalize(self) -> None:
        if self._finalized:
            return
        self.cleanup()
        grid_mut: dict[tuple[int, int], list[int]] = {}
        for vid, vertex in self._vertices.items():
            grid_mut.setdefault(_grid_key(vertex.lon, vertex.lat, self._grid_bucket_deg), []).append(vid)
        self._grid_index = {key: tuple(ids) for key, ids in grid_mut.items()}
        if self._grid_index:
            xs = [key[0] for key in self._grid_index]
            ys = [key[1] for key in self._grid_index]
            self._grid_bounds = (min(xs), max(xs), min(ys), max(ys))
        self._finalized = True

    @property
    def finalized(self) -> bool:
        return self._finalized

    # -- queries --------------------------------------------------------

    def __len__(self) -> int:
        return len(self._vertices)

    def __contains__(self, vertex_id: object) -> bool:
        return vertex_id in self._vertices

    def vertices(self) -> KeysView[int]:
        return self._vertices.keys()

    def vertex(self, vertex_id: int) -> Vertex:
        return self._vertex(vertex_id)

    def edges(self, vertex_id: int) -> tuple[Edge, ...]:
        self._vertex(vertex_id)
        return tuple(self._adjacency[vertex_id])

    def adjacent(self, vertex_id: int) -> set[int]:
        self._vertex(vertex_id)
        return {edge.target for edge in self._adjacency[vertex_id]}

    def distance(self, a: int, b: int) -> float:
        va = self._vertex(a)
        vb = self._vertex(b)
        return euclidean(va.lon, va.lat, vb.lon, vb.lat)

    def lon(self, vertex_id: int) -> float:
        return self._vertex(vertex_id).lon

    def lat(self, vertex_id: int) -> float:
        return self._vertex(vertex_id).lat

    def name(self, vertex_id: int) -> str | None:
        return self._vertex(vertex_id).name

    def find_by_name(self, query: str) -> list[int]:
        wanted = clean_string(query).strip()
        if not wanted:
            return []
        return sorted(
            vid
            for vid, vertex in self._vertices.items()
            if vertex.name is not None and clean_string(vertex.name).strip() == wanted
        )

    def nearest(self, lon: float, lat: float, *, max_distance: float | None = None) -> int | None:
        """Id of the vertex closest to (lon, lat); ties go to the smaller id.

        Returns None only when `max_distance` is given and nothing is that close.
        """
        if not (math.isfinite(lon) and math.isfinite(lat)):
            raise ValueError(f"query point must be finite, got ({lon}, {lat})")
        if not self._finalized:
            self.cleanup()
        if not self._vertices:
            raise GraphDataError(reason_code="graph_empty", message="graph has no vertices")
        if self._finalized and self._grid_bounds is not None:
            best_id, best_dist = self._nearest_indexed(lon, lat, max_distance)
        else:
            best_id, best_dist = self._nearest_linear(lon, lat)
        if max_distance is not None and best_dist > max_distance:
            return None
        return best_id

    def _nearest_linear(self, lon: float, lat: float) -> tuple[int | None, float]:
        best_id: int | None = None
        best_dist = math.inf
        for vid, vertex in self._vertices.items():
            dist = euclidean(lon, lat, vertex.lon, vertex.lat)
            if dist < best_dist or (dist == best_dist and best_id is not None and vid < best_id):
                best_id = vid
                best_dist = dist
        return best_id, best_dist

    def _nearest_indexed(
        self,
        lon: float,
        lat: float,
        max_distance: float | None,
    ) -> tuple[int | None, float]:
        assert self._grid_bounds is not None
        bucket = self._grid_bucket_deg
        min_x, max_x, min_y, max_y = self._grid_bounds
        cx, cy = _grid_key(lon, lat, bucket)
        # Rings closer than the index rectangle are empty by construction.
        first_radius = max(0, min_x - cx, cx - max_x, min_y - cy, cy - max_y)
        last_radius = max(abs(cx - min_x), abs(cx - max_x), abs(cy - min_y), abs(cy - max_y))
        best_id: int | None = None
        best_dist = math.inf
        for radius in range(first_radius, last_radius + 1):
            # Any vertex in ring `radius` is at least (radius - 1) buckets away.
            ring_floor = (radius - 1) * bucket
            if ring_floor > best_dist:
                break
            if max_distance is not None and ring_floor > max_distance:
                break
            for key in _ring_cells(cx, cy, radius, self._grid_bounds):
                for vid in self._grid_index.get(key, ()):
                    vertex = self._vertices[vid]
                    dist = euclidean(lon, lat, vertex.lon, vertex.lat)
                    if dist < best_dist or (dist == best_dist and best_id is not None and vid < best_id):
                        best_id = vid
                        best_dist = dist
        return best_id, best_dist

    def stats(self) -> dict[str, Any]:
        return {
            "vertices": len(self._vertices),
            "directed_edges": sum(len(edges) for edges in self._adjacency.values()),
            "grid_cells": len(self._grid_index),
            "finalized": self._finalized,
        }
