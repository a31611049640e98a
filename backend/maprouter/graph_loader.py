from __future__ import annotations

import time
import xml.etree.ElementTree as ET
from functools import lru_cache
from pathlib import Path

from .errors import GraphDataError
from .logging_utils import log_event
from .settings import settings
from .spatial_graph import SpatialGraph, Vertex

ALLOWED_HIGHWAYS = frozenset(
    {
        "motorway",
        "trunk",
        "primary",
        "secondary",
        "tertiary",
        "unclassified",
        "residential",
        "living_street",
        "motorway_link",
        "trunk_link",
        "primary_link",
        "secondary_link",
        "tertiary_link",
    }
)


def _tags(elem: ET.Element) -> dict[str, str]:
    out: dict[str, str] = {}
    for child in elem:
        if child.tag == "tag":
            key = str(child.attrib.get("k", "")).strip()
            if key:
                out[key] = str(child.attrib.get("v", "")).strip()
    return out


def _parse_node(elem: ET.Element) -> Vertex | None:
    try:
        node_id = int(elem.attrib["id"])
        lat = float(elem.attrib["lat"])
        lon = float(elem.attrib["lon"])
    except (KeyError, ValueError):
        return None
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0):
        return None
    name = _tags(elem).get("name") or None
    return Vertex(id=node_id, lon=lon, lat=lat, name=name)


def _way_refs(elem: ET.Element) -> list[int]:
    refs: list[int] = []
    for child in elem:
        if child.tag != "nd":
            continue
        try:
            refs.append(int(child.attrib["ref"]))
        except (KeyError, ValueError):
            continue
    return refs


def _populate(graph: SpatialGraph, path: Path) -> dict[str, int]:
    counts = {"nodes_seen": 0, "ways_seen": 0, "ways_kept": 0, "segments": 0}
    for _event, elem in ET.iterparse(path, events=("end",)):
        if elem.tag == "node":
            counts["nodes_seen"] += 1
            vertex = _parse_node(elem)
            if vertex is not None:
                graph.add_node(vertex)
            elem.clear()
        elif elem.tag == "way":
            counts["ways_seen"] += 1
            highway = _tags(elem).get("highway", "").lower()
            if highway in ALLOWED_HIGHWAYS:
                refs = [ref for ref in _way_refs(elem) if ref in graph]
                if len(refs) >= 2:
                    counts["ways_kept"] += 1
                    for idx in range(1, len(refs)):
                        graph.connect(refs[idx - 1], refs[idx])
                        counts["segments"] += 1
            elem.clear()
    return counts


def build_graph_from_osm(path: Path, *, grid_bucket_deg: float | None = None) -> SpatialGraph:
    """Parse an OSM XML extract into a finalized graph.

    The graph only escapes once parsing has completed and cleanup has run; a
    failure part-way through discards everything built so far.
    """
    t0 = time.perf_counter()
    log_event("graph_load_started", path=str(path))
    graph = SpatialGraph(grid_bucket_deg=grid_bucket_deg)
    try:
        counts = _populate(graph, path)
    except (ET.ParseError, OSError) as exc:
        log_event("graph_load_failed", path=str(path), error=str(exc))
        raise GraphDataError(
            reason_code="graph_parse_failed",
            message=f"could not parse map data: {exc}",
            details={"path": str(path)},
        ) from exc
    graph.finalize()
    log_event(
        "graph_load_finished",
        path=str(path),
        vertices=len(graph),
        duration_ms=round((time.perf_counter() - t0) * 1000, 2),
        **counts,
    )
    return graph


def _graph_asset_path() -> Path:
    return Path(settings.graph_asset_path)


@lru_cache(maxsize=1)
def load_graph() -> SpatialGraph:
    path = _graph_asset_path()
    if not path.exists():
        raise GraphDataError(
            reason_code="graph_unavailable",
            message="map data file not found",
            details={"path": str(path)},
        )
    return build_graph_from_osm(path)
