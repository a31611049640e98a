from __future__ import annotations

import argparse
import json
import math
import time
from pathlib import Path
from typing import Any

from maprouter.errors import SearchDeadlineExceeded
from maprouter.graph_loader import build_graph_from_osm
from maprouter.path_finder import path_coordinates, route_with_stats
from maprouter.settings import settings
from maprouter.tile_selector import BoundingBox, RasterConfig, TileSelector


def _finite_float(raw: str) -> float:
    try:
        value = float(raw)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number: {raw!r}") from None
    if not math.isfinite(value):
        raise argparse.ArgumentTypeError(f"coordinate must be finite: {raw!r}")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run a route or raster query without the HTTP server.")
    sub = parser.add_subparsers(dest="command", required=True)

    route = sub.add_parser("route", help="Shortest path between two points.")
    route.add_argument(
        "--graph",
        type=Path,
        default=Path(settings.graph_asset_path),
        help="OSM XML extract to build the road graph from.",
    )
    route.add_argument("--start-lon", type=_finite_float, required=True)
    route.add_argument("--start-lat", type=_finite_float, required=True)
    route.add_argument("--end-lon", type=_finite_float, required=True)
    route.add_argument("--end-lat", type=_finite_float, required=True)
    route.add_argument(
        "--timeout-s",
        type=float,
        default=settings.route_search_timeout_s,
        help="Search deadline in seconds (0 disables it).",
    )

    raster = sub.add_parser("raster", help="Tile grid covering a bounding box.")
    raster.add_argument("--ullon", type=float, required=True)
    raster.add_argument("--ullat", type=float, required=True)
    raster.add_argument("--lrlon", type=float, required=True)
    raster.add_argument("--lrlat", type=float, required=True)
    raster.add_argument("--width", type=float, default=1024.0)
    raster.add_argument("--height", type=float, default=768.0)
    return parser


def _run_route(args: argparse.Namespace) -> dict[str, Any]:
    graph = build_graph_from_osm(args.graph)
    deadline = time.monotonic() + args.timeout_s if args.timeout_s > 0 else None
    try:
        result, stats = route_with_stats(
            graph,
            start_lon=args.start_lon,
            start_lat=args.start_lat,
            dest_lon=args.end_lon,
            dest_lat=args.end_lat,
            deadline_monotonic_s=deadline,
        )
    except SearchDeadlineExceeded:
        return {"found": False, "path": [], "termination_reason": "deadline_exceeded"}
    if result is None:
        return {"found": False, "path": [], **stats}
    return {
        "found": True,
        "path": list(result.nodes),
        "cost": result.cost,
        "coordinates": path_coordinates(graph, result.nodes),
        **stats,
    }


def _run_raster(args: argparse.Namespace) -> dict[str, Any]:
    selector = TileSelector(RasterConfig.from_settings(settings))
    box = BoundingBox(ul_lon=args.ullon, ul_lat=args.ullat, lr_lon=args.lrlon, lr_lat=args.lrlat)
    return selector.raster(box, args.width, args.height).to_payload()


def run_query(args: argparse.Namespace) -> dict[str, Any]:
    if args.command == "route":
        return _run_route(args)
    return _run_raster(args)


def main() -> None:
    args = build_parser().parse_args()
    print(json.dumps(run_query(args), indent=2))


if __name__ == "__main__":
    main()
