from __future__ import annotations

import time
import uuid
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from .errors import GraphDataError, SearchDeadlineExceeded
from .graph_loader import load_graph
from .logging_utils import log_event
from .models import (
    GraphStatusResponse,
    LocationMatch,
    RasterResponse,
    RouteQuery,
    RouteResponse,
    SearchResponse,
)
from .path_finder import path_coordinates, route_with_stats
from .settings import settings
from .spatial_graph import SpatialGraph
from .tile_selector import BoundingBox, RasterConfig, TileSelector


@asynccontextmanager
async def lifespan(app: FastAPI):
    # The graph loads lazily on first use; nothing to open or close here.
    log_event("app_startup", graph_asset_path=settings.graph_asset_path)
    yield


app = FastAPI(title="Map Raster & Router", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["GET"],
    allow_headers=["*"],
)


def road_graph() -> SpatialGraph:
    try:
        return load_graph()
    except GraphDataError as e:
        raise HTTPException(status_code=503, detail={"reason_code": e.reason_code, "message": e.message}) from e


@lru_cache(maxsize=1)
def tile_selector() -> TileSelector:
    return TileSelector(RasterConfig.from_settings(settings))


GraphDep = Annotated[SpatialGraph, Depends(road_graph)]
TileSelectorDep = Annotated[TileSelector, Depends(tile_selector)]


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/graph/status", response_model=GraphStatusResponse)
def graph_status() -> GraphStatusResponse:
    try:
        graph = load_graph()
    except GraphDataError as e:
        return GraphStatusResponse(ok=False, reason_code=e.reason_code)
    stats = graph.stats()
    return GraphStatusResponse(
        ok=True,
        reason_code="ok",
        vertices=int(stats["vertices"]),
        directed_edges=int(stats["directed_edges"]),
        finalized=bool(stats["finalized"]),
    )


@app.get("/route", response_model=RouteResponse)
def compute_route(query: Annotated[RouteQuery, Query()], graph: GraphDep) -> RouteResponse:
    request_id = str(uuid.uuid4())
    t0 = time.perf_counter()
    deadline = (
        time.monotonic() + float(settings.route_search_timeout_s)
        if settings.route_search_timeout_s > 0
        else None
    )
    try:
        result, stats = route_with_stats(
            graph,
            start_lon=query.start_lon,
            start_lat=query.start_lat,
            dest_lon=query.end_lon,
            dest_lat=query.end_lat,
            deadline_monotonic_s=deadline,
            max_snap_distance=settings.graph_nearest_max_distance,
        )
    except SearchDeadlineExceeded as e:
        log_event(
            "route_search_timeout",
            request_id=request_id,
            timeout_s=settings.route_search_timeout_s,
            query=query.model_dump(),
        )
        raise HTTPException(status_code=504, detail={"reason_code": e.reason_code, "message": str(e)}) from e
    except GraphDataError as e:
        raise HTTPException(status_code=503, detail={"reason_code": e.reason_code, "message": e.message}) from e

    duration_ms = round((time.perf_counter() - t0) * 1000, 2)
    if result is None:
        log_event(
            "route_no_path",
            request_id=request_id,
            query=query.model_dump(),
            duration_ms=duration_ms,
            **stats,
        )
        return RouteResponse(found=False, path=[], explored_states=int(stats["explored_states"]))

    log_event(
        "route_request",
        request_id=request_id,
        query=query.model_dump(),
        path_len=len(result.nodes),
        cost=result.cost,
        duration_ms=duration_ms,
        **stats,
    )
    return RouteResponse(
        found=True,
        path=list(result.nodes),
        cost=result.cost,
        coordinates=path_coordinates(graph, result.nodes),
        explored_states=int(stats["explored_states"]),
    )


@app.get("/raster", response_model=RasterResponse)
def raster(
    selector: TileSelectorDep,
    ullon: float,
    ullat: float,
    lrlon: float,
    lrlat: float,
    w: float,
    h: float,
) -> RasterResponse:
    t0 = time.perf_counter()
    box = BoundingBox(ul_lon=ullon, ul_lat=ullat, lr_lon=lrlon, lr_lat=lrlat)
    result = selector.raster(box, w, h)
    if not result.success:
        log_event("raster_invalid_query", ullon=ullon, ullat=ullat, lrlon=lrlon, lrlat=lrlat, w=w, h=h)
    else:
        log_event(
            "raster_request",
            depth=result.depth,
            rows=len(result.tile_grid or ()),
            cols=len(result.tile_grid[0]) if result.tile_grid else 0,
            duration_ms=round((time.perf_counter() - t0) * 1000, 2),
        )
    return RasterResponse(**result.to_payload())


@app.get("/search", response_model=SearchResponse)
def search_locations(graph: GraphDep, name: Annotated[str, Query(min_length=1)]) -> SearchResponse:
    matches = [
        LocationMatch(id=vid, lon=graph.lon(vid), lat=graph.lat(vid), name=graph.name(vid))
        for vid in graph.find_by_name(name)
    ]
    return SearchResponse(query=name, matches=matches)
