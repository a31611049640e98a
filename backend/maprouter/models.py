from __future__ import annotations

from pydantic import BaseModel, Field


class RouteQuery(BaseModel):
    start_lon: float = Field(..., ge=-180, le=180)
    start_lat: float = Field(..., ge=-90, le=90)
    end_lon: float = Field(..., ge=-180, le=180)
    end_lat: float = Field(..., ge=-90, le=90)


class RouteResponse(BaseModel):
    found: bool
    path: list[int]
    cost: float | None = None
    coordinates: list[tuple[float, float]] = Field(default_factory=list)
    explored_states: int = 0


class RasterResponse(BaseModel):
    """Field names follow what the map front end already consumes."""

    render_grid: list[list[str]] | None = None
    raster_ul_lon: float | None = None
    raster_ul_lat: float | None = None
    raster_lr_lon: float | None = None
    raster_lr_lat: float | None = None
    depth: int | None = None
    query_success: bool


class LocationMatch(BaseModel):
    id: int
    lon: float
    lat: float
    name: str | None = None


class SearchResponse(BaseModel):
    query: str
    matches: list[LocationMatch]


class GraphStatusResponse(BaseModel):
    ok: bool
    reason_code: str
    vertices: int = 0
    directed_edges: int = 0
    finalized: bool = False
