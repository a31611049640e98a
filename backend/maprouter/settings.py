from __future__ import annotations

from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_graph_asset_path() -> str:
    # Keep map data in backend/data by default so the repo root stays clean.
    return str(Path(__file__).resolve().parents[1] / "data" / "berkeley.osm")


class Settings(BaseSettings):
    """Validated settings (env-driven), fixed once at process start."""

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    out_dir: str = Field(default="out", alias="OUT_DIR")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Road graph
    graph_asset_path: str = Field(default_factory=_default_graph_asset_path, alias="GRAPH_ASSET_PATH")
    graph_grid_bucket_deg: float = Field(default=0.005, gt=0.0, le=10.0, alias="GRAPH_GRID_BUCKET_DEG")
    # Unset means "always snap to the closest vertex, however far away".
    graph_nearest_max_distance: float | None = Field(
        default=None,
        gt=0.0,
        alias="GRAPH_NEAREST_MAX_DISTANCE",
    )
    route_search_timeout_s: float = Field(default=10.0, ge=0.0, le=300.0, alias="ROUTE_SEARCH_TIMEOUT_S")

    # Raster (root tile extent and resolution)
    root_ullon: float = Field(default=-122.2998046875, alias="ROOT_ULLON")
    root_ullat: float = Field(default=37.892195547244356, alias="ROOT_ULLAT")
    root_lrlon: float = Field(default=-122.2119140625, alias="ROOT_LRLON")
    root_lrlat: float = Field(default=37.82280243352756, alias="ROOT_LRLAT")
    tile_size_px: int = Field(default=256, ge=1, alias="TILE_SIZE_PX")
    raster_max_depth: int = Field(default=7, ge=0, le=30, alias="RASTER_MAX_DEPTH")
    tile_name_template: str = Field(default="img/{key}.png", alias="TILE_NAME_TEMPLATE")
    root_tile_name: str = Field(default="img/root.png", alias="ROOT_TILE_NAME")

    @model_validator(mode="after")
    def _check_root_box(self) -> "Settings":
        if self.root_lrlon <= self.root_ullon or self.root_lrlat >= self.root_ullat:
            raise ValueError("root bounding box is degenerate")
        if "{key}" not in self.tile_name_template:
            raise ValueError("TILE_NAME_TEMPLATE must contain a {key} placeholder")
        return self


settings = Settings()
