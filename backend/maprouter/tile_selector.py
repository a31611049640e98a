from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

from .settings import Settings


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned box given by its upper-left and lower-right corners."""

    ul_lon: float
    ul_lat: float
    lr_lon: float
    lr_lat: float

    @property
    def width(self) -> float:
        return self.lr_lon - self.ul_lon

    @property
    def height(self) -> float:
        return self.ul_lat - self.lr_lat

    def is_degenerate(self) -> bool:
        return self.lr_lon <= self.ul_lon or self.lr_lat >= self.ul_lat

    def overlaps(self, other: BoundingBox) -> bool:
        return not (
            self.lr_lon <= other.ul_lon
            or self.ul_lon >= other.lr_lon
            or self.ul_lat <= other.lr_lat
            or self.lr_lat >= other.ul_lat
        )

    def contains(self, other: BoundingBox) -> bool:
        return (
            self.ul_lon <= other.ul_lon
            and self.lr_lon >= other.lr_lon
            and self.ul_lat >= other.ul_lat
            and self.lr_lat <= other.lr_lat
        )

    def intersection(self, other: BoundingBox) -> BoundingBox:
        return BoundingBox(
            ul_lon=max(self.ul_lon, other.ul_lon),
            ul_lat=min(self.ul_lat, other.ul_lat),
            lr_lon=min(self.lr_lon, other.lr_lon),
            lr_lat=max(self.lr_lat, other.lr_lat),
        )


@dataclass(frozen=True)
class RasterConfig:
    root: BoundingBox
    tile_size_px: int = 256
    max_depth: int = 7
    tile_name_template: str = "img/{key}.png"
    root_tile_name: str = "img/root.png"

    @classmethod
    def from_settings(cls, s: Settings) -> RasterConfig:
        return cls(
            root=BoundingBox(
                ul_lon=s.root_ullon,
                ul_lat=s.root_ullat,
                lr_lon=s.root_lrlon,
                lr_lat=s.root_lrlat,
            ),
            tile_size_px=s.tile_size_px,
            max_depth=s.raster_max_depth,
            tile_name_template=s.tile_name_template,
            root_tile_name=s.root_tile_name,
        )

    @property
    def root_lon_dpp(self) -> float:
        return self.root.width / self.tile_size_px


@dataclass(frozen=True)
class RasterResult:
    success: bool
    tile_grid: tuple[tuple[str, ...], ...] | None = None
    bounding_box: BoundingBox | None = None
    depth: int | None = None

    def to_payload(self) -> dict[str, Any]:
        box = self.bounding_box
        return {
            "render_grid": [list(row) for row in self.tile_grid] if self.tile_grid is not None else None,
            "raster_ul_lon": box.ul_lon if box is not None else None,
            "raster_ul_lat": box.ul_lat if box is not None else None,
            "raster_lr_lon": box.lr_lon if box is not None else None,
            "raster_lr_lat": box.lr_lat if box is not None else None,
            "depth": self.depth,
            "query_success": self.success,
        }


INVALID_QUERY = RasterResult(success=False)


def quad_key(row: int, col: int, depth: int) -> str:
    """Tile key with one digit (1-4) per level, coarsest level first.

    Digit = 2 * row_bit + col_bit + 1, which matches the existing tile file
    names (img/1.png .. img/4.png at depth 1, img/11.png .. at depth 2).
    """
    if depth < 1:
        raise ValueError("quad keys start at depth 1; depth 0 is the root tile")
    side = 1 << depth
    if not (0 <= row < side and 0 <= col < side):
        raise ValueError(f"tile ({row}, {col}) outside the {side}x{side} grid at depth {depth}")
    digits = []
    for level in range(depth - 1, -1, -1):
        row_bit = (row >> level) & 1
        col_bit = (col >> level) & 1
        digits.append(str(2 * row_bit + col_bit + 1))
    return "".join(digits)


def parse_quad_key(key: str) -> tuple[int, int, int]:
    if not key or any(ch not in "1234" for ch in key):
        raise ValueError(f"invalid quad key: {key!r}")
    row = 0
    col = 0
    for ch in key:
        digit = int(ch) - 1
        row = (row << 1) | (digit >> 1)
        col = (col << 1) | (digit & 1)
    return row, col, len(key)


class TileSelector:
    """Picks the grid of pre-rendered tiles that covers a query box.

    Tiles form a quadtree over the root box: depth d splits it into a
    2^d x 2^d grid. The chosen depth is the shallowest one whose
    longitude-degrees-per-pixel is no coarser than the query asks for.
    """

    def __init__(self, config: RasterConfig) -> None:
        if config.root.is_degenerate():
            raise ValueError("root bounding box is degenerate")
        self.config = config

    def select_depth(self, query_lon_dpp: float) -> int:
        depth = 0
        lon_dpp = self.config.root_lon_dpp
        while lon_dpp > query_lon_dpp and depth < self.config.max_depth:
            depth += 1
            lon_dpp /= 2.0
        return depth

    def tile_lon_dpp(self, depth: int) -> float:
        return self.config.root_lon_dpp / (1 << depth)

    def _tile_size_deg(self, depth: int) -> tuple[float, float]:
        side = 1 << depth
        return self.config.root.width / side, self.config.root.height / side

    def tile_index_range(self, query: BoundingBox, depth: int) -> tuple[int, int, int, int]:
        """(first_col, first_row, last_col, last_row), clamped to the grid."""
        root = self.config.root
        last = (1 << depth) - 1
        tile_w, tile_h = self._tile_size_deg(depth)
        first_col = int(math.floor((query.ul_lon - root.ul_lon) / tile_w))
        first_row = int(math.floor((root.ul_lat - query.ul_lat) / tile_h))
        last_col = int(math.ceil((query.lr_lon - root.ul_lon) / tile_w)) - 1
        last_row = int(math.ceil((root.ul_lat - query.lr_lat) / tile_h)) - 1

        def _clamp(idx: int) -> int:
            return max(0, min(last, idx))

        return _clamp(first_col), _clamp(first_row), _clamp(last_col), _clamp(last_row)

    def tile_bounds(self, row: int, col: int, depth: int) -> BoundingBox:
        return self._span_bounds(col, row, col, row, depth)

    def _span_bounds(self, first_col: int, first_row: int, last_col: int, last_row: int, depth: int) -> BoundingBox:
        root = self.config.root
        tile_w, tile_h = self._tile_size_deg(depth)
        return BoundingBox(
            ul_lon=root.ul_lon + first_col * tile_w,
            ul_lat=root.ul_lat - first_row * tile_h,
            lr_lon=root.ul_lon + (last_col + 1) * tile_w,
            lr_lat=root.ul_lat - (last_row + 1) * tile_h,
        )

    def tile_name(self, row: int, col: int, depth: int) -> str:
        if depth == 0:
            return self.config.root_tile_name
        return self.config.tile_name_template.format(key=quad_key(row, col, depth))

    def is_valid_query(self, query: BoundingBox, width_px: float, height_px: float) -> bool:
        if not (width_px > 0 and height_px > 0):
            return False
        if not all(math.isfinite(v) for v in (query.ul_lon, query.ul_lat, query.lr_lon, query.lr_lat)):
            return False
        return not query.is_degenerate() and query.overlaps(self.config.root)

    def raster(self, query: BoundingBox, width_px: float, height_px: float) -> RasterResult:
        if not self.is_valid_query(query, width_px, height_px):
            return INVALID_QUERY
        depth = self.select_depth(query.width / width_px)
        first_col, first_row, last_col, last_row = self.tile_index_range(query, depth)
        grid = tuple(
            tuple(self.tile_name(row, col, depth) for col in range(first_col, last_col + 1))
            for row in range(first_row, last_row + 1)
        )
        return RasterResult(
            success=True,
            tile_grid=grid,
            bounding_box=self._span_bounds(first_col, first_row, last_col, last_row, depth),
            depth=depth,
        )
