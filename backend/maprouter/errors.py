from __future__ import annotations

from dataclasses import dataclass
from typing import Any

FROZEN_REASON_CODES: frozenset[str] = frozenset(
    {
        "graph_unavailable",
        "graph_parse_failed",
        "graph_empty",
        "graph_finalized",
        "vertex_not_found",
        "route_no_path",
        "route_search_timeout",
        "raster_query_invalid",
    }
)


@dataclass
class GraphDataError(ValueError):
    reason_code: str
    message: str
    details: dict[str, Any] | None = None

    def __str__(self) -> str:
        return self.message


class VertexNotFoundError(KeyError):
    """An id that is not in the graph reached an accessor."""

    def __init__(self, vertex_id: int) -> None:
        super().__init__(vertex_id)
        self.vertex_id = vertex_id
        self.reason_code = "vertex_not_found"

    def __str__(self) -> str:
        return f"vertex {self.vertex_id} not in graph"


class GraphFinalizedError(RuntimeError):
    reason_code = "graph_finalized"


class SearchDeadlineExceeded(TimeoutError):
    reason_code = "route_search_timeout"


def normalize_reason_code(reason_code: str, *, default: str = "graph_unavailable") -> str:
    code = str(reason_code or "").strip()
    if code in FROZEN_REASON_CODES:
        return code
    return default
