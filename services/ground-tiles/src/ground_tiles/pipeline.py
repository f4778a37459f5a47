from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional

from .coloring import (
    apply_edge_debug_coloring,
    apply_flat_color,
    classify_grid_slopes,
    validate_slope_threshold,
)
from .config import (
    DEFAULT_GRID_WIDTH_FLAT,
    DEFAULT_GRID_WIDTH_WITH_TOPOGRAPHY,
    DEFAULT_ZOOM,
    ColoringMode,
    GroundTilesConfig,
)
from .elevation import validate_resolution_exponent
from .fetch import RasterFetcher, fetch_tile_grid
from .mesh import TileGridMesh
from .stitching import stitch_tile_grid
from .tile_grid import TileGrid, resolve_tile_grid, validate_grid_width
from .web_mercator import GeoPoint

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoadRequest:
    origin: GeoPoint
    zoom: int = DEFAULT_ZOOM
    grid_width: Optional[int] = None
    load_topography: bool = True
    resolution_exponent: int = 3
    max_allowable_slope: float = 45.0
    coloring: ColoringMode = "slope"
    reconcile_corners: bool = True

    @property
    def effective_grid_width(self) -> int:
        if self.grid_width is not None:
            return self.grid_width
        if self.load_topography:
            return DEFAULT_GRID_WIDTH_WITH_TOPOGRAPHY
        return DEFAULT_GRID_WIDTH_FLAT

    @staticmethod
    def from_config(origin: GeoPoint, config: GroundTilesConfig) -> "LoadRequest":
        return LoadRequest(
            origin=origin,
            zoom=config.zoom,
            grid_width=config.grid_width,
            load_topography=config.load_topography,
            resolution_exponent=config.resolution_exponent,
            max_allowable_slope=config.max_allowable_slope,
            coloring=config.coloring,
            reconcile_corners=config.reconcile_corners,
        )


@dataclass(frozen=True)
class LoadStats:
    tile_count: int
    vertex_count: int
    face_count: int
    min_elevation: float
    max_elevation: float
    elapsed_s: float

    @property
    def avg_vertices_per_tile(self) -> float:
        return self.vertex_count / max(1, self.tile_count)


def _collect_stats(mesh: TileGridMesh, *, elapsed_s: float) -> LoadStats:
    low, high = mesh.elevation_range()
    return LoadStats(
        tile_count=len(mesh),
        vertex_count=sum(tile.vertex_count for tile in mesh),
        face_count=sum(tile.face_count for tile in mesh),
        min_elevation=low,
        max_elevation=high,
        elapsed_s=elapsed_s,
    )


class GroundTileLoader:
    """Owns the ground tiles of the current scene.

    Each `load` replaces the current grid; a failed load leaves no grid
    behind. Load cycles and recoloring are serialized.
    """

    def __init__(
        self,
        fetch_imagery: RasterFetcher,
        fetch_elevation: Optional[RasterFetcher] = None,
    ) -> None:
        self._fetch_imagery = fetch_imagery
        self._fetch_elevation = fetch_elevation
        self._lock = asyncio.Lock()
        self._current: Optional[TileGridMesh] = None
        self._grid: Optional[TileGrid] = None
        self._max_allowable_slope = 45.0
        self._coloring: ColoringMode = "slope"

    @property
    def current(self) -> Optional[TileGridMesh]:
        return self._current

    @property
    def grid(self) -> Optional[TileGrid]:
        return self._grid

    @property
    def max_allowable_slope(self) -> float:
        return self._max_allowable_slope

    def _validate(self, request: LoadRequest) -> None:
        validate_grid_width(request.effective_grid_width)
        validate_slope_threshold(request.max_allowable_slope)
        if request.load_topography:
            validate_resolution_exponent(request.resolution_exponent)
            if self._fetch_elevation is None:
                raise ValueError("Topography requested but no elevation source is configured")

    def _apply_coloring(self, mesh: TileGridMesh, coloring: ColoringMode) -> None:
        if coloring == "slope":
            classify_grid_slopes(mesh, self._max_allowable_slope)
        elif coloring == "edges":
            apply_edge_debug_coloring(mesh)
        else:
            for tile in mesh:
                apply_flat_color(tile)

    def _discard_current(self) -> None:
        if self._current is not None:
            self._current.dispose()
        self._current = None
        self._grid = None

    async def load(self, request: LoadRequest) -> LoadStats:
        self._validate(request)
        grid = resolve_tile_grid(request.origin, request.zoom, request.effective_grid_width)

        async with self._lock:
            started = time.perf_counter()
            logger.info(
                "ground_tiles_load_started",
                extra={
                    "lon": request.origin.lon,
                    "lat": request.origin.lat,
                    "zoom": grid.zoom,
                    "width": grid.width,
                    "topography": request.load_topography,
                },
            )

            mesh: Optional[TileGridMesh] = None
            try:
                mesh = await fetch_tile_grid(
                    grid,
                    self._fetch_imagery,
                    self._fetch_elevation if request.load_topography else None,
                    resolution_exponent=request.resolution_exponent,
                )
                if request.load_topography:
                    stitch_tile_grid(mesh, reconcile_corners=request.reconcile_corners)
                    mesh.compute_normals()
                self._max_allowable_slope = float(request.max_allowable_slope)
                self._coloring = request.coloring
                self._apply_coloring(mesh, request.coloring)
            except BaseException as exc:
                if mesh is not None:
                    mesh.dispose()
                self._discard_current()
                logger.error(
                    "ground_tiles_load_failed",
                    extra={"zoom": grid.zoom, "width": grid.width, "error": str(exc)},
                )
                raise

            self._discard_current()
            self._current = mesh
            self._grid = grid

            stats = _collect_stats(mesh, elapsed_s=round(time.perf_counter() - started, 3))
            logger.info(
                "ground_tiles_load_finished",
                extra={
                    "tile_count": stats.tile_count,
                    "vertex_count": stats.vertex_count,
                    "face_count": stats.face_count,
                    "elapsed_s": stats.elapsed_s,
                },
            )
            return stats

    async def set_max_allowable_slope(self, angle: float) -> None:
        threshold = validate_slope_threshold(angle)
        async with self._lock:
            self._max_allowable_slope = threshold
            if self._current is not None and self._coloring == "slope":
                classify_grid_slopes(self._current, threshold)

    async def close(self) -> None:
        async with self._lock:
            self._discard_current()
