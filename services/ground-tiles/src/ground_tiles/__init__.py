"""Ground tiles: slippy-map imagery + terrain-RGB -> stitched, slope-colored meshes."""

from .coloring import apply_edge_debug_coloring
from .coloring import apply_flat_color
from .coloring import classify_slope
from .elevation import ElevationField
from .elevation import RasterImage
from .elevation import decode_elevation
from .errors import GroundTileError
from .errors import TileFetchFailed
from .fetch import fetch_tile_grid
from .mapbox import MapboxTileClient
from .mesh import MeshTile
from .mesh import TileGridMesh
from .mesh import build_tile_mesh
from .pipeline import GroundTileLoader
from .pipeline import LoadRequest
from .pipeline import LoadStats
from .stitching import stitch_tile_grid
from .tile_grid import TileGrid
from .tile_grid import resolve_tile_grid
from .web_mercator import GeoPoint
from .web_mercator import TileAddress

__all__ = [
    "apply_edge_debug_coloring",
    "apply_flat_color",
    "build_tile_mesh",
    "classify_slope",
    "decode_elevation",
    "ElevationField",
    "fetch_tile_grid",
    "GeoPoint",
    "GroundTileError",
    "GroundTileLoader",
    "LoadRequest",
    "LoadStats",
    "MapboxTileClient",
    "MeshTile",
    "RasterImage",
    "resolve_tile_grid",
    "stitch_tile_grid",
    "TileAddress",
    "TileFetchFailed",
    "TileGrid",
    "TileGridMesh",
]
