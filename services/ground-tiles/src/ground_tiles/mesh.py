from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterator, Mapping, Optional

import numpy as np

from .elevation import ElevationField, RasterImage
from .errors import GridDisposedError, NonSquareElevationField
from .tile_grid import TileGrid
from .web_mercator import TileAddress

UP_AXIS = np.array([0.0, 1.0, 0.0], dtype=np.float64)


def build_grid_faces(vertices_per_side: int) -> np.ndarray:
    """Triangle indices for a row-major grid, two triangles per cell.

    Rows run north -> south (+z) and columns west -> east (+x); the winding
    gives +y (up) facing normals.
    """

    n = int(vertices_per_side)
    if n < 2:
        return np.empty((0, 3), dtype=np.int64)
    rows, cols = np.meshgrid(np.arange(n - 1), np.arange(n - 1), indexing="ij")
    a = (rows * n + cols).ravel()
    b = a + n
    c = b + 1
    d = a + 1
    faces = np.stack(
        [np.column_stack([a, b, d]), np.column_stack([b, c, d])], axis=1
    )
    return faces.reshape(-1, 3).astype(np.int64)


def build_grid_vertices(
    heights: np.ndarray, *, vertices_per_side: int, tile_side_length: float
) -> np.ndarray:
    n = int(vertices_per_side)
    half = float(tile_side_length) / 2.0
    coords = np.linspace(-half, half, n, dtype=np.float64)
    zz, xx = np.meshgrid(coords, coords, indexing="ij")
    vertices = np.empty((n * n, 3), dtype=np.float64)
    vertices[:, 0] = xx.ravel()
    vertices[:, 1] = np.asarray(heights, dtype=np.float64).reshape(-1)
    vertices[:, 2] = zz.ravel()
    return vertices


@dataclass
class MeshTile:
    """A displaced planar grid for one tile, in local Y-up coordinates.

    `offset` places the tile in the scene; vertex positions stay local so
    edge vertices of neighboring tiles can be compared index-for-index.
    """

    address: TileAddress
    segments: int
    vertices: np.ndarray
    faces: np.ndarray
    offset: np.ndarray
    texture: Optional[RasterImage] = None
    face_normals: Optional[np.ndarray] = None
    vertex_normals: Optional[np.ndarray] = None
    face_colors: Optional[np.ndarray] = None

    @property
    def vertices_per_side(self) -> int:
        return self.segments + 1

    @property
    def vertex_count(self) -> int:
        return int(self.vertices.shape[0])

    @property
    def face_count(self) -> int:
        return int(self.faces.shape[0])

    @property
    def elevations(self) -> np.ndarray:
        return self.vertices[:, 1]

    def world_vertices(self) -> np.ndarray:
        return self.vertices + self.offset

    def first_row(self) -> np.ndarray:
        return np.arange(self.vertices_per_side)

    def last_row(self) -> np.ndarray:
        n = self.vertices_per_side
        return np.arange(n * n - n, n * n)

    def left_edge(self) -> np.ndarray:
        n = self.vertices_per_side
        return np.arange(0, n * n, n)

    def right_edge(self) -> np.ndarray:
        n = self.vertices_per_side
        return np.arange(n - 1, n * n, n)

    def compute_normals(self) -> None:
        """Recompute per-face normals, then average them at shared vertices."""

        v0 = self.vertices[self.faces[:, 0]]
        v1 = self.vertices[self.faces[:, 1]]
        v2 = self.vertices[self.faces[:, 2]]
        face_normals = _normalize(np.cross(v1 - v0, v2 - v0))

        accumulated = np.zeros_like(self.vertices)
        for corner in range(3):
            np.add.at(accumulated, self.faces[:, corner], face_normals)
        vertex_normals = _normalize(accumulated)
        unset = ~np.any(vertex_normals, axis=1)
        vertex_normals[unset] = UP_AXIS

        self.face_normals = face_normals
        self.vertex_normals = vertex_normals

    def release(self) -> None:
        self.texture = None
        self.face_colors = None
        self.face_normals = None
        self.vertex_normals = None
        self.vertices = np.empty((0, 3), dtype=np.float64)
        self.faces = np.empty((0, 3), dtype=np.int64)


def _normalize(vectors: np.ndarray) -> np.ndarray:
    lengths = np.linalg.norm(vectors, axis=1, keepdims=True)
    safe = np.where(lengths > 0.0, lengths, 1.0)
    return np.where(lengths > 0.0, vectors / safe, 0.0)


def tile_world_offset(
    address: TileAddress,
    origin_tile: TileAddress,
    tile_side_length: float,
    origin_offset: tuple[float, float],
) -> np.ndarray:
    lon_index_offset = address.x - origin_tile.x
    lat_index_offset = address.y - origin_tile.y
    offset_x, offset_y = origin_offset
    return np.array(
        [
            lon_index_offset * tile_side_length - offset_x,
            0.0,
            # Projected y points north, scene z points south.
            lat_index_offset * tile_side_length + offset_y,
        ],
        dtype=np.float64,
    )


def build_tile_mesh(
    address: TileAddress,
    imagery: Optional[RasterImage],
    elevation: Optional[ElevationField],
    tile_side_length: float,
    world_offset: np.ndarray,
) -> MeshTile:
    if elevation is None or len(elevation) <= 1:
        base = 0.0 if elevation is None or len(elevation) == 0 else float(elevation.heights[0])
        n = 2
        heights = np.full(n * n, base, dtype=np.float64)
    else:
        n = math.isqrt(len(elevation))
        if elevation.width != elevation.height:
            raise NonSquareElevationField(
                f"Elevation field for tile {address.key()} is "
                f"{elevation.width}x{elevation.height}, expected a square grid"
            )
        if n * n != len(elevation):
            raise NonSquareElevationField(
                f"Elevation field for tile {address.key()} has {len(elevation)} samples, "
                "which is not a perfect square"
            )
        heights = elevation.heights

    mesh = MeshTile(
        address=address,
        segments=n - 1,
        vertices=build_grid_vertices(
            heights, vertices_per_side=n, tile_side_length=tile_side_length
        ),
        faces=build_grid_faces(n),
        offset=np.asarray(world_offset, dtype=np.float64).reshape(3).copy(),
        texture=imagery,
    )
    mesh.compute_normals()
    return mesh


@dataclass
class TileGridMesh:
    """All meshes of one load cycle, indexed by (column, row) like TileGrid."""

    grid: TileGrid
    tiles: list[list[MeshTile]]
    _disposed: bool = field(default=False, repr=False)

    @staticmethod
    def assemble(grid: TileGrid, meshes: Mapping[TileAddress, MeshTile]) -> "TileGridMesh":
        missing = [address.key() for address in grid.addresses if address not in meshes]
        if missing:
            raise ValueError(f"Cannot assemble tile grid, missing tiles: {missing}")
        tiles = [
            [meshes[grid.address_at(column, row)] for row in range(grid.width)]
            for column in range(grid.width)
        ]
        return TileGridMesh(grid=grid, tiles=tiles)

    @property
    def width(self) -> int:
        return self.grid.width

    @property
    def disposed(self) -> bool:
        return self._disposed

    def _ensure_live(self) -> None:
        if self._disposed:
            raise GridDisposedError("Tile grid mesh has been disposed")

    def tile_at(self, column: int, row: int) -> MeshTile:
        self._ensure_live()
        return self.tiles[column][row]

    def __iter__(self) -> Iterator[MeshTile]:
        self._ensure_live()
        for column in self.tiles:
            yield from column

    def __len__(self) -> int:
        return self.width * self.width

    def compute_normals(self) -> None:
        for mesh in self:
            mesh.compute_normals()

    def elevation_range(self) -> tuple[float, float]:
        lows = [float(np.min(mesh.elevations)) for mesh in self if mesh.vertex_count]
        highs = [float(np.max(mesh.elevations)) for mesh in self if mesh.vertex_count]
        if not lows:
            return 0.0, 0.0
        return min(lows), max(highs)

    def dispose(self) -> None:
        if self._disposed:
            return
        for column in self.tiles:
            for mesh in column:
                mesh.release()
        self.tiles = []
        self._disposed = True
