from __future__ import annotations

import logging

import numpy as np

from .mesh import MeshTile, TileGridMesh

logger = logging.getLogger(__name__)


def _average_pair(
    first: MeshTile, first_idx: np.ndarray, second: MeshTile, second_idx: np.ndarray
) -> None:
    mean = (first.vertices[first_idx, 1] + second.vertices[second_idx, 1]) / 2.0
    first.vertices[first_idx, 1] = mean
    second.vertices[second_idx, 1] = mean


def _reconcile_corners(grid: TileGridMesh) -> int:
    """Give every vertex at a grid lattice point one shared elevation.

    Lattice point (p, q) is the north-west corner of tile (p, q); up to four
    tiles meet there. Returns the number of lattice points touched.
    """

    width = grid.width
    n = grid.tile_at(0, 0).vertices_per_side
    corner_index = {
        "nw": 0,
        "ne": n - 1,
        "sw": n * n - n,
        "se": n * n - 1,
    }
    touched = 0
    for p in range(width + 1):
        for q in range(width + 1):
            members: list[tuple[MeshTile, int]] = []
            for column, row, corner in (
                (p, q, "nw"),
                (p - 1, q, "ne"),
                (p, q - 1, "sw"),
                (p - 1, q - 1, "se"),
            ):
                if 0 <= column < width and 0 <= row < width:
                    members.append((grid.tile_at(column, row), corner_index[corner]))
            if len(members) < 2:
                continue
            mean = sum(float(mesh.vertices[idx, 1]) for mesh, idx in members) / len(members)
            for mesh, idx in members:
                mesh.vertices[idx, 1] = mean
            touched += 1
    return touched


def stitch_tile_grid(grid: TileGridMesh, *, reconcile_corners: bool = True) -> None:
    """Average elevations along every shared tile edge, in place.

    Each cell is paired with its bottom (south) and right (east) neighbor.
    Corners shared by more than two tiles only see those pairwise passes
    unless `reconcile_corners` is set. Normals are left stale; callers
    recompute them afterwards.
    """

    width = grid.width
    sizes = {mesh.vertices_per_side for mesh in grid}
    if len(sizes) != 1:
        raise ValueError(f"Cannot stitch tiles with differing resolutions: {sorted(sizes)}")

    for column in range(width):
        for row in range(width):
            tile = grid.tile_at(column, row)
            if row + 1 < width:
                bottom = grid.tile_at(column, row + 1)
                _average_pair(tile, tile.last_row(), bottom, bottom.first_row())
            if column + 1 < width:
                right = grid.tile_at(column + 1, row)
                _average_pair(tile, tile.right_edge(), right, right.left_edge())

    corners = _reconcile_corners(grid) if reconcile_corners else 0
    logger.debug(
        "tile_grid_stitched",
        extra={
            "width": width,
            "vertices_per_side": next(iter(sizes)),
            "reconciled_corners": corners,
        },
    )
