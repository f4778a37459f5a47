from __future__ import annotations

import numpy as np
import pytest

from ground_tiles.elevation import ElevationField
from ground_tiles.mesh import TileGridMesh, build_tile_mesh, tile_world_offset
from ground_tiles.stitching import stitch_tile_grid
from ground_tiles.tile_grid import TileGrid, resolve_tile_grid
from ground_tiles.web_mercator import GeoPoint

SIDE = 100.0


def _random_grid(width: int, samples_per_side: int, *, seed: int = 7) -> TileGridMesh:
    rng = np.random.default_rng(seed)
    grid = resolve_tile_grid(GeoPoint(lon=-118.0, lat=34.0), 17, width)
    meshes = {}
    for address in grid:
        heights = rng.uniform(0.0, 500.0, size=samples_per_side * samples_per_side)
        field = ElevationField(
            heights=heights,
            width=samples_per_side,
            height=samples_per_side,
            min_height=float(heights.min()),
            max_height=float(heights.max()),
        )
        offset = tile_world_offset(address, grid.origin_tile, SIDE, (0.0, 0.0))
        meshes[address] = build_tile_mesh(address, None, field, SIDE, offset)
    return TileGridMesh.assemble(grid, meshes)


def _seam_pairs(grid: TileGrid):
    for column in range(grid.width):
        for row in range(grid.width):
            if row + 1 < grid.width:
                yield (column, row), "last_row", (column, row + 1), "first_row"
            if column + 1 < grid.width:
                yield (column, row), "right_edge", (column + 1, row), "left_edge"


def test_stitched_seams_are_bitwise_identical() -> None:
    mesh = _random_grid(3, 5)
    stitch_tile_grid(mesh)

    for first_pos, first_edge, second_pos, second_edge in _seam_pairs(mesh.grid):
        first = mesh.tile_at(*first_pos)
        second = mesh.tile_at(*second_pos)
        first_idx = getattr(first, first_edge)()
        second_idx = getattr(second, second_edge)()
        assert np.array_equal(first.vertices[first_idx, 1], second.vertices[second_idx, 1])


def test_stitched_seams_coincide_in_world_space() -> None:
    mesh = _random_grid(3, 4)
    stitch_tile_grid(mesh)

    west = mesh.tile_at(0, 1)
    east = mesh.tile_at(1, 1)
    west_edge = west.world_vertices()[west.right_edge()]
    east_edge = east.world_vertices()[east.left_edge()]
    assert west_edge[:, [0, 2]] == pytest.approx(east_edge[:, [0, 2]])
    assert np.array_equal(west_edge[:, 1], east_edge[:, 1])


def test_edge_value_is_the_pair_mean() -> None:
    mesh = _random_grid(3, 4)
    north = mesh.tile_at(1, 0)
    south = mesh.tile_at(1, 1)
    # Interior edge vertices only; corners are shared by more tiles.
    north_idx = north.last_row()[1:-1]
    south_idx = south.first_row()[1:-1]
    expected = (north.vertices[north_idx, 1] + south.vertices[south_idx, 1]) / 2.0

    stitch_tile_grid(mesh)

    assert north.vertices[north_idx, 1] == pytest.approx(expected)


def test_four_tile_corner_gets_the_mean_of_all_four() -> None:
    mesh = _random_grid(3, 4)
    n = mesh.tile_at(0, 0).vertices_per_side
    members = [
        (mesh.tile_at(0, 0), n * n - 1),
        (mesh.tile_at(1, 0), n * n - n),
        (mesh.tile_at(0, 1), n - 1),
        (mesh.tile_at(1, 1), 0),
    ]
    expected = sum(float(tile.vertices[idx, 1]) for tile, idx in members) / 4.0

    stitch_tile_grid(mesh)

    values = {float(tile.vertices[idx, 1]) for tile, idx in members}
    assert len(values) == 1
    assert values.pop() == pytest.approx(expected)


def test_pairwise_only_leaves_interior_edges_matched() -> None:
    mesh = _random_grid(3, 5)
    stitch_tile_grid(mesh, reconcile_corners=False)

    west = mesh.tile_at(0, 0)
    east = mesh.tile_at(1, 0)
    assert np.array_equal(
        west.vertices[west.right_edge()[1:-1], 1], east.vertices[east.left_edge()[1:-1], 1]
    )


def test_single_tile_grid_is_left_untouched() -> None:
    mesh = _random_grid(1, 4)
    before = mesh.tile_at(0, 0).vertices.copy()

    stitch_tile_grid(mesh)

    assert np.array_equal(mesh.tile_at(0, 0).vertices, before)


def test_flat_three_by_three_grid_is_unchanged_by_stitching() -> None:
    grid = resolve_tile_grid(GeoPoint(lon=-118.0, lat=34.0), 17, 3)
    meshes = {
        address: build_tile_mesh(
            address, None, None, SIDE, tile_world_offset(address, grid.origin_tile, SIDE, (0.0, 0.0))
        )
        for address in grid
    }
    mesh = TileGridMesh.assemble(grid, meshes)
    before = {tile.address: tile.vertices.copy() for tile in mesh}

    stitch_tile_grid(mesh)

    for tile in mesh:
        assert tile.segments == 1
        assert np.array_equal(tile.vertices, before[tile.address])


def test_mixed_resolutions_are_rejected() -> None:
    mesh = _random_grid(3, 4)
    address = mesh.grid.address_at(2, 2)
    mesh.tiles[2][2] = build_tile_mesh(address, None, None, SIDE, np.zeros(3))

    with pytest.raises(ValueError, match="differing resolutions"):
        stitch_tile_grid(mesh)
