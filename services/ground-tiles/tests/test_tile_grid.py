from __future__ import annotations

import pytest

from ground_tiles.errors import InvalidGridWidth
from ground_tiles.tile_grid import iter_grid_addresses, resolve_tile_grid, validate_grid_width
from ground_tiles.web_mercator import GeoPoint, TileAddress, geo_to_tile_index


@pytest.mark.parametrize("width", [1, 3, 5, 7])
def test_grid_has_width_squared_unique_addresses(width: int) -> None:
    grid = resolve_tile_grid(GeoPoint(lon=-118.0, lat=34.0), 17, width)

    assert len(grid) == width * width
    assert len(set(grid.addresses)) == width * width
    assert all(address.zoom == 17 for address in grid)


@pytest.mark.parametrize("width", [1, 3, 5])
def test_origin_tile_is_the_center_element(width: int) -> None:
    origin = GeoPoint(lon=-118.0, lat=34.0)
    grid = resolve_tile_grid(origin, 17, width)

    x, y = geo_to_tile_index(origin.lat, origin.lon, 17)
    assert grid.origin_tile == TileAddress(x=x, y=y, zoom=17)
    assert grid.center() == grid.origin_tile
    assert grid.position_of(grid.origin_tile) == (grid.half_width, grid.half_width)


def test_enumeration_order_for_three_by_three() -> None:
    origin_tile = TileAddress(x=10, y=20, zoom=5)
    offsets = [(a.x - 10, a.y - 20) for a in iter_grid_addresses(origin_tile, 3)]

    assert offsets == [
        (1, 1), (1, 0), (1, -1),
        (0, 1), (0, 0), (0, -1),
        (-1, 1), (-1, 0), (-1, -1),
    ]


def test_spatial_index_runs_west_to_east_and_north_to_south() -> None:
    grid = resolve_tile_grid(GeoPoint(lon=-118.0, lat=34.0), 17, 3)
    north_west = grid.address_at(0, 0)
    south_east = grid.address_at(2, 2)

    assert north_west.x == grid.origin_tile.x - 1
    assert north_west.y == grid.origin_tile.y - 1
    assert south_east.x == grid.origin_tile.x + 1
    assert south_east.y == grid.origin_tile.y + 1
    for address in grid:
        column, row = grid.position_of(address)
        assert grid.address_at(column, row) == address


def test_position_of_rejects_foreign_tiles() -> None:
    grid = resolve_tile_grid(GeoPoint(lon=0.0, lat=0.0), 4, 3)
    outside = TileAddress(x=grid.origin_tile.x + 5, y=grid.origin_tile.y, zoom=4)

    with pytest.raises(KeyError):
        grid.position_of(outside)
    with pytest.raises(IndexError):
        grid.address_at(3, 0)


@pytest.mark.parametrize("width", [0, -1, 2, 4])
def test_invalid_grid_widths_are_rejected(width: int) -> None:
    with pytest.raises(InvalidGridWidth):
        resolve_tile_grid(GeoPoint(lon=-118.0, lat=34.0), 17, width)


def test_validate_grid_width_accepts_odd_values() -> None:
    assert validate_grid_width(1) == 1
    assert validate_grid_width(9) == 9
