from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

from .errors import InvalidGridWidth
from .web_mercator import GeoPoint, TileAddress, geo_to_tile_index


@dataclass(frozen=True)
class TileGrid:
    """A square, odd-width grid of tile addresses centered on an origin tile.

    `addresses` keeps the resolver enumeration order. Spatial positions are
    (column, row) with columns running west -> east and rows north -> south.
    """

    origin: GeoPoint
    zoom: int
    width: int
    origin_tile: TileAddress
    addresses: tuple[TileAddress, ...]

    def __post_init__(self) -> None:
        if len(self.addresses) != self.width * self.width:
            raise ValueError(
                f"Expected {self.width * self.width} addresses, got {len(self.addresses)}"
            )

    @property
    def half_width(self) -> int:
        return (self.width - 1) // 2

    def __len__(self) -> int:
        return len(self.addresses)

    def __iter__(self) -> Iterator[TileAddress]:
        return iter(self.addresses)

    def center(self) -> TileAddress:
        return self.addresses[(len(self.addresses) - 1) // 2]

    def position_of(self, address: TileAddress) -> tuple[int, int]:
        column = address.x - self.origin_tile.x + self.half_width
        row = address.y - self.origin_tile.y + self.half_width
        if not (0 <= column < self.width and 0 <= row < self.width):
            raise KeyError(f"Tile {address.key()} is not part of this grid")
        return column, row

    def address_at(self, column: int, row: int) -> TileAddress:
        if not (0 <= column < self.width and 0 <= row < self.width):
            raise IndexError(f"Grid position out of range: ({column}, {row})")
        return TileAddress(
            x=self.origin_tile.x + column - self.half_width,
            y=self.origin_tile.y + row - self.half_width,
            zoom=self.zoom,
        )


def validate_grid_width(width: int) -> int:
    if width < 1:
        raise InvalidGridWidth(
            f"The map tile grid must have a grid width that is odd and at least 1, got {width}"
        )
    if width % 2 == 0:
        raise InvalidGridWidth(f"The map tile grid width must be odd, got {width}")
    return int(width)


def iter_grid_addresses(origin_tile: TileAddress, width: int) -> Iterator[TileAddress]:
    """Yield addresses column by column, each column from south to north.

    The x offset is applied negatively, so the first column is the eastern one.
    """

    half = (width - 1) // 2
    for i in range(-half, half + 1):
        for j in range(half, -half - 1, -1):
            yield TileAddress(
                x=origin_tile.x - i, y=origin_tile.y + j, zoom=origin_tile.zoom
            )


def resolve_tile_grid(origin: GeoPoint, zoom: int, width: int) -> TileGrid:
    width = validate_grid_width(width)
    if zoom < 0:
        raise ValueError(f"Invalid zoom: {zoom}")

    tile_x, tile_y = geo_to_tile_index(origin.lat, origin.lon, zoom)
    origin_tile = TileAddress(x=tile_x, y=tile_y, zoom=zoom)
    return TileGrid(
        origin=origin,
        zoom=zoom,
        width=width,
        origin_tile=origin_tile,
        addresses=tuple(iter_grid_addresses(origin_tile, width)),
    )
