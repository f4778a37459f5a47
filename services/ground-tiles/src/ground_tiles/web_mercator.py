from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Final

EARTH_RADIUS_M: Final[float] = 6378137.0
EARTH_CIRCUMFERENCE_M: Final[float] = 40075016.685578
WEB_MERCATOR_MAX_M: Final[float] = 20037508.342789244
WEB_MERCATOR_MAX_LAT: Final[float] = 85.05112878

_ORIGIN_SHIFT_M: Final[float] = math.pi * EARTH_RADIUS_M


@dataclass(frozen=True)
class GeoPoint:
    """A geographic position in degrees (EPSG:4326)."""

    lon: float
    lat: float


@dataclass(frozen=True)
class ProjectedPoint:
    """A spherical Web-Mercator position in meters (EPSG:3857)."""

    x: float
    y: float


@dataclass(frozen=True)
class TileAddress:
    """Slippy-map tile coordinates (XYZ scheme, y origin at north)."""

    x: int
    y: int
    zoom: int

    def __post_init__(self) -> None:
        if self.zoom < 0:
            raise ValueError(f"Invalid zoom: {self.zoom}")

    def key(self) -> str:
        return f"{self.zoom}/{self.x}/{self.y}"


def clamp_lat(lat: float) -> float:
    return max(-WEB_MERCATOR_MAX_LAT, min(WEB_MERCATOR_MAX_LAT, lat))


def geo_to_projected(lat: float, lon: float) -> ProjectedPoint:
    x = float(lon) * _ORIGIN_SHIFT_M / 180.0
    lat = clamp_lat(float(lat))
    y = EARTH_RADIUS_M * math.log(math.tan(math.pi / 4.0 + lat * math.pi / 360.0))
    return ProjectedPoint(x=x, y=y)


def geo_to_world_position(
    lat: float, lon: float, reference: ProjectedPoint, *, scale: float = 1.0
) -> ProjectedPoint:
    """Projected offset of (lat, lon) from a projected reference point."""

    projected = geo_to_projected(lat, lon)
    return ProjectedPoint(
        x=(projected.x - reference.x) * scale,
        y=(projected.y - reference.y) * scale,
    )


def tile_x_to_lon(x: float, zoom: int) -> float:
    n = 2**zoom
    return x / n * 360.0 - 180.0


def tile_y_to_lat(y: float, zoom: int) -> float:
    n = 2**zoom
    lat_rad = math.atan(math.sinh(math.pi * (1.0 - 2.0 * y / n)))
    return math.degrees(lat_rad)


def tile_to_geo_north_west(x: int, y: int, zoom: int) -> GeoPoint:
    return GeoPoint(lon=tile_x_to_lon(x, zoom), lat=tile_y_to_lat(y, zoom))


def tile_bounds(x: int, y: int, zoom: int) -> tuple[GeoPoint, GeoPoint]:
    """Return the (south-west, north-east) corners of a tile."""

    north_west = tile_to_geo_north_west(x, y, zoom)
    south_east = tile_to_geo_north_west(x + 1, y + 1, zoom)
    south_west = GeoPoint(lon=north_west.lon, lat=south_east.lat)
    north_east = GeoPoint(lon=south_east.lon, lat=north_west.lat)
    return south_west, north_east


def tile_center_geo(x: int, y: int, zoom: int) -> GeoPoint:
    south_west, north_east = tile_bounds(x, y, zoom)
    return GeoPoint(
        lon=(south_west.lon + north_east.lon) / 2.0,
        lat=(south_west.lat + north_east.lat) / 2.0,
    )


def tile_center_projected(x: int, y: int, zoom: int) -> ProjectedPoint:
    tile_count = 2**zoom
    center_x = (2.0 * (x + 0.5) / tile_count - 1.0) * WEB_MERCATOR_MAX_M
    # Tile rows grow southward while projected y grows northward.
    center_y = (1.0 - 2.0 * (y + 0.5) / tile_count) * WEB_MERCATOR_MAX_M
    return ProjectedPoint(x=center_x, y=center_y)


def lon_to_tile_x(lon: float, zoom: int) -> int:
    n = 2**zoom
    x = int(math.floor((lon + 180.0) / 360.0 * n))
    return max(0, min(n - 1, x))


def lat_to_tile_y(lat: float, zoom: int) -> int:
    n = 2**zoom
    lat_rad = math.radians(clamp_lat(lat))
    y = int(math.floor((1.0 - math.asinh(math.tan(lat_rad)) / math.pi) / 2.0 * n))
    return max(0, min(n - 1, y))


def geo_to_tile_index(lat: float, lon: float, zoom: int) -> tuple[int, int]:
    return lon_to_tile_x(lon, zoom), lat_to_tile_y(lat, zoom)


def tile_side_length_meters(zoom: int) -> float:
    """Ground length of a tile side at the equator.

    The same value is used at every latitude, so tiles are treated as squares
    of this size in world space.
    """

    return EARTH_CIRCUMFERENCE_M / 2**zoom


def offset_meters(tile: TileAddress, origin: GeoPoint, zoom: int) -> tuple[float, float]:
    """Projected vector from the center of `tile` to `origin`."""

    center = tile_center_projected(tile.x, tile.y, zoom)
    world = geo_to_projected(origin.lat, origin.lon)
    return world.x - center.x, world.y - center.y
