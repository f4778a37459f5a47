from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .web_mercator import TileAddress


class GroundTileError(RuntimeError):
    """Base error for ground tile loading."""


class InvalidGridWidth(GroundTileError):
    """Raised when a tile grid width is not an odd integer >= 1."""


class InvalidResolution(GroundTileError):
    """Raised when an elevation resolution exponent is outside 0-9."""


class InvalidSlopeThreshold(GroundTileError):
    """Raised when a maximum allowable slope is outside 0-90 degrees."""


class NonSquareElevationField(GroundTileError):
    """Raised when an elevation field cannot be laid out as a square grid."""


class TileDecodeError(GroundTileError):
    """Raised when tile bytes cannot be decoded into a raster."""


class GridDisposedError(GroundTileError):
    """Raised when a disposed tile grid mesh is used."""


class TileFetchFailed(GroundTileError):
    """Raised when any imagery or elevation fetch of a grid load fails."""

    def __init__(
        self, address: "TileAddress", cause: BaseException, *, kind: str
    ) -> None:
        super().__init__(
            f"Failed to fetch {kind} tile {address.zoom}/{address.x}/{address.y}: {cause}"
        )
        self.address = address
        self.cause = cause
        self.kind = kind
