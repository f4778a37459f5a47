"""Terrain-RGB raster decoding.

Elevation tiles encode a height per pixel in their RGB channels:

    height = -10000 + (R * 65536 + G * 256 + B) * 0.1

Samples are taken on a stride of ``2 ** resolution_exponent`` pixels in both
axes, so a 512 px tile decoded with exponent 3 yields a 64 x 64 field.
"""

from __future__ import annotations

import io
import math
from dataclasses import dataclass
from typing import Final

import numpy as np
from PIL import Image, UnidentifiedImageError

from .errors import InvalidResolution, TileDecodeError

MAX_RESOLUTION_EXPONENT: Final[int] = 9

TERRAIN_RGB_BASE_M: Final[float] = -10000.0
TERRAIN_RGB_STEP_M: Final[float] = 0.1


@dataclass(frozen=True)
class RasterImage:
    """Decoded RGBA pixels of one tile, shape (height, width, 4)."""

    pixels: np.ndarray

    def __post_init__(self) -> None:
        if self.pixels.ndim != 3 or self.pixels.shape[2] != 4:
            raise ValueError("pixels must be an RGBA array of shape (height, width, 4)")
        if self.pixels.dtype != np.uint8:
            raise ValueError("pixels must be uint8")

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @staticmethod
    def from_bytes(data: bytes) -> "RasterImage":
        try:
            with Image.open(io.BytesIO(data)) as img:
                rgba = np.array(img.convert("RGBA"), dtype=np.uint8)
        except (UnidentifiedImageError, OSError) as exc:
            raise TileDecodeError(f"Unreadable tile image ({len(data)} bytes)") from exc
        return RasterImage(pixels=rgba)


@dataclass(frozen=True)
class ElevationField:
    """Row-major heights in meters sampled from a terrain-RGB raster."""

    heights: np.ndarray
    width: int
    height: int
    min_height: float
    max_height: float

    def __len__(self) -> int:
        return int(self.heights.size)

    def as_grid(self) -> np.ndarray:
        return self.heights.reshape(self.height, self.width)


def validate_resolution_exponent(resolution_exponent: int) -> int:
    exponent = int(resolution_exponent)
    if exponent > MAX_RESOLUTION_EXPONENT:
        raise InvalidResolution(
            f"resolution exponent must be <= {MAX_RESOLUTION_EXPONENT}, got {exponent}"
        )
    if exponent < 0:
        raise InvalidResolution(f"resolution exponent must be >= 0, got {exponent}")
    return exponent


def sample_step(resolution_exponent: int) -> int:
    return 1 << validate_resolution_exponent(resolution_exponent)


def decode_terrain_rgb(rgb: np.ndarray) -> np.ndarray:
    """Decode terrain-RGB pixels (..., >=3) to heights in meters (float64)."""

    r = rgb[..., 0].astype(np.float64)
    g = rgb[..., 1].astype(np.float64)
    b = rgb[..., 2].astype(np.float64)
    return TERRAIN_RGB_BASE_M + (r * 65536.0 + g * 256.0 + b) * TERRAIN_RGB_STEP_M


def decode_elevation(raster: RasterImage, resolution_exponent: int) -> ElevationField:
    step = sample_step(resolution_exponent)

    sampled = raster.pixels[::step, ::step]
    heights = decode_terrain_rgb(sampled)
    rows, cols = heights.shape
    if heights.size == 0:
        min_h = math.inf
        max_h = -math.inf
    else:
        min_h = float(np.min(heights))
        max_h = float(np.max(heights))

    return ElevationField(
        heights=np.ascontiguousarray(heights.reshape(-1)),
        width=int(cols),
        height=int(rows),
        min_height=min_h,
        max_height=max_h,
    )
