from __future__ import annotations

import math
from typing import Final, Sequence

import numpy as np

from .errors import InvalidSlopeThreshold
from .mesh import UP_AXIS, MeshTile, TileGridMesh

MAX_SLOPE_DEGREES: Final[float] = 90.0


def hex_to_rgb(value: str) -> tuple[float, float, float]:
    """Convert '#rrggbb' to floats in [0, 1]."""

    text = value.strip().lstrip("#")
    if len(text) != 6:
        raise ValueError(f"Expected a #rrggbb color, got {value!r}")
    return (
        int(text[0:2], 16) / 255.0,
        int(text[2:4], 16) / 255.0,
        int(text[4:6], 16) / 255.0,
    )


SLOPE_RAMP: Final[tuple[tuple[float, float, float], ...]] = (
    hex_to_rgb("#69ce82"),  # green
    hex_to_rgb("#d6d863"),  # amber
    hex_to_rgb("#ce7e69"),  # red
)
FLAT_COLOR: Final[tuple[float, float, float]] = (1.0, 1.0, 1.0)


def validate_slope_threshold(max_allowable_slope: float) -> float:
    threshold = float(max_allowable_slope)
    if threshold > MAX_SLOPE_DEGREES:
        raise InvalidSlopeThreshold(
            "A maximum allowable slope of greater than 90.0 degrees is not allowed."
        )
    if threshold < 0.0 or math.isnan(threshold):
        raise InvalidSlopeThreshold(
            f"The maximum allowable slope must be between 0 and 90 degrees, got {threshold}"
        )
    return threshold


def slope_bucket(
    angle_deg: np.ndarray, max_allowable_slope: float, *, slots: int = len(SLOPE_RAMP)
) -> np.ndarray:
    threshold = validate_slope_threshold(max_allowable_slope)
    clamped = np.minimum(np.asarray(angle_deg, dtype=np.float64), threshold)
    if threshold == 0.0:
        t = np.ones_like(clamped)
    else:
        t = clamped / threshold
    return np.floor((slots - 1) * t).astype(np.int64)


def slope_color(angle_deg: float, max_allowable_slope: float) -> tuple[float, float, float]:
    bucket = int(slope_bucket(np.array([angle_deg]), max_allowable_slope)[0])
    return SLOPE_RAMP[bucket]


def angle_to_up_deg(normals: np.ndarray) -> np.ndarray:
    lengths = np.linalg.norm(normals, axis=-1)
    safe = np.where(lengths > 0.0, lengths, 1.0)
    cos_theta = np.clip((normals @ UP_AXIS) / safe, -1.0, 1.0)
    return np.degrees(np.arccos(cos_theta))


def classify_slope(mesh: MeshTile, max_allowable_slope: float) -> None:
    """Color every face corner by the slope of its vertex normal."""

    threshold = validate_slope_threshold(max_allowable_slope)
    if mesh.vertex_normals is None:
        mesh.compute_normals()

    corner_normals = mesh.vertex_normals[mesh.faces]  # type: ignore[index]
    buckets = slope_bucket(angle_to_up_deg(corner_normals), threshold)
    ramp = np.asarray(SLOPE_RAMP, dtype=np.float32)
    mesh.face_colors = ramp[buckets]


def classify_grid_slopes(grid: TileGridMesh, max_allowable_slope: float) -> None:
    threshold = validate_slope_threshold(max_allowable_slope)
    for mesh in grid:
        classify_slope(mesh, threshold)


def apply_flat_color(
    mesh: MeshTile, color: Sequence[float] = FLAT_COLOR
) -> None:
    rgb = np.asarray(color, dtype=np.float32).reshape(3)
    mesh.face_colors = np.broadcast_to(rgb, (mesh.face_count, 3, 3)).copy()


def apply_edge_debug_coloring(grid: TileGridMesh) -> None:
    """Highlight the northern face strip of each tile and tint by grid position.

    Faces in the first strip ramp from red to yellow; the rest take a color
    from the tile's (column, row) so misplaced tiles stand out.
    """

    width = grid.width
    span = max(width - 1, 1)
    for column in range(width):
        for row in range(width):
            mesh = grid.tile_at(column, row)
            strip = mesh.vertices_per_side * 2
            colors = np.empty((mesh.face_count, 3), dtype=np.float32)
            colors[:] = (column / span, 0.0, row / span)
            head = min(strip, mesh.face_count)
            colors[:head, 0] = 1.0
            colors[:head, 1] = np.arange(head, dtype=np.float32) / strip
            colors[:head, 2] = 0.0
            mesh.face_colors = np.repeat(colors[:, None, :], 3, axis=1)
