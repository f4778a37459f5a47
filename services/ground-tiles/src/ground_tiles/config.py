from __future__ import annotations

import math
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Final, Literal, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from ground_tiles_config.settings import _resolve_config_dir

SUPPORTED_SCHEMA_VERSIONS: Final[set[int]] = {1}

DEFAULT_GROUND_TILES_CONFIG_NAME: Final[str] = "ground-tiles.yaml"
DEFAULT_GROUND_TILES_CONFIG_ENV: Final[str] = "GROUND_TILES_CONFIG"

DEFAULT_ZOOM: Final[int] = 17
DEFAULT_GRID_WIDTH_WITH_TOPOGRAPHY: Final[int] = 3
DEFAULT_GRID_WIDTH_FLAT: Final[int] = 5

ColoringMode = Literal["slope", "flat", "edges"]


class GroundTilesConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    schema_version: int = 1

    zoom: int = Field(default=DEFAULT_ZOOM, ge=0, le=22)
    # None picks 3 with topography, 5 without.
    grid_width: Optional[int] = Field(default=None, ge=1)
    load_topography: bool = True
    resolution_exponent: int = Field(default=3, ge=0, le=9)
    max_allowable_slope: float = Field(default=45.0, ge=0.0, le=90.0)
    coloring: ColoringMode = "slope"
    reconcile_corners: bool = True

    @field_validator("grid_width")
    @classmethod
    def _require_odd_width(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value % 2 == 0:
            raise ValueError("grid_width must be odd")
        return value

    @field_validator("max_allowable_slope")
    @classmethod
    def _require_finite_slope(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("max_allowable_slope must be finite")
        return value

    @model_validator(mode="after")
    def _validate_schema_version(self) -> "GroundTilesConfig":
        if self.schema_version not in SUPPORTED_SCHEMA_VERSIONS:
            raise ValueError(
                f"Unsupported ground tiles schema_version={self.schema_version}; "
                f"supported versions: {sorted(SUPPORTED_SCHEMA_VERSIONS)}"
            )
        return self

    @property
    def effective_grid_width(self) -> int:
        if self.grid_width is not None:
            return self.grid_width
        if self.load_topography:
            return DEFAULT_GRID_WIDTH_WITH_TOPOGRAPHY
        return DEFAULT_GRID_WIDTH_FLAT


def _resolve_config_path(path: Optional[Union[str, Path]]) -> Path:
    if path is not None:
        candidate = Path(path).expanduser()
        if not candidate.is_absolute():
            candidate = (Path.cwd() / candidate).resolve()
        return candidate

    explicit = os.environ.get(DEFAULT_GROUND_TILES_CONFIG_ENV)
    if explicit:
        candidate = Path(explicit).expanduser()
        if not candidate.is_absolute():
            candidate = (Path.cwd() / candidate).resolve()
        return candidate

    config_dir = _resolve_config_dir(os.environ)
    return config_dir / DEFAULT_GROUND_TILES_CONFIG_NAME


def _parse_yaml(text: str, *, source: Path) -> Mapping[str, Any]:
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ValueError(f"Failed to load ground tiles YAML: {source}") from exc

    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise ValueError(f"ground tiles config must be a mapping: {source}")
    return data


def load_ground_tiles_config(
    path: Optional[Union[str, Path]] = None,
) -> GroundTilesConfig:
    config_path = _resolve_config_path(path)
    if not config_path.is_file():
        raise FileNotFoundError(f"ground tiles config file not found: {config_path}")

    raw_text = config_path.read_text(encoding="utf-8")
    data = dict(_parse_yaml(raw_text, source=config_path))

    try:
        return GroundTilesConfig.model_validate(data)
    except ValidationError as exc:
        raise ValueError(f"Invalid ground tiles config ({config_path}): {exc}") from exc


@lru_cache(maxsize=8)
def _get_ground_tiles_config_cached(
    config_path: str, mtime_ns: int, size: int
) -> GroundTilesConfig:
    _ = (mtime_ns, size)
    return load_ground_tiles_config(config_path)


def get_ground_tiles_config(
    path: Optional[Union[str, Path]] = None,
) -> GroundTilesConfig:
    resolved = _resolve_config_path(path)
    try:
        stat = resolved.stat()
    except FileNotFoundError as exc:
        raise FileNotFoundError(f"ground tiles config file not found: {resolved}") from exc
    return _get_ground_tiles_config_cached(str(resolved), stat.st_mtime_ns, stat.st_size)


get_ground_tiles_config.cache_clear = _get_ground_tiles_config_cached.cache_clear  # type: ignore[attr-defined]
