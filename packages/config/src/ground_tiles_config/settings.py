from __future__ import annotations

import json
import os
from copy import deepcopy
from pathlib import Path
from typing import Any, Mapping, Optional, Type

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources import PydanticBaseSettingsSource

_GROUND_TILES_PREFIX = "GROUND_TILES_"


def _canonical_env(value: Optional[str]) -> str:
    if value is None or value.strip() == "":
        return "dev"

    normalized = value.strip().lower()
    aliases = {
        "dev": "dev",
        "development": "dev",
        "staging": "staging",
        "stage": "staging",
        "prod": "prod",
        "production": "prod",
    }
    if normalized in aliases:
        return aliases[normalized]
    raise ValueError(
        f"Invalid GROUND_TILES_ENV={value!r}; expected one of: dev, staging, prod"
    )


def _deep_update(base: dict[str, Any], updates: Mapping[str, Any]) -> dict[str, Any]:
    for key, value in updates.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_update(base[key], value)
        else:
            base[key] = value
    return base


def _resolve_config_dir(environ: Optional[Mapping[str, str]] = None) -> Path:
    environ = environ or os.environ
    explicit = environ.get(f"{_GROUND_TILES_PREFIX}CONFIG_DIR")
    if explicit:
        explicit_path = Path(explicit).expanduser()
        if not explicit_path.is_absolute():
            explicit_path = (Path.cwd() / explicit_path).resolve()
        return explicit_path

    cwd = Path.cwd()
    for candidate_root in (cwd, *cwd.parents):
        config_dir = candidate_root / "config"
        if (
            (config_dir / "dev.json").is_file()
            and (config_dir / "staging.json").is_file()
            and (config_dir / "prod.json").is_file()
        ):
            return config_dir

    return cwd / "config"


def _validate_no_secrets_in_json(data: Any, *, source: Optional[Path] = None) -> None:
    if not isinstance(data, dict):
        raise ValueError(
            f"Config JSON must be an object at top-level{f' ({source})' if source else ''}"
        )

    forbidden_paths = {
        ("mapbox", "access_token"),
    }

    present: list[str] = []
    for path in forbidden_paths:
        cursor: Any = data
        for key in path:
            if not isinstance(cursor, dict) or key not in cursor:
                cursor = None
                break
            cursor = cursor[key]
        if cursor is not None:
            present.append(".".join(path))

    if present:
        location = f" in {source}" if source else ""
        raise ValueError(
            "Secrets must not be stored in config JSON"
            f"{location}: {', '.join(sorted(present))}"
        )


def _env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    category_to_section = {
        "MAPBOX": "mapbox",
    }

    legacy_map = {
        "MAPBOX_TOKEN": ("mapbox", "access_token"),
    }

    result: dict[str, Any] = {}
    for key, value in environ.items():
        if not key.startswith(_GROUND_TILES_PREFIX):
            continue
        suffix = key[len(_GROUND_TILES_PREFIX) :]
        if suffix in {"ENV", "CONFIG_DIR", "CONFIG"}:
            continue

        if suffix in legacy_map:
            section, field_name = legacy_map[suffix]
            result.setdefault(section, {})[field_name] = value
            continue

        if "_" not in suffix:
            continue
        category, rest = suffix.split("_", 1)
        section = category_to_section.get(category)
        if section is None:
            continue
        field_name = rest.lower()
        result.setdefault(section, {})[field_name] = value

    return result


class MapboxSettings(BaseModel):
    api_base_url: str = "https://api.mapbox.com"
    style_url: str
    access_token: Optional[SecretStr] = Field(default=None, repr=False)
    timeout_s: float = Field(default=30.0, gt=0)
    tile_size: int = Field(default=512, gt=0)

    @field_validator("api_base_url")
    @classmethod
    def _normalize_base_url(cls, value: str) -> str:
        normalized = (value or "").strip().rstrip("/")
        if not normalized.startswith(("http://", "https://")):
            raise ValueError("mapbox.api_base_url must be an http(s) URL")
        return normalized

    @field_validator("style_url")
    @classmethod
    def _validate_style_url(cls, value: str) -> str:
        normalized = (value or "").strip()
        if not normalized.startswith("mapbox://styles/"):
            raise ValueError("mapbox.style_url must look like mapbox://styles/{owner}/{id}")
        return normalized

    @model_validator(mode="after")
    def _reject_empty_token(self) -> "MapboxSettings":
        if (
            self.access_token is not None
            and self.access_token.get_secret_value().strip() == ""
        ):
            raise ValueError("GROUND_TILES_MAPBOX_ACCESS_TOKEN must not be empty")
        return self

    def require_access_token(self) -> str:
        if self.access_token is None:
            raise ValueError("GROUND_TILES_MAPBOX_ACCESS_TOKEN is required")
        return self.access_token.get_secret_value()


class _GroundTilesSettingsSource:
    def __call__(self) -> dict[str, Any]:
        environ = os.environ
        env = _canonical_env(environ.get(f"{_GROUND_TILES_PREFIX}ENV"))
        config_dir = _resolve_config_dir(environ)
        config_path = config_dir / f"{env}.json"
        if not config_path.is_file():
            raise FileNotFoundError(
                f"Config file not found: {config_path} (GROUND_TILES_ENV={env!r}, "
                f"GROUND_TILES_CONFIG_DIR={str(config_dir)!r})"
            )

        raw = json.loads(config_path.read_text(encoding="utf-8"))
        _validate_no_secrets_in_json(raw, source=config_path)

        merged = deepcopy(raw)
        overrides = _env_overrides(environ)
        _deep_update(merged, overrides)
        return merged


class Settings(BaseSettings):
    mapbox: MapboxSettings

    model_config = SettingsConfigDict(extra="forbid")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (init_settings, _GroundTilesSettingsSource())
