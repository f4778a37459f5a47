from __future__ import annotations

import json
from pathlib import Path

import pytest

from ground_tiles_config.settings import Settings, _canonical_env, _resolve_config_dir


def _write_config(dir_path: Path, env: str, data: dict) -> None:
    dir_path.mkdir(parents=True, exist_ok=True)
    (dir_path / f"{env}.json").write_text(json.dumps(data), encoding="utf-8")


def _base_config() -> dict:
    return {
        "mapbox": {
            "api_base_url": "https://api.mapbox.com",
            "style_url": "mapbox://styles/acme/terrain-v2",
            "timeout_s": 30,
            "tile_size": 512,
        }
    }


def test_canonical_env_defaults_and_aliases() -> None:
    assert _canonical_env(None) == "dev"
    assert _canonical_env("") == "dev"
    assert _canonical_env("development") == "dev"
    assert _canonical_env("stage") == "staging"
    assert _canonical_env("production") == "prod"
    with pytest.raises(ValueError, match="Invalid GROUND_TILES_ENV"):
        _canonical_env("nope")


def test_loads_json_and_token_from_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    config_dir = tmp_path / "config"
    _write_config(config_dir, "dev", _base_config())

    monkeypatch.setenv("GROUND_TILES_ENV", "dev")
    monkeypatch.setenv("GROUND_TILES_CONFIG_DIR", str(config_dir))
    monkeypatch.setenv("GROUND_TILES_MAPBOX_ACCESS_TOKEN", "pk.secret")

    settings = Settings()
    assert settings.mapbox.style_url == "mapbox://styles/acme/terrain-v2"
    assert settings.mapbox.tile_size == 512
    assert settings.mapbox.require_access_token() == "pk.secret"
    assert "pk.secret" not in repr(settings)


def test_env_overrides_deep_merge(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    config_dir = tmp_path / "config"
    _write_config(config_dir, "prod", _base_config())

    monkeypatch.setenv("GROUND_TILES_ENV", "production")
    monkeypatch.setenv("GROUND_TILES_CONFIG_DIR", str(config_dir))
    monkeypatch.setenv("GROUND_TILES_MAPBOX_TIMEOUT_S", "5.5")
    monkeypatch.setenv("GROUND_TILES_MAPBOX_API_BASE_URL", "http://tiles.internal/")

    settings = Settings()
    assert settings.mapbox.timeout_s == pytest.approx(5.5)
    assert settings.mapbox.api_base_url == "http://tiles.internal"
    assert settings.mapbox.tile_size == 512


def test_legacy_token_variable(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    config_dir = tmp_path / "config"
    _write_config(config_dir, "dev", _base_config())

    monkeypatch.setenv("GROUND_TILES_CONFIG_DIR", str(config_dir))
    monkeypatch.delenv("GROUND_TILES_ENV", raising=False)
    monkeypatch.delenv("GROUND_TILES_MAPBOX_ACCESS_TOKEN", raising=False)
    monkeypatch.setenv("GROUND_TILES_MAPBOX_TOKEN", "pk.legacy")

    assert Settings().mapbox.require_access_token() == "pk.legacy"


def test_missing_token_is_reported_on_use(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    config_dir = tmp_path / "config"
    _write_config(config_dir, "dev", _base_config())

    monkeypatch.setenv("GROUND_TILES_CONFIG_DIR", str(config_dir))
    monkeypatch.delenv("GROUND_TILES_ENV", raising=False)
    monkeypatch.delenv("GROUND_TILES_MAPBOX_ACCESS_TOKEN", raising=False)
    monkeypatch.delenv("GROUND_TILES_MAPBOX_TOKEN", raising=False)

    settings = Settings()
    with pytest.raises(ValueError, match="GROUND_TILES_MAPBOX_ACCESS_TOKEN is required"):
        settings.mapbox.require_access_token()


def test_empty_token_is_rejected(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    config_dir = tmp_path / "config"
    _write_config(config_dir, "dev", _base_config())

    monkeypatch.setenv("GROUND_TILES_CONFIG_DIR", str(config_dir))
    monkeypatch.delenv("GROUND_TILES_ENV", raising=False)
    monkeypatch.setenv("GROUND_TILES_MAPBOX_ACCESS_TOKEN", "  ")

    with pytest.raises(ValueError, match="must not be empty"):
        Settings()


def test_rejects_token_in_json(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    config_dir = tmp_path / "config"
    data = _base_config()
    data["mapbox"]["access_token"] = "pk.leaked"
    _write_config(config_dir, "dev", data)

    monkeypatch.setenv("GROUND_TILES_ENV", "dev")
    monkeypatch.setenv("GROUND_TILES_CONFIG_DIR", str(config_dir))

    with pytest.raises(ValueError, match="Secrets must not be stored in config JSON"):
        Settings()


def test_rejects_non_mapbox_style_url(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    config_dir = tmp_path / "config"
    data = _base_config()
    data["mapbox"]["style_url"] = "https://example.com/style.json"
    _write_config(config_dir, "dev", data)

    monkeypatch.setenv("GROUND_TILES_ENV", "dev")
    monkeypatch.setenv("GROUND_TILES_CONFIG_DIR", str(config_dir))

    with pytest.raises(ValueError, match="mapbox.style_url"):
        Settings()


def test_missing_env_file_raises(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    config_dir = tmp_path / "config"
    _write_config(config_dir, "dev", _base_config())

    monkeypatch.setenv("GROUND_TILES_ENV", "staging")
    monkeypatch.setenv("GROUND_TILES_CONFIG_DIR", str(config_dir))

    with pytest.raises(FileNotFoundError, match="staging.json"):
        Settings()


def test_config_dir_discovered_from_cwd(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    config_dir = tmp_path / "config"
    for env in ("dev", "staging", "prod"):
        _write_config(config_dir, env, _base_config())
    nested = tmp_path / "services" / "ground-tiles"
    nested.mkdir(parents=True)

    monkeypatch.delenv("GROUND_TILES_CONFIG_DIR", raising=False)
    monkeypatch.chdir(nested)
    assert _resolve_config_dir({}).resolve() == config_dir.resolve()
