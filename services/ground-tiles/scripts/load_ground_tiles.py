from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional, Sequence

import numpy as np

GROUND_TILES_SRC = Path(__file__).resolve().parents[1] / "src"
CONFIG_SRC = Path(__file__).resolve().parents[3] / "packages" / "config" / "src"
sys.path.insert(0, str(GROUND_TILES_SRC))
sys.path.insert(0, str(CONFIG_SRC))

from ground_tiles.config import get_ground_tiles_config  # noqa: E402
from ground_tiles.errors import GroundTileError  # noqa: E402
from ground_tiles.mapbox import MapboxTileClient  # noqa: E402
from ground_tiles.mesh import TileGridMesh  # noqa: E402
from ground_tiles.pipeline import GroundTileLoader, LoadRequest, LoadStats  # noqa: E402
from ground_tiles.tile_grid import resolve_tile_grid  # noqa: E402
from ground_tiles.web_mercator import GeoPoint  # noqa: E402
from ground_tiles_config import Settings  # noqa: E402


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Load a grid of map tiles around a point as stitched terrain meshes."
    )
    parser.add_argument("--lon", type=float, required=True, help="Origin longitude (deg)")
    parser.add_argument("--lat", type=float, required=True, help="Origin latitude (deg)")
    parser.add_argument("--zoom", type=int, default=None, help="Tile zoom (default: config)")
    parser.add_argument(
        "--grid-width",
        type=int,
        default=None,
        help="Odd tile count per side (default: 3 with topography, 5 without)",
    )
    parser.add_argument(
        "--topography",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Fetch terrain-RGB tiles and displace the meshes",
    )
    parser.add_argument(
        "--resolution-exponent",
        type=int,
        default=None,
        help="Sample every 2**N elevation pixels (0-9)",
    )
    parser.add_argument(
        "--max-slope", type=float, default=None, help="Maximum allowable slope (deg)"
    )
    parser.add_argument(
        "--coloring",
        choices=["slope", "flat", "edges"],
        default=None,
        help="Face coloring mode",
    )
    parser.add_argument(
        "--config", type=Path, default=None, help="ground-tiles.yaml path"
    )
    parser.add_argument(
        "--out-dir", type=Path, default=None, help="Directory for {z}_{x}_{y}.npz + summary.json"
    )
    parser.add_argument(
        "--dry-run",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Print the planned tile addresses without fetching",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def _build_request(args: argparse.Namespace) -> LoadRequest:
    config = get_ground_tiles_config(args.config)
    overrides: dict[str, Any] = {}
    if args.zoom is not None:
        overrides["zoom"] = args.zoom
    if args.grid_width is not None:
        overrides["grid_width"] = args.grid_width
    if args.topography is not None:
        overrides["load_topography"] = args.topography
    if args.resolution_exponent is not None:
        overrides["resolution_exponent"] = args.resolution_exponent
    if args.max_slope is not None:
        overrides["max_allowable_slope"] = args.max_slope
    if args.coloring is not None:
        overrides["coloring"] = args.coloring
    if overrides:
        config = type(config).model_validate({**config.model_dump(), **overrides})
    return LoadRequest.from_config(GeoPoint(lon=args.lon, lat=args.lat), config)


def _write_tiles(out_dir: Path, mesh: TileGridMesh) -> list[str]:
    out_dir.mkdir(parents=True, exist_ok=True)
    written: list[str] = []
    for tile in mesh:
        address = tile.address
        path = out_dir / f"{address.zoom}_{address.x}_{address.y}.npz"
        arrays: dict[str, np.ndarray] = {
            "vertices": tile.vertices,
            "faces": tile.faces,
            "offset": tile.offset,
        }
        if tile.vertex_normals is not None:
            arrays["normals"] = tile.vertex_normals
        if tile.face_colors is not None:
            arrays["colors"] = tile.face_colors
        np.savez_compressed(path, **arrays)
        written.append(path.name)
    return written


def _summary(request: LoadRequest, stats: LoadStats, files: Sequence[str]) -> dict[str, Any]:
    return {
        "origin": {"lon": request.origin.lon, "lat": request.origin.lat},
        "zoom": request.zoom,
        "grid_width": request.effective_grid_width,
        "topography": request.load_topography,
        "resolution_exponent": request.resolution_exponent,
        "max_allowable_slope": request.max_allowable_slope,
        "coloring": request.coloring,
        "tile_count": stats.tile_count,
        "vertex_count": stats.vertex_count,
        "face_count": stats.face_count,
        "min_elevation": stats.min_elevation,
        "max_elevation": stats.max_elevation,
        "elapsed_s": stats.elapsed_s,
        "files": list(files),
    }


async def _run(request: LoadRequest, out_dir: Optional[Path]) -> dict[str, Any]:
    settings = Settings()
    mapbox = settings.mapbox
    async with MapboxTileClient(
        access_token=mapbox.require_access_token(),
        style_url=mapbox.style_url,
        api_base_url=mapbox.api_base_url,
        tile_size=mapbox.tile_size,
        timeout_s=mapbox.timeout_s,
    ) as client:
        loader = GroundTileLoader(client.fetch_imagery, client.fetch_elevation)
        try:
            stats = await loader.load(request)
            files: list[str] = []
            if out_dir is not None and loader.current is not None:
                files = _write_tiles(out_dir, loader.current)
        finally:
            await loader.close()
    return _summary(request, stats, files)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    try:
        request = _build_request(args)
        if args.dry_run:
            grid = resolve_tile_grid(request.origin, request.zoom, request.effective_grid_width)
            print(
                json.dumps(
                    {
                        "zoom": grid.zoom,
                        "grid_width": grid.width,
                        "origin_tile": grid.origin_tile.key(),
                        "tiles": [address.key() for address in grid.addresses],
                    },
                    ensure_ascii=False,
                    indent=2,
                )
            )
            return 0

        summary = asyncio.run(_run(request, args.out_dir))
    except (GroundTileError, ValueError, FileNotFoundError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    if args.out_dir is not None:
        (args.out_dir / "summary.json").write_text(
            json.dumps(summary, ensure_ascii=False, indent=2, sort_keys=True),
            encoding="utf-8",
        )
    print(json.dumps(summary, ensure_ascii=False, indent=2, sort_keys=True))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
