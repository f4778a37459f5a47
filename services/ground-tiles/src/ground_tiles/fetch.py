from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from .elevation import RasterImage, decode_elevation, validate_resolution_exponent
from .errors import TileFetchFailed
from .mesh import MeshTile, TileGridMesh, build_tile_mesh, tile_world_offset
from .tile_grid import TileGrid
from .web_mercator import TileAddress, offset_meters, tile_side_length_meters

logger = logging.getLogger(__name__)

RasterFetcher = Callable[[TileAddress], Awaitable[RasterImage]]


async def _guarded_fetch(
    kind: str, fetcher: RasterFetcher, address: TileAddress
) -> RasterImage:
    try:
        return await fetcher(address)
    except asyncio.CancelledError:
        raise
    except Exception as exc:  # noqa: BLE001
        logger.warning(
            "tile_fetch_failed",
            extra={"tile": address.key(), "kind": kind, "error": str(exc)},
        )
        raise TileFetchFailed(address, exc, kind=kind) from exc


async def fetch_tile_grid(
    grid: TileGrid,
    fetch_imagery: RasterFetcher,
    fetch_elevation: Optional[RasterFetcher] = None,
    *,
    resolution_exponent: int = 0,
) -> TileGridMesh:
    """Fetch every tile of `grid` concurrently and build one mesh per tile.

    All-or-nothing: if any fetch fails the remaining work is cancelled and
    the failure is raised as `TileFetchFailed`; no partial grid is returned.
    """

    if fetch_elevation is not None:
        validate_resolution_exponent(resolution_exponent)

    tile_side_length = tile_side_length_meters(grid.zoom)
    origin_offset = offset_meters(grid.origin_tile, grid.origin, grid.zoom)
    order = {address: index for index, address in enumerate(grid.addresses)}

    async def load_tile(address: TileAddress) -> MeshTile:
        fetches = [asyncio.ensure_future(_guarded_fetch("imagery", fetch_imagery, address))]
        if fetch_elevation is not None:
            fetches.append(
                asyncio.ensure_future(
                    _guarded_fetch("elevation", fetch_elevation, address)
                )
            )
        try:
            rasters = await asyncio.gather(*fetches)
        except BaseException:
            for pending_fetch in fetches:
                pending_fetch.cancel()
            await asyncio.gather(*fetches, return_exceptions=True)
            raise

        elevation = (
            decode_elevation(rasters[1], resolution_exponent)
            if fetch_elevation is not None
            else None
        )
        return build_tile_mesh(
            address,
            rasters[0],
            elevation,
            tile_side_length,
            tile_world_offset(address, grid.origin_tile, tile_side_length, origin_offset),
        )

    started = time.perf_counter()
    logger.info(
        "tile_grid_fetch_started",
        extra={
            "zoom": grid.zoom,
            "width": grid.width,
            "tile_count": len(grid),
            "elevation": fetch_elevation is not None,
        },
    )

    tasks = {asyncio.ensure_future(load_tile(address)): address for address in grid.addresses}
    try:
        done, pending = await asyncio.wait(list(tasks), return_when=asyncio.FIRST_EXCEPTION)
        failed = [task for task in done if not task.cancelled() and task.exception() is not None]
        if failed:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            first = min(failed, key=lambda task: order[tasks[task]])
            error = first.exception()
            logger.error(
                "tile_grid_fetch_failed",
                extra={
                    "tile": tasks[first].key(),
                    "failed_tiles": len(failed),
                    "cancelled_tiles": len(pending),
                    "error": str(error),
                },
            )
            raise error  # type: ignore[misc]
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()

    meshes = {tasks[task]: task.result() for task in done}
    result = TileGridMesh.assemble(grid, meshes)
    logger.info(
        "tile_grid_fetch_finished",
        extra={
            "tile_count": len(meshes),
            "elapsed_s": round(time.perf_counter() - started, 3),
        },
    )
    return result
