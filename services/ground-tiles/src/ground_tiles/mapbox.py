from __future__ import annotations

import logging
from typing import Any, Final, Optional
from urllib.parse import urlencode

import httpx

from .elevation import RasterImage
from .web_mercator import TileAddress

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL: Final[str] = "https://api.mapbox.com"
TERRAIN_RGB_TILESET: Final[str] = "mapbox.terrain-rgb"
STYLE_URL_PREFIX: Final[str] = "mapbox://styles/"
DEFAULT_TILE_SIZE: Final[int] = 512


def style_id_from_url(style_url: str) -> str:
    """Reduce 'mapbox://styles/{owner}/{id}' to '{owner}/{id}'."""

    value = (style_url or "").strip()
    if value.startswith(STYLE_URL_PREFIX):
        value = value[len(STYLE_URL_PREFIX) :]
    value = value.strip("/")
    if value == "" or value.count("/") != 1:
        raise ValueError(f"Invalid map style url: {style_url!r}")
    return value


def _redact(url: str) -> str:
    head, sep, _ = url.partition("?")
    return f"{head}{sep}access_token=***" if sep else head


class MapboxTileClient:
    """Fetches styled imagery and terrain-RGB tiles for a tile address.

    Use as ``async with MapboxTileClient(...) as client`` and hand
    ``client.fetch_imagery`` / ``client.fetch_elevation`` to the grid fetcher.
    """

    def __init__(
        self,
        *,
        access_token: str,
        style_url: str,
        api_base_url: str = DEFAULT_API_BASE_URL,
        tile_size: int = DEFAULT_TILE_SIZE,
        timeout_s: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if access_token.strip() == "":
            raise ValueError("access_token must not be empty")
        if tile_size <= 0:
            raise ValueError("tile_size must be > 0")

        self.style_url = style_url
        self.style_id = style_id_from_url(style_url)
        self.api_base_url = api_base_url.rstrip("/")
        self.tile_size = int(tile_size)
        self._access_token = access_token
        self._timeout_s = float(timeout_s)
        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "MapboxTileClient":
        self._http = httpx.AsyncClient(
            timeout=httpx.Timeout(self._timeout_s),
            follow_redirects=True,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    def imagery_url(self, address: TileAddress) -> str:
        query = urlencode({"access_token": self._access_token})
        return (
            f"{self.api_base_url}/styles/v1/{self.style_id}/tiles/{self.tile_size}/"
            f"{address.zoom}/{address.x}/{address.y}@2x?{query}"
        )

    def elevation_url(self, address: TileAddress) -> str:
        query = urlencode({"access_token": self._access_token, "style": self.style_url})
        return (
            f"{self.api_base_url}/v4/{TERRAIN_RGB_TILESET}/"
            f"{address.zoom}/{address.x}/{address.y}@2x.pngraw?{query}"
        )

    async def _get_raster(self, url: str, *, kind: str, address: TileAddress) -> RasterImage:
        if self._http is None:
            raise RuntimeError("MapboxTileClient must be used as an async context manager")
        resp = await self._http.get(url)
        resp.raise_for_status()
        logger.debug(
            "tile_fetched",
            extra={
                "tile": address.key(),
                "kind": kind,
                "url": _redact(url),
                "bytes": len(resp.content),
            },
        )
        return RasterImage.from_bytes(resp.content)

    async def fetch_imagery(self, address: TileAddress) -> RasterImage:
        return await self._get_raster(
            self.imagery_url(address), kind="imagery", address=address
        )

    async def fetch_elevation(self, address: TileAddress) -> RasterImage:
        return await self._get_raster(
            self.elevation_url(address), kind="elevation", address=address
        )
