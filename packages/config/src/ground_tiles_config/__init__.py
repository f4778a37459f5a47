from .settings import MapboxSettings, Settings

__all__ = [
    "MapboxSettings",
    "Settings",
]
