# src/satwater/ports/raster_read.py
from __future__ import annotations

from typing import Optional, Protocol, Sequence, runtime_checkable
from ..contracts.geo import GeoRaster, GeoProfile

URI = str

@runtime_checkable
class RasterReaderPort(Protocol):
    """
    Lector de raster genérico (GeoTIFF/COG, etc.).
    Reglas: devuelve float32 con NaN como no-data y bandas nombradas.
    """
    def read(self, uri: URI, band_names: Optional[Sequence[str]] = None) -> GeoRaster: ...
    def read_aligned(self, uri: URI, grid: GeoProfile, band_names: Optional[Sequence[str]] = None) -> GeoRaster: ...
    def profile(self, uri: URI) -> GeoProfile: ...
    def exists(self, uri: URI) -> bool: ...

__all__ = ["RasterReaderPort", "URI"]
