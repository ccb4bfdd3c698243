# src/satwater/adapters/rasterio_writer.py
from __future__ import annotations

import os
from typing import Optional

import numpy as np
import rasterio
from rasterio.transform import Affine

from ..contracts.geo import GeoRaster
from ..ports.raster_write import RasterWriterPort
from .rasterio_reader import crsref_to_rasterio


def _ensure_dir(path: str) -> None:
    d = os.path.dirname(path)
    if d and not os.path.exists(d):
        os.makedirs(d, exist_ok=True)


class RasterioWriter(RasterWriterPort):
    """GeoTIFF con rasterio. Guarda los nombres de banda como descripciones."""

    def write(self, uri: str, raster: GeoRaster, *, compress: Optional[str] = None, tiled: bool = True) -> str:
        _ensure_dir(uri)
        data = raster.as_stack()
        p = raster.profile
        nodata = p.nodata
        if nodata is None and data.dtype.kind == "f":
            nodata = float("nan")

        profile = {
            "driver": "GTiff",
            "height": p.height,
            "width": p.width,
            "count": data.shape[0],
            "dtype": data.dtype,
            "transform": Affine.from_gdal(*p.transform),
            "compress": (compress or "DEFLATE").upper(),
            "tiled": tiled,
            "nodata": nodata,
        }
        crs = crsref_to_rasterio(p.crs)
        if crs is not None:
            profile["crs"] = crs
        if tiled and min(p.width, p.height) >= 256:
            profile["blockxsize"] = profile["blockysize"] = 256
        else:
            # rasters chicos: strips
            profile["tiled"] = False

        with rasterio.open(uri, "w", **profile) as dst:
            dst.write(np.ascontiguousarray(data))
            for i, name in enumerate(raster.names(), start=1):
                dst.set_band_description(i, name)
        return uri

    def mkdirs(self, uri: str) -> None:
        _ensure_dir(uri)


__all__ = ["RasterioWriter"]
