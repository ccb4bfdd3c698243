# src/satwater/adapters/rasterio_reader.py
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np
import rasterio
from rasterio.crs import CRS
from rasterio.enums import Resampling
from rasterio.transform import Affine
from rasterio.warp import reproject

from ..contracts.geo import CRSRef, DTypeStr, GeoProfile, GeoRaster, GeoTransform
from ..ports.raster_read import RasterReaderPort

_DTYPE_MAP = {
    np.dtype("uint8"): "uint8",
    np.dtype("uint16"): "uint16",
    np.dtype("int16"): "int16",
    np.dtype("uint32"): "uint32",
    np.dtype("int32"): "int32",
    np.dtype("float32"): "float32",
    np.dtype("float64"): "float64",
}


def _np_to_dtype_str(dt) -> DTypeStr:
    try:
        return _DTYPE_MAP[np.dtype(dt)]  # type: ignore[return-value]
    except KeyError as e:  # pragma: no cover
        raise ValueError(f"dtype {dt} no soportado") from e


def affine_to_gt(a: Affine) -> GeoTransform:
    return (a.c, a.a, a.b, a.f, a.d, a.e)


def crsref_to_rasterio(crs: CRSRef) -> Optional[CRS]:
    if crs.is_empty:
        return None
    if crs.epsg is not None:
        return CRS.from_epsg(int(crs.epsg))
    return CRS.from_user_input(crs.wkt)


def rasterio_crs_to_crsref(crs_obj) -> CRSRef:
    """rasterio CRS → CRSRef (EPSG si se puede, si no WKT, si no vacío)."""
    if not crs_obj:
        return CRSRef()
    epsg = crs_obj.to_epsg()
    if epsg is not None:
        return CRSRef.from_epsg(int(epsg))
    wkt = crs_obj.to_wkt()
    return CRSRef.from_wkt(wkt) if wkt else CRSRef()


@dataclass(frozen=True)
class RasterioReader(RasterReaderPort):
    """
    Lector GeoTIFF/COG con rasterio.
    - Lectura enmascarada: no-data del archivo -> NaN (float32).
    - Nombres de banda: `band_names` explícitos, si no las descripciones del
      archivo, si no "b1", "b2", ...
    """

    def read(self, uri: str, band_names: Optional[Sequence[str]] = None) -> GeoRaster:
        with rasterio.open(uri) as ds:
            names = self._names(ds, band_names)
            arr = ds.read(masked=True)
            data = arr.astype("float32").filled(np.nan)
            profile = self._to_profile(ds).derive(count=ds.count, dtype="float32")
        return GeoRaster(data[0] if data.shape[0] == 1 else data, profile, names)

    def read_aligned(self, uri: str, grid: GeoProfile, band_names: Optional[Sequence[str]] = None) -> GeoRaster:
        """Lee y remuestrea (vecino más cercano) sobre la grilla de análisis."""
        with rasterio.open(uri) as ds:
            names = self._names(ds, band_names)
            src = ds.read(masked=True).astype("float32").filled(np.nan)
            dst = np.full((ds.count, grid.height, grid.width), np.nan, dtype="float32")
            reproject(
                source=src,
                destination=dst,
                src_transform=ds.transform,
                src_crs=ds.crs,
                src_nodata=np.nan,
                dst_transform=Affine.from_gdal(*grid.transform),
                dst_crs=crsref_to_rasterio(grid.crs) or ds.crs,
                dst_nodata=np.nan,
                resampling=Resampling.nearest,
            )
        profile = grid.derive(count=dst.shape[0], dtype="float32")
        return GeoRaster(dst[0] if dst.shape[0] == 1 else dst, profile, names)

    def profile(self, uri: str) -> GeoProfile:
        with rasterio.open(uri) as ds:
            return self._to_profile(ds)

    def exists(self, uri: str) -> bool:
        return os.path.exists(uri)

    # --------------- internos ---------------
    @staticmethod
    def _names(ds, band_names: Optional[Sequence[str]]) -> Tuple[str, ...]:
        if band_names:
            if len(band_names) != ds.count:
                raise ValueError(f"{ds.name}: {len(band_names)} nombres para {ds.count} bandas")
            return tuple(band_names)
        desc = tuple(d or "" for d in ds.descriptions)
        if all(desc) and len(set(desc)) == len(desc):
            return desc
        return tuple(f"b{i + 1}" for i in range(ds.count))

    @staticmethod
    def _to_profile(ds) -> GeoProfile:
        dtype0 = np.dtype(ds.dtypes[0]) if ds.dtypes and ds.dtypes[0] else np.dtype("float32")
        return GeoProfile(
            count=ds.count,
            dtype=_np_to_dtype_str(dtype0),
            width=ds.width,
            height=ds.height,
            transform=affine_to_gt(ds.transform),
            crs=rasterio_crs_to_crsref(ds.crs),
            nodata=float(ds.nodata) if ds.nodata is not None else None,
        )


__all__ = ["RasterioReader", "affine_to_gt", "crsref_to_rasterio", "rasterio_crs_to_crsref"]
