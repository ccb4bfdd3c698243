# src/satwater/services/raster_ops.py
from __future__ import annotations

"""
Operaciones raster puras compartidas por los servicios:
  • region_mask / clip_to_region: rasteriza una Region sobre una grilla
  • median_composite: reducción por mediana ignorando no-data
  • fill_gaps: rellena no-data sin sobrescribir píxeles válidos
  • sample_points: muestreo acotado de píxeles como FeatureCollection

Nada aquí hace I/O ni resamplea: las grillas deben coincidir.
"""

import logging
import warnings
from typing import Optional, Sequence

import numpy as np
from rasterio.features import geometry_mask
from rasterio.transform import Affine
from shapely.geometry import Point, mapping

from ..contracts.geo import GeoProfile, GeoRaster, pixel_to_world, validate_profile_compat
from ..contracts.vector import Feature, FeatureCollection, Region

logger = logging.getLogger(__name__)


def to_affine(profile: GeoProfile) -> Affine:
    return Affine.from_gdal(*profile.transform)


def region_mask(region: Region, profile: GeoProfile, *, all_touched: bool = False) -> np.ndarray:
    """True en los píxeles cuyo centro cae dentro de la región."""
    if not region.crs.compatible(profile.crs):
        raise ValueError(f"CRS de la región ({region.crs}) no coincide con la grilla ({profile.crs})")
    if region.is_empty:
        return np.zeros(profile.shape, dtype=bool)
    return geometry_mask(
        [mapping(region.geometry)],
        out_shape=profile.shape,
        transform=to_affine(profile),
        invert=True,
        all_touched=all_touched,
    )


def clip_to_region(raster: GeoRaster, region: Region) -> GeoRaster:
    """Enmascara fuera de la región (la grilla no cambia)."""
    return raster.masked(region_mask(region, raster.profile))


def median_composite(rasters: Sequence[GeoRaster], grid: GeoProfile, band_name: str) -> GeoRaster:
    """
    Mediana por píxel de rasters de una banda alineados a `grid`.
    No-data sólo donde TODAS las entradas son no-data; colección vacía ->
    raster completamente sin datos.
    """
    if not rasters:
        return GeoRaster.empty(grid, (band_name,))
    arrs = []
    for r in rasters:
        if not r.is_single_band():
            raise ValueError(f"median_composite espera rasters de una banda, no {r.count}")
        validate_profile_compat(grid, r.profile)
        arrs.append(r.as_float())
    stack = np.stack(arrs, axis=0)
    with warnings.catch_warnings():
        # "All-NaN slice encountered": justamente los píxeles sin datos
        warnings.simplefilter("ignore", category=RuntimeWarning)
        med = np.nanmedian(stack, axis=0)
    return GeoRaster(med.astype("float32", copy=False), grid.derive(count=1, dtype="float32"), (band_name,))


def fill_gaps(primary: GeoRaster, fallback: GeoRaster) -> GeoRaster:
    """Completa no-data de `primary` con `fallback`; nunca reemplaza datos válidos."""
    validate_profile_compat(primary.profile, fallback.profile)
    if primary.count != fallback.count:
        raise ValueError("fill_gaps requiere el mismo número de bandas")
    keep = primary.valid_mask()
    a = primary.as_float()
    b = fallback.as_float()
    out = np.where(keep, a, b) if a.ndim == 2 else np.where(keep[np.newaxis], a, b)
    return GeoRaster(out.astype("float32", copy=False), primary.profile.derive(count=primary.count, dtype="float32"),
                     primary.band_names)


def sample_points(
    raster: GeoRaster,
    region: Region,
    cap: int,
    *,
    seed: int = 0,
    rng: Optional[np.random.Generator] = None,
) -> FeatureCollection:
    """
    Muestrea hasta `cap` píxeles válidos dentro de `region` (sin reemplazo).
    Cada punto (centro de píxel) lleva el valor de cada banda más `row`/`col`.
    """
    if cap <= 0:
        raise ValueError("cap debe ser > 0")
    inside = region_mask(region, raster.profile) & raster.valid_mask()
    rows, cols = np.nonzero(inside)
    n = int(rows.size)
    if n > cap:
        rng = rng or np.random.default_rng(seed)
        idx = np.sort(rng.choice(n, size=cap, replace=False))
        rows, cols = rows[idx], cols[idx]
    names = raster.names()
    values = raster.as_stack()[:, rows, cols]
    gt = raster.profile.transform
    feats = []
    for i, (r, c) in enumerate(zip(rows.tolist(), cols.tolist())):
        x, y = pixel_to_world(c + 0.5, r + 0.5, gt)
        props = {name: values[b, i].item() for b, name in enumerate(names)}
        props["row"] = r
        props["col"] = c
        feats.append(Feature(Point(x, y), props))
    logger.debug("Muestreo: %d de %d píxeles válidos en la región (cap=%d)", len(feats), n, cap)
    return FeatureCollection(tuple(feats), raster.profile.crs)


__all__ = ["to_affine", "region_mask", "clip_to_region", "median_composite", "fill_gaps", "sample_points"]
