# src/satwater/services/radar_service.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Optional, Tuple

import numpy as np
from scipy import ndimage

from ..config import RadarSettings, Settings
from ..contracts.core import DateWindow, Stage
from ..contracts.errors import BandAlignmentError
from ..contracts.geo import GeoProfile, GeoRaster, validate_profile_compat
from ..contracts.products import Scene
from ..contracts.vector import Region
from ..ports.catalog import ImageCollectionPort
from .raster_ops import median_composite, region_mask

logger = logging.getLogger(__name__)


def rescale_to_byte(signal: np.ndarray, lo: float, hi: float) -> np.ndarray:
    """Escala lineal [lo, hi] -> [0, 255] uint8; NaN -> 0."""
    x = (np.nan_to_num(signal, nan=lo) - lo) / (hi - lo)
    return np.round(np.clip(x, 0.0, 1.0) * 255.0).astype(np.uint8)


@dataclass
class RadarCompositeService:
    """
    Composite SAR por mediana con máscara de ruido de borde por escena.
    Pipeline: QUERY → BORDER-NOISE MASK → SELECT POL → MEDIAN
    """
    catalog: ImageCollectionPort
    settings: Settings = field(default_factory=Settings)

    @property
    def radar(self) -> RadarSettings:
        return self.settings.radar

    def filters(self) -> Dict[str, object]:
        return {
            "polarization": self.radar.polarization,
            "instrument_mode": self.radar.instrument_mode,
            "resolution_m": self.radar.resolution_m,
        }

    # --------- API principal ---------
    def composite(
        self,
        target_date: date,
        region: Region,
        grid: GeoProfile,
        half_window_days: Optional[int] = None,
    ) -> GeoRaster:
        half = half_window_days or self.settings.compositing.half_window_days
        window = DateWindow(center=target_date, half_days=half)
        scenes = self.catalog.query(self.radar.collection_id, region, window, self.filters())
        pol = self.radar.polarization
        if not scenes:
            logger.warning("Sin escenas radar %s en %s: composite sin datos", pol, window)
            return GeoRaster.empty(grid, (pol,))

        masked = []
        for sc in scenes:
            try:
                validate_profile_compat(grid, sc.raster.profile)
            except BandAlignmentError as ex:
                raise BandAlignmentError(f"Escena {sc.scene_id} fuera de la grilla: {ex}", stage=Stage.RADAR) from ex
            masked.append(self.mask_border_noise(sc))
        out = median_composite(masked, grid, pol)
        logger.info("Radar %s: %d escenas en %s, %d px válidos", pol, len(scenes), window, out.valid_count())
        return out

    # --------- Fases internas ---------
    def mask_border_noise(self, scene: Scene) -> GeoRaster:
        """
        1) interior = huella reducida `border_buffer_m`
        2) copia byte reescalada; señal = byte > 0
        3) componentes conexas pequeñas fuera -> ruido
        4) dentro del interior se restaura la máscara original
        5) erosión final de `edge_erosion_m` (métrica, ver `_erode_metric`)
        Devuelve la banda de polarización con NaN donde se enmascara.
        """
        cfg = self.radar
        band = scene.raster.select(cfg.polarization)
        sig = band.as_float()
        valid = np.isfinite(sig)
        px, py = (abs(v) for v in band.profile.pixel_size())

        interior = self._footprint_interior(scene, valid, band.profile)

        lo, hi = cfg.byte_range_db
        signal = valid & (rescale_to_byte(sig, lo, hi) > 0)
        labeled, n = ndimage.label(signal)
        cleaned = signal
        if n and cfg.min_component_pixels > 0:
            sizes = np.bincount(labeled.ravel(), minlength=n + 1)
            small = sizes < cfg.min_component_pixels
            small[0] = False  # fondo
            cleaned = signal & ~small[labeled]

        keep = np.where(interior, valid, cleaned)

        keep = _erode_metric(keep, cfg.edge_erosion_m, (py, px))

        logger.debug(
            "Escena %s: %d px válidos -> %d tras ruido de borde", scene.scene_id, int(valid.sum()), int(keep.sum())
        )
        return band.masked(keep)

    def _footprint_interior(self, scene: Scene, valid: np.ndarray, profile: GeoProfile) -> np.ndarray:
        buf = self.radar.border_buffer_m
        if scene.footprint is not None:
            shrunk = scene.footprint.buffer(-buf) if buf > 0 else scene.footprint
            return region_mask(shrunk, profile) & valid
        # huella = contorno de los datos válidos; los huecos internos no son borde
        footprint = ndimage.binary_fill_holes(valid)
        if footprint.all() or not footprint.any():
            return valid.copy()
        px, py = (abs(v) for v in profile.pixel_size())
        dist = ndimage.distance_transform_edt(footprint, sampling=(py, px))
        return (dist > buf) & valid


def _erode_metric(keep: np.ndarray, distance_m: float, sampling: Tuple[float, float]) -> np.ndarray:
    """Quita píxeles cuyo centro está a <= `distance_m` del centro de un píxel descartado.

    Erosión en metros (disco), no en iteraciones de píxel: 20 m sobre una grilla
    de 30 m no quita nada; los bordes de la grilla no cuentan como descarte.
    """
    if distance_m <= 0 or keep.all() or not keep.any():
        return keep
    return keep & (ndimage.distance_transform_edt(keep, sampling=sampling) > distance_m)


__all__ = ["RadarCompositeService", "rescale_to_byte"]
