# src/satwater/services/optical_service.py
from __future__ import annotations

"""
Composite óptico de índice de agua (MNDWI) con relleno climatológico.

Pipeline por ventana:
  QUERY (por sensor) → QA MASK (bits nube/sombra) → MNDWI (par de bandas del
  sensor) → MERGE → MEDIAN

Relleno (precedencia estricta, nunca sobrescribe píxeles válidos):
  1) composite directo ±half_window_days
  2) climatología ±half_window_days (mismo mes, N años previos, día ancla)
  3) composite directo ±fallback_half_window_days
  4) climatología ±fallback_half_window_days
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Sequence, Tuple

import numpy as np

from ..config import OpticalSettings, Settings
from ..contracts.core import DateWindow, Stage
from ..contracts.errors import BandAlignmentError
from ..contracts.geo import GeoProfile, GeoRaster, validate_profile_compat
from ..contracts.products import Scene, SensorSpec
from ..contracts.vector import Region
from ..ports.catalog import ImageCollectionPort
from .raster_ops import fill_gaps, median_composite

logger = logging.getLogger(__name__)


def nd_index(top: np.ndarray, bot: np.ndarray) -> np.ndarray:
    """(top - bot) / (top + bot); denominador 0 o NaN -> NaN."""
    top = top.astype("float32", copy=False)
    bot = bot.astype("float32", copy=False)
    den = top + bot
    out = np.full(top.shape, np.nan, dtype="float32")
    ok = np.isfinite(top) & np.isfinite(bot) & (den != 0)
    out[ok] = (top[ok] - bot[ok]) / den[ok]
    return out


def qa_clear_mask(qa: np.ndarray, bits: Sequence[int]) -> np.ndarray:
    """True donde TODOS los bits indicados están en 0 (y el QA existe)."""
    finite = np.isfinite(qa)
    q = np.where(finite, qa, 0).astype(np.uint32)
    clear = finite.copy()
    for b in bits:
        clear &= ((q >> np.uint32(b)) & np.uint32(1)) == 0
    return clear


# ----------------------
# DTOs de salida
# ----------------------

@dataclass(frozen=True)
class FillStep:
    name: str            # "primary" | "climatology" | "direct" | ...
    half_days: int
    filled: int          # píxeles que aportó este paso
    remaining: int       # píxeles sin dato tras el paso

@dataclass(frozen=True)
class OpticalComposite:
    raster: GeoRaster
    steps: Tuple[FillStep, ...]

    @property
    def remaining_gaps(self) -> int:
        return self.steps[-1].remaining if self.steps else int((~self.raster.valid_mask()).sum())


# ----------------------
# Servicio
# ----------------------

@dataclass
class OpticalCompositeService:
    catalog: ImageCollectionPort
    settings: Settings = field(default_factory=Settings)

    @property
    def optical(self) -> OpticalSettings:
        return self.settings.optical

    # --------- API principal ---------
    def composite(self, target_date: date, region: Region, grid: GeoProfile) -> OpticalComposite:
        comp = self.settings.compositing
        name = self.optical.index_name
        steps: List[FillStep] = []

        current = self.window_composite(DateWindow(center=target_date, half_days=comp.half_window_days), region, grid)
        gaps = self._gaps(current)
        steps.append(FillStep("primary", comp.half_window_days, int(current.valid_count()), gaps))

        plan = (
            ("climatology", comp.half_window_days),
            ("direct", comp.fallback_half_window_days),
            ("climatology", comp.fallback_half_window_days),
        )
        for step_name, half in plan:
            if gaps == 0:
                logger.debug("%s sin huecos: se omite %s ±%dd", name, step_name, half)
                continue
            if step_name == "direct":
                source = self.window_composite(DateWindow(center=target_date, half_days=half), region, grid)
            else:
                source = self.climatology(target_date, half, region, grid)
            current = fill_gaps(current, source)
            new_gaps = self._gaps(current)
            steps.append(FillStep(step_name, half, gaps - new_gaps, new_gaps))
            logger.info("%s relleno %s ±%dd: %d px rellenados, %d sin dato", name, step_name, half,
                        gaps - new_gaps, new_gaps)
            gaps = new_gaps

        return OpticalComposite(raster=current, steps=tuple(steps))

    def window_composite(self, window: DateWindow, region: Region, grid: GeoProfile) -> GeoRaster:
        """Mediana del índice sobre todas las escenas (todos los sensores) de la ventana."""
        layers: List[GeoRaster] = []
        for sensor in self.optical.sensors:
            scenes = self.catalog.query(sensor.collection_id, region, window)
            logger.debug("%s: %d escenas en %s", sensor.name, len(scenes), window)
            layers.extend(self.scene_index(sc, sensor, grid) for sc in scenes)
        if not layers:
            logger.warning("Sin escenas ópticas en %s", window)
        return median_composite(layers, grid, self.optical.index_name)

    def climatology(self, target_date: date, half_days: int, region: Region, grid: GeoProfile) -> GeoRaster:
        """
        Mediana de composites del mismo mes en los `climatology_years` años
        previos, cada uno centrado en el día ancla (15) con ±half_days.
        """
        comp = self.settings.compositing
        years = range(target_date.year - comp.climatology_years, target_date.year)
        ensemble = [
            self.window_composite(
                DateWindow.month_anchor(y, target_date.month, half_days, day=comp.climatology_anchor_day),
                region, grid,
            )
            for y in years
        ]
        return median_composite(ensemble, grid, self.optical.index_name)

    # --------- Fases internas ---------
    def scene_index(self, scene: Scene, sensor: SensorSpec, grid: GeoProfile) -> GeoRaster:
        try:
            validate_profile_compat(grid, scene.raster.profile)
        except BandAlignmentError as ex:
            raise BandAlignmentError(f"Escena {scene.scene_id} fuera de la grilla: {ex}", stage=Stage.OPTICAL) from ex
        r = scene.raster
        clear = qa_clear_mask(r.select(sensor.qa_band).as_float(), self.optical.cloud_bits)
        idx = nd_index(r.select(sensor.green_band).as_float(), r.select(sensor.swir_band).as_float())
        idx[~clear] = np.nan
        return GeoRaster(idx, grid.derive(count=1, dtype="float32"), (self.optical.index_name,))

    @staticmethod
    def _gaps(r: GeoRaster) -> int:
        return int((~r.valid_mask()).sum())


__all__ = ["OpticalCompositeService", "OpticalComposite", "FillStep", "nd_index", "qa_clear_mask"]
