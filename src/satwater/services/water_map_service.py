# src/satwater/services/water_map_service.py
from __future__ import annotations

"""
Servicio de mapa de agua superficial (fusión SAR + MNDWI), contracts-first.
Pipeline determinista:
  RADAR → OPTICAL (+ relleno) → FUSE → TRAIN → ASSIGN → SELECT → (EXPORT opcional)

No asume backends concretos: el catálogo y el writer van vía *ports*.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

import numpy as np

from ..config import Settings
from ..contracts.core import RunMeta, Stage
from ..contracts.errors import WaterMapError
from ..contracts.geo import GeoProfile, GeoRaster, grid_for_bounds
from ..contracts.vector import Region, ReferenceWater
from ..ports.catalog import ImageCollectionPort
from ..ports.raster_write import RasterWriterPort
from .clustering_service import (
    LABEL_BAND, LABEL_NODATA, ClusterAssignmentService, ClusterTrainingService, display_labels,
)
from .fusion_service import FeatureFusionService
from .optical_service import FillStep, OpticalCompositeService
from .radar_service import RadarCompositeService
from .raster_ops import region_mask
from .water_selection_service import WaterClusterSelector, empty_water_mask

logger = logging.getLogger(__name__)


# ----------------------
# DTOs
# ----------------------

@dataclass(frozen=True)
class WaterMapResult:
    water_mask: GeoRaster                      # uint8, 1 = agua, 0 = sin dato
    water_cluster_id: Optional[int]
    votes: Tuple[int, ...]
    run: RunMeta
    # intermedios (None si keep_intermediates=False)
    radar: Optional[GeoRaster] = None
    optical: Optional[GeoRaster] = None
    fill_steps: Tuple[FillStep, ...] = ()
    fused: Optional[GeoRaster] = None
    labels: Optional[GeoRaster] = None         # int16 0-based, -1 sin dato
    labels_display: Optional[GeoRaster] = None  # uint8 1-based, 0 sin dato

    @property
    def has_water(self) -> bool:
        return self.water_cluster_id is not None

    @property
    def water_pixels(self) -> int:
        return int((self.water_mask.data == 1).sum())


def analysis_grid(region: Region, settings: Settings) -> GeoProfile:
    """Grilla norte-arriba sobre los bounds de la región (CRS de la región o `crs_out`)."""
    crs = region.crs if not region.crs.is_empty else settings.crs_out_ref()
    return grid_for_bounds(region.bounds, settings.grid_resolution_m, crs)


# ----------------------
# Servicio
# ----------------------

@dataclass
class WaterMapService:
    catalog: ImageCollectionPort
    settings: Settings = field(default_factory=Settings)
    writer: Optional[RasterWriterPort] = None

    radar_service: RadarCompositeService = field(init=False)
    optical_service: OpticalCompositeService = field(init=False)
    fuser: FeatureFusionService = field(init=False)
    trainer: ClusterTrainingService = field(init=False)
    assigner: ClusterAssignmentService = field(init=False)
    selector: WaterClusterSelector = field(init=False)

    def __post_init__(self) -> None:
        self.radar_service = RadarCompositeService(self.catalog, self.settings)
        self.optical_service = OpticalCompositeService(self.catalog, self.settings)
        self.fuser = FeatureFusionService()
        self.trainer = ClusterTrainingService(self.settings)
        self.assigner = ClusterAssignmentService()
        self.selector = WaterClusterSelector(self.settings)

    # --------- API principal ---------
    def classify_water(
        self,
        target_date: date,
        region: Region,
        reference: Union[ReferenceWater, Region],
        cluster_count: Optional[int] = None,
        grid: Optional[GeoProfile] = None,
        keep_intermediates: bool = True,
    ) -> WaterMapResult:
        k = int(cluster_count if cluster_count is not None else self.settings.clustering.cluster_count)
        if k < 2:
            raise ValueError("cluster_count debe ser >= 2")
        if region.is_empty:
            raise ValueError("La región de análisis está vacía")
        grid = grid or self.analysis_grid(region)
        run = RunMeta(target_date=target_date, cluster_count=k)
        logger.info("Mapa de agua %s: grilla %dx%d, k=%d", target_date.isoformat(), grid.width, grid.height, k)

        # 1) Composites
        radar = self.radar_service.composite(target_date, region, grid)
        optical = self.optical_service.composite(target_date, region, grid)

        # 2) Fusión
        fused = self.fuser.fuse(radar, optical.raster)

        # 3) Política: sin datos fusionados en la región -> resultado vacío
        usable = int((region_mask(region, fused.profile) & fused.valid_mask()).sum())
        if usable == 0:
            logger.warning("Raster fusionado sin datos dentro de la región: no se entrena")
            labels = GeoRaster(
                np.full(grid.shape, LABEL_NODATA, dtype="int16"),
                grid.derive(count=1, dtype="int16", nodata=LABEL_NODATA),
                (LABEL_BAND,),
            )
            return self._result(
                empty_water_mask(labels), None, np.zeros(k, dtype="int64"), run.end_now("sin datos"),
                keep_intermediates, radar, optical.steps, optical.raster, fused, labels,
            )

        # 4) Clustering
        model = self.trainer.train(fused, k, region)
        labels = self.assigner.assign(fused, model, region)

        # 5) Selección del cluster agua
        sel = self.selector.select(labels, reference, k)
        return self._result(
            sel.mask, sel.cluster_id, sel.votes, run.end_now(), keep_intermediates,
            radar, optical.steps, optical.raster, fused, labels,
        )

    def analysis_grid(self, region: Region) -> GeoProfile:
        return analysis_grid(region, self.settings)

    # --------- Export (opcional) ---------
    def export(self, result: WaterMapResult, out_dir: Optional[Path] = None) -> Dict[str, Path]:
        """Escribe la máscara (y los intermedios presentes). Devuelve {clave: ruta}."""
        if self.writer is None:
            raise RuntimeError("RasterWriterPort no configurado")
        tag = result.run.target_date.strftime("%Y%m%d")
        items: Dict[str, Optional[GeoRaster]] = {
            "water_mask": result.water_mask,
            "radar": result.radar,
            "optical": result.optical,
            "fused": result.fused,
            "labels": result.labels_display,
        }
        written: Dict[str, Path] = {}
        for key, raster in items.items():
            if raster is None:
                continue
            if out_dir is not None:
                path = Path(out_dir) / Path(self.settings.output_patterns[key].format(date=tag)).name
            else:
                path = self.settings.out_path(key, date=tag)
            try:
                self.writer.mkdirs(str(path))
                self.writer.write(str(path), raster)
            except OSError as ex:
                raise WaterMapError(f"No se pudo escribir {key} en {path}: {ex}", stage=Stage.EXPORT) from ex
            written[key] = path
            logger.info("Exportado %s -> %s", key, path)
        return written

    # --------- Internos ---------
    @staticmethod
    def _result(
        mask: GeoRaster,
        cluster_id: Optional[int],
        votes: np.ndarray,
        run: RunMeta,
        keep: bool,
        radar: GeoRaster,
        steps: Tuple[FillStep, ...],
        optical: GeoRaster,
        fused: GeoRaster,
        labels: GeoRaster,
    ) -> WaterMapResult:
        base = dict(
            water_mask=mask,
            water_cluster_id=cluster_id,
            votes=tuple(int(v) for v in votes),
            run=run,
        )
        if not keep:
            return WaterMapResult(**base)
        return WaterMapResult(
            **base,
            radar=radar,
            optical=optical,
            fill_steps=steps,
            fused=fused,
            labels=labels,
            labels_display=display_labels(labels),
        )


__all__ = ["WaterMapService", "WaterMapResult", "analysis_grid"]
