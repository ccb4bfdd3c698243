# src/satwater/services/reference_service.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

import numpy as np
from rasterio.features import shapes
from shapely.geometry import shape

from ..config import Settings
from ..contracts.errors import OverPixelLimit
from ..contracts.geo import GeoRaster
from ..contracts.vector import Feature, FeatureCollection, Region, ReferenceWater
from .raster_ops import region_mask, to_affine

logger = logging.getLogger(__name__)


@dataclass
class ReferenceWaterService:
    """
    Vectoriza la clase "permanente" de una banda de transición de agua.
    Sobre `reference.max_pixels` se corta con OverPixelLimit: el llamador
    debe recurrir a ReferenceWater.from_manual_polygon().
    """
    settings: Settings = field(default_factory=Settings)

    def vectorize(
        self,
        transition: GeoRaster,
        permanent_classes: Optional[Sequence[int]] = None,
        region: Optional[Region] = None,
    ) -> ReferenceWater:
        classes = tuple(permanent_classes or self.settings.reference.permanent_classes)
        limit = self.settings.reference.max_pixels
        pixels = transition.profile.width * transition.profile.height
        if pixels > limit:
            raise OverPixelLimit(pixels, limit)
        if not transition.is_single_band():
            raise ValueError("La banda de transición debe ser de una sola banda")

        arr = transition.as_float()
        target = np.isin(np.nan_to_num(arr, nan=-1).astype("int32"), classes) & np.isfinite(arr)
        if region is not None:
            target &= region_mask(region, transition.profile)

        feats = [
            Feature(shape(geom), {"class": int(val)})
            for geom, val in shapes(target.astype("uint8"), mask=target, transform=to_affine(transition.profile))
            if val == 1
        ]
        logger.info("Referencia: %d polígonos de clase %s (%d px)", len(feats), list(classes), int(target.sum()))
        if not feats:
            logger.warning("La banda de transición no contiene la clase permanente %s", list(classes))
        return ReferenceWater(FeatureCollection(tuple(feats), transition.profile.crs), source="vectorized")


__all__ = ["ReferenceWaterService"]
