# src/satwater/services/fusion_service.py
from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from ..contracts.core import Stage
from ..contracts.errors import BandAlignmentError
from ..contracts.geo import GeoRaster, validate_profile_compat

logger = logging.getLogger(__name__)


@dataclass
class FeatureFusionService:
    """
    Apila el composite radar y el índice óptico en un raster de 2 bandas.
    Sin resampling: grillas distintas -> BandAlignmentError.
    """

    def fuse(self, radar: GeoRaster, optical: GeoRaster) -> GeoRaster:
        if not radar.is_single_band() or not optical.is_single_band():
            raise BandAlignmentError(
                f"fuse espera rasters de una banda (radar={radar.count}, óptico={optical.count})",
                stage=Stage.FUSE,
            )
        validate_profile_compat(radar.profile, optical.profile)

        stack = np.stack([radar.as_float(), optical.as_float()], axis=0)
        names = (radar.names()[0], optical.names()[0])
        if names[0] == names[1]:
            raise BandAlignmentError(f"Nombres de banda repetidos: {names}", stage=Stage.FUSE)
        out = GeoRaster(stack, radar.profile.derive(count=2, dtype="float32"), names)
        logger.debug("Fusión %s: %d px con ambas bandas", names, out.valid_count())
        return out


__all__ = ["FeatureFusionService"]
