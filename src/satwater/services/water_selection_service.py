# src/satwater/services/water_selection_service.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Union

import numpy as np

from ..config import Settings
from ..contracts.geo import GeoRaster
from ..contracts.vector import Region, ReferenceWater
from .clustering_service import LABEL_NODATA
from .raster_ops import sample_points

logger = logging.getLogger(__name__)

MASK_BAND = "water"
MASK_NODATA = 0


@dataclass(frozen=True)
class WaterSelection:
    cluster_id: Optional[int]
    votes: np.ndarray      # (k,) int64, votos por cluster
    mask: GeoRaster        # uint8: 1 = agua, 0 = sin dato
    samples: int

    @property
    def is_empty(self) -> bool:
        return self.cluster_id is None


def empty_water_mask(labels: GeoRaster) -> GeoRaster:
    arr = np.zeros(labels.profile.shape, dtype="uint8")
    return GeoRaster(arr, labels.profile.derive(count=1, dtype="uint8", nodata=MASK_NODATA), (MASK_BAND,))


@dataclass
class WaterClusterSelector:
    """
    Elige el cluster "agua" por mayoría de votos de los labels muestreados
    dentro de la referencia de agua permanente.
    Empate -> el id de cluster más bajo.
    """
    settings: Settings = field(default_factory=Settings)

    def select(
        self,
        labels: GeoRaster,
        reference: Union[ReferenceWater, Region],
        cluster_count: Optional[int] = None,
    ) -> WaterSelection:
        region = reference.region if isinstance(reference, ReferenceWater) else reference
        k = int(cluster_count if cluster_count is not None else self.settings.clustering.cluster_count)
        if k < 1:
            raise ValueError("cluster_count debe ser >= 1")

        samples = sample_points(labels, region, self.settings.selection_sample_cap, seed=self.settings.random_seed)
        values = samples.property_array(labels.names()[0], dtype="int64") if len(samples) else np.empty(0, "int64")
        values = values[values != LABEL_NODATA]
        if values.size and (values.min() < 0 or values.max() >= k):
            raise ValueError(f"Labels fuera de [0, {k}): min={values.min()} max={values.max()}")

        votes = np.bincount(values, minlength=k)
        if values.size == 0:
            logger.warning("Sin muestras válidas dentro de la referencia: no hay cluster agua")
            return WaterSelection(None, votes, empty_water_mask(labels), 0)

        # argmax devuelve el primer máximo: empate -> id más bajo
        water_id = int(np.argmax(votes))
        arr = labels.data if labels.data.ndim == 2 else labels.data[0]
        mask = (arr == water_id).astype("uint8")
        logger.info("Cluster agua=%d (votos=%s, %d muestras)", water_id, votes.tolist(), int(values.size))
        return WaterSelection(
            cluster_id=water_id,
            votes=votes,
            mask=GeoRaster(mask, labels.profile.derive(count=1, dtype="uint8", nodata=MASK_NODATA), (MASK_BAND,)),
            samples=int(values.size),
        )


__all__ = ["WaterClusterSelector", "WaterSelection", "empty_water_mask", "MASK_BAND", "MASK_NODATA"]
