# src/satwater/services/clustering_service.py
from __future__ import annotations

"""
Clustering no supervisado del raster fusionado.

  ClusterTrainingService  : muestreo acotado dentro de la región -> KMeans
  ClusterAssignmentService: centroide más cercano para cada píxel válido

Los labels son 0-based en [0, k); fuera de la región o sin dato -> -1.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np
from sklearn.cluster import KMeans
from sklearn.pipeline import Pipeline, make_pipeline
from sklearn.preprocessing import MinMaxScaler

from ..config import ClusteringSettings, Settings
from ..contracts.core import Stage
from ..contracts.errors import BandAlignmentError, InsufficientTrainingData
from ..contracts.geo import GeoRaster
from ..contracts.vector import FeatureCollection, Region
from .raster_ops import region_mask, sample_points

logger = logging.getLogger(__name__)

LABEL_NODATA = -1
LABEL_BAND = "cluster"


@dataclass(frozen=True)
class ClusterModel:
    """Modelo ajustado (vive sólo durante una ejecución)."""
    estimator: Pipeline
    band_names: Tuple[str, ...]
    k: int

    @property
    def centroids(self) -> np.ndarray:
        """Centroides en el espacio de las bandas originales (k, F)."""
        km: KMeans = self.estimator[-1]
        c = km.cluster_centers_
        if len(self.estimator) > 1:
            c = self.estimator[:-1].inverse_transform(c)
        return np.asarray(c, dtype="float64")

    def predict(self, X: np.ndarray) -> np.ndarray:
        if X.ndim != 2 or X.shape[1] != len(self.band_names):
            raise ValueError(f"X debe ser (N, {len(self.band_names)}), no {X.shape}")
        if X.shape[0] == 0:
            return np.empty((0,), dtype="int16")
        return self.estimator.predict(X).astype("int16", copy=False)


def samples_to_matrix(samples: FeatureCollection, band_names: Tuple[str, ...]) -> np.ndarray:
    # (N, F) en el orden de bandas del raster
    if len(samples) == 0:
        return np.empty((0, len(band_names)), dtype="float64")
    return np.column_stack([samples.property_array(b) for b in band_names])


@dataclass
class ClusterTrainingService:
    settings: Settings = field(default_factory=Settings)

    @property
    def clustering(self) -> ClusteringSettings:
        return self.settings.clustering

    def sample(self, fused: GeoRaster, region: Region) -> FeatureCollection:
        return sample_points(fused, region, self.clustering.training_sample_cap, seed=self.settings.random_seed)

    def train(self, fused: GeoRaster, k: Optional[int], region: Region) -> ClusterModel:
        k = int(k if k is not None else self.clustering.cluster_count)
        if k < 1:
            raise ValueError("k debe ser >= 1")
        names = fused.names()
        samples = self.sample(fused, region)
        if len(samples) < k:
            raise InsufficientTrainingData(len(samples), k)

        X = samples_to_matrix(samples, names)
        est = self._estimator(k)
        est.fit(X)
        logger.info("KMeans k=%d ajustado con %d muestras (bandas=%s)", k, X.shape[0], list(names))
        return ClusterModel(estimator=est, band_names=names, k=k)

    def _estimator(self, k: int) -> Pipeline:
        cfg = self.clustering
        km = KMeans(
            n_clusters=k,
            n_init=cfg.restarts,
            max_iter=cfg.max_iterations,
            random_state=self.settings.random_seed,
        )
        # Normalización de atributos [0, 1] antes de la distancia euclidiana
        if cfg.normalize_features:
            return make_pipeline(MinMaxScaler(), km)
        return make_pipeline(km)


@dataclass
class ClusterAssignmentService:

    def assign(self, fused: GeoRaster, model: ClusterModel, region: Region) -> GeoRaster:
        if tuple(fused.names()) != tuple(model.band_names):
            raise BandAlignmentError(
                f"Bandas {list(fused.names())} no coinciden con el modelo {list(model.band_names)}",
                stage=Stage.ASSIGN,
            )
        keep = region_mask(region, fused.profile) & fused.valid_mask()
        stack = fused.as_stack()
        X = stack[:, keep].T.astype("float64", copy=False)

        labels = np.full(fused.profile.shape, LABEL_NODATA, dtype="int16")
        labels[keep] = model.predict(X)
        logger.info("Asignados %d px a %d clusters", int(keep.sum()), model.k)
        return GeoRaster(
            labels,
            fused.profile.derive(count=1, dtype="int16", nodata=LABEL_NODATA),
            (LABEL_BAND,),
        )


def display_labels(labels: GeoRaster) -> GeoRaster:
    """Labels 1-based uint8 para visualización (0 = sin dato)."""
    arr = labels.data if labels.data.ndim == 2 else labels.data[0]
    out = np.where(arr >= 0, arr.astype("int32") + 1, 0).astype("uint8")
    return GeoRaster(out, labels.profile.derive(count=1, dtype="uint8", nodata=0), (LABEL_BAND,))


__all__ = [
    "ClusterModel", "ClusterTrainingService", "ClusterAssignmentService",
    "samples_to_matrix", "display_labels", "LABEL_NODATA", "LABEL_BAND",
]
