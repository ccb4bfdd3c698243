# src/satwater/contracts/vector.py
from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterator, Literal, Mapping, Sequence, Tuple

import numpy as np
from shapely.geometry import Polygon, box, mapping, shape
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union

from .geo import Bounds, CRSRef

GeoJSON = Mapping[str, Any]


def _geometries_from_geojson(obj: GeoJSON) -> list[BaseGeometry]:
    # Acepta Feature/FeatureCollection/Geometry
    t = obj.get("type")
    if t == "FeatureCollection":
        feats = obj.get("features", [])
        if not feats:
            raise ValueError("GeoJSON vacío")
        return [shape(f["geometry"]) for f in feats]
    if t == "Feature":
        return [shape(obj["geometry"])]
    if "coordinates" in obj or t == "GeometryCollection":
        return [shape(obj)]
    raise ValueError("Formato GeoJSON no reconocido")


@dataclass(frozen=True)
class Region:
    """Geometría (polígono o conjunto de puntos) con su CRS."""
    geometry: BaseGeometry
    crs: CRSRef = field(default_factory=CRSRef)

    @classmethod
    def from_geojson(cls, obj: GeoJSON, crs: CRSRef = CRSRef()) -> "Region":
        return cls(unary_union(_geometries_from_geojson(obj)), crs)

    @classmethod
    def from_bounds(cls, minx: float, miny: float, maxx: float, maxy: float, crs: CRSRef = CRSRef()) -> "Region":
        return cls(box(minx, miny, maxx, maxy), crs)

    @property
    def bounds(self) -> Bounds:
        return Bounds(*self.geometry.bounds)

    @property
    def is_empty(self) -> bool:
        return self.geometry.is_empty

    def buffer(self, distance: float) -> "Region":
        return Region(self.geometry.buffer(distance), self.crs)

    def intersects(self, other: "Region") -> bool:
        if not self.crs.compatible(other.crs):
            raise ValueError("CRS de regiones no coincide")
        return bool(self.geometry.intersects(other.geometry))

    def to_geojson(self) -> dict:
        return dict(mapping(self.geometry))


@dataclass(frozen=True)
class Feature:
    geometry: BaseGeometry
    properties: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "properties", MappingProxyType(dict(self.properties)))


@dataclass(frozen=True)
class FeatureCollection:
    """Conjunto de geometrías con propiedades escalares (muestras de píxel, referencia)."""
    features: Tuple[Feature, ...] = ()
    crs: CRSRef = field(default_factory=CRSRef)

    def __len__(self) -> int:
        return len(self.features)

    def __iter__(self) -> Iterator[Feature]:
        return iter(self.features)

    @classmethod
    def from_geojson(cls, obj: GeoJSON, crs: CRSRef = CRSRef()) -> "FeatureCollection":
        if obj.get("type") == "FeatureCollection":
            feats = tuple(
                Feature(shape(f["geometry"]), f.get("properties") or {})
                for f in obj.get("features", [])
            )
            return cls(feats, crs)
        return cls(tuple(Feature(g) for g in _geometries_from_geojson(obj)), crs)

    def property_array(self, name: str, dtype: Any = "float64") -> np.ndarray:
        return np.asarray([f.properties[name] for f in self.features], dtype=dtype)

    def union(self) -> Region:
        return Region(unary_union([f.geometry for f in self.features]), self.crs)

    def to_geojson(self) -> dict:
        return {
            "type": "FeatureCollection",
            "features": [
                {"type": "Feature", "geometry": mapping(f.geometry), "properties": dict(f.properties)}
                for f in self.features
            ],
        }


@dataclass(frozen=True)
class ReferenceWater:
    """
    Región de agua permanente usada para elegir el cluster "agua".
    Se produce fuera del núcleo (vectorización de la clase de transición
    permanente); si ésta excede el límite de píxeles, el fallback es un
    polígono dibujado a mano: `from_manual_polygon`.
    """
    features: FeatureCollection
    source: Literal["vectorized", "manual", "file"] = "file"

    @property
    def region(self) -> Region:
        return self.features.union()

    @classmethod
    def from_geojson(cls, obj: GeoJSON, crs: CRSRef = CRSRef()) -> "ReferenceWater":
        return cls(FeatureCollection.from_geojson(obj, crs), source="file")

    @classmethod
    def from_manual_polygon(
        cls,
        polygon: Sequence[Tuple[float, float]] | GeoJSON,
        crs: CRSRef = CRSRef(),
    ) -> "ReferenceWater":
        if isinstance(polygon, Mapping):
            geoms = _geometries_from_geojson(polygon)
        else:
            coords = [tuple(map(float, p)) for p in polygon]
            if len(coords) < 3:
                raise ValueError("Un polígono manual requiere al menos 3 vértices")
            geoms = [Polygon(coords)]
        feats = tuple(Feature(g, {"source": "manual"}) for g in geoms)
        if any(not f.geometry.is_valid or f.geometry.is_empty for f in feats):
            raise ValueError("Polígono manual inválido o vacío")
        return cls(FeatureCollection(feats, crs), source="manual")


__all__ = ["GeoJSON", "Region", "Feature", "FeatureCollection", "ReferenceWater"]
