# src/satwater/contracts/products.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from types import MappingProxyType
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from .geo import GeoRaster
from .vector import Region


@dataclass(frozen=True)
class Scene:
    """
    Imagen devuelta por el catálogo (ya en memoria).
    `properties` son metadatos filtrables (polarización, modo, resolución, ...).
    `footprint` es opcional: si falta, se infiere de los píxeles válidos.
    """
    scene_id: str
    collection_id: str
    acquired: date
    raster: GeoRaster
    properties: Mapping[str, Any] = field(default_factory=dict)
    footprint: Optional[Region] = None

    def __post_init__(self):
        if isinstance(self.acquired, datetime):
            object.__setattr__(self, "acquired", self.acquired.date())
        object.__setattr__(self, "properties", MappingProxyType(dict(self.properties)))


class SensorSpec(BaseModel):
    """
    Esquema de bandas de un sensor óptico. El par (verde, SWIR) del MNDWI
    cambia por sensor: no hay default genérico.
    """
    model_config = ConfigDict(frozen=True)

    name: str
    collection_id: str
    green_band: str
    swir_band: str
    qa_band: str = "pixel_qa"

    @field_validator("name", "collection_id", "green_band", "swir_band", "qa_band")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        v2 = v.strip()
        if not v2:
            raise ValueError("campo vacío en SensorSpec")
        return v2

    @model_validator(mode="after")
    def _distinct_bands(self) -> "SensorSpec":
        if len({self.green_band, self.swir_band, self.qa_band}) != 3:
            raise ValueError(f"{self.name}: bandas verde/SWIR/QA deben ser distintas")
        return self


LANDSAT8_SR = SensorSpec(
    name="L8", collection_id="LANDSAT/LC08/C01/T1_SR", green_band="B3", swir_band="B6",
)
LANDSAT7_SR = SensorSpec(
    name="L7", collection_id="LANDSAT/LE07/C01/T1_SR", green_band="B2", swir_band="B5",
)

__all__ = ["Scene", "SensorSpec", "LANDSAT8_SR", "LANDSAT7_SR"]
