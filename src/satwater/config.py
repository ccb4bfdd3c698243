# src/satwater/config.py
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Mapping, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .contracts.core import InstrumentMode, Polarization
from .contracts.geo import CRSRef
from .contracts.products import LANDSAT7_SR, LANDSAT8_SR, SensorSpec

# Placeholders permitidos por clave
INPUT_PLACEHOLDERS: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    "catalog_index": (),
    "region": (),
    "reference": (),
})
OUTPUT_PLACEHOLDERS: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    "water_mask": ("date",),
    "radar": ("date",),
    "optical": ("date",),
    "fused": ("date",),
    "labels": ("date",),
})


class RadarSettings(BaseModel):
    model_config = ConfigDict(frozen=True)
    collection_id: str = "COPERNICUS/S1_GRD"
    polarization: Polarization = "VV"
    instrument_mode: InstrumentMode = "IW"
    resolution_m: int = Field(10, gt=0)
    # máscara de ruido de borde
    border_buffer_m: float = Field(5000.0, ge=0)
    edge_erosion_m: float = Field(20.0, ge=0)
    byte_range_db: Tuple[float, float] = (-25.0, 5.0)
    min_component_pixels: int = Field(100, ge=0)

    @field_validator("byte_range_db")
    @classmethod
    def _ordered(cls, v: Tuple[float, float]) -> Tuple[float, float]:
        lo, hi = v
        if not lo < hi:
            raise ValueError(f"byte_range_db debe ser (min, max) con min < max: {v}")
        return v


class OpticalSettings(BaseModel):
    model_config = ConfigDict(frozen=True)
    sensors: Tuple[SensorSpec, ...] = (LANDSAT8_SR, LANDSAT7_SR)
    cloud_bits: Tuple[int, ...] = (3, 5)  # 3 = sombra de nube, 5 = nube
    index_name: str = "MNDWI"

    @field_validator("sensors")
    @classmethod
    def _unique_sensors(cls, v: Tuple[SensorSpec, ...]) -> Tuple[SensorSpec, ...]:
        if not v:
            raise ValueError("Se requiere al menos un sensor óptico")
        ids = [s.collection_id for s in v]
        if len(set(ids)) != len(ids):
            raise ValueError(f"Colecciones ópticas repetidas: {ids}")
        return v

    @field_validator("cloud_bits")
    @classmethod
    def _bits_in_range(cls, v: Tuple[int, ...]) -> Tuple[int, ...]:
        bad = [b for b in v if not 0 <= b <= 15]
        if bad:
            raise ValueError(f"Bits QA fuera de 0..15: {bad}")
        return v


class CompositingSettings(BaseModel):
    model_config = ConfigDict(frozen=True)
    half_window_days: int = Field(15, gt=0)
    fallback_half_window_days: int = Field(45, gt=0)
    climatology_years: int = Field(10, ge=0)
    climatology_anchor_day: int = Field(15, ge=1, le=28)

    @model_validator(mode="after")
    def _fallback_is_wider(self) -> "CompositingSettings":
        if self.fallback_half_window_days <= self.half_window_days:
            raise ValueError("fallback_half_window_days debe ser mayor que half_window_days")
        return self


class ClusteringSettings(BaseModel):
    model_config = ConfigDict(frozen=True)
    cluster_count: int = Field(5, ge=2)
    training_sample_cap: int = Field(1000, gt=0)
    restarts: int = Field(10, ge=1)
    max_iterations: int = Field(6, ge=1)
    normalize_features: bool = True


class ReferenceSettings(BaseModel):
    model_config = ConfigDict(frozen=True)
    permanent_classes: Tuple[int, ...] = (1,)  # clase "permanente" de la banda de transición
    max_pixels: int = Field(10_000_000, gt=0)


class Settings(BaseSettings):
    """
    Config unificada del proyecto. No toca disco.
    Debe ser construida y provista por composition/di.py (CLI/adapters).
    """
    model_config = SettingsConfigDict(
        frozen=True,
        env_file=".env",
        env_prefix="SATWATER_",
        env_nested_delimiter="__",
        extra="forbid",
    )

    # --- básicos ---
    project_root: Path = Path(".")
    # Importante: str para que pydantic-settings NO intente json.loads
    crs_out: str = "EPSG:32719"
    grid_resolution_m: float = Field(30.0, gt=0)
    random_seed: int = 0
    log_level: str = "INFO"

    # --- dominio ---
    radar: RadarSettings = RadarSettings()
    optical: OpticalSettings = OpticalSettings()
    compositing: CompositingSettings = CompositingSettings()
    clustering: ClusteringSettings = ClusteringSettings()
    selection_sample_cap: int = Field(1000, gt=0)
    reference: ReferenceSettings = ReferenceSettings()

    input_patterns: Dict[str, str] = Field(default_factory=lambda: {
        "catalog_index": "00-Config/scenes.csv",
        "region": "00-Config/roi.geojson",
        "reference": "00-Config/permanent_water.geojson",
    })
    output_patterns: Dict[str, str] = Field(default_factory=lambda: {
        "water_mask": "03-Products/WATER/{date}/water_mask.tif",
        "radar": "02-Work/RADAR/{date}/radar.tif",
        "optical": "02-Work/OPTICAL/{date}/mndwi.tif",
        "fused": "02-Work/FUSED/{date}/fused.tif",
        "labels": "02-Work/CLUSTERS/{date}/clusters.tif",
    })

    # ----------------------------
    # Normalizadores / validadores
    # ----------------------------
    @field_validator("project_root", mode="before")
    @classmethod
    def _abs_root(cls, v: Path | str) -> Path:
        return Path(v).expanduser().resolve()

    @field_validator("crs_out", mode="before")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        v2 = str(v).strip()
        if not v2:
            raise ValueError("crs_out no puede ser vacío")
        return v2

    @field_validator("log_level")
    @classmethod
    def _level(cls, v: str) -> str:
        v2 = v.strip().upper()
        if v2 not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"log_level inválido: {v}")
        return v2

    @field_validator("input_patterns")
    @classmethod
    def _check_in(cls, d: Dict[str, str]) -> Dict[str, str]:
        return _check_patterns("input_patterns", d, INPUT_PLACEHOLDERS)

    @field_validator("output_patterns")
    @classmethod
    def _check_out(cls, d: Dict[str, str]) -> Dict[str, str]:
        return _check_patterns("output_patterns", d, OUTPUT_PLACEHOLDERS)

    # ----------------------------
    # Helpers puros (sin side-effects)
    # ----------------------------
    def crs_out_ref(self) -> CRSRef:
        return CRSRef.parse(self.crs_out)

    def in_path(self, key: str, **fmt) -> Path:
        pat = self.input_patterns[key]
        return (self.project_root / pat.format(**fmt)).resolve()

    def out_path(self, key: str, **fmt) -> Path:
        """Resuelve patrón de salida (no crea carpetas)."""
        pat = self.output_patterns[key]
        return (self.project_root / pat.format(**fmt)).resolve()


def _check_patterns(field_name: str, d: Dict[str, str], allowed_map: Mapping[str, Tuple[str, ...]]) -> Dict[str, str]:
    for k, pat in d.items():
        allowed = set(allowed_map.get(k, ()))
        used = {frag[1] for frag in _iter_placeholders(pat)}
        unknown = used - allowed
        if unknown:
            raise ValueError(f"{field_name}[{k}] usa placeholders no permitidos: {sorted(unknown)}")
    return d


# Utilidad interna: detectar {placeholders}
def _iter_placeholders(fmt: str):
    # Busca {name} muy simple; evita formatear para no explotar
    start = 0
    while True:
        i = fmt.find("{", start)
        if i == -1:
            break
        j = fmt.find("}", i + 1)
        if j == -1:
            break
        name = fmt[i + 1 : j].strip()
        if name:
            yield (i, name)
        start = j + 1


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Instancia cacheada. Úsala SOLO desde composition/di.py o el CLI.
    Para tests, recuerda limpiar:
        get_settings.cache_clear()
    """
    return Settings()
