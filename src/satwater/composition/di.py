# src/satwater/composition/di.py
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

import yaml

from ..adapters.csv_scene_catalog import CsvSceneCatalog
from ..adapters.rasterio_reader import RasterioReader
from ..adapters.rasterio_writer import RasterioWriter
from ..config import Settings
from ..contracts.geo import CRSRef
from ..contracts.vector import Region, ReferenceWater
from ..ports.catalog import ImageCollectionPort
from ..services.water_map_service import WaterMapService, analysis_grid

logger = logging.getLogger(__name__)

SETTINGS_YAML = Path("00-Config") / "settings.yaml"


def load_settings_from_yaml(path: Path) -> Settings:
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    return Settings(**data)


def build_settings(project_root: Path) -> Settings:
    cfg = (project_root / SETTINGS_YAML).resolve()
    if cfg.exists():
        st = load_settings_from_yaml(cfg)
        logger.debug("Settings desde %s", cfg)
    else:
        st = Settings()
    return st.model_copy(update={"project_root": project_root.expanduser().resolve()})


def load_region(path: Path, crs: CRSRef) -> Region:
    obj = json.loads(Path(path).read_text(encoding="utf-8"))
    return Region.from_geojson(obj, crs)


def load_reference(path: Path, crs: CRSRef) -> ReferenceWater:
    obj = json.loads(Path(path).read_text(encoding="utf-8"))
    return ReferenceWater.from_geojson(obj, crs)


def build_catalog(settings: Settings, index_csv: Optional[Path] = None) -> CsvSceneCatalog:
    path = Path(index_csv) if index_csv else settings.in_path("catalog_index")
    return CsvSceneCatalog(path, RasterioReader())


def build_water_map_service(
    settings: Settings,
    catalog: Optional[ImageCollectionPort] = None,
    *,
    region: Optional[Region] = None,
) -> WaterMapService:
    """
    Cablea el servicio con los adapters rasterio. Si se entrega `region` y el
    catálogo es CSV, las escenas se remuestrean a la grilla de análisis.
    """
    catalog = catalog or build_catalog(settings)
    if region is not None and isinstance(catalog, CsvSceneCatalog):
        catalog = catalog.with_grid(analysis_grid(region, settings))
    return WaterMapService(catalog=catalog, settings=settings, writer=RasterioWriter())


__all__ = [
    "load_settings_from_yaml", "build_settings", "load_region", "load_reference",
    "build_catalog", "build_water_map_service",
]
