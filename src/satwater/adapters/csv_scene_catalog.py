# =============================
# FILE: src/satwater/adapters/csv_scene_catalog.py
# =============================
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd
from shapely import wkt as shapely_wkt

from ..contracts.core import DateWindow
from ..contracts.geo import CRSRef, GeoProfile
from ..contracts.products import Scene
from ..contracts.vector import Region
from ..ports.catalog import Filters, ImageCollectionPort, matches_filters
from ..ports.raster_read import RasterReaderPort

logger = logging.getLogger(__name__)

# Column maps tolerantes a distintas nomenclaturas
SCENE_COLMAP: Dict[str, Tuple[str, ...]] = {
    "scene_id": ("scene_id", "SCENE_ID", "id", "image_id", "system:index"),
    "collection_id": ("collection_id", "collection", "COLLECTION", "dataset"),
    "acq_date": ("acq_date", "date", "DATE", "acquisition_date", "sensing_date", "datetime", "time"),
    "path": ("path", "product_path", "PRODUCT_PATH", "filepath", "asset_path"),
    "bands": ("bands", "band_names", "BANDS"),
    "footprint": ("footprint", "footprint_wkt", "geometry", "wkt"),
    "crs": ("crs", "CRS", "epsg", "EPSG", "srid"),
}

# Propiedades con varios valores ("VV|VH") -> tupla
LIST_SEP = "|"


def _first_present(df: pd.DataFrame, candidates: Tuple[str, ...]) -> Optional[str]:
    for c in candidates:
        if c in df.columns:
            return c
    return None


def _standardize(df: pd.DataFrame, colmap: Dict[str, Tuple[str, ...]]) -> pd.DataFrame:
    out = pd.DataFrame(index=df.index)
    for std, cands in colmap.items():
        col = _first_present(df, cands)
        out[std] = df[col] if col is not None else pd.Series([None] * len(df), index=df.index)
    # Extras -> propiedades filtrables
    extras = [c for c in df.columns if all(c not in cands for cands in colmap.values())]
    out["_extras"] = df[extras].to_dict(orient="records") if extras else [{} for _ in range(len(df))]
    return out


def _is_missing(val: Any) -> bool:
    return val is None or (isinstance(val, float) and pd.isna(val)) or (isinstance(val, str) and not val.strip())


def _parse_date(val: Any) -> Optional[date]:
    if _is_missing(val):
        return None
    if isinstance(val, datetime):
        return val.date()
    if isinstance(val, date):
        return val
    s = str(val).strip()
    for fmt in ("%Y-%m-%d", "%Y/%m/%d", "%Y%m%d", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S"):
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    try:
        return pd.to_datetime(s).date()
    except (ValueError, TypeError):
        return None


def _parse_crs(val: Any) -> CRSRef:
    if _is_missing(val):
        return CRSRef()
    if isinstance(val, (int, float)) or str(val).strip().isdigit():
        return CRSRef.from_epsg(int(float(val)))
    return CRSRef.parse(str(val))


def _coerce_property(val: Any) -> Any:
    if _is_missing(val):
        return None
    if isinstance(val, str) and LIST_SEP in val:
        return tuple(v.strip() for v in val.split(LIST_SEP) if v.strip())
    if isinstance(val, float) and val.is_integer():
        return int(val)
    return val


@dataclass(frozen=True)
class SceneRecord:
    scene_id: str
    collection_id: str
    acquired: date
    path: Path
    band_names: Tuple[str, ...] = ()
    footprint: Optional[Region] = None
    properties: Dict[str, Any] = field(default_factory=dict)


class CsvSceneCatalog(ImageCollectionPort):
    """Adapter de catálogo que **lee un CSV índice** y expone un **ImageCollectionPort**.

    Columnas mínimas: `scene_id`, `collection_id`, `acq_date`, `path` (GeoTIFF).
    Opcionales: `bands` ("VV|VH"), `footprint` (WKT), `crs`; el resto de columnas
    se exponen como propiedades filtrables (p.ej. `polarization`, `instrument_mode`).

    Si se entrega `align_to`, cada escena se remuestrea a esa grilla al leerla.
    """

    def __init__(
        self,
        index_csv: Path,
        reader: RasterReaderPort,
        *,
        align_to: Optional[GeoProfile] = None,
        encoding: str = "utf-8",
    ) -> None:
        self.index_csv = Path(index_csv).resolve()
        if not self.index_csv.exists():
            raise FileNotFoundError(f"No se encontró el índice de escenas: {self.index_csv}")
        self.root = self.index_csv.parent
        self.reader = reader
        self.align_to = align_to
        self.encoding = encoding
        self._records: List[SceneRecord] = []
        self._load()

    def with_grid(self, grid: GeoProfile) -> "CsvSceneCatalog":
        """Copia que remuestrea las escenas sobre `grid`."""
        other = object.__new__(CsvSceneCatalog)
        other.__dict__.update(self.__dict__)
        other.align_to = grid
        return other

    @property
    def records(self) -> Sequence[SceneRecord]:
        return tuple(self._records)

    # -------------
    # Load & normalize
    # -------------
    def _abspath(self, p: Any) -> Optional[Path]:
        if _is_missing(p):
            return None
        path = Path(str(p))
        return (self.root / path).resolve() if not path.is_absolute() else path.resolve()

    def _load(self) -> None:
        raw = pd.read_csv(self.index_csv, encoding=self.encoding)
        df = _standardize(raw, SCENE_COLMAP)
        for i, r in df.iterrows():
            acquired = _parse_date(r["acq_date"])
            path = self._abspath(r["path"])
            if _is_missing(r["scene_id"]) or _is_missing(r["collection_id"]) or acquired is None or path is None:
                logger.warning("%s fila %d incompleta: se ignora", self.index_csv.name, i)
                continue
            crs = _parse_crs(r["crs"])
            footprint = None
            if not _is_missing(r["footprint"]):
                footprint = Region(shapely_wkt.loads(str(r["footprint"])), crs)
            bands = () if _is_missing(r["bands"]) else tuple(
                b.strip() for b in str(r["bands"]).split(LIST_SEP) if b.strip()
            )
            props = {k: _coerce_property(v) for k, v in (r["_extras"] or {}).items()}
            self._records.append(SceneRecord(
                scene_id=str(r["scene_id"]).strip(),
                collection_id=str(r["collection_id"]).strip(),
                acquired=acquired,
                path=path,
                band_names=bands,
                footprint=footprint,
                properties=props,
            ))
        logger.info("Catálogo %s: %d escenas", self.index_csv.name, len(self._records))

    # -------------
    # API ImageCollectionPort
    # -------------
    def query(
        self,
        collection_id: str,
        region: Region,
        window: DateWindow,
        filters: Optional[Filters] = None,
    ) -> Sequence[Scene]:
        hits = [
            rec for rec in self._records
            if rec.collection_id == collection_id
            and window.contains(rec.acquired)
            and matches_filters(rec.properties, filters)
            and (rec.footprint is None or rec.footprint.intersects(region))
        ]
        hits.sort(key=lambda rec: (rec.acquired, rec.scene_id))
        return [self._load_scene(rec) for rec in hits]

    def _load_scene(self, rec: SceneRecord) -> Scene:
        names = rec.band_names or None
        if self.align_to is not None:
            raster = self.reader.read_aligned(str(rec.path), self.align_to, names)
        else:
            raster = self.reader.read(str(rec.path), names)
        return Scene(
            scene_id=rec.scene_id,
            collection_id=rec.collection_id,
            acquired=rec.acquired,
            raster=raster,
            properties=rec.properties,
            footprint=rec.footprint,
        )


__all__ = ["CsvSceneCatalog", "SceneRecord", "SCENE_COLMAP"]
