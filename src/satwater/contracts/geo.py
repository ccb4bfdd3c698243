# src/satwater/contracts/geo.py

from __future__ import annotations
import dataclasses
import math
from dataclasses import dataclass
from typing import Any, Literal, NamedTuple, Optional, Sequence, Tuple

import numpy as np
import numpy.typing as npt

from .errors import BandAlignmentError

GeoTransform = Tuple[float, float, float, float, float, float]
DTypeStr = Literal["uint8","uint16","int16","uint32","int32","float32","float64"]

class Bounds(NamedTuple):
    minx: float; miny: float; maxx: float; maxy: float

# ---------- CRS (puro dominio, sin GDAL) ----------
@dataclass(frozen=True)
class CRSRef:
    wkt: Optional[str] = None
    epsg: Optional[int] = None

    @staticmethod
    def from_epsg(code: int) -> "CRSRef":
        return CRSRef(epsg=int(code))

    @staticmethod
    def from_wkt(wkt: str) -> "CRSRef":
        return CRSRef(wkt=wkt)

    @staticmethod
    def parse(text: str) -> "CRSRef":
        s = str(text).strip()
        if s.upper().startswith("EPSG:"):
            return CRSRef.from_epsg(int(s.split(":")[1]))
        return CRSRef.from_wkt(s)

    @property
    def is_empty(self) -> bool:
        return self.wkt is None and self.epsg is None

    def to_wkt(self) -> str:
        """
        Representación de texto del CRS: WKT si existe, si no 'EPSG:<code>'.
        """
        if self.wkt:
            return self.wkt
        if self.epsg is not None:
            return f"EPSG:{int(self.epsg)}"
        raise ValueError("CRSRef vacío: no hay WKT ni EPSG.")

    @staticmethod
    def _normalize_wkt(wkt: str) -> str:
        s = " ".join(wkt.strip().upper().split())
        s = s.replace(" ,", ",").replace(", ", ",")
        s = s.replace("[ ", "[").replace(" ]", "]")
        return s

    def equals(self, other: "CRSRef") -> bool:
        """
        Comparación determinista sin GDAL:
        1) Si ambos tienen EPSG -> compara enteros.
        2) Si ambos tienen WKT -> compara WKT normalizado.
        3) Cualquier mezcla -> False.
        """
        if self is other:
            return True
        if self.epsg is not None and other.epsg is not None:
            return int(self.epsg) == int(other.epsg)
        if self.wkt and other.wkt:
            return self._normalize_wkt(self.wkt) == self._normalize_wkt(other.wkt)
        return False

    def compatible(self, other: "CRSRef") -> bool:
        # un CRS vacío no restringe
        return self.is_empty or other.is_empty or self.equals(other)

# ---------- Perfil y Raster (puro dominio) ----------
@dataclass(frozen=True)
class GeoProfile:
    count: int
    dtype: DTypeStr
    width: int
    height: int
    transform: GeoTransform
    crs: CRSRef
    nodata: Optional[float] = None

    @property
    def bounds(self) -> Bounds:
        return geotransform_bounds(self.transform, self.width, self.height)

    @property
    def shape(self) -> Tuple[int, int]:
        return (self.height, self.width)

    def pixel_size(self) -> Tuple[float, float]:
        _, px, _, _, _, py = self.transform
        return (px, py)

    def with_transform(self, gt: GeoTransform) -> "GeoProfile":
        return dataclasses.replace(self, transform=gt)

    def with_crs(self, crs: CRSRef) -> "GeoProfile":
        return dataclasses.replace(self, crs=crs)

    def derive(self, *, count: int, dtype: DTypeStr, nodata: Optional[float] = None) -> "GeoProfile":
        """Mismo grid, otro contenido."""
        return dataclasses.replace(self, count=count, dtype=dtype, nodata=nodata)


@dataclass(frozen=True)
class GeoRaster:
    """
    Raster georreferenciado con bandas nombradas.
    - (H, W) para una banda, (B, H, W) para varias.
    - No-data explícito: NaN en flotantes y/o `profile.nodata`.
    - Inmutable: el buffer queda en solo-lectura.
    """
    data: "npt.NDArray[Any]"  # type: ignore[valid-type]
    profile: GeoProfile
    band_names: Tuple[str, ...] = ()

    def __post_init__(self):
        if self.data.ndim not in (2, 3):
            raise ValueError(f"Se esperaba array 2D o 3D, no {self.data.ndim}D")
        if self.data.shape[-2:] != self.profile.shape:
            raise ValueError(f"shape {self.data.shape} no coincide con el perfil {self.profile.shape}")
        if self.band_names and len(self.band_names) != self.count:
            raise ValueError(f"band_names={self.band_names} no coincide con {self.count} bandas")
        # Bloquea mutaciones accidentales sobre los datos
        self.data.setflags(write=False)

    @property
    def shape(self) -> Tuple[int, ...]:
        return self.data.shape  # type: ignore[no-any-return]

    @property
    def count(self) -> int:
        return 1 if self.data.ndim == 2 else int(self.data.shape[0])

    def is_single_band(self) -> bool:
        return self.count == 1

    def names(self) -> Tuple[str, ...]:
        return self.band_names or tuple(f"b{i + 1}" for i in range(self.count))

    def as_stack(self) -> np.ndarray:
        return self.data if self.data.ndim == 3 else self.data[np.newaxis]

    def select(self, name: str) -> "GeoRaster":
        names = self.names()
        if name not in names:
            raise KeyError(f"Banda {name!r} no existe; disponibles: {list(names)}")
        arr = self.as_stack()[names.index(name)]
        return GeoRaster(arr, self.profile.derive(count=1, dtype=self.profile.dtype, nodata=self.profile.nodata), (name,))

    def valid_mask(self) -> np.ndarray:
        """True donde TODAS las bandas tienen dato."""
        arr = self.as_stack()
        ok = np.ones(self.profile.shape, dtype=bool)
        if arr.dtype.kind == "f":
            ok &= np.isfinite(arr).all(axis=0)
        nd = self.profile.nodata
        if nd is not None and not math.isnan(nd):
            ok &= (arr != nd).all(axis=0)
        return ok

    def valid_count(self) -> int:
        return int(self.valid_mask().sum())

    def as_float(self) -> np.ndarray:
        """Copia float32 con NaN donde no hay dato."""
        out = self.data.astype("float32", copy=True)
        invalid = ~self.valid_mask()
        if out.ndim == 3:
            out[:, invalid] = np.nan
        else:
            out[invalid] = np.nan
        return out

    def masked(self, keep: np.ndarray) -> "GeoRaster":
        """Nuevo raster float32 con no-data donde `keep` es False."""
        out = self.as_float()
        if out.ndim == 3:
            out[:, ~keep] = np.nan
        else:
            out[~keep] = np.nan
        return GeoRaster(out, self.profile.derive(count=self.count, dtype="float32"), self.band_names)

    @staticmethod
    def empty(grid: GeoProfile, band_names: Sequence[str]) -> "GeoRaster":
        """Raster completamente sin datos sobre `grid`."""
        n = len(band_names)
        shape = grid.shape if n == 1 else (n, *grid.shape)
        data = np.full(shape, np.nan, dtype="float32")
        return GeoRaster(data, grid.derive(count=n, dtype="float32"), tuple(band_names))

# ---------- GeoTransform helpers (afines a GDAL pero sin dependencia) ----------
def geotransform_bounds(gt: GeoTransform, width: int, height: int) -> Bounds:
    x0, px, rx, y0, ry, py = gt
    x_w = x0 + width * px + height * rx
    y_w = y0 + width * ry + height * py
    minx, maxx = (x0, x_w) if x0 <= x_w else (x_w, x0)
    miny, maxy = (y_w, y0) if y_w <= y0 else (y0, y_w)
    return Bounds(minx, miny, maxx, maxy)

def pixel_to_world(col: float, row: float, gt: GeoTransform) -> Tuple[float, float]:
    x0, px, rx, y0, ry, py = gt
    x = x0 + col * px + row * rx
    y = y0 + col * ry + row * py
    return x, y

def grid_for_bounds(bounds: Bounds, resolution: float, crs: CRSRef) -> GeoProfile:
    """Grilla de análisis norte-arriba que cubre `bounds` con píxel cuadrado."""
    if resolution <= 0:
        raise ValueError("resolution debe ser > 0")
    minx, miny, maxx, maxy = bounds
    width = max(1, int(math.ceil((maxx - minx) / resolution - 1e-9)))
    height = max(1, int(math.ceil((maxy - miny) / resolution - 1e-9)))
    gt: GeoTransform = (float(minx), float(resolution), 0.0, float(maxy), 0.0, -float(resolution))
    return GeoProfile(count=1, dtype="float32", width=width, height=height, transform=gt, crs=crs)

def _gt_close(a: GeoTransform, b: GeoTransform, tol: float = 1e-6) -> bool:
    return all(math.isclose(x, y, rel_tol=0.0, abs_tol=tol) for x, y in zip(a, b))

def validate_profile_compat(
    a: GeoProfile,
    b: GeoProfile,
    *,
    require_same_crs: bool = True,
    check_dtype: bool = False,
) -> None:
    """Exige la misma grilla; no hay resampling implícito."""
    if require_same_crs and not a.crs.compatible(b.crs):
        raise BandAlignmentError("CRS no coincide.")
    if a.width != b.width or a.height != b.height:
        raise BandAlignmentError(f"Dimensiones no coinciden: {a.width}x{a.height} vs {b.width}x{b.height}")
    if not _gt_close(a.transform, b.transform):
        raise BandAlignmentError("GeoTransform no coincide (requiere resampling/alineación).")
    if check_dtype and a.dtype != b.dtype:
        raise BandAlignmentError(f"dtype no coincide: {a.dtype} vs {b.dtype}")

def pretty_bounds(b: Bounds, ndigits: int = 3) -> str:
    return (f"Bounds(minx={b.minx:.{ndigits}f}, miny={b.miny:.{ndigits}f}, "
            f"maxx={b.maxx:.{ndigits}f}, maxy={b.maxy:.{ndigits}f})")

__all__ = [
    "GeoTransform","Bounds","CRSRef","GeoProfile","GeoRaster","geotransform_bounds",
    "pixel_to_world","grid_for_bounds","validate_profile_compat","pretty_bounds","DTypeStr",
]
