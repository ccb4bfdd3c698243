# src/satwater/ports/catalog.py
from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol, Sequence, runtime_checkable

from ..contracts.core import DateWindow
from ..contracts.products import Scene
from ..contracts.vector import Region

Filters = Mapping[str, Any]


@runtime_checkable
class ImageCollectionPort(Protocol):
    """Acceso a colecciones satelitales (catálogo externo).

    Reglas:
      - devuelve escenas que intersectan `region` y cuya fecha cae en `window`;
      - `filters` compara contra `Scene.properties` (ver `matches_filters`);
      - sin pasadas -> secuencia vacía, nunca error.
    Detrás del puerto el origen puede ser memoria, CSV+GeoTIFF, una API, etc.
    """

    def query(
        self,
        collection_id: str,
        region: Region,
        window: DateWindow,
        filters: Optional[Filters] = None,
    ) -> Sequence[Scene]:
        ...


def matches_filters(properties: Mapping[str, Any], filters: Optional[Filters]) -> bool:
    """Igualdad por clave; si la propiedad es lista/tupla se exige pertenencia
    (p.ej. polarizaciones ("VV", "VH") contienen "VV")."""
    if not filters:
        return True
    for key, want in filters.items():
        if key not in properties:
            return False
        have = properties[key]
        if isinstance(have, (list, tuple, set, frozenset)):
            if want not in have:
                return False
        elif have != want:
            return False
    return True


__all__ = ["ImageCollectionPort", "Filters", "matches_filters"]
