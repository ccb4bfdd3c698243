# src/satwater/adapters/memory_catalog.py
from __future__ import annotations

from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Sequence

from ..contracts.core import DateWindow
from ..contracts.geo import GeoProfile
from ..contracts.products import Scene
from ..contracts.vector import Region
from ..ports.catalog import Filters, ImageCollectionPort, matches_filters
from ..services.raster_ops import region_mask


class InMemoryCatalog(ImageCollectionPort):
    """Catálogo en memoria: útil para tests, notebooks y datos ya cargados."""

    def __init__(self, scenes: Iterable[Scene] = ()) -> None:
        self._by_collection: Dict[str, List[Scene]] = defaultdict(list)
        for sc in scenes:
            self.add(sc)

    def add(self, scene: Scene) -> None:
        self._by_collection[scene.collection_id].append(scene)

    def collections(self) -> Sequence[str]:
        return tuple(sorted(self._by_collection))

    def query(
        self,
        collection_id: str,
        region: Region,
        window: DateWindow,
        filters: Optional[Filters] = None,
    ) -> Sequence[Scene]:
        out = [
            sc for sc in self._by_collection.get(collection_id, ())
            if window.contains(sc.acquired)
            and matches_filters(sc.properties, filters)
            and _touches(sc, region)
        ]
        return sorted(out, key=lambda s: (s.acquired, s.scene_id))


def _touches(scene: Scene, region: Region) -> bool:
    if region.is_empty:
        return False
    if scene.footprint is not None:
        return scene.footprint.intersects(region)
    return _grid_touches(scene.raster.profile, region)


def _grid_touches(profile: GeoProfile, region: Region) -> bool:
    # sin huella: basta que la región cubra algún píxel de la escena
    return bool(region_mask(region, profile, all_touched=True).any())


__all__ = ["InMemoryCatalog"]
