# =============================
# FILE: examples/using_scene_catalog.py
# =============================
"""
Uso mínimo: CsvSceneCatalog detrás del ImageCollectionPort + WaterMapService.
El índice CSV lista escenas S1/Landsat ya descargadas como GeoTIFF.
"""
from datetime import date
from pathlib import Path

from satwater.composition.di import build_catalog, build_settings, build_water_map_service, load_reference, load_region


if __name__ == "__main__":
    root = Path("/ruta/al/proyecto").resolve()
    settings = build_settings(root)
    crs = settings.crs_out_ref()

    region = load_region(settings.in_path("region"), crs)
    reference = load_reference(settings.in_path("reference"), crs)
    service = build_water_map_service(settings, build_catalog(settings), region=region)

    result = service.classify_water(date(2016, 5, 15), region, reference, cluster_count=5)
    print("Cluster agua:", result.water_cluster_id, "votos:", result.votes)
    print("Relleno óptico:")
    for step in result.fill_steps:
        print(" -", step.name, f"±{step.half_days}d", "rellenados:", step.filled, "sin dato:", step.remaining)
    for key, path in service.export(result).items():
        print(" ->", key, path)
