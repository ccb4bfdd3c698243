# src/satwater/cli.py
from __future__ import annotations

"""
CLI de mapas de agua superficial (SAR + MNDWI, contracts-first).

Comandos:
  - classify : composites → fusión → KMeans → cluster agua → GeoTIFF de máscara.
  - reference: vectoriza la clase permanente de una banda de transición a GeoJSON.

Ejemplos rápidos:
  satwater classify --date 2016-05-15 --root ./proyecto \
      --region ./proyecto/00-Config/roi.geojson -k 5 --intermediates

  satwater reference --transition ./transition.tif --out ./permanent_water.geojson
"""

import argparse
import json
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Optional

from .adapters.rasterio_reader import RasterioReader
from .composition.di import (
    build_catalog, build_settings, build_water_map_service, load_reference, load_region,
)
from .config import Settings
from .contracts.core import RunError
from .contracts.errors import OverPixelLimit, WaterMapError
from .contracts.vector import ReferenceWater
from .services.reference_service import ReferenceWaterService

logger = logging.getLogger("satwater")

EXIT_DOMAIN_ERROR = 2
EXIT_PIXEL_LIMIT = 3


# ----------------------
# Utilidades locales
# ----------------------

def _parse_date(text: str) -> date:
    s = text.strip().replace("/", "-")
    if len(s) == 8 and s.isdigit():
        s = f"{s[:4]}-{s[4:6]}-{s[6:]}"
    try:
        return date.fromisoformat(s)
    except ValueError as ex:
        raise argparse.ArgumentTypeError(f"Fecha inválida {text!r} (usa YYYY-MM-DD o YYYYMMDD)") from ex


def _settings(args: argparse.Namespace) -> Settings:
    root = Path(args.root) if args.root else Path(".")
    s = build_settings(root)
    if args.log_level:
        s = s.model_copy(update={"log_level": args.log_level.upper()})
    return s


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _reference_from_raster(path: Path, s: Settings) -> ReferenceWater:
    transition = RasterioReader().read(str(path))
    return ReferenceWaterService(s).vectorize(transition)


# ----------------------
# Comandos
# ----------------------

def cmd_classify(args: argparse.Namespace) -> int:
    s = _settings(args)
    _setup_logging(s.log_level)
    crs = s.crs_out_ref()

    region = load_region(Path(args.region) if args.region else s.in_path("region"), crs)
    if args.reference_raster:
        reference = _reference_from_raster(Path(args.reference_raster), s)
    else:
        reference = load_reference(Path(args.reference) if args.reference else s.in_path("reference"), crs)

    catalog = build_catalog(s, Path(args.catalog) if args.catalog else None)
    service = build_water_map_service(s, catalog, region=region)
    result = service.classify_water(
        args.date, region, reference,
        cluster_count=args.k,
        keep_intermediates=args.intermediates,
    )
    if not result.has_water:
        logger.warning("No se identificó cluster agua para %s", args.date.isoformat())

    written = service.export(result, Path(args.out) if args.out else None)
    for key, path in written.items():
        print(f"{key}\t{path}")
    return 0


def cmd_reference(args: argparse.Namespace) -> int:
    s = _settings(args)
    _setup_logging(s.log_level)
    ref = _reference_from_raster(Path(args.transition), s)
    out = Path(args.out) if args.out else s.in_path("reference")
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(ref.features.to_geojson()), encoding="utf-8")
    print(str(out))
    return 0


# ----------------------
# Parser
# ----------------------

def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="satwater", description="Mapas de agua superficial por fusión SAR + MNDWI")
    p.add_argument("--root", help="project_root (lee 00-Config/settings.yaml si existe)")
    p.add_argument("--log-level", help="DEBUG/INFO/WARNING/ERROR (sobre-escribe Settings.log_level)")
    sub = p.add_subparsers(dest="cmd", required=True)

    # classify
    pc = sub.add_parser("classify", help="clasifica agua superficial para una fecha")
    pc.add_argument("--date", required=True, type=_parse_date, help="fecha objetivo YYYY-MM-DD")
    pc.add_argument("--catalog", help="CSV índice de escenas (si no, Settings.input_patterns['catalog_index'])")
    pc.add_argument("--region", help="GeoJSON de la región de análisis")
    ref = pc.add_mutually_exclusive_group()
    ref.add_argument("--reference", help="GeoJSON de agua permanente")
    ref.add_argument("--reference-raster", help="banda de transición a vectorizar como referencia")
    pc.add_argument("-k", type=int, default=None, help="número de clusters (default Settings)")
    pc.add_argument("--out", help="carpeta de salida (si no, Settings.output_patterns)")
    pc.add_argument("--intermediates", action="store_true", help="exporta composites, fusión y clusters")
    pc.set_defaults(func=cmd_classify)

    # reference
    pr = sub.add_parser("reference", help="vectoriza agua permanente a GeoJSON")
    pr.add_argument("--transition", required=True, help="raster de transición (clase 1 = permanente)")
    pr.add_argument("--out", help="GeoJSON de salida (si no, Settings.input_patterns['reference'])")
    pr.set_defaults(func=cmd_reference)

    return p


def main(argv: Optional[list[str]] = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    parser = _build_parser()
    args = parser.parse_args(argv)
    try:
        return int(args.func(args))
    except KeyboardInterrupt:
        return 130
    except OverPixelLimit as ex:
        print(RunError.from_exception(ex).model_dump_json(), file=sys.stderr)
        print("[HINT] Dibuje un polígono de agua permanente y páselo con --reference", file=sys.stderr)
        return EXIT_PIXEL_LIMIT
    except WaterMapError as ex:
        print(RunError.from_exception(ex).model_dump_json(), file=sys.stderr)
        return EXIT_DOMAIN_ERROR
    except Exception as ex:
        print(f"[ERROR] {ex}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
