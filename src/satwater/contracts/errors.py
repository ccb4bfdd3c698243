# src/satwater/contracts/errors.py
from __future__ import annotations

from typing import Optional

from .core import Stage


class WaterMapError(Exception):
    """Base de errores de dominio del pipeline. Cada error conoce su etapa."""
    stage: Optional[Stage] = None

    def __init__(self, message: str, *, stage: Optional[Stage] = None) -> None:
        super().__init__(message)
        if stage is not None:
            self.stage = stage


class BandAlignmentError(WaterMapError, ValueError):
    """Grillas incompatibles (CRS, dimensiones o geotransform)."""
    stage = Stage.FUSE


class InsufficientTrainingData(WaterMapError, ValueError):
    stage = Stage.TRAIN

    def __init__(self, available: int, required: int) -> None:
        super().__init__(
            f"Muestras de entrenamiento insuficientes: {available} < k={required}"
        )
        self.available = available
        self.required = required


class OverPixelLimit(WaterMapError, RuntimeError):
    """La vectorización de la referencia excede el límite de píxeles.
    El llamador debe usar ReferenceWater.from_manual_polygon()."""
    stage = Stage.REFERENCE

    def __init__(self, pixels: int, limit: int) -> None:
        super().__init__(
            f"Vectorización excede el límite: {pixels} px > {limit} px "
            "(dibuje un polígono manual de agua permanente)"
        )
        self.pixels = pixels
        self.limit = limit


__all__ = ["WaterMapError", "BandAlignmentError", "InsufficientTrainingData", "OverPixelLimit"]
