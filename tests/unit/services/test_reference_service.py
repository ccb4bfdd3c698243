import numpy as np
import pytest
from satwater.config import ReferenceSettings, Settings
from satwater.contracts.errors import OverPixelLimit
from satwater.services.reference_service import ReferenceWaterService
from tests.factories import make_profile, make_raster

def _transition():
    g = make_profile(6, 6)
    arr = np.full(g.shape, 2.0, dtype="float32")
    arr[1:3, 1:4] = 1.0          # permanente
    arr[4, 4] = 1.0              # otro cuerpo
    arr[5, :] = np.nan
    return make_raster(g, arr, "transition")

def test_vectorize_permanent_class():
    ref = ReferenceWaterService(Settings()).vectorize(_transition())
    assert ref.source == "vectorized"
    assert len(ref.features) == 2
    assert ref.region.geometry.area == pytest.approx(7 * 30 * 30)

def test_vectorize_several_classes():
    ref = ReferenceWaterService(Settings()).vectorize(_transition(), permanent_classes=(1, 2))
    assert ref.region.geometry.area == pytest.approx(30 * 30 * 30)

def test_over_pixel_limit_requires_manual_polygon():
    s = Settings(reference=ReferenceSettings(max_pixels=35))
    with pytest.raises(OverPixelLimit) as ei:
        ReferenceWaterService(s).vectorize(_transition())
    assert ei.value.pixels == 36 and ei.value.limit == 35

def test_no_permanent_class_gives_empty_reference():
    g = make_profile(3, 3)
    ref = ReferenceWaterService(Settings()).vectorize(make_raster(g, 2.0, "transition"))
    assert len(ref.features) == 0
    assert ref.region.is_empty
