import numpy as np
import pytest
from satwater.contracts.errors import BandAlignmentError
from satwater.contracts.geo import (
    CRSRef, GeoProfile, GeoRaster, Bounds, grid_for_bounds, validate_profile_compat,
)
from tests.factories import make_profile, make_stack

def test_georaster_immutable_buffer():
    p = GeoProfile(count=1, dtype="uint16", width=4, height=3,
                   transform=(0,10,0,0,0,-10), crs=CRSRef.from_epsg(32719))
    r = GeoRaster(np.zeros((3,4), dtype=np.uint16), p)
    with pytest.raises((ValueError, RuntimeError)):
        r.data[...] = 1

def test_georaster_shape_and_names_checked():
    p = make_profile(4, 3)
    with pytest.raises(ValueError):
        GeoRaster(np.zeros((4,4), dtype="float32"), p)
    with pytest.raises(ValueError):
        GeoRaster(np.zeros((2,3,4), dtype="float32"), p, ("a",))

def test_validate_profile_tolerance():
    a = GeoProfile(1,"uint16",2,2,(0,10,0,0,0,-10),CRSRef.from_epsg(32719))
    b = GeoProfile(1,"uint16",2,2,(1e-7,10,0,0,0,-10),CRSRef.from_epsg(32719))
    validate_profile_compat(a,b)  # no lanza

@pytest.mark.parametrize("other", [
    make_profile(4, 4, epsg=32718),
    make_profile(5, 4),
    make_profile(4, 4, px=20.0),
])
def test_validate_profile_mismatch(other):
    with pytest.raises(BandAlignmentError):
        validate_profile_compat(make_profile(4, 4), other)

def test_valid_mask_nan_and_nodata():
    p = make_profile(2, 2).derive(count=1, dtype="int16", nodata=-1)
    r = GeoRaster(np.array([[0, -1], [3, 2]], dtype="int16"), p)
    assert r.valid_mask().tolist() == [[True, False], [True, True]]
    s = make_stack(make_profile(2, 2), {"a": [[1, np.nan], [1, 1]], "b": [[1, 1], [np.nan, 1]]})
    assert s.valid_count() == 2
    assert np.isnan(s.as_float()[0, 1, 0])  # no-data de una banda invalida el píxel completo

def test_select_and_masked():
    s = make_stack(make_profile(2, 2), {"VV": 1.0, "MNDWI": 0.5})
    assert s.select("MNDWI").data.tolist() == [[0.5, 0.5], [0.5, 0.5]]
    with pytest.raises(KeyError):
        s.select("B3")
    m = s.masked(np.array([[True, False], [True, True]]))
    assert m.valid_count() == 3
    assert s.valid_count() == 4  # el original no cambia

def test_empty_and_grid_for_bounds():
    g = grid_for_bounds(Bounds(0, 0, 95, 60), 30, CRSRef.from_epsg(32719))
    assert (g.width, g.height) == (4, 2)
    assert g.transform == (0.0, 30.0, 0.0, 60.0, 0.0, -30.0)
    e = GeoRaster.empty(g, ("VV",))
    assert e.valid_count() == 0 and e.names() == ("VV",)

def test_crs_compatible_empty():
    assert CRSRef().compatible(CRSRef.from_epsg(4326))
    assert not CRSRef.from_epsg(32719).compatible(CRSRef.from_epsg(4326))
    assert CRSRef.parse("EPSG:32719").epsg == 32719
