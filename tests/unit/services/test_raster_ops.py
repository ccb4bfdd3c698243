import numpy as np
import pytest
from satwater.contracts.errors import BandAlignmentError
from satwater.contracts.geo import CRSRef
from satwater.contracts.vector import Region
from satwater.services.raster_ops import (
    clip_to_region, fill_gaps, median_composite, region_mask, sample_points,
)
from tests.factories import make_profile, make_raster, make_stack, region_for

NAN = np.nan

def test_region_mask_pixel_centers():
    g = make_profile(6, 5)
    m = region_mask(region_for(g, rows=(1, 3), cols=(2, 5)), g)
    assert m.sum() == 2 * 3
    assert m[1:3, 2:5].all()

def test_region_mask_crs_mismatch():
    g = make_profile(4, 4)
    with pytest.raises(ValueError):
        region_mask(Region.from_bounds(0, 0, 1, 1, CRSRef.from_epsg(4326)), g)

def test_clip_to_region_keeps_grid():
    g = make_profile(4, 4)
    r = clip_to_region(make_raster(g, 1.0), region_for(g, rows=(0, 2)))
    assert r.profile.shape == g.shape
    assert r.valid_count() == 8

def test_median_composite_ignores_nodata():
    g = make_profile(2, 1)
    a = make_raster(g, [[1.0, NAN]], "VV")
    b = make_raster(g, [[3.0, NAN]], "VV")
    c = make_raster(g, [[5.0, 7.0]], "VV")
    out = median_composite([a, b, c], g, "VV")
    assert out.data.tolist() == [[3.0, 7.0]]
    assert out.names() == ("VV",)

def test_median_composite_nodata_only_where_all_missing():
    g = make_profile(2, 1)
    a = make_raster(g, [[NAN, NAN]])
    b = make_raster(g, [[2.0, NAN]])
    out = median_composite([a, b], g, "x")
    assert out.valid_mask().tolist() == [[True, False]]

def test_median_composite_empty_and_misaligned():
    g = make_profile(3, 3)
    assert median_composite([], g, "VV").valid_count() == 0
    with pytest.raises(BandAlignmentError):
        median_composite([make_raster(make_profile(3, 3, px=10.0))], g, "VV")

def test_fill_gaps_never_overwrites():
    g = make_profile(3, 1)
    p = make_raster(g, [[1.0, NAN, NAN]])
    f = make_raster(g, [[9.0, 2.0, NAN]])
    out = fill_gaps(p, f)
    assert out.as_float()[0, :2].tolist() == [1.0, 2.0]
    assert np.isnan(out.as_float()[0, 2])

def test_sample_points_cap_and_values():
    g = make_profile(10, 10)
    vv = np.arange(100, dtype="float32").reshape(10, 10)
    fused = make_stack(g, {"VV": vv, "MNDWI": 0.5})
    fc = sample_points(fused, region_for(g), 20, seed=1)
    assert len(fc) == 20
    for f in fc:
        r, c = f.properties["row"], f.properties["col"]
        assert f.properties["VV"] == vv[r, c]
        assert f.properties["MNDWI"] == 0.5
    again = sample_points(fused, region_for(g), 20, seed=1)
    assert [f.properties["row"] for f in again] == [f.properties["row"] for f in fc]

def test_sample_points_only_valid_inside_region():
    g = make_profile(4, 4)
    vv = np.ones((4, 4), dtype="float32")
    vv[0, 0] = NAN
    fc = sample_points(make_stack(g, {"VV": vv}), region_for(g, rows=(0, 2), cols=(0, 2)), 1000)
    assert len(fc) == 3
    assert all(f.properties["row"] < 2 and f.properties["col"] < 2 for f in fc)
