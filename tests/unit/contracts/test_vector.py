import pytest
from satwater.contracts.geo import CRSRef
from satwater.contracts.vector import FeatureCollection, Region, ReferenceWater

CRS = CRSRef.from_epsg(32719)

def test_region_from_geojson_feature_collection():
    obj = {"type": "FeatureCollection", "features": [
        {"type": "Feature", "properties": {}, "geometry": {"type": "Polygon",
         "coordinates": [[[0, 0], [10, 0], [10, 10], [0, 10], [0, 0]]]}},
        {"type": "Feature", "properties": {}, "geometry": {"type": "Polygon",
         "coordinates": [[[20, 0], [30, 0], [30, 10], [20, 10], [20, 0]]]}},
    ]}
    r = Region.from_geojson(obj, CRS)
    assert tuple(r.bounds) == (0, 0, 30, 10)
    assert r.geometry.area == pytest.approx(200)

def test_region_intersects_checks_crs():
    a = Region.from_bounds(0, 0, 10, 10, CRS)
    b = Region.from_bounds(5, 5, 15, 15, CRSRef.from_epsg(4326))
    with pytest.raises(ValueError):
        a.intersects(b)
    assert a.intersects(Region.from_bounds(5, 5, 15, 15, CRS))

def test_feature_collection_roundtrip_properties():
    fc = FeatureCollection.from_geojson({"type": "FeatureCollection", "features": [
        {"type": "Feature", "properties": {"v": 2}, "geometry": {"type": "Point", "coordinates": [1, 2]}},
    ]}, CRS)
    assert fc.property_array("v").tolist() == [2.0]
    assert fc.to_geojson()["features"][0]["properties"] == {"v": 2}

def test_manual_polygon_fallback():
    ref = ReferenceWater.from_manual_polygon([(0, 0), (10, 0), (10, 10)], CRS)
    assert ref.source == "manual"
    assert ref.region.geometry.area == pytest.approx(50)
    with pytest.raises(ValueError):
        ReferenceWater.from_manual_polygon([(0, 0), (1, 1)], CRS)
    with pytest.raises(ValueError):
        # lazo auto-intersectado
        ReferenceWater.from_manual_polygon([(0, 0), (10, 10), (10, 0), (0, 10)], CRS)
