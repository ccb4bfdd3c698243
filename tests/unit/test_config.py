# tests/unit/test_config.py
import pytest
import yaml
from pathlib import Path
from satwater.config import CompositingSettings, OpticalSettings, RadarSettings, Settings, get_settings
from satwater.contracts.geo import CRSRef
from satwater.contracts.products import LANDSAT8_SR
from satwater.composition.di import build_settings

def test_settings_defaults_and_paths(tmp_path: Path):
    s = Settings(project_root=tmp_path, crs_out="EPSG:32719")
    assert s.crs_out_ref() == CRSRef.from_epsg(32719)
    assert s.clustering.cluster_count == 5
    assert s.compositing.half_window_days == 15
    assert s.compositing.fallback_half_window_days == 45
    assert s.compositing.climatology_years == 10
    assert s.clustering.training_sample_cap == 1000
    assert s.selection_sample_cap == 1000
    p = s.out_path("water_mask", date="20160515")
    assert tmp_path.resolve() in p.parents
    assert p.name == "water_mask.tif"

def test_settings_placeholders_guard():
    with pytest.raises(ValueError):
        Settings(output_patterns={"water_mask": "artifacts/{site}/x.tif"})

def test_env_prefix(monkeypatch):
    monkeypatch.setenv("SATWATER_CLUSTERING__CLUSTER_COUNT", "7")
    monkeypatch.setenv("SATWATER_LOG_LEVEL", "debug")
    s = get_settings()
    assert s.clustering.cluster_count == 7
    assert s.log_level == "DEBUG"

@pytest.mark.parametrize("kwargs", [
    {"half_window_days": 15, "fallback_half_window_days": 15},
    {"half_window_days": 0},
])
def test_compositing_validation(kwargs):
    with pytest.raises(ValueError):
        CompositingSettings(**kwargs)

def test_radar_and_optical_validation():
    with pytest.raises(ValueError):
        RadarSettings(byte_range_db=(5.0, -25.0))
    with pytest.raises(ValueError):
        OpticalSettings(sensors=(LANDSAT8_SR, LANDSAT8_SR))
    with pytest.raises(ValueError):
        OpticalSettings(cloud_bits=(3, 16))

def test_build_settings_from_yaml(tmp_path: Path):
    cfg_dir = tmp_path / "00-Config"
    cfg_dir.mkdir(parents=True)
    (cfg_dir / "settings.yaml").write_text(yaml.safe_dump({
        "crs_out": "EPSG:32719",
        "grid_resolution_m": 10,
        "random_seed": 3,
        "radar": {"polarization": "VH", "border_buffer_m": 1000},
        "clustering": {"cluster_count": 4},
        "output_patterns": {
            "water_mask": "03-Products/AGUA/{date}/agua.tif",
            "radar": "02-Work/RADAR/{date}/radar.tif",
            "optical": "02-Work/OPTICAL/{date}/mndwi.tif",
            "fused": "02-Work/FUSED/{date}/fused.tif",
            "labels": "02-Work/CLUSTERS/{date}/clusters.tif",
        },
    }), encoding="utf-8")

    st = build_settings(tmp_path)
    assert st.project_root == tmp_path.resolve()
    assert st.radar.polarization == "VH"
    assert st.radar.border_buffer_m == 1000
    assert st.clustering.cluster_count == 4
    out = st.out_path("water_mask", date="20160515")
    assert out.name == "agua.tif"
    assert "03-Products/AGUA/20160515" in str(out).replace("\\", "/")

def test_build_settings_without_yaml(tmp_path: Path):
    st = build_settings(tmp_path)
    assert st.project_root == tmp_path.resolve()
    assert st.radar.polarization == "VV"
