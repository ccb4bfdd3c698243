from datetime import date

import numpy as np
import pytest
from satwater.adapters.memory_catalog import InMemoryCatalog
from satwater.config import RadarSettings, Settings
from satwater.contracts.core import Stage
from satwater.contracts.errors import BandAlignmentError
from satwater.services.radar_service import RadarCompositeService, rescale_to_byte
from tests.factories import TARGET, make_profile, radar_scene, region_for


def _plain_settings():
    # sin máscara de borde: los valores pasan intactos
    return Settings(radar=RadarSettings(border_buffer_m=0, edge_erosion_m=0, min_component_pixels=0))


def _noisy_edge_grid():
    g = make_profile(40, 40, px=100.0)
    vv = np.full(g.shape, -10.0, dtype="float32")
    vv[:, :5] = np.nan            # fuera de la pasada
    vv[:, 5:8] = -30.0            # franja de borde sin señal
    vv[10:12, 5:7] = -10.0        # ruido: componente pequeña en el borde
    vv[20, 20] = -30.0            # agua oscura en el interior
    return g, vv


def _edge_service(catalog=None):
    s = Settings(radar=RadarSettings(border_buffer_m=300, edge_erosion_m=100, min_component_pixels=10))
    return RadarCompositeService(catalog or InMemoryCatalog(), s)


def test_rescale_to_byte_range():
    b = rescale_to_byte(np.array([-30.0, -25.0, -10.0, 5.0, 9.0, np.nan]), -25.0, 5.0)
    assert b.tolist() == [0, 0, 128, 255, 255, 0]


def test_border_noise_mask_from_valid_pixels():
    g, vv = _noisy_edge_grid()
    out = _edge_service().mask_border_noise(radar_scene(g, vv, TARGET))
    valid = out.valid_mask()
    assert not valid[:, :9].any()       # franja + componente chica + erosión
    assert valid[:, 9:].all()
    assert valid[20, 20]                # el interior conserva píxeles de baja señal
    assert out.data[20, 20] == -30.0


def test_border_noise_mask_with_footprint():
    g, vv = _noisy_edge_grid()
    vv[1, 20] = -30.0                   # baja señal fuera del interior
    footprint = region_for(g, cols=(5, 40))
    out = _edge_service().mask_border_noise(radar_scene(g, vv, TARGET, footprint=footprint))
    valid = out.valid_mask()
    assert not valid[10:12, 5:7].any()
    assert not valid[1, 20]
    assert valid[20, 20]
    assert valid[20, 9:].all()


def test_border_noise_never_adds_pixels():
    g, vv = _noisy_edge_grid()
    sc = radar_scene(g, vv, TARGET)
    out = _edge_service().mask_border_noise(sc)
    assert not (out.valid_mask() & ~sc.raster.valid_mask()).any()


def test_composite_empty_collection_is_nodata():
    g = make_profile(4, 4)
    out = RadarCompositeService(InMemoryCatalog(), _plain_settings()).composite(TARGET, region_for(g), g)
    assert out.valid_count() == 0
    assert out.names() == ("VV",)


def test_composite_median_and_filters():
    g = make_profile(4, 4)
    cat = InMemoryCatalog([
        radar_scene(g, -10.0, date(2016, 5, 10), "a"),
        radar_scene(g, -14.0, date(2016, 5, 20), "b"),
        radar_scene(g, -12.0, date(2016, 5, 1), "c"),
        radar_scene(g, -40.0, date(2016, 6, 1), "fuera_de_ventana"),
        radar_scene(g, -40.0, date(2016, 5, 12), "solo_vh", polarization=("VH",)),
        radar_scene(g, -40.0, date(2016, 5, 12), "modo_ew", instrument_mode="EW"),
        radar_scene(g, -40.0, date(2016, 5, 12), "res_40", resolution_m=40),
    ])
    out = RadarCompositeService(cat, _plain_settings()).composite(TARGET, region_for(g), g)
    assert np.allclose(out.data, -12.0)


def test_composite_misaligned_scene():
    g = make_profile(4, 4)
    cat = InMemoryCatalog([radar_scene(make_profile(4, 4, px=10.0, x0=500000.0), -10.0, TARGET)])
    region = region_for(g)
    with pytest.raises(BandAlignmentError) as ei:
        RadarCompositeService(cat, _plain_settings()).composite(TARGET, region, g)
    assert ei.value.stage is Stage.RADAR


def test_interior_hole_is_not_scene_edge():
    # lago calmo bajo el rango byte y un único píxel sin dato lejos del borde
    g = make_profile(40, 40)
    vv = np.full(g.shape, -8.0, dtype="float32")
    vv[10:30, 10:30] = -27.0
    vv[5, 5] = np.nan
    out = RadarCompositeService(InMemoryCatalog(), Settings()).mask_border_noise(radar_scene(g, vv, TARGET))
    valid = out.valid_mask()
    assert valid[10:30, 10:30].all()
    assert out.valid_count() == 40 * 40 - 1
    assert not valid[5, 5]


@pytest.mark.parametrize("erosion_m, kept", [(0, 90), (20, 90), (30, 80), (45, 80), (60, 70)])
def test_edge_erosion_is_metric(erosion_m, kept):
    # grilla de 30 m, primera columna fuera de la pasada
    g = make_profile(10, 10)
    vv = np.full(g.shape, -10.0, dtype="float32")
    vv[:, 0] = np.nan
    s = Settings(radar=RadarSettings(border_buffer_m=0, edge_erosion_m=erosion_m, min_component_pixels=0))
    out = RadarCompositeService(InMemoryCatalog(), s).mask_border_noise(radar_scene(g, vv, TARGET))
    assert out.valid_count() == kept
