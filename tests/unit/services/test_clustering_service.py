import numpy as np
import pytest
from satwater.config import ClusteringSettings, Settings
from satwater.contracts.errors import BandAlignmentError, InsufficientTrainingData
from satwater.contracts.geo import GeoRaster
from satwater.services.clustering_service import (
    LABEL_NODATA, ClusterAssignmentService, ClusterTrainingService, display_labels,
)
from tests.factories import make_profile, make_stack, region_for


def _two_groups(g):
    # mitad izquierda "agua", mitad derecha "tierra"
    vv = np.where(np.arange(g.width) < g.width // 2, -20.0, -8.0)[np.newaxis, :].repeat(g.height, axis=0)
    mndwi = np.where(vv < -15, 0.6, -0.3)
    rng = np.random.default_rng(0)
    vv = vv + rng.normal(0, 0.2, vv.shape)
    return make_stack(g, {"VV": vv, "MNDWI": mndwi})


def test_train_and_assign_separates_groups():
    g = make_profile(10, 10)
    fused = _two_groups(g)
    region = region_for(g)
    model = ClusterTrainingService(Settings()).train(fused, 2, region)
    assert model.k == 2 and model.band_names == ("VV", "MNDWI")
    labels = ClusterAssignmentService().assign(fused, model, region)
    arr = labels.data
    assert labels.profile.dtype == "int16" and labels.profile.nodata == LABEL_NODATA
    assert set(np.unique(arr).tolist()) == {0, 1}
    assert len(set(arr[:, :5].ravel().tolist())) == 1
    assert len(set(arr[:, 5:].ravel().tolist())) == 1
    assert arr[0, 0] != arr[0, 9]
    c = model.centroids
    assert c.shape == (2, 2)
    assert sorted(c[:, 0].round().tolist()) == [-20.0, -8.0]


def test_labels_within_range_and_nodata_outside():
    g = make_profile(10, 10)
    fused = _two_groups(g)
    vv = fused.data[0].copy()
    vv[0, 0] = np.nan
    fused = make_stack(g, {"VV": vv, "MNDWI": fused.data[1]})
    region = region_for(g, rows=(0, 5))
    svc = ClusterTrainingService(Settings())
    model = svc.train(fused, 3, region)
    labels = ClusterAssignmentService().assign(fused, model, region).data
    assert labels[0, 0] == LABEL_NODATA
    assert (labels[5:] == LABEL_NODATA).all()
    inside = labels[:5].ravel()[1:]
    assert ((inside >= 0) & (inside < 3)).all()


def test_training_sample_cap():
    g = make_profile(10, 10)
    s = Settings(clustering=ClusteringSettings(training_sample_cap=30))
    samples = ClusterTrainingService(s).sample(_two_groups(g), region_for(g))
    assert len(samples) == 30


def test_exactly_k_samples_trains_and_fewer_fails():
    g = make_profile(10, 10)
    fused = _two_groups(g)
    region = region_for(g, rows=(0, 1), cols=(4, 6))   # 2 píxeles válidos
    model = ClusterTrainingService(Settings()).train(fused, 2, region)
    assert model.k == 2
    with pytest.raises(InsufficientTrainingData) as ei:
        ClusterTrainingService(Settings()).train(fused, 3, region)
    assert (ei.value.available, ei.value.required) == (2, 3)


def test_without_normalization_pipeline_has_only_kmeans():
    g = make_profile(10, 10)
    s = Settings(clustering=ClusteringSettings(normalize_features=False))
    model = ClusterTrainingService(s).train(_two_groups(g), 2, region_for(g))
    assert len(model.estimator) == 1


def test_assign_band_order_must_match():
    g = make_profile(10, 10)
    fused = _two_groups(g)
    model = ClusterTrainingService(Settings()).train(fused, 2, region_for(g))
    swapped = make_stack(g, {"MNDWI": fused.data[1], "VV": fused.data[0]})
    with pytest.raises(BandAlignmentError):
        ClusterAssignmentService().assign(swapped, model, region_for(g))


def test_display_labels_one_based():
    g = make_profile(3, 1).derive(count=1, dtype="int16", nodata=-1)
    lab = GeoRaster(np.array([[0, -1, 4]], dtype="int16"), g, ("cluster",))
    out = display_labels(lab)
    assert out.data.tolist() == [[1, 0, 5]]
    assert out.profile.dtype == "uint8" and out.profile.nodata == 0


def test_explicit_zero_k_is_rejected():
    g = make_profile(10, 10)
    with pytest.raises(ValueError):
        ClusterTrainingService(Settings()).train(_two_groups(g), 0, region_for(g))
