import pytest
from dataclasses import FrozenInstanceError
from fleetstops.config import (
    Algorithm,
    DetectionParams,
    TimeGapParams,
    SpeedParams,
    ClusteringParams,
    HybridParams,
    DEFAULT_PARAMS,
)

def test_defaults():
    assert DEFAULT_PARAMS.trip_segmentation_threshold == 60
    assert DEFAULT_PARAMS.time_gap == TimeGapParams(5, 500)
    assert DEFAULT_PARAMS.speed == SpeedParams(5, 2, 100)
    assert DEFAULT_PARAMS.clustering == ClusteringParams(150, 3, 3)
    assert DEFAULT_PARAMS.hybrid == HybridParams(0.4, 0.3, 0.3, 0.6)

def test_algorithm_parse():
    assert Algorithm.parse("timeGap") is Algorithm.TIME_GAP
    assert Algorithm.parse("hybrid") is Algorithm.HYBRID
    assert Algorithm.parse("time_gap") is Algorithm.TIME_GAP
    assert Algorithm.parse(Algorithm.SPEED) is Algorithm.SPEED
    with pytest.raises(ValueError):
        Algorithm.parse("kmeans")

def test_for_algorithm_covers_every_member():
    for algorithm in Algorithm:
        assert DEFAULT_PARAMS.for_algorithm(algorithm) is not None
    assert DEFAULT_PARAMS.for_algorithm("clustering") is DEFAULT_PARAMS.clustering

def test_from_dict_camel_case():
    params = DetectionParams.from_dict({
        'tripSegmentationThreshold': 30,
        'timeGap': {'minGapMinutes': 10, 'maxDistanceMeters': 250},
        'hybrid': {'confidenceThreshold': 0.8},
    })
    assert params.trip_segmentation_threshold == 30
    assert params.time_gap == TimeGapParams(10, 250)
    assert params.hybrid.confidence_threshold == 0.8
    assert params.hybrid.speed_weight == 0.4
    assert params.speed == SpeedParams()

def test_from_dict_snake_case():
    params = DetectionParams.from_dict({'clustering': {'cluster_radius_meters': 50}})
    assert params.clustering.cluster_radius_meters == 50

def test_to_dict_roundtrip():
    params = DetectionParams().with_params(Algorithm.SPEED, max_speed_kmh=3)
    assert DetectionParams.from_dict(params.to_dict()) == params

def test_unknown_keys():
    with pytest.raises(KeyError):
        DetectionParams.from_dict({'dbscan': {}})
    with pytest.raises(KeyError):
        DetectionParams.from_dict({'speed': {'maxSpeed': 3}})
    with pytest.raises(KeyError):
        DEFAULT_PARAMS.with_params('speed', radius=3)

def test_params_are_frozen():
    with pytest.raises(FrozenInstanceError):
        DEFAULT_PARAMS.time_gap.min_gap_minutes = 1
