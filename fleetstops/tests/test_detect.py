import pytest
import pandas as pd
import numpy as np
from pathlib import Path
from pandas.testing import assert_frame_equal
import fleetstops.io.base as loader
from fleetstops.config import Algorithm, DetectionParams
from fleetstops.constants import STOP_TABLE_COLUMNS
from fleetstops.filters import preprocess
from fleetstops.trips import segment_trips
from fleetstops.stop_detection.detect import (
    detect,
    detect_per_trip,
    compare_algorithms,
    run_pipeline,
)

@pytest.fixture
def sample_cols():
    return {'asset_id': 'EquipmentId', 'timestamp': 'eventGeneratedTime'}

@pytest.fixture
def sample_fixes(sample_cols):
    test_dir = Path(__file__).resolve().parent
    data_path = test_dir.parent / "data" / "sample_telemetry.csv"
    return loader.from_file(data_path, traj_cols=sample_cols)

@pytest.fixture
def segmented(sample_fixes, sample_cols):
    return segment_trips(preprocess(sample_fixes, traj_cols=sample_cols), traj_cols=sample_cols)

@pytest.fixture
def eqpt4(segmented):
    return segmented[segmented['trip_id'] == 'EQPT-4_Trip1']

def test_detect_all_algorithms_merge(eqpt4, sample_cols):
    stops = detect(eqpt4, traj_cols=sample_cols)
    assert len(stops) == 1
    stop = stops.iloc[0]
    assert stop['stop_id'] == 'merged_EQPT-4_Trip1_0'
    assert stop['algorithm'] == 'Time-Gap + Speed-Based + Location Clustering + Hybrid Multi-Criteria'
    assert stop['category'] == 'Merged'
    assert stop['start_timestamp'] == 1716229815000
    assert stop['end_timestamp'] == 1716230900000
    assert stop['confidence'] == pytest.approx(1.0)

def test_detect_subset(eqpt4, sample_cols):
    stops = detect(eqpt4, algorithms=['timeGap'], traj_cols=sample_cols)
    assert len(stops) == 1
    assert stops['algorithm'].iloc[0] == 'Time-Gap'
    assert stops['stop_id'].iloc[0] == 'timegap_EQPT-4_Trip1_5'

def test_detect_subset_order_is_fixed(eqpt4, sample_cols):
    stops = detect(eqpt4, algorithms=[Algorithm.SPEED, 'timeGap'], traj_cols=sample_cols)
    assert stops['algorithm'].tolist() == ['Time-Gap + Speed-Based']

def test_detect_single_algorithm_string(eqpt4, sample_cols):
    stops = detect(eqpt4, algorithms='clustering', traj_cols=sample_cols)
    assert stops['algorithm'].tolist() == ['Location Clustering']

def test_detect_empty_selection(eqpt4, sample_cols):
    with pytest.raises(ValueError):
        detect(eqpt4, algorithms=[], traj_cols=sample_cols)

def test_detect_unknown_algorithm(eqpt4, sample_cols):
    with pytest.raises(ValueError, match="Unknown algorithm"):
        detect(eqpt4, algorithms=['dbscan'], traj_cols=sample_cols)

def test_detect_params(eqpt4, sample_cols):
    params = DetectionParams().with_params('timeGap', min_gap_minutes=30)
    stops = detect(eqpt4, algorithms=['timeGap'], params=params, traj_cols=sample_cols)
    assert stops.empty
    assert list(stops.columns) == STOP_TABLE_COLUMNS

def test_detect_per_trip_order(segmented, sample_cols):
    stops = detect_per_trip(segmented, traj_cols=sample_cols)
    assert stops['trip_id'].tolist() == ['EQPT-4_Trip1', 'EQPT-5_Trip1', 'EQPT-6_Trip1']
    assert (stops['category'] == 'Merged').all()
    assert stops['stop_id'].is_unique

def test_detect_per_trip_parallel_matches_serial(segmented, sample_cols):
    serial = detect_per_trip(segmented, traj_cols=sample_cols)
    parallel = detect_per_trip(segmented, n_jobs=2, traj_cols=sample_cols)
    assert_frame_equal(serial, parallel)

def test_detect_per_trip_requires_trips(sample_fixes, sample_cols):
    with pytest.raises(ValueError, match="trip identifier"):
        detect_per_trip(sample_fixes, traj_cols=sample_cols)

def test_detect_per_trip_verbose(capsys, segmented, sample_cols):
    detect_per_trip(segmented, verbose=True, traj_cols=sample_cols)
    assert "3 stoppages in 3 trips" in capsys.readouterr().out

def test_detect_per_trip_empty():
    segmented = pd.DataFrame(columns=['asset_id', 'latitude', 'longitude', 'timestamp', 'trip_id'])
    stops = detect_per_trip(segmented)
    assert stops.empty
    assert list(stops.columns) == STOP_TABLE_COLUMNS

def test_compare_algorithms(segmented, sample_cols):
    results = compare_algorithms(segmented, traj_cols=sample_cols)
    assert list(results) == [Algorithm.TIME_GAP, Algorithm.SPEED, Algorithm.CLUSTERING, Algorithm.HYBRID]
    assert len(results[Algorithm.TIME_GAP]) == 3
    assert len(results[Algorithm.SPEED]) == 2
    assert len(results[Algorithm.CLUSTERING]) == 2
    # nothing is merged
    assert not (results[Algorithm.HYBRID]['category'] == 'Merged').any()

def test_run_pipeline(sample_fixes, sample_cols):
    segmented, trips, stops = run_pipeline(sample_fixes, traj_cols=sample_cols)
    assert len(segmented) == 14
    assert trips['trip_id'].tolist() == ['EQPT-4_Trip1', 'EQPT-5_Trip1', 'EQPT-6_Trip1']
    assert len(stops) == 3
    assert set(stops['trip_id']) <= set(trips['trip_id'])
    for stop in stops.itertuples():
        trip = trips.set_index('trip_id').loc[stop.trip_id]
        assert trip['start_timestamp'] <= stop.start_timestamp <= stop.end_timestamp <= trip['end_timestamp']

def test_run_pipeline_repeated_index(sample_fixes, sample_cols):
    # two loads of the same export, each indexed from 0
    first = sample_fixes[sample_fixes['EquipmentId'] == 'EQPT-4'].reset_index(drop=True)
    second = sample_fixes[sample_fixes['EquipmentId'] != 'EQPT-4'].reset_index(drop=True)
    fixes = pd.concat([first, second])
    assert not fixes.index.is_unique

    segmented, trips, stops = run_pipeline(fixes, traj_cols=sample_cols)
    _, _, expected = run_pipeline(sample_fixes, traj_cols=sample_cols)
    assert len(segmented) == 14
    assert trips['trip_id'].tolist() == ['EQPT-4_Trip1', 'EQPT-5_Trip1', 'EQPT-6_Trip1']
    assert_frame_equal(stops, expected)

def test_run_pipeline_segmentation_threshold(sample_fixes, sample_cols):
    params = DetectionParams(trip_segmentation_threshold=5)
    segmented, trips, stops = run_pipeline(sample_fixes, params=params, traj_cols=sample_cols)
    assert len(trips) == 3
    assert 'EQPT-6_Trip3' in trips['trip_id'].tolist()
