import pytest
import pandas as pd
import numpy as np
from pathlib import Path
import fleetstops.io.base as loader
from fleetstops.filters import preprocess
from fleetstops.trips import trip_labels, segment_trips, trip_table
from fleetstops.constants import TRIP_TABLE_COLUMNS

MIN = 60000

@pytest.fixture
def sample_cols():
    return {'asset_id': 'EquipmentId', 'timestamp': 'eventGeneratedTime'}

@pytest.fixture
def sample_df(sample_cols):
    test_dir = Path(__file__).resolve().parent
    data_path = test_dir.parent / "data" / "sample_telemetry.csv"
    return preprocess(loader.from_file(data_path, traj_cols=sample_cols), traj_cols=sample_cols)

def _fixes(asset, minutes, lat=12.9, lon=74.9):
    return pd.DataFrame({
        'asset_id': asset,
        'latitude': lat,
        'longitude': lon,
        'speed': 0.0,
        'timestamp': [int(m * MIN) for m in minutes],
    })

def test_trip_labels_gap_split():
    # consecutive gaps of 1, 2, 500 and 3 minutes
    df = _fixes('A', [0, 1, 3, 503, 506])
    labels = trip_labels(df, threshold=60)
    assert labels.tolist() == [1, 1, 1, 2, 2]
    assert labels.name == 'trip_number'

def test_trip_labels_threshold_is_exclusive():
    df = _fixes('A', [0, 60, 121])
    assert trip_labels(df, threshold=60).tolist() == [1, 1, -1]

def test_trip_labels_single_fix_runs_consume_numbers():
    df = _fixes('A', [0, 100, 200, 201])
    assert trip_labels(df, threshold=60).tolist() == [-1, -1, 3, 3]

def test_trip_labels_per_asset_unsorted():
    df = pd.concat([_fixes('A', [10, 0]), _fixes('B', [0, 1])], ignore_index=True)
    df = df.iloc[[2, 0, 3, 1]]
    labels = trip_labels(df, threshold=60)
    assert labels.index.tolist() == [2, 0, 3, 1]
    assert (labels == 1).all()

def test_segment_trips_sample(sample_df, sample_cols):
    segmented = segment_trips(sample_df, threshold=60, traj_cols=sample_cols)
    assert len(segmented) == 14
    assert list(pd.unique(segmented['trip_id'])) == ['EQPT-4_Trip1', 'EQPT-5_Trip1', 'EQPT-6_Trip1']
    for _, trip in segmented.groupby('trip_id'):
        assert trip['eventGeneratedTime'].is_monotonic_increasing

def test_segment_trips_drops_single_fix_runs():
    df = pd.concat([_fixes('A', [0, 1, 3, 503, 506, 900]), _fixes('B', [5])], ignore_index=True)
    segmented = segment_trips(df, threshold=60)
    assert len(segmented) == 5
    assert segmented['trip_id'].tolist() == ['A_Trip1'] * 3 + ['A_Trip2'] * 2
    assert (segmented['trip_number'] != -1).all()

def test_segment_trips_asset_order_by_earliest_fix():
    df = pd.concat([_fixes('Z', [0, 1]), _fixes('A', [5, 6])], ignore_index=True)
    segmented = segment_trips(df)
    assert list(pd.unique(segmented['asset_id'])) == ['Z', 'A']

def test_segment_trips_resegment_is_fresh(sample_df, sample_cols):
    first = segment_trips(sample_df, threshold=5, traj_cols=sample_cols)
    assert len(first) == 10
    assert 'EQPT-6_Trip3' in set(first['trip_id'])

    again = segment_trips(first, threshold=60, traj_cols=sample_cols)
    assert set(again['trip_id']) == {'EQPT-4_Trip1', 'EQPT-5_Trip1', 'EQPT-6_Trip1'}

def test_segment_trips_verbose(capsys, sample_df, sample_cols):
    segment_trips(sample_df, threshold=60, verbose=True, traj_cols=sample_cols)
    captured = capsys.readouterr()
    assert "14 points into 3 trips" in captured.out

def test_segment_trips_empty():
    df = _fixes('A', [])
    segmented = segment_trips(df)
    assert segmented.empty
    assert 'trip_id' in segmented.columns

def test_trip_labels_repeated_index():
    # concatenated tables keep their own 0..n-1 labels
    df = pd.concat([_fixes('A', [0, 1, 200]), _fixes('B', [0, 1, 2])])
    assert df.index.tolist() == [0, 1, 2, 0, 1, 2]
    labels = trip_labels(df, threshold=60)
    assert labels.index.tolist() == [0, 1, 2, 0, 1, 2]
    assert labels.tolist() == [1, 1, -1, 1, 1, 1]

def test_segment_trips_repeated_index():
    df = pd.concat([_fixes('A', [0, 1, 200]), _fixes('B', [0, 1, 2])])
    segmented = segment_trips(df, threshold=60)
    assert len(segmented) == 5
    assert segmented['trip_id'].tolist() == ['A_Trip1'] * 2 + ['B_Trip1'] * 3
    trips = trip_table(segmented)
    assert trips['n_pings'].tolist() == [2, 3]

def test_trip_labels_requires_timestamp():
    df = _fixes('A', [0, 1]).drop(columns='timestamp')
    df['datetime'] = pd.to_datetime(['2024-05-20 18:30:15', '2024-05-20 18:31:15'])
    with pytest.raises(ValueError, match="from_df"):
        trip_labels(df)

def test_trip_labels_missing_asset_column():
    df = _fixes('A', [0, 1]).drop(columns='asset_id')
    with pytest.raises(ValueError, match="asset"):
        trip_labels(df)

def test_trip_table_sample(sample_df, sample_cols):
    segmented = segment_trips(sample_df, traj_cols=sample_cols)
    trips = trip_table(segmented, traj_cols=sample_cols)
    assert list(trips.columns) == TRIP_TABLE_COLUMNS
    assert trips['trip_id'].tolist() == ['EQPT-4_Trip1', 'EQPT-5_Trip1', 'EQPT-6_Trip1']
    assert trips['n_pings'].tolist() == [6, 4, 4]

    eqpt4 = trips.iloc[0]
    assert eqpt4['start_timestamp'] == 1716229815000
    assert eqpt4['end_timestamp'] == 1716230900000
    assert eqpt4['duration'] == pytest.approx(1085 / 60)
    assert eqpt4['avg_speed'] == pytest.approx(2.5)
    assert eqpt4['total_distance'] == pytest.approx(segmented['distance'].iloc[1:6].sum())

def test_trip_table_ignores_negative_speeds():
    df = _fixes('A', [0, 1, 2])
    df['speed'] = [-1.0, 4.0, 8.0]
    trips = trip_table(segment_trips(df))
    assert trips['avg_speed'].iloc[0] == pytest.approx(6.0)

def test_trip_table_empty():
    trips = trip_table(segment_trips(_fixes('A', [])))
    assert trips.empty
    assert list(trips.columns) == TRIP_TABLE_COLUMNS
