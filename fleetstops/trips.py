import numpy as np
import pandas as pd
import geopandas as gpd

import fleetstops.io.base as loader
from fleetstops.constants import MS_PER_MIN, TRIP_TABLE_COLUMNS
from fleetstops.stop_detection.utils import haversine_distance


def _trip_id(asset_id, trip_number):
    return f"{asset_id}_Trip{trip_number}"


def _run_labels(ts, threshold):
    """
    1-based run numbers for one asset's time-sorted timestamps (ms). A new run
    starts after every gap strictly greater than `threshold` minutes; runs with
    a single fix are labelled -1 but still consume a number.
    """
    n = len(ts)
    if n == 0:
        return np.array([], dtype=int)

    gaps = np.diff(ts) / MS_PER_MIN
    runs = np.ones(n, dtype=int)
    runs[1:] += np.cumsum(gaps > threshold)

    sizes = np.bincount(runs)
    runs[sizes[runs] < 2] = -1
    return runs


def trip_labels(data, threshold=60, traj_cols=None, **kwargs):
    """
    Split each asset's fixes into trips at time gaps and label every fix
    with its trip number.

    Parameters
    ----------
    data : pd.DataFrame or GeoDataFrame
        Fix table with asset id and timestamp (ms) columns.
    threshold : float
        Maximum gap in minutes between consecutive fixes of a trip.
    traj_cols : dict, optional
        Mapping for 'asset_id' and 'timestamp'.
    **kwargs
        Passed along to the column-detection helper.

    Returns
    -------
    pd.Series
        One integer label per row, aligned with `data.index`: the 1-based trip
        number within the asset, or -1 for fixes of single-fix runs.
    """
    if not isinstance(data, (pd.DataFrame, gpd.GeoDataFrame)):
        raise TypeError("Input 'data' must be a pandas DataFrame or GeoDataFrame.")

    traj_cols = loader._parse_traj_cols(data.columns, traj_cols, kwargs)
    if data.empty:
        return pd.Series([], dtype=int, name='trip_number')

    loader._has_timestamp_col(data.columns, traj_cols)
    loader._has_asset_cols(data.columns, traj_cols)

    # work on positions so repeated index labels are harmless
    codes, _ = pd.factorize(data[traj_cols['asset_id']])
    ts = data[traj_cols['timestamp']].to_numpy(dtype='int64')
    order = np.lexsort((ts, codes))

    labels = np.full(len(data), -1, dtype=int)
    bounds = np.flatnonzero(np.diff(codes[order])) + 1
    for chunk in np.split(order, bounds):
        labels[chunk] = _run_labels(ts[chunk], threshold)

    return pd.Series(labels, index=data.index, name='trip_number')


def segment_trips(data, threshold=60, verbose=False, traj_cols=None, **kwargs):
    """
    Segment fixes into trips.

    Parameters
    ----------
    data : pd.DataFrame or GeoDataFrame
        Fix table, typically the output of `fleetstops.filters.preprocess`.
    threshold : float
        Maximum gap in minutes between consecutive fixes of a trip.
    verbose : bool, default False
        When True, prints the number of fixes and trips.
    traj_cols : dict, optional
        Mapping for 'asset_id', 'timestamp', 'trip_id' and 'trip_number'.

    Returns
    -------
    pd.DataFrame
        The fixes that belong to a trip (at least two fixes), sorted by asset
        (in order of earliest fix) and timestamp, with 'trip_number' and
        'trip_id' columns. Re-running with another threshold rebuilds the
        table from scratch.
    """
    labels = trip_labels(data, threshold=threshold, traj_cols=traj_cols, **kwargs)
    traj_cols = loader._parse_traj_cols(data.columns, traj_cols, kwargs, warn=False)

    segmented = data.copy()
    segmented[traj_cols['trip_number']] = labels.to_numpy()
    segmented = segmented[segmented[traj_cols['trip_number']] != -1].copy()

    if segmented.empty:
        segmented[traj_cols['trip_id']] = pd.Series(dtype=object)
    else:
        asset_col = traj_cols['asset_id']
        # assets in order of their earliest fix
        by_time = data.sort_values(traj_cols['timestamp'], kind='mergesort')
        asset_order = {a: i for i, a in enumerate(pd.unique(by_time[asset_col]))}
        segmented = segmented.assign(_asset_rank=segmented[asset_col].map(asset_order))
        segmented = segmented.sort_values(['_asset_rank', traj_cols['timestamp']], kind='mergesort')
        segmented = segmented.drop(columns='_asset_rank')
        segmented[traj_cols['trip_id']] = [
            _trip_id(a, n) for a, n in zip(segmented[asset_col], segmented[traj_cols['trip_number']])
        ]

    if verbose:
        n_trips = segmented[traj_cols['trip_id']].nunique()
        print(f"Segmented {len(data)} points into {n_trips} trips.")

    return segmented


def _summarize_trip(trip, traj_cols):
    ts = trip[traj_cols['timestamp']].to_numpy(dtype='int64')
    lat = trip[traj_cols['latitude']].to_numpy(dtype='float64')
    lon = trip[traj_cols['longitude']].to_numpy(dtype='float64')

    total_distance = float(np.sum(haversine_distance(lat[:-1], lon[:-1], lat[1:], lon[1:])))

    avg_speed = 0.0
    if traj_cols['speed'] in trip.columns:
        speeds = trip[traj_cols['speed']]
        valid = speeds[speeds.notna() & (speeds >= 0)]
        if len(valid) > 0:
            avg_speed = float(valid.mean())

    return {
        'trip_id': trip[traj_cols['trip_id']].iloc[0],
        'asset_id': trip[traj_cols['asset_id']].iloc[0],
        'trip_number': int(trip[traj_cols['trip_number']].iloc[0]),
        'start_timestamp': int(ts[0]),
        'end_timestamp': int(ts[-1]),
        'duration': (ts[-1] - ts[0]) / MS_PER_MIN,
        'n_pings': len(trip),
        'total_distance': total_distance,
        'avg_speed': avg_speed,
    }


def trip_table(segmented, traj_cols=None, **kwargs):
    """
    One row per trip with its time bounds, number of fixes, total travelled
    distance (m) and mean reported speed (km/h) over non-negative speeds.
    """
    traj_cols = loader._parse_traj_cols(segmented.columns, traj_cols, kwargs)
    if segmented.empty:
        return pd.DataFrame(columns=TRIP_TABLE_COLUMNS)

    loader._has_trip_cols(segmented.columns, traj_cols)
    loader._has_spatial_cols(segmented.columns, traj_cols)

    records = [
        _summarize_trip(trip, traj_cols)
        for _, trip in segmented.groupby(traj_cols['trip_id'], sort=False)
    ]
    return pd.DataFrame.from_records(records, columns=TRIP_TABLE_COLUMNS)
