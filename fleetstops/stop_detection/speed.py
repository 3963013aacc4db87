import numpy as np
import pandas as pd
import fleetstops.io.base as loader
from fleetstops.stop_detection import utils

##########################################
########     Speed-Threshold      ########
##########################################

def _closed_runs(speed, max_speed_kmh):
    """
    Yield (first, closing) index pairs of low-speed runs. A run starts at the
    first fix with speed <= max_speed_kmh and is closed by the next fix above
    it; a run still open at the end of the trip is not yielded.
    """
    first = None
    for i, s in enumerate(speed):
        if s <= max_speed_kmh:
            if first is None:
                first = i
        else:
            if first is not None:
                yield first, i
            first = None


def speed_labels(trip, max_speed_kmh=5, min_duration_minutes=2, traj_cols=None, **kwargs):
    """
    Label the fixes of each emitted low-speed run.

    Parameters
    ----------
    trip : pd.DataFrame
        Fixes of a single trip in time order.
    max_speed_kmh : float
        Reported speed at or below which a fix counts as stopped.
    min_duration_minutes : float
        Minimum time from the first stopped fix to the fix that ends the run.

    Returns
    -------
    pd.Series
        One integer label per row, -1 for fixes outside emitted runs, 0..K
        in order of emission.
    """
    traj_cols, arr = utils._prepare_trip(trip, traj_cols, kwargs)
    if arr is None:
        return pd.Series([], dtype=int, name='cluster')

    labels = np.full(len(trip), -1, dtype=int)
    for k, (first, closing) in enumerate(_emitted_runs(arr, max_speed_kmh, min_duration_minutes)):
        labels[first:closing] = k
    return pd.Series(labels, index=trip.index, name='cluster')


def _emitted_runs(arr, max_speed_kmh, min_duration_minutes):
    ts = arr['timestamp']
    for first, closing in _closed_runs(arr['speed'], max_speed_kmh):
        if closing - first < 2:
            continue
        if utils._minutes(ts[first], ts[closing]) >= min_duration_minutes:
            yield first, closing


def speed_threshold(
    trip,
    max_speed_kmh=5,
    min_duration_minutes=2,
    distance_tolerance_meters=100,
    traj_cols=None,
    **kwargs
):
    """
    Sequential low-speed stop detection.

    Scans the trip once, switching between moving and stopped on the reported
    speed. A stopped run of at least two fixes that is closed by a fix above
    `max_speed_kmh` yields a stop if it spans at least `min_duration_minutes`
    up to the closing fix. Runs still open at the end of the trip are ignored.

    Parameters
    ----------
    trip : pd.DataFrame
        Fixes of a single trip in time order.
    max_speed_kmh : float
        Reported speed at or below which a fix counts as stopped.
    min_duration_minutes : float
        Minimum duration in minutes for a valid stop.
    distance_tolerance_meters : float
        Accepted for configuration compatibility; not used.
    traj_cols : dict, optional
        Mapping for 'latitude', 'longitude', 'speed', 'timestamp', 'trip_id' and 'asset_id'.

    Returns
    -------
    pd.DataFrame
        Stop table located at the centroid of the stopped fixes, ending at the
        closing fix; confidence is min(1, duration / 10).
    """
    traj_cols, arr = utils._prepare_trip(trip, traj_cols, kwargs)
    if arr is None:
        return loader.empty_stop_table()

    trip_id, asset_id = utils._trip_context(trip, traj_cols)
    ts, lat, lon = arr['timestamp'], arr['latitude'], arr['longitude']

    records = []
    for k, (first, closing) in enumerate(_emitted_runs(arr, max_speed_kmh, min_duration_minutes)):
        c_lat, c_lon = utils._centroid(lat[first:closing], lon[first:closing])
        duration = utils._minutes(ts[first], ts[closing])
        records.append(utils._stop_record(
            'speed', trip_id, asset_id, k,
            start=ts[first], end=ts[closing],
            lat=c_lat, lon=c_lon,
            confidence=utils._time_confidence(duration),
        ))

    return loader.stop_table(records)
