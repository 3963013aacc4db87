import numpy as np
import pandas as pd
import geopandas as gpd

import fleetstops.io.base as loader
from fleetstops.constants import MS_PER_SEC, MS_PER_HOUR, MS_TO_KMH, OUTLIER_SPEED_KMH
from fleetstops.stop_detection.utils import haversine_distance


def _pairwise_metrics(ts, lat, lon):
    """
    Elapsed seconds, meters and implied km/h from the previous fix, for
    one time-sorted sequence. The first fix gets zeros.
    """
    n = len(ts)
    time_diff = np.zeros(n)
    distance = np.zeros(n)
    if n > 1:
        time_diff[1:] = np.diff(ts) / MS_PER_SEC
        distance[1:] = haversine_distance(lat[:-1], lon[:-1], lat[1:], lon[1:])
    calculated_speed = np.zeros(n)
    moving = time_diff > 0
    calculated_speed[moving] = distance[moving] / time_diff[moving] * MS_TO_KMH
    return time_diff, distance, calculated_speed


def preprocess(data, outlier_speed=OUTLIER_SPEED_KMH, traj_cols=None, **kwargs):
    """
    Annotate each fix with elapsed time, travelled distance and implied speed
    with respect to the previous fix of the same asset, and flag fixes with
    unrealistic implied speeds.

    Parameters
    ----------
    data : pd.DataFrame
        Fix table with asset id, latitude, longitude and timestamp (ms) columns.
    outlier_speed : float, default 200
        Implied speed (km/h) above which a fix is flagged as an outlier.
    traj_cols : dict, optional
        Mapping from the standard keys to the actual column names in *data*.
        The output columns 'time_diff', 'distance', 'calculated_speed' and
        'is_outlier' can be renamed the same way.
    **kwargs
        Shorthand overrides for entries in *traj_cols*.

    Returns
    -------
    pd.DataFrame
        Copy of *data* in its original row order, with the four columns added.
        Outliers are flagged, never dropped.
    """
    if not isinstance(data, (pd.DataFrame, gpd.GeoDataFrame)):
        raise TypeError("Input 'data' must be a pandas DataFrame or GeoDataFrame.")

    traj_cols = loader._parse_traj_cols(data.columns, traj_cols, kwargs, warn=False)
    out = data.copy()
    if out.empty:
        for key in ['time_diff', 'distance', 'calculated_speed']:
            out[traj_cols[key]] = pd.Series(dtype='float64')
        out[traj_cols['is_outlier']] = pd.Series(dtype=bool)
        return out

    loader._has_spatial_cols(data.columns, traj_cols)
    loader._has_timestamp_col(data.columns, traj_cols)

    ts_col = traj_cols['timestamp']
    if traj_cols['asset_id'] in data.columns:
        groups = data[traj_cols['asset_id']].to_numpy()
    else:
        groups = np.zeros(len(data))

    # stable sort keeps the input order of simultaneous fixes
    order = pd.DataFrame({'g': groups, 't': data[ts_col].to_numpy()}).sort_values(
        ['g', 't'], kind='mergesort').index.to_numpy()

    ts = data[ts_col].to_numpy(dtype='int64')[order]
    lat = data[traj_cols['latitude']].to_numpy(dtype='float64')[order]
    lon = data[traj_cols['longitude']].to_numpy(dtype='float64')[order]
    grp = groups[order]

    time_diff, distance, calculated_speed = _pairwise_metrics(ts, lat, lon)

    # first fix of every asset has no predecessor
    first = np.ones(len(grp), dtype=bool)
    first[1:] = grp[1:] != grp[:-1]
    time_diff[first] = 0.0
    distance[first] = 0.0
    calculated_speed[first] = 0.0

    result = np.empty((len(order), 3))
    result[order, 0] = time_diff
    result[order, 1] = distance
    result[order, 2] = calculated_speed

    out[traj_cols['time_diff']] = result[:, 0]
    out[traj_cols['distance']] = result[:, 1]
    out[traj_cols['calculated_speed']] = result[:, 2]
    out[traj_cols['is_outlier']] = out[traj_cols['calculated_speed']] > outlier_speed
    return out


def data_quality(data, traj_cols=None, **kwargs):
    """
    Summary of a preprocessed fix table.

    Returns
    -------
    pd.Series
        n_pings, n_trips (only if a trip column is present), n_outliers,
        outlier_pct, time_coverage_h (span of all fixes in hours) and
        sampling_rate_s (mean positive elapsed time between fixes).
    """
    traj_cols = loader._parse_traj_cols(data.columns, traj_cols, kwargs, warn=False)
    out = {'n_pings': len(data)}

    if traj_cols['trip_id'] in data.columns:
        out['n_trips'] = int(data[traj_cols['trip_id']].nunique())

    if data.empty:
        out.update({'n_outliers': 0, 'outlier_pct': 0.0, 'time_coverage_h': 0.0, 'sampling_rate_s': 0.0})
        return pd.Series(out, dtype='object')

    if traj_cols['is_outlier'] not in data.columns or traj_cols['time_diff'] not in data.columns:
        data = preprocess(data, traj_cols=traj_cols)

    n_outliers = int(data[traj_cols['is_outlier']].sum())
    ts = data[traj_cols['timestamp']]
    diffs = data[traj_cols['time_diff']]
    diffs = diffs[diffs > 0]

    out['n_outliers'] = n_outliers
    out['outlier_pct'] = 100 * n_outliers / len(data)
    out['time_coverage_h'] = (ts.max() - ts.min()) / MS_PER_HOUR
    out['sampling_rate_s'] = float(diffs.mean()) if len(diffs) > 0 else 0.0
    return pd.Series(out, dtype='object')
