import numpy as np
import pandas as pd
import fleetstops.io.base as loader
from fleetstops.constants import (
    CATEGORY_LABELS,
    MERGE_DIST_METERS,
    MERGE_TIME_MINUTES,
    MERGE_LABEL_SEP,
    MS_PER_MIN,
    STOP_TABLE_COLUMNS,
)
from fleetstops.stop_detection import utils


def similar_groups(stops, dist_thresh=MERGE_DIST_METERS, time_thresh=MERGE_TIME_MINUTES):
    """
    Greedy single-link grouping of stop candidates.

    Candidates are visited in order; each one not yet grouped seeds a group
    and pulls in every later ungrouped candidate within `dist_thresh` meters
    of the seed's location whose start differs from the seed's start by at
    most `time_thresh` minutes. One pass, no fixed point: grouped candidates
    never seed, and groups are never joined.

    Returns
    -------
    list of list of int
        Positional indices of each group's members, seed first.
    """
    n = len(stops)
    if n == 0:
        return []

    lat = stops['latitude'].to_numpy(dtype='float64')
    lon = stops['longitude'].to_numpy(dtype='float64')
    start = stops['start_timestamp'].to_numpy(dtype='int64')

    processed = np.zeros(n, dtype=bool)
    groups = []
    for i in range(n):
        if processed[i]:
            continue
        processed[i] = True
        group = [i]
        rest = np.flatnonzero(~processed)
        if len(rest) > 0:
            dists = utils.haversine_distance(lat[i], lon[i], lat[rest], lon[rest])
            gaps = np.abs(start[rest] - start[i]) / MS_PER_MIN
            joined = rest[(dists <= dist_thresh) & (gaps <= time_thresh)]
            processed[joined] = True
            group.extend(joined.tolist())
        groups.append(group)
    return groups


def _merge_group(members, k):
    """Collapse a group of candidates (a stop table slice) into one record."""
    start = int(members['start_timestamp'].min())
    end = int(members['end_timestamp'].max())
    trip_id = members['trip_id'].iloc[0]
    return {
        'stop_id': utils._stop_id('merged', trip_id, k),
        'trip_id': trip_id,
        'asset_id': members['asset_id'].iloc[0],
        'algorithm': MERGE_LABEL_SEP.join(pd.unique(members['algorithm'])),
        'start_timestamp': start,
        'end_timestamp': end,
        'duration': utils._minutes(start, end),
        'latitude': float(members['latitude'].mean()),
        'longitude': float(members['longitude'].mean()),
        'confidence': float(members['confidence'].max()),
        'category': CATEGORY_LABELS['merged'],
    }


def merge_stoppages(stops, dist_thresh=MERGE_DIST_METERS, time_thresh=MERGE_TIME_MINUTES):
    """
    Reconcile stop candidates from one or more strategies.

    Parameters
    ----------
    stops : pd.DataFrame
        Stop table of candidates, usually from a single trip, in detection order.
    dist_thresh : float, default 100
        Maximum distance (m) from a group's seed.
    time_thresh : float, default 30
        Maximum difference (minutes) between start times and the seed's start.

    Returns
    -------
    pd.DataFrame
        Stop table in group order. Singleton groups pass through unchanged;
        larger groups become one 'Merged' stop spanning the earliest start to
        the latest end, located at the mean member location, with the highest
        member confidence and the distinct member algorithms joined by ' + '.
    """
    if not isinstance(stops, pd.DataFrame):
        raise TypeError("Input 'stops' must be a pandas DataFrame.")
    missing = [c for c in STOP_TABLE_COLUMNS if c not in stops.columns]
    if missing:
        raise ValueError(f"Missing required stop table columns {missing}.")
    if stops.empty:
        return loader.empty_stop_table()

    stops = stops[STOP_TABLE_COLUMNS].reset_index(drop=True)
    records = []
    for k, group in enumerate(similar_groups(stops, dist_thresh, time_thresh)):
        if len(group) == 1:
            records.append(stops.iloc[group[0]].to_dict())
        else:
            records.append(_merge_group(stops.iloc[group], k))

    return loader.stop_table(records)
