import numpy as np
import fleetstops.io.base as loader
from fleetstops.stop_detection import utils

##########################################
########        Time-Gap          ########
##########################################

def time_gap(trip, min_gap_minutes=5, max_distance_meters=500, traj_cols=None, **kwargs):
    """
    Detect stops as reporting gaps between two fixes that barely moved.

    Every consecutive pair of fixes whose gap is at least `min_gap_minutes`
    and whose displacement is at most `max_distance_meters` yields a stop
    located at the midpoint of the pair, lasting the whole gap.

    Parameters
    ----------
    trip : pd.DataFrame
        Fixes of a single trip in time order.
    min_gap_minutes : float
        Minimum time between the two fixes.
    max_distance_meters : float
        Maximum distance between the two fixes.
    traj_cols : dict, optional
        Mapping for 'latitude', 'longitude', 'timestamp', 'trip_id' and 'asset_id'.
    **kwargs
        Passed along to the column-detection helper.

    Returns
    -------
    pd.DataFrame
        Stop table; confidence is min(1, duration / 10).
    """
    traj_cols, arr = utils._prepare_trip(trip, traj_cols, kwargs)
    if arr is None or len(trip) < 2:
        return loader.empty_stop_table()

    trip_id, asset_id = utils._trip_context(trip, traj_cols)
    ts, lat, lon = arr['timestamp'], arr['latitude'], arr['longitude']

    gaps = utils._minutes(ts[:-1], ts[1:])
    dists = utils.haversine_distance(lat[:-1], lon[:-1], lat[1:], lon[1:])
    hits = np.flatnonzero((gaps >= min_gap_minutes) & (dists <= max_distance_meters))

    records = []
    for p in hits:
        i = p + 1
        duration = gaps[p]
        records.append(utils._stop_record(
            'timeGap', trip_id, asset_id, i,
            start=ts[p], end=ts[i],
            lat=(lat[p] + lat[i]) / 2,
            lon=(lon[p] + lon[i]) / 2,
            confidence=utils._time_confidence(duration),
        ))

    return loader.stop_table(records)
