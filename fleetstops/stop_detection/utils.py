import numpy as np
import pandas as pd
import fleetstops.io.base as loader
from fleetstops.constants import (
    EARTH_RADIUS_METERS,
    MS_PER_MIN,
    TIME_CONFIDENCE_MINUTES,
    STOP_ID_PREFIXES,
    CATEGORY_LABELS,
    ALGORITHM_LABELS,
)

def haversine_distance(lat1, lon1, lat2, lon2):
    """
    Compute the haversine distance between two points on Earth.

    Parameters
    ----------
    lat1, lon1, lat2, lon2 : float or array-like
        Coordinates in degrees. Arrays are broadcast elementwise.

    Returns
    -------
    float or numpy.ndarray
        Distance in meters. NaN coordinates give NaN.
    """
    lat1, lon1, lat2, lon2 = map(np.radians, (lat1, lon1, lat2, lon2))
    delta_lat = lat2 - lat1
    delta_lon = lon2 - lon1
    a = np.sin(delta_lat / 2.0) ** 2 + np.cos(lat1) * np.cos(
        lat2) * np.sin(delta_lon / 2.0) ** 2
    c = 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))
    return EARTH_RADIUS_METERS * c  # Distance in meters

def _centroid(lats, lons):
    """Arithmetic mean of latitudes and longitudes."""
    return float(np.mean(lats)), float(np.mean(lons))

def _minutes(start_ms, end_ms):
    return (end_ms - start_ms) / MS_PER_MIN

def _time_confidence(duration):
    return min(1.0, duration / TIME_CONFIDENCE_MINUTES)

def _trip_context(trip, traj_cols):
    """trip_id and asset_id carried by the fixes of a single trip."""
    if trip.empty:
        return None, None
    trip_id = trip[traj_cols['trip_id']].iloc[0] if traj_cols['trip_id'] in trip.columns else None
    asset_id = trip[traj_cols['asset_id']].iloc[0] if traj_cols['asset_id'] in trip.columns else None
    return trip_id, asset_id

def _stop_id(key, trip_id, k):
    return f"{STOP_ID_PREFIXES[key]}_{trip_id}_{k}"

def _stop_record(key, trip_id, asset_id, k, start, end, lat, lon, confidence):
    start, end = int(start), int(end)
    return {
        'stop_id': _stop_id(key, trip_id, k),
        'trip_id': trip_id,
        'asset_id': asset_id,
        'algorithm': ALGORITHM_LABELS[key],
        'start_timestamp': start,
        'end_timestamp': end,
        'duration': _minutes(start, end),
        'latitude': lat,
        'longitude': lon,
        'confidence': confidence,
        'category': CATEGORY_LABELS[key],
    }

def _prepare_trip(trip, traj_cols, kwargs):
    """
    Resolve columns of a single trip and return it with its time, coordinate
    and speed arrays.
    """
    if not isinstance(trip, pd.DataFrame):
        raise TypeError("Input 'trip' must be a pandas DataFrame or GeoDataFrame.")

    traj_cols = loader._parse_traj_cols(trip.columns, traj_cols, kwargs)
    if trip.empty:
        return traj_cols, None

    loader._has_spatial_cols(trip.columns, traj_cols)
    loader._has_timestamp_col(trip.columns, traj_cols)
    loader._single_trip(trip, traj_cols)

    arrays = {
        'timestamp': trip[traj_cols['timestamp']].to_numpy(dtype='int64'),
        'latitude': trip[traj_cols['latitude']].to_numpy(dtype='float64'),
        'longitude': trip[traj_cols['longitude']].to_numpy(dtype='float64'),
    }
    if traj_cols['speed'] in trip.columns:
        arrays['speed'] = trip[traj_cols['speed']].fillna(0).to_numpy(dtype='float64')
    else:
        arrays['speed'] = np.zeros(len(trip))
    return traj_cols, arrays
