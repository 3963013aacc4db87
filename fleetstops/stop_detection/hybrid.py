from dataclasses import asdict
import numpy as np
import pandas as pd
import fleetstops.io.base as loader
from fleetstops.config import TimeGapParams, SpeedParams, ClusteringParams
from fleetstops.constants import (
    ALGORITHM_LABELS,
    CATEGORY_LABELS,
    HYBRID_SPEED_RADIUS_METERS,
    HYBRID_SPEED_SCALE_KMH,
    HYBRID_TIME_SCALE_MINUTES,
    HYBRID_LOCATION_RADIUS_METERS,
    HYBRID_LOCATION_SCALE_POINTS,
)
from fleetstops.stop_detection import utils
from fleetstops.stop_detection.time_gap import time_gap
from fleetstops.stop_detection.speed import speed_threshold
from fleetstops.stop_detection.clustering import location_clustering

##########################################
########   Hybrid Multi-Criteria  ########
##########################################

def _avg_speed_near(arr, lat, lon, start, end):
    """Mean reported speed of fixes within 200 m of (lat, lon) and in [start, end]."""
    dists = utils.haversine_distance(lat, lon, arr['latitude'], arr['longitude'])
    ts = arr['timestamp']
    near = (dists <= HYBRID_SPEED_RADIUS_METERS) & (ts >= start) & (ts <= end)
    if not near.any():
        return 0.0
    return float(arr['speed'][near].mean())


def _location_significance(arr, lat, lon):
    """How often the trip passed within 100 m of (lat, lon), saturating at 5 fixes."""
    dists = utils.haversine_distance(lat, lon, arr['latitude'], arr['longitude'])
    nearby = int(np.count_nonzero(dists <= HYBRID_LOCATION_RADIUS_METERS))
    return min(1.0, nearby / HYBRID_LOCATION_SCALE_POINTS)


def _pooled_candidates(trip, time_gap_params, speed_params, clustering_params, traj_cols, kwargs):
    time_gap_params = time_gap_params or TimeGapParams()
    speed_params = speed_params or SpeedParams()
    clustering_params = clustering_params or ClusteringParams()

    pools = [
        time_gap(trip, traj_cols=traj_cols, **asdict(time_gap_params), **kwargs),
        speed_threshold(trip, traj_cols=traj_cols, **asdict(speed_params), **kwargs),
        location_clustering(trip, traj_cols=traj_cols, **asdict(clustering_params), **kwargs),
    ]
    pools = [p for p in pools if not p.empty]
    if not pools:
        return loader.empty_stop_table()
    return pd.concat(pools, ignore_index=True)


def hybrid_scores(
    trip,
    candidates,
    speed_weight=0.4,
    time_weight=0.3,
    location_weight=0.3,
    traj_cols=None,
    **kwargs
):
    """
    Score stop candidates against the fixes of their trip.

    Parameters
    ----------
    trip : pd.DataFrame
        Fixes of a single trip.
    candidates : pd.DataFrame
        Stop table of candidates from the same trip.
    speed_weight, time_weight, location_weight : float
        Weights of the component scores.

    Returns
    -------
    pd.DataFrame
        Aligned with `candidates.index`, with columns 'speed_score'
        (1 - mean nearby speed / 10, floored at 0), 'time_score'
        (min(1, duration / 20)), 'location_score' (min(1, fixes within
        100 m / 5)) and their weighted sum 'score'.
    """
    columns = ['speed_score', 'time_score', 'location_score', 'score']
    traj_cols, arr = utils._prepare_trip(trip, traj_cols, kwargs)
    if arr is None or candidates.empty:
        return pd.DataFrame(columns=columns, index=candidates.index, dtype='float64')

    rows = []
    for stop in candidates.itertuples(index=False):
        avg_speed = _avg_speed_near(arr, stop.latitude, stop.longitude,
                                    stop.start_timestamp, stop.end_timestamp)
        speed_score = max(0.0, 1 - avg_speed / HYBRID_SPEED_SCALE_KMH)
        time_score = min(1.0, stop.duration / HYBRID_TIME_SCALE_MINUTES)
        location_score = _location_significance(arr, stop.latitude, stop.longitude)
        score = (speed_weight * speed_score +
                 time_weight * time_score +
                 location_weight * location_score)
        rows.append((speed_score, time_score, location_score, score))

    return pd.DataFrame(rows, columns=columns, index=candidates.index)


def hybrid(
    trip,
    speed_weight=0.4,
    time_weight=0.3,
    location_weight=0.3,
    confidence_threshold=0.6,
    time_gap_params=None,
    speed_params=None,
    clustering_params=None,
    traj_cols=None,
    **kwargs
):
    """
    Weighted multi-criteria stop detection.

    Runs time-gap, speed-threshold and location clustering on the trip, pools
    their candidates without deduplicating them, and keeps each candidate
    whose composite score reaches `confidence_threshold`. Kept candidates
    retain their time bounds and location and take the score as confidence.

    Parameters
    ----------
    trip : pd.DataFrame
        Fixes of a single trip in time order.
    speed_weight, time_weight, location_weight : float
        Weights of the speed, duration and location-recurrence scores.
    confidence_threshold : float
        Minimum composite score.
    time_gap_params, speed_params, clustering_params : optional
        `fleetstops.config` parameter objects for the pooled strategies;
        defaults when omitted.
    traj_cols : dict, optional
        Column mapping for the trip.

    Returns
    -------
    pd.DataFrame
        Stop table labelled 'Hybrid Multi-Criteria'.
    """
    user_cols = traj_cols
    traj_cols, arr = utils._prepare_trip(trip, traj_cols, kwargs)
    if arr is None:
        return loader.empty_stop_table()

    candidates = _pooled_candidates(trip, time_gap_params, speed_params, clustering_params, user_cols, kwargs)
    if candidates.empty:
        return loader.empty_stop_table()

    scores = hybrid_scores(trip, candidates,
                           speed_weight=speed_weight,
                           time_weight=time_weight,
                           location_weight=location_weight,
                           traj_cols=user_cols,
                           **kwargs)

    kept = candidates.loc[scores['score'] >= confidence_threshold].copy()
    if kept.empty:
        return loader.empty_stop_table()

    trip_id, _ = utils._trip_context(trip, traj_cols)
    kept['confidence'] = scores.loc[kept.index, 'score'].astype('float64')
    kept['algorithm'] = ALGORITHM_LABELS['hybrid']
    kept['category'] = CATEGORY_LABELS['hybrid']
    kept['stop_id'] = [utils._stop_id('hybrid', trip_id, k) for k in range(len(kept))]
    return kept.reset_index(drop=True)
