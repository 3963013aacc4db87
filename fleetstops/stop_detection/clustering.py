import numpy as np
import pandas as pd
import fleetstops.io.base as loader
from fleetstops.constants import CLUSTER_CONFIDENCE_POINTS
from fleetstops.stop_detection import utils

##########################################
########   Location Clustering    ########
##########################################

def _greedy_clusters(lat, lon, cluster_radius_meters):
    """
    Single pass first-fit clustering. Each fix joins the first cluster (in
    creation order) whose current centroid lies within the radius, and that
    centroid is recomputed as the mean of all members; otherwise it starts a
    new cluster. Order dependent and never revisited.

    Returns
    -------
    labels : numpy.ndarray
        Cluster index per fix.
    centroids : list of (lat, lon)
        Final centroid of each cluster.
    """
    labels = np.empty(len(lat), dtype=int)
    centroids = []
    members = []
    for i in range(len(lat)):
        assigned = False
        for c, (c_lat, c_lon) in enumerate(centroids):
            if utils.haversine_distance(lat[i], lon[i], c_lat, c_lon) <= cluster_radius_meters:
                members[c].append(i)
                centroids[c] = utils._centroid(lat[members[c]], lon[members[c]])
                labels[i] = c
                assigned = True
                break
        if not assigned:
            labels[i] = len(centroids)
            centroids.append((float(lat[i]), float(lon[i])))
            members.append([i])
    return labels, centroids


def greedy_cluster_labels(trip, cluster_radius_meters=150, traj_cols=None, **kwargs):
    """
    Assign each fix of a trip to a greedy spatial cluster.

    Parameters
    ----------
    trip : pd.DataFrame
        Fixes of a single trip in time order.
    cluster_radius_meters : float
        Maximum distance from a fix to a cluster centroid. With a radius of 0
        or less only coincident fixes share a cluster.

    Returns
    -------
    pd.Series
        Cluster index per row, 0..K in creation order.
    """
    traj_cols, arr = utils._prepare_trip(trip, traj_cols, kwargs)
    if arr is None:
        return pd.Series([], dtype=int, name='cluster')

    labels, _ = _greedy_clusters(arr['latitude'], arr['longitude'], cluster_radius_meters)
    return pd.Series(labels, index=trip.index, name='cluster')


def location_clustering(
    trip,
    cluster_radius_meters=150,
    min_points_in_cluster=3,
    min_duration_minutes=3,
    traj_cols=None,
    **kwargs
):
    """
    Detect stops as dense spatial clusters of a trip's fixes.

    Parameters
    ----------
    trip : pd.DataFrame
        Fixes of a single trip in time order.
    cluster_radius_meters : float
        Maximum distance from a fix to a cluster centroid to join the cluster.
    min_points_in_cluster : int
        Minimum number of fixes in a cluster.
    min_duration_minutes : float
        Minimum time between the earliest and latest fix of a cluster.
    traj_cols : dict, optional
        Mapping for 'latitude', 'longitude', 'timestamp', 'trip_id' and 'asset_id'.

    Returns
    -------
    pd.DataFrame
        Stop table located at the final cluster centroid, spanning the
        cluster's earliest to latest fix; confidence is min(1, n_members / 10).
    """
    traj_cols, arr = utils._prepare_trip(trip, traj_cols, kwargs)
    if arr is None:
        return loader.empty_stop_table()

    trip_id, asset_id = utils._trip_context(trip, traj_cols)
    ts = arr['timestamp']
    labels, centroids = _greedy_clusters(arr['latitude'], arr['longitude'], cluster_radius_meters)

    records = []
    for c, (c_lat, c_lon) in enumerate(centroids):
        member_ts = np.sort(ts[labels == c])
        if len(member_ts) < min_points_in_cluster:
            continue
        duration = utils._minutes(member_ts[0], member_ts[-1])
        if duration < min_duration_minutes:
            continue
        records.append(utils._stop_record(
            'clustering', trip_id, asset_id, c,
            start=member_ts[0], end=member_ts[-1],
            lat=c_lat, lon=c_lon,
            confidence=min(1.0, len(member_ts) / CLUSTER_CONFIDENCE_POINTS),
        ))

    return loader.stop_table(records)
