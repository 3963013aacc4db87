from dataclasses import asdict
from functools import partial
from multiprocessing import Pool
import pandas as pd
import fleetstops.io.base as loader
from fleetstops.config import Algorithm, DEFAULT_PARAMS
from fleetstops.filters import preprocess
from fleetstops.trips import segment_trips, trip_table
from fleetstops.stop_detection.time_gap import time_gap
from fleetstops.stop_detection.speed import speed_threshold
from fleetstops.stop_detection.clustering import location_clustering
from fleetstops.stop_detection.hybrid import hybrid
from fleetstops.stop_detection.postprocessing import merge_stoppages

ALGORITHM_ORDER = [Algorithm.TIME_GAP, Algorithm.SPEED, Algorithm.CLUSTERING, Algorithm.HYBRID]


def _resolve_algorithms(algorithms):
    """Parse an algorithm selection into enum members in detection order."""
    if algorithms is None:
        return list(ALGORITHM_ORDER)
    if isinstance(algorithms, (str, Algorithm)):
        algorithms = [algorithms]
    selected = {Algorithm.parse(a) for a in algorithms}
    if not selected:
        raise ValueError("At least one detection algorithm must be enabled.")
    return [a for a in ALGORITHM_ORDER if a in selected]


def _run_algorithm(algorithm, trip, params, traj_cols, kwargs):
    if algorithm == Algorithm.TIME_GAP:
        return time_gap(trip, traj_cols=traj_cols, **asdict(params.time_gap), **kwargs)
    if algorithm == Algorithm.SPEED:
        return speed_threshold(trip, traj_cols=traj_cols, **asdict(params.speed), **kwargs)
    if algorithm == Algorithm.CLUSTERING:
        return location_clustering(trip, traj_cols=traj_cols, **asdict(params.clustering), **kwargs)
    return hybrid(
        trip,
        time_gap_params=params.time_gap,
        speed_params=params.speed,
        clustering_params=params.clustering,
        traj_cols=traj_cols,
        **asdict(params.hybrid),
        **kwargs
    )


def _concat_stops(tables):
    tables = [t for t in tables if not t.empty]
    if not tables:
        return loader.empty_stop_table()
    return pd.concat(tables, ignore_index=True)


def detect(trip, algorithms=None, params=None, traj_cols=None, **kwargs):
    """
    Detect the stoppages of a single trip.

    Runs every enabled strategy in the fixed order time-gap, speed, clustering,
    hybrid, pools their candidates and reconciles them with `merge_stoppages`.

    Parameters
    ----------
    trip : pd.DataFrame
        Fixes of a single trip in time order.
    algorithms : iterable of Algorithm or str, optional
        Strategies to run, as enum members or their values ('timeGap',
        'speed', 'clustering', 'hybrid'). All of them when None.
    params : DetectionParams, optional
        Strategy parameters; defaults when None.
    traj_cols : dict, optional
        Column mapping for the trip.

    Returns
    -------
    pd.DataFrame
        Merged stop table.

    Raises
    ------
    ValueError
        If `algorithms` is empty or names an unknown strategy.
    """
    selected = _resolve_algorithms(algorithms)
    params = params or DEFAULT_PARAMS
    candidates = _concat_stops(
        [_run_algorithm(a, trip, params, traj_cols, kwargs) for a in selected]
    )
    return merge_stoppages(candidates)


def _detect_trip(trip, algorithms, params, traj_cols, kwargs):
    return detect(trip, algorithms=algorithms, params=params, traj_cols=traj_cols, **kwargs)


def _trip_groups(segmented, traj_cols, kwargs):
    cols = loader._parse_traj_cols(segmented.columns, traj_cols, kwargs)
    loader._has_trip_cols(segmented.columns, cols)
    return [group for _, group in segmented.groupby(cols['trip_id'], sort=False)]


def detect_per_trip(
    segmented,
    algorithms=None,
    params=None,
    n_jobs=1,
    verbose=False,
    traj_cols=None,
    **kwargs
):
    """
    Run `detect` on each trip separately, then concatenate results.

    Parameters
    ----------
    segmented : pd.DataFrame
        Output of `fleetstops.trips.segment_trips`.
    algorithms, params
        See `detect`.
    n_jobs : int, default 1
        Number of worker processes. Trips are independent, so the result is
        the same for any value.
    verbose : bool
        Print the number of trips and stoppages.

    Returns
    -------
    pd.DataFrame
        Stop table, trips in order of first appearance in `segmented`.
    """
    if not isinstance(segmented, pd.DataFrame):
        raise TypeError("Input 'segmented' must be a pandas DataFrame.")
    selected = _resolve_algorithms(algorithms)
    params = params or DEFAULT_PARAMS

    if segmented.empty:
        return loader.empty_stop_table()
    groups = _trip_groups(segmented, traj_cols, kwargs)

    worker = partial(_detect_trip, algorithms=selected, params=params,
                     traj_cols=traj_cols, kwargs=kwargs)
    if n_jobs > 1 and len(groups) > 1:
        with Pool(processes=min(n_jobs, len(groups))) as pool:
            results = pool.map(worker, groups)
    else:
        results = [worker(group) for group in groups]

    stops = _concat_stops(results)
    if verbose:
        print(f"Detected {len(stops)} stoppages in {len(groups)} trips.")
    return stops


def compare_algorithms(segmented, params=None, traj_cols=None, **kwargs):
    """
    Run each strategy on its own over every trip, without merging.

    Returns
    -------
    dict
        Maps each `Algorithm` member to its concatenated stop table.
    """
    if not isinstance(segmented, pd.DataFrame):
        raise TypeError("Input 'segmented' must be a pandas DataFrame.")
    params = params or DEFAULT_PARAMS
    groups = _trip_groups(segmented, traj_cols, kwargs) if not segmented.empty else []

    return {
        a: _concat_stops([_run_algorithm(a, group, params, traj_cols, kwargs) for group in groups])
        for a in ALGORITHM_ORDER
    }


def run_pipeline(data, algorithms=None, params=None, n_jobs=1, verbose=False, traj_cols=None, **kwargs):
    """
    Preprocess raw fixes, segment them into trips and detect stoppages.

    Parameters
    ----------
    data : pd.DataFrame
        Fixes, as returned by `fleetstops.io.base.from_df`.
    algorithms, params, n_jobs
        See `detect_per_trip`. `params.trip_segmentation_threshold` is the
        trip split gap in minutes.

    Returns
    -------
    segmented : pd.DataFrame
        Preprocessed fixes of the kept trips.
    trips : pd.DataFrame
        Trip table.
    stops : pd.DataFrame
        Merged stop table.
    """
    params = params or DEFAULT_PARAMS
    selected = _resolve_algorithms(algorithms)

    fixes = preprocess(data, traj_cols=traj_cols, **kwargs)
    segmented = segment_trips(fixes,
                              threshold=params.trip_segmentation_threshold,
                              verbose=verbose,
                              traj_cols=traj_cols,
                              **kwargs)
    trips = trip_table(segmented, traj_cols=traj_cols, **kwargs)
    stops = detect_per_trip(segmented,
                            algorithms=selected,
                            params=params,
                            n_jobs=n_jobs,
                            verbose=verbose,
                            traj_cols=traj_cols,
                            **kwargs)
    return segmented, trips, stops
