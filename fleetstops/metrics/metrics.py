import numpy as np
import pandas as pd
import fleetstops.io.base as loader
from fleetstops.constants import DURATION_BINS, DURATION_BIN_LABELS, ALGORITHM_LABELS


def _round_half_up(x):
    return int(np.floor(x + 0.5))


def format_duration(minutes):
    """
    Human readable duration.

    Examples
    --------
    >>> format_duration(0.5)
    '30s'
    >>> format_duration(42.4)
    '42m'
    >>> format_duration(135)
    '2h 15m'
    """
    if minutes < 1:
        return f"{_round_half_up(minutes * 60)}s"
    if minutes < 60:
        return f"{_round_half_up(minutes)}m"
    hours = int(minutes // 60)
    mins = _round_half_up(minutes % 60)
    return f"{hours}h {mins}m"


def summary(stops, traj_cols=None, **kwargs):
    """
    Aggregate figures of a stop table.

    Parameters
    ----------
    stops : pd.DataFrame
        Stop table, e.g. from `detect_per_trip`.

    Returns
    -------
    pd.Series
        'total_stoppages', 'total_stop_time', 'avg_stop_duration' and
        'longest_stop', durations in minutes. Zeros for an empty table.
    """
    traj_cols = loader._parse_traj_cols(stops.columns, traj_cols, kwargs)
    n = len(stops)
    if n == 0:
        return pd.Series({'total_stoppages': 0, 'total_stop_time': 0.0,
                          'avg_stop_duration': 0.0, 'longest_stop': 0.0}, dtype='object')

    durations = stops[traj_cols['duration']].astype('float64')
    total = float(durations.sum())
    return pd.Series({
        'total_stoppages': n,
        'total_stop_time': total,
        'avg_stop_duration': total / n,
        'longest_stop': float(durations.max()),
    }, dtype='object')


def duration_histogram(stops, traj_cols=None, **kwargs):
    """
    Number of stops per duration bin.

    Bins are left-closed, in minutes: [0, 5), [5, 10), [10, 20), [20, 30),
    [30, 60), [60, 120) and [120, inf), labelled '0-5m' through '2h+'.
    Every label is present in the output, with 0 for empty bins.
    """
    traj_cols = loader._parse_traj_cols(stops.columns, traj_cols, kwargs)
    if stops.empty:
        return pd.Series(0, index=DURATION_BIN_LABELS, name='count', dtype='int64')

    binned = pd.cut(stops[traj_cols['duration']], bins=DURATION_BINS,
                    labels=DURATION_BIN_LABELS, right=False)
    counts = binned.value_counts(sort=False).reindex(DURATION_BIN_LABELS, fill_value=0)
    counts.index = pd.Index(DURATION_BIN_LABELS)
    return counts.astype('int64').rename('count')


def algorithm_counts(stops, traj_cols=None, **kwargs):
    """Number of stops per algorithm label, in order of first appearance."""
    traj_cols = loader._parse_traj_cols(stops.columns, traj_cols, kwargs)
    if stops.empty:
        return pd.Series([], dtype='int64', name='count')
    algo_col = traj_cols['algorithm']
    return stops.groupby(algo_col, sort=False).size().rename('count').rename_axis(algo_col)


def stops_per_trip(stops, trips, traj_cols=None, **kwargs):
    """
    Number of stops of every trip in the trip table, in trip table order.
    Trips without stops count 0; stops of trips absent from `trips` are ignored.
    """
    traj_cols = loader._parse_traj_cols(stops.columns, traj_cols, kwargs)
    trip_col = traj_cols['trip_id']
    counts = stops[trip_col].value_counts() if not stops.empty else pd.Series([], dtype='int64')
    trip_ids = pd.Index(trips[trip_col], name=trip_col)
    return counts.reindex(trip_ids, fill_value=0).astype('int64').rename('n_stops')


def compare_summary(results, traj_cols=None, **kwargs):
    """
    Stop count and mean duration per strategy.

    Parameters
    ----------
    results : dict
        Output of `fleetstops.stop_detection.detect.compare_algorithms`.

    Returns
    -------
    pd.DataFrame
        Indexed by the strategy display label, with columns 'n_stops' and
        'avg_duration' (minutes, 0 when a strategy found nothing).
    """
    rows = []
    for algorithm, stops in results.items():
        cols = loader._parse_traj_cols(stops.columns, traj_cols, kwargs)
        n = len(stops)
        avg = float(stops[cols['duration']].mean()) if n > 0 else 0.0
        rows.append({'algorithm': ALGORITHM_LABELS[algorithm.value],
                     'n_stops': n,
                     'avg_duration': avg})
    return pd.DataFrame(rows, columns=['algorithm', 'n_stops', 'avg_duration']).set_index('algorithm')
