import os
import inspect
import warnings
import numpy as np
import pandas as pd
import geopandas as gpd
import pyarrow as pa
import pyarrow.dataset as ds
import pyarrow.csv as pc_csv
from pandas.api.types import (
    is_datetime64_any_dtype,
    is_float_dtype,
    is_integer_dtype,
)
from fleetstops.constants import DEFAULT_SCHEMA, UNKNOWN_ASSET, STOP_TABLE_COLUMNS

# utils
def _update_schema(original, new_labels):
    updated_schema = dict(original)
    for label in new_labels:
        if label in DEFAULT_SCHEMA:
            updated_schema[label] = new_labels[label]
    return updated_schema

def _parse_traj_cols(columns, traj_cols, kwargs, warn=True, defaults=DEFAULT_SCHEMA):
    """
    Internal helper to finalize trajectory column names using user input and defaults.
    """
    if traj_cols:
        for k in kwargs:
            if k in traj_cols and kwargs[k] != traj_cols[k]:
                raise ValueError(
                    f"Conflicting column name for '{k}': '{traj_cols[k]}' (from traj_cols) vs '{kwargs[k]}' (from keyword arguments)."
                )
        traj_cols = _update_schema(traj_cols, kwargs)
    else:
        traj_cols = _update_schema({}, kwargs)

    if warn:
        for key, value in traj_cols.items():
            if value not in columns:
                warnings.warn(f"Trajectory column '{value}' specified for '{key}' not found in DataFrame.")

    return _update_schema(defaults, traj_cols)

def _has_time_cols(col_names, traj_cols):
    """Checks for a timestamp (ms) or datetime column."""
    ts_col = traj_cols.get('timestamp')
    dt_col = traj_cols.get('datetime')

    temporal_exists = (
        (ts_col and ts_col in col_names) or
        (dt_col and dt_col in col_names)
    )

    if not temporal_exists:
        raise ValueError(
            "Could not find required temporal columns in {}. The dataset must contain or map to "
            "at least one of 'timestamp' or 'datetime'.".format(list(col_names))
        )

    return temporal_exists

def _has_timestamp_col(col_names, traj_cols):
    """Checks for the millisecond timestamp column that from_df derives."""
    ts_col = traj_cols.get('timestamp')
    if not (ts_col and ts_col in col_names):
        raise ValueError(
            "Could not find timestamp column '{}' in {}. Load the data with "
            "fleetstops.io.base.from_df to derive it from a datetime column.".format(ts_col, list(col_names))
        )
    return True

def _has_spatial_cols(col_names, traj_cols):
    spatial_exists = (
        'latitude' in traj_cols and 'longitude' in traj_cols and
        traj_cols['latitude'] in col_names and traj_cols['longitude'] in col_names
    )

    if not spatial_exists:
        raise ValueError(
            "Could not find required spatial columns in {}. The dataset must contain or map to "
            "('latitude', 'longitude').".format(list(col_names))
        )

    return spatial_exists

def _has_asset_cols(col_names, traj_cols):

    asset_exists = 'asset_id' in traj_cols and traj_cols['asset_id'] in col_names

    if not asset_exists:
        raise ValueError(
            "Could not find required asset identifier column in {}. The dataset must contain or map to 'asset_id'.".format(list(col_names))
        )

    return asset_exists

def _has_trip_cols(col_names, traj_cols):

    trip_exists = 'trip_id' in traj_cols and traj_cols['trip_id'] in col_names

    if not trip_exists:
        raise ValueError(
            "Could not find trip identifier column in {}. Segment the data with "
            "fleetstops.trips.segment_trips first.".format(list(col_names))
        )

    return trip_exists

def _single_trip(data, traj_cols):
    """Raises if `data` holds fixes from more than one trip."""
    if traj_cols['trip_id'] in data.columns:
        arr = data[traj_cols['trip_id']].values
        if len(arr) > 0:
            first = arr[0]
            if any(x != first for x in arr[1:]):
                raise ValueError("Multi-trip data? Use detect_per_trip instead.")

def _is_stop_df(df, traj_cols=None, **kwargs):
    """
    Check that `df` has the columns and dtypes of a stop table.
    """
    if not isinstance(df, pd.DataFrame):
        print("Failure: Input is not a DataFrame.")
        return False

    traj_cols = _parse_traj_cols(df.columns, traj_cols, kwargs, warn=False)

    for key in STOP_TABLE_COLUMNS:
        if traj_cols[key] not in df.columns:
            print(f"Failure: Missing stop column '{traj_cols[key]}' (mapped as '{key}').")
            return False

    if df.empty:
        return True

    for key in ['start_timestamp', 'end_timestamp']:
        if not is_integer_dtype(df[traj_cols[key]].dtype):
            print(f"Failure: Column '{traj_cols[key]}' is not an integer type. Found dtype: {df[traj_cols[key]].dtype}")
            return False

    for key in ['duration', 'latitude', 'longitude', 'confidence']:
        if not is_float_dtype(df[traj_cols[key]].dtype):
            print(f"Failure: Column '{traj_cols[key]}' is not a float type. Found dtype: {df[traj_cols[key]].dtype}")
            return False

    conf = df[traj_cols['confidence']]
    if ((conf < 0) | (conf > 1)).any():
        print("Failure: confidence values outside [0, 1].")
        return False

    return True

def _datetime_to_ms(col):
    dt = pd.to_datetime(col, errors="coerce", utc=True)
    return (dt - pd.Timestamp("1970-01-01", tz="UTC")) // pd.Timedelta(milliseconds=1)

def _cast_traj_cols(df, traj_cols):
    df = df.copy()

    ts_col = traj_cols['timestamp']
    dt_col = traj_cols['datetime']
    if ts_col not in df.columns:
        df[ts_col] = _datetime_to_ms(df[dt_col])
    elif is_datetime64_any_dtype(df[ts_col].dtype):
        df[ts_col] = _datetime_to_ms(df[ts_col])
    else:
        df[ts_col] = pd.to_numeric(df[ts_col], errors="coerce")

    for key in ['latitude', 'longitude']:
        col = traj_cols[key]
        if not is_float_dtype(df[col].dtype):
            df[col] = pd.to_numeric(df[col], errors="coerce").astype("float64")

    # rows without a position or a time never reach the algorithms
    required = [traj_cols['latitude'], traj_cols['longitude'], ts_col]
    invalid = df[required].isna().any(axis=1)
    if invalid.any():
        warnings.warn(
            f"Dropping {int(invalid.sum())} rows with missing latitude, longitude or timestamp."
        )
        df = df.loc[~invalid].copy()

    df[ts_col] = df[ts_col].astype("int64")
    if len(df) > 0 and len(str(abs(int(df[ts_col].iloc[0])))) == 10:
        warnings.warn(
            f"The '{ts_col}' column appears to be in seconds. "
            "Timestamps are expected in milliseconds."
        )

    speed_col = traj_cols['speed']
    if speed_col in df.columns:
        df[speed_col] = pd.to_numeric(df[speed_col], errors="coerce").fillna(0.0).astype("float64")
    else:
        df[speed_col] = 0.0

    asset_col = traj_cols['asset_id']
    if asset_col in df.columns:
        asset = df[asset_col]
        missing = asset.isna() | (asset.astype(str).str.strip() == "")
        df[asset_col] = asset.astype(str).where(~missing, UNKNOWN_ASSET)
    else:
        warnings.warn(
            f"No asset identifier column '{asset_col}' found. All fixes will be assigned to '{UNKNOWN_ASSET}'."
        )
        df[asset_col] = UNKNOWN_ASSET

    return df

def from_df(df, traj_cols=None, **kwargs):
    """
    Converts a DataFrame of raw position reports into a standardized fix table.

    Parameters
    ----------
    df : pd.DataFrame or gpd.GeoDataFrame
        The input DataFrame containing fixes.
    traj_cols : dict, optional
        Mapping of expected column names ('asset_id', 'latitude', 'longitude',
        'speed', 'timestamp', 'datetime') to actual column names in `df`.
    **kwargs : dict
        Shorthand overrides for entries in `traj_cols`.

    Returns
    -------
    pd.DataFrame
        Copy of `df` with float coordinates and speed, integer millisecond
        timestamps and string asset identifiers.

    Notes
    -----
    - Rows missing latitude, longitude or timestamp are dropped with a warning.
    - Missing speeds become 0; missing asset identifiers become 'Unknown'.
    - If only a datetime column is present, a timestamp column (ms) is derived from it.
    """
    if not isinstance(df, (pd.DataFrame, gpd.GeoDataFrame)):
        raise TypeError("Expected the data argument to be either a pandas DataFrame or a GeoPandas GeoDataFrame.")

    traj_cols = _parse_traj_cols(df.columns, traj_cols, kwargs)

    _has_spatial_cols(df.columns, traj_cols)
    _has_time_cols(df.columns, traj_cols)

    return _cast_traj_cols(df, traj_cols)

def table_columns(filepath, format="csv", sep=","):
    """
    Return the column names of a data source.
    """
    assert format in {"csv", "parquet"}, "format must be 'csv' or 'parquet'"

    if format == "parquet" or os.path.isdir(filepath):
        file_format_obj = "parquet"
        if format == "csv":
            file_format_obj = ds.CsvFileFormat(parse_options=pc_csv.ParseOptions(delimiter=sep))
        schema = ds.dataset(filepath, format=file_format_obj, partitioning="hive").schema
        return pd.Index(schema.names)

    header = pd.read_csv(filepath, nrows=0, sep=sep)
    return header.columns

def from_file(filepath, format="csv", traj_cols=None, sep=",", **kwargs):
    """
    Load and cast fixes from a csv file or a parquet file/directory.

    Parameters
    ----------
    filepath : str or Path
        Path to the file or directory containing the data.
    format : str, optional
        Either 'csv' or 'parquet'.
    traj_cols : dict, optional
        Mapping of fix column names (e.g., 'asset_id', 'timestamp').
    **kwargs :
        Column overrides, plus arguments forwarded to pandas.read_csv.

    Returns
    -------
    pd.DataFrame
        See `from_df`.
    """
    assert format in ["csv", "parquet"]

    column_names = table_columns(filepath, format=format, sep=sep)
    col_kwargs = {k: v for k, v in kwargs.items() if k in DEFAULT_SCHEMA}
    traj_cols = _parse_traj_cols(column_names, traj_cols, col_kwargs)

    _has_spatial_cols(column_names, traj_cols)
    _has_time_cols(column_names, traj_cols)

    if format == "parquet" or os.path.isdir(filepath):
        file_format_obj = "parquet"
        if format == "csv":
            file_format_obj = ds.CsvFileFormat(parse_options=pc_csv.ParseOptions(delimiter=sep))
        df = ds.dataset(filepath, format=file_format_obj, partitioning="hive").to_table().to_pandas()
    else:
        read_csv_kwargs = {
            k: v for k, v in kwargs.items()
            if k not in DEFAULT_SCHEMA and k in inspect.signature(pd.read_csv).parameters
        }
        df = pd.read_csv(filepath, sep=sep, **read_csv_kwargs)

    return _cast_traj_cols(df, traj_cols)

def to_file(df, path, format="csv", **kwargs):
    """
    Write a fix, trip or stop table to csv or to a parquet dataset directory.
    """
    assert format in {"csv", "parquet"}
    if not isinstance(df, pd.DataFrame):
        raise TypeError("Expected a pandas DataFrame.")

    if format == "csv":
        df.to_csv(path, index=False, **kwargs)
    else:
        table = pa.Table.from_pandas(pd.DataFrame(df), preserve_index=False)
        ds.write_dataset(table, base_dir=str(path), format="parquet", **kwargs)

def to_geodataframe(df, crs="EPSG:4326", traj_cols=None, **kwargs):
    """
    Point GeoDataFrame of a fix or stop table, for map renderers.
    """
    traj_cols = _parse_traj_cols(df.columns, traj_cols, kwargs)
    _has_spatial_cols(df.columns, traj_cols)

    geometry = gpd.points_from_xy(df[traj_cols['longitude']], df[traj_cols['latitude']])
    return gpd.GeoDataFrame(df.copy(), geometry=geometry, crs=crs)

def empty_stop_table():
    """Stop table with no rows and the standard columns and dtypes."""
    return pd.DataFrame({
        'stop_id': pd.Series(dtype=object),
        'trip_id': pd.Series(dtype=object),
        'asset_id': pd.Series(dtype=object),
        'algorithm': pd.Series(dtype=object),
        'start_timestamp': pd.Series(dtype=np.int64),
        'end_timestamp': pd.Series(dtype=np.int64),
        'duration': pd.Series(dtype=np.float64),
        'latitude': pd.Series(dtype=np.float64),
        'longitude': pd.Series(dtype=np.float64),
        'confidence': pd.Series(dtype=np.float64),
        'category': pd.Series(dtype=object),
    })[STOP_TABLE_COLUMNS]

def stop_table(records):
    """Build a stop table from a list of dicts keyed by the standard stop columns."""
    if not records:
        return empty_stop_table()
    stops = pd.DataFrame.from_records(records, columns=STOP_TABLE_COLUMNS)
    return stops.astype({
        'start_timestamp': np.int64,
        'end_timestamp': np.int64,
        'duration': np.float64,
        'latitude': np.float64,
        'longitude': np.float64,
        'confidence': np.float64,
    })
