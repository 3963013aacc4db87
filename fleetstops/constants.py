DEFAULT_SCHEMA = {
    "asset_id": "asset_id",
    "latitude": "latitude",
    "longitude": "longitude",
    "speed": "speed",
    "timestamp": "timestamp",
    "datetime": "datetime",
    "time_diff": "time_diff",
    "distance": "distance",
    "calculated_speed": "calculated_speed",
    "is_outlier": "is_outlier",
    "trip_id": "trip_id",
    "trip_number": "trip_number",
    "start_timestamp": "start_timestamp",
    "end_timestamp": "end_timestamp",
    "duration": "duration",
    "stop_id": "stop_id",
    "algorithm": "algorithm",
    "confidence": "confidence",
    "category": "category"}

UNKNOWN_ASSET = "Unknown"

EARTH_RADIUS_METERS = 6371000
MS_PER_SEC = 1000
MS_PER_MIN = 60 * 1000
MS_PER_HOUR = 60 * 60 * 1000
MS_TO_KMH = 3.6  # m/s -> km/h

# Implied speeds above this are flagged, not dropped
OUTLIER_SPEED_KMH = 200

# Confidence saturates at these values
TIME_CONFIDENCE_MINUTES = 10
CLUSTER_CONFIDENCE_POINTS = 10

# Hybrid re-scoring
HYBRID_SPEED_RADIUS_METERS = 200
HYBRID_SPEED_SCALE_KMH = 10
HYBRID_TIME_SCALE_MINUTES = 20
HYBRID_LOCATION_RADIUS_METERS = 100
HYBRID_LOCATION_SCALE_POINTS = 5

# Merge reconciler
MERGE_DIST_METERS = 100
MERGE_TIME_MINUTES = 30
MERGE_LABEL_SEP = " + "

ALGORITHM_LABELS = {
    "timeGap": "Time-Gap",
    "speed": "Speed-Based",
    "clustering": "Location Clustering",
    "hybrid": "Hybrid Multi-Criteria"}

CATEGORY_LABELS = {
    "timeGap": "Time Gap",
    "speed": "Low Speed",
    "clustering": "Cluster",
    "hybrid": "Multi-Criteria",
    "merged": "Merged"}

STOP_ID_PREFIXES = {
    "timeGap": "timegap",
    "speed": "speed",
    "clustering": "cluster",
    "hybrid": "hybrid",
    "merged": "merged"}

STOP_TABLE_COLUMNS = [
    "stop_id", "trip_id", "asset_id", "algorithm",
    "start_timestamp", "end_timestamp", "duration",
    "latitude", "longitude", "confidence", "category"]

TRIP_TABLE_COLUMNS = [
    "trip_id", "asset_id", "trip_number",
    "start_timestamp", "end_timestamp", "duration",
    "n_pings", "total_distance", "avg_speed"]

# Duration histogram, in minutes
DURATION_BINS = [0, 5, 10, 20, 30, 60, 120, float("inf")]
DURATION_BIN_LABELS = ['0-5m', '5-10m', '10-20m', '20-30m', '30-60m', '1-2h', '2h+']
