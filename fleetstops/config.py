from dataclasses import dataclass, field, fields, asdict, replace
from enum import Enum


class Algorithm(Enum):
    """Stoppage detection strategies, valued by their configuration key."""
    TIME_GAP = "timeGap"
    SPEED = "speed"
    CLUSTERING = "clustering"
    HYBRID = "hybrid"

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        for member in cls:
            if value == member.value or str(value).upper() == member.name:
                return member
        raise ValueError(
            f"Unknown algorithm {value!r}. Use one of {[m.value for m in cls]}."
        )


@dataclass(frozen=True)
class TimeGapParams:
    """
    Attributes
    ----------
    min_gap_minutes
        Minimum silence between two consecutive fixes.
    max_distance_meters
        Maximum displacement between the two fixes bounding the gap.
    """
    min_gap_minutes:      float = 5
    max_distance_meters:  float = 500


@dataclass(frozen=True)
class SpeedParams:
    """
    Attributes
    ----------
    max_speed_kmh
        Reported speed at or below which a fix counts as stopped.
    min_duration_minutes
        Minimum span of a closed low-speed run.
    distance_tolerance_meters
        Kept for configuration compatibility; not used by the detector.
    """
    max_speed_kmh:              float = 5
    min_duration_minutes:       float = 2
    distance_tolerance_meters:  float = 100


@dataclass(frozen=True)
class ClusteringParams:
    """
    Attributes
    ----------
    cluster_radius_meters
        Maximum distance from a fix to a cluster centroid to join it.
    min_points_in_cluster
        Minimum members for a cluster to be considered a stop.
    min_duration_minutes
        Minimum span between first and last member.
    """
    cluster_radius_meters:  float = 150
    min_points_in_cluster:  int   = 3
    min_duration_minutes:   float = 3


@dataclass(frozen=True)
class HybridParams:
    """
    Attributes
    ----------
    speed_weight, time_weight, location_weight
        Weights of the three component scores.
    confidence_threshold
        Minimum composite score for a candidate to be kept.
    """
    speed_weight:          float = 0.4
    time_weight:           float = 0.3
    location_weight:       float = 0.3
    confidence_threshold:  float = 0.6


_CAMEL_KEYS = {
    "tripSegmentationThreshold": "trip_segmentation_threshold",
    "timeGap": "time_gap",
    "minGapMinutes": "min_gap_minutes",
    "maxDistanceMeters": "max_distance_meters",
    "maxSpeedKmh": "max_speed_kmh",
    "minDurationMinutes": "min_duration_minutes",
    "distanceToleranceMeters": "distance_tolerance_meters",
    "clusterRadiusMeters": "cluster_radius_meters",
    "minPointsInCluster": "min_points_in_cluster",
    "speedWeight": "speed_weight",
    "timeWeight": "time_weight",
    "locationWeight": "location_weight",
    "confidenceThreshold": "confidence_threshold",
}


def _snake(key):
    return _CAMEL_KEYS.get(key, key)


def _build(cls, values):
    allowed = {f.name for f in fields(cls)}
    kwargs = {}
    for key, value in values.items():
        name = _snake(key)
        if name not in allowed:
            raise KeyError(f"Unknown parameter '{key}' for {cls.__name__}.")
        kwargs[name] = value
    return cls(**kwargs)


@dataclass(frozen=True)
class DetectionParams:
    """
    Parameters for one detection run: the trip segmentation threshold
    (minutes) and one parameter set per strategy.
    """
    trip_segmentation_threshold:  float            = 60
    time_gap:                     TimeGapParams    = field(default_factory=TimeGapParams)
    speed:                        SpeedParams      = field(default_factory=SpeedParams)
    clustering:                   ClusteringParams = field(default_factory=ClusteringParams)
    hybrid:                       HybridParams     = field(default_factory=HybridParams)

    def for_algorithm(self, algorithm):
        algorithm = Algorithm.parse(algorithm)
        return {
            Algorithm.TIME_GAP: self.time_gap,
            Algorithm.SPEED: self.speed,
            Algorithm.CLUSTERING: self.clustering,
            Algorithm.HYBRID: self.hybrid,
        }[algorithm]

    def with_params(self, algorithm, **changes):
        """Copy with some fields of one strategy's parameters replaced."""
        algorithm = Algorithm.parse(algorithm)
        attr = _ATTR_BY_ALGORITHM[algorithm]
        current = getattr(self, attr)
        return replace(self, **{attr: _build(type(current), {**asdict(current), **changes})})

    @classmethod
    def from_dict(cls, config):
        """
        Build parameters from a nested mapping. Accepts both snake_case and the
        camelCase keys used by the web front end, e.g.
        ``{'tripSegmentationThreshold': 60, 'timeGap': {'minGapMinutes': 5}}``.
        Missing entries keep their defaults.
        """
        kwargs = {}
        for key, value in config.items():
            name = _snake(key)
            if name == "trip_segmentation_threshold":
                kwargs[name] = value
            elif name in _CLS_BY_ATTR:
                kwargs[name] = _build(_CLS_BY_ATTR[name], value)
            else:
                raise KeyError(f"Unknown configuration section '{key}'.")
        return cls(**kwargs)

    def to_dict(self):
        return asdict(self)


_ATTR_BY_ALGORITHM = {
    Algorithm.TIME_GAP: "time_gap",
    Algorithm.SPEED: "speed",
    Algorithm.CLUSTERING: "clustering",
    Algorithm.HYBRID: "hybrid",
}

_CLS_BY_ATTR = {
    "time_gap": TimeGapParams,
    "speed": SpeedParams,
    "clustering": ClusteringParams,
    "hybrid": HybridParams,
}

DEFAULT_PARAMS = DetectionParams()
