"""
The four bucket categories held in the time-series store.
"""

from enum import Enum

from tsbridge.core.errors import ErrorCode, InvalidArgument


class Bucket(str, Enum):
    """Closed set of bucket categories, valued by their store bucket name."""

    SYSTEM_METRICS = "system_metrics"
    SENSOR_DATA = "sensor_data"
    SENSOR_DATA_AGGREGATED = "sensor_data_30m"
    COSTS = "costs"

    @property
    def bucket_name(self) -> str:
        return self.value

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]

    @classmethod
    def from_name(cls, name: str) -> "Bucket":
        """Resolve a store bucket name or member name to a Bucket."""
        key = (name or "").strip().lower()
        for bucket in cls:
            if key in (bucket.value, bucket.name.lower()):
                return bucket
        raise InvalidArgument(
            code=ErrorCode.INVALID_BUCKET,
            message=f"Unknown bucket: {name!r}",
            details={"bucket": name},
        )


_DESCRIPTIONS = {
    Bucket.SYSTEM_METRICS: "Host metrics collected by Telegraf",
    Bucket.SENSOR_DATA: "Raw Home Assistant sensor readings",
    Bucket.SENSOR_DATA_AGGREGATED: "Sensor readings downsampled to 30 minute windows",
    Bucket.COSTS: "Cost and billing records",
}
