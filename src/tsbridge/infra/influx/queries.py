"""
Flux query builder for InfluxDB 2.x.

Clauses are collected by chained calls and rendered in a fixed order:
from, range, filter, aggregateWindow, map, sort, limit, keep.
String and regex literals are escaped before interpolation.
"""

import re
from datetime import datetime, timedelta, timezone

from tsbridge.core.errors import ErrorCode, InvalidArgument
from tsbridge.domain.buckets import Bucket

# Flux duration literal (e.g., 30m, 1h, 7d, 1mo)
DURATION_PATTERN = re.compile(r"^\d+(ns|us|ms|s|m|h|d|w|mo|y)$")

# Relative time pattern (e.g., -7d, -1h, -30m) - minus sign required
RELATIVE_TIME_PATTERN = re.compile(r"^-\d+[smhdw]$")

# Column names that can be written as r.<name>
IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Aggregate function names accepted by aggregateWindow
FUNCTION_PATTERN = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_.]*$")

DEFAULT_RANGE = "-24h"
DEFAULT_KEEP_COLUMNS = ("_measurement", "_field", "_value", "_time")
SORT_DIRECTIONS = ("asc", "desc")


def validate_duration(value: str, field_name: str = "duration") -> str:
    """
    Validate a Flux duration literal such as 30m or 1h.

    Raises:
        InvalidArgument: If the duration is malformed
    """
    if not isinstance(value, str) or not DURATION_PATTERN.match(value.strip()):
        raise InvalidArgument(
            code=ErrorCode.INVALID_DURATION,
            message=f"Invalid {field_name}: expected a Flux duration like 30m, 1h or 7d",
            details={field_name: value},
        )
    return value.strip()


def to_relative_start(duration: str | timedelta) -> str:
    """
    Convert a lookback into a negative Flux duration.

    Accepts '7d', '-7d' or a timedelta (rendered in whole seconds).
    """
    if isinstance(duration, timedelta):
        seconds = int(duration.total_seconds())
        if seconds <= 0:
            raise InvalidArgument(
                code=ErrorCode.INVALID_DURATION,
                message="Relative range must look back a positive amount of time",
                details={"duration": str(duration)},
            )
        return f"-{seconds}s"

    text = (duration or "").strip()
    if not text.startswith("-"):
        text = f"-{text}"
    if not RELATIVE_TIME_PATTERN.match(text):
        raise InvalidArgument(
            code=ErrorCode.INVALID_DURATION,
            message="Invalid relative range: expected a duration like 24h or -7d",
            details={"duration": duration},
        )
    return text


def format_flux_time(value: datetime) -> str:
    """
    Render an instant as an RFC3339 UTC literal truncated to milliseconds.

    Naive datetimes are taken as UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    millis = value.microsecond // 1000
    base = value.strftime("%Y-%m-%dT%H:%M:%S")
    if millis:
        return f"{base}.{millis:03d}Z"
    return f"{base}Z"


def quote(value: str) -> str:
    """Quote a Flux string literal."""
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def regex_literal(pattern: str) -> str:
    """Wrap a pattern as a Flux regex literal."""
    return "/" + str(pattern).replace("/", "\\/") + "/"


def _column(key: str) -> str:
    """Record column reference; keys that are not identifiers use bracket syntax."""
    if IDENTIFIER_PATTERN.match(key):
        return f"r.{key}"
    return f"r[{quote(key)}]"


def _require_text(value: str | None, field_name: str) -> str:
    if value is None or not str(value).strip():
        raise InvalidArgument(
            message=f"{field_name} must not be blank",
            details={field_name: value},
        )
    return str(value).strip()


class FluxQueryBuilder:
    """
    Chainable Flux query builder.

    Same-kind clauses (several measurements, several fields) are OR'd inside
    one group; groups of different kinds are AND'd together.

    Example:
        query = (
            FluxQueryBuilder.from_bucket("sensor_data")
            .time_range(start, end)
            .measurement("%")
            .field("value")
            .sort("desc")
            .build()
        )
    """

    def __init__(self, bucket: str | Bucket) -> None:
        if isinstance(bucket, Bucket):
            bucket = bucket.bucket_name
        if bucket is None or not str(bucket).strip():
            raise InvalidArgument(
                code=ErrorCode.INVALID_BUCKET,
                message="Bucket name must not be blank",
                details={"bucket": bucket},
            )
        self._bucket = str(bucket).strip()
        self._range: str | None = None
        self._measurements: list[str] = []
        self._fields: list[str] = []
        self._predicates: list[str] = []
        self._windows: list[str] = []
        self._maps: list[str] = []
        self._sort_desc: bool | None = None
        self._limit: tuple[int, int] | None = None
        self._keep: tuple[str, ...] | None = None

    @classmethod
    def from_bucket(cls, bucket: str | Bucket) -> "FluxQueryBuilder":
        """Start a query against a bucket."""
        return cls(bucket)

    # ------------------------------------------------------------------
    # Time range
    # ------------------------------------------------------------------

    def time_range(self, start: datetime, end: datetime) -> "FluxQueryBuilder":
        """Restrict to an absolute [start, end) window."""
        if start is None or end is None:
            raise InvalidArgument(
                code=ErrorCode.INVALID_TIME_RANGE,
                message="Both start and end are required for an absolute range",
            )
        start_text = format_flux_time(start)
        end_text = format_flux_time(end)
        if _as_utc(start) > _as_utc(end):
            raise InvalidArgument(
                code=ErrorCode.INVALID_TIME_RANGE,
                message="Range start must not be after range end",
                details={"start": start_text, "end": end_text},
            )
        self._range = f"range(start: {start_text}, stop: {end_text})"
        return self

    def relative_range(self, duration: str | timedelta) -> "FluxQueryBuilder":
        """Restrict to the last `duration` up to now()."""
        self._range = f"range(start: {to_relative_start(duration)}, stop: now())"
        return self

    # ------------------------------------------------------------------
    # Filters
    # ------------------------------------------------------------------

    def measurement(self, name: str) -> "FluxQueryBuilder":
        self._measurements.append(_require_text(name, "measurement"))
        return self

    def measurements(self, *names: str) -> "FluxQueryBuilder":
        for name in names:
            self.measurement(name)
        return self

    def field(self, name: str) -> "FluxQueryBuilder":
        self._fields.append(_require_text(name, "field"))
        return self

    def fields(self, *names: str) -> "FluxQueryBuilder":
        for name in names:
            self.field(name)
        return self

    def tag(self, key: str, value: str) -> "FluxQueryBuilder":
        """Exact tag match."""
        column = _column(_require_text(key, "tag key"))
        self._predicates.append(f"{column} == {quote(value)}")
        return self

    def tag_regex(self, key: str, pattern: str) -> "FluxQueryBuilder":
        """Regex tag match."""
        column = _column(_require_text(key, "tag key"))
        pattern = _require_text(pattern, "tag pattern")
        self._predicates.append(f"{column} =~ {regex_literal(pattern)}")
        return self

    def value_range(
        self,
        min_value: float | None = None,
        max_value: float | None = None,
    ) -> "FluxQueryBuilder":
        """Bound _value on either or both sides."""
        if min_value is None and max_value is None:
            raise InvalidArgument(message="value_range needs a min or a max bound")
        if min_value is not None and max_value is not None and min_value > max_value:
            raise InvalidArgument(
                message="value_range min must not exceed max",
                details={"min": min_value, "max": max_value},
            )
        if min_value is not None:
            self._predicates.append(f"r._value >= {min_value}")
        if max_value is not None:
            self._predicates.append(f"r._value <= {max_value}")
        return self

    # ------------------------------------------------------------------
    # Transforms
    # ------------------------------------------------------------------

    def time_window(
        self,
        every: str,
        fn: str = "mean",
        create_empty: bool = False,
    ) -> "FluxQueryBuilder":
        """Append an aggregateWindow stage."""
        every = validate_duration(every, "every")
        if not fn or not FUNCTION_PATTERN.match(fn):
            raise InvalidArgument(
                message=f"Invalid aggregate function: {fn!r}",
                details={"fn": fn},
            )
        empty = "true" if create_empty else "false"
        self._windows.append(f"aggregateWindow(every: {every}, fn: {fn}, createEmpty: {empty})")
        return self

    aggregate_window = time_window

    def map(self, fn: str) -> "FluxQueryBuilder":
        """Append a map stage; `fn` is the Flux function body, e.g. (r) => ({r with ...})."""
        self._maps.append(f"map(fn: {_require_text(fn, 'map function')})")
        return self

    def sort(self, direction: str = "desc") -> "FluxQueryBuilder":
        """Sort by _time, 'asc' or 'desc'."""
        normalized = (direction or "").strip().lower()
        if normalized not in SORT_DIRECTIONS:
            raise InvalidArgument(
                code=ErrorCode.INVALID_SORT_DIRECTION,
                message=f"Sort direction must be 'asc' or 'desc', got {direction!r}",
                details={"direction": direction},
            )
        self._sort_desc = normalized == "desc"
        return self

    def limit(self, n: int, offset: int = 0) -> "FluxQueryBuilder":
        if n <= 0 or offset < 0:
            raise InvalidArgument(
                message="limit requires n > 0 and offset >= 0",
                details={"n": n, "offset": offset},
            )
        self._limit = (n, offset)
        return self

    def keep_columns(
        self,
        enabled: bool = True,
        columns: list[str] | tuple[str, ...] | None = None,
    ) -> "FluxQueryBuilder":
        """Project onto the given columns (default: measurement, field, value, time)."""
        if not enabled:
            self._keep = None
            return self
        self._keep = tuple(columns) if columns else DEFAULT_KEEP_COLUMNS
        return self

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def _filter_expression(self) -> str | None:
        groups = []
        if self._measurements:
            groups.append(_or_group("r._measurement", self._measurements))
        if self._fields:
            groups.append(_or_group("r._field", self._fields))
        groups.extend(self._predicates)
        if not groups:
            return None
        return " and ".join(groups)

    def build(self) -> str:
        """Render the query text. Does not modify the builder."""
        stages = [self._range or f"range(start: {DEFAULT_RANGE})"]

        expression = self._filter_expression()
        if expression:
            stages.append(f"filter(fn: (r) => {expression})")

        stages.extend(self._windows)
        stages.extend(self._maps)

        if self._sort_desc is not None:
            desc = "true" if self._sort_desc else "false"
            stages.append(f'sort(columns: ["_time"], desc: {desc})')

        if self._limit is not None:
            n, offset = self._limit
            stages.append(f"limit(n: {n}, offset: {offset})")

        if self._keep is not None:
            columns = ", ".join(quote(column) for column in self._keep)
            stages.append(f"keep(columns: [{columns}])")

        query = f"from(bucket: {quote(self._bucket)})"
        for stage in stages:
            query += f"\n  |> {stage}"
        return query

    def __str__(self) -> str:
        return self.build()


def query_from(bucket: str | Bucket) -> FluxQueryBuilder:
    """Shorthand for FluxQueryBuilder.from_bucket."""
    return FluxQueryBuilder.from_bucket(bucket)


def _or_group(column: str, values: list[str]) -> str:
    clauses = [f"{column} == {quote(value)}" for value in values]
    if len(clauses) == 1:
        return clauses[0]
    return "(" + " or ".join(clauses) + ")"


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
