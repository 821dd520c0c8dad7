"""
Unit tests for the Flux query builder.

Tests clause rendering, render order and argument validation.
"""

from datetime import datetime, timedelta, timezone

import pytest

from tsbridge.core.errors import InvalidArgument
from tsbridge.domain.buckets import Bucket
from tsbridge.infra.influx.queries import (
    FluxQueryBuilder,
    format_flux_time,
    query_from,
    validate_duration,
)


class TestFromBucket:
    """Tests for bucket selection."""

    @pytest.mark.unit
    def test_renders_bucket(self):
        """Test the bucket is rendered."""
        query = FluxQueryBuilder.from_bucket("sensor_data").build()
        assert query.startswith('from(bucket: "sensor_data")')

    @pytest.mark.unit
    def test_accepts_bucket_enum(self):
        """Test a bucket enum is accepted."""
        query = query_from(Bucket.SENSOR_DATA_AGGREGATED).build()
        assert 'from(bucket: "sensor_data_30m")' in query

    @pytest.mark.unit
    @pytest.mark.parametrize("bucket", ["", "   ", None])
    def test_blank_bucket_rejected(self, bucket):
        """Test blank bucket names are rejected."""
        with pytest.raises(InvalidArgument):
            FluxQueryBuilder.from_bucket(bucket)


class TestTimeRange:
    """Tests for range() rendering."""

    @pytest.mark.unit
    @pytest.mark.parametrize("bucket", list(Bucket))
    def test_default_range_is_last_24_hours(self, bucket):
        """Test the range defaults to the last 24 hours."""
        query = FluxQueryBuilder.from_bucket(bucket).build()
        assert "|> range(start: -24h)" in query

    @pytest.mark.unit
    def test_absolute_range(self):
        """Test absolute ranges render as RFC3339."""
        start = datetime(2024, 1, 15, 0, 0, tzinfo=timezone.utc)
        end = datetime(2024, 1, 16, 12, 30, tzinfo=timezone.utc)
        query = query_from("costs").time_range(start, end).build()
        assert "|> range(start: 2024-01-15T00:00:00Z, stop: 2024-01-16T12:30:00Z)" in query

    @pytest.mark.unit
    def test_absolute_range_truncates_to_millis(self):
        """Test absolute ranges are cut to milliseconds."""
        value = datetime(2024, 1, 15, 8, 0, 0, 123456, tzinfo=timezone.utc)
        assert format_flux_time(value) == "2024-01-15T08:00:00.123Z"

    @pytest.mark.unit
    def test_offset_datetimes_converted_to_utc(self):
        """Test offset datetimes are converted to UTC."""
        cet = timezone(timedelta(hours=1))
        value = datetime(2024, 1, 15, 1, 0, tzinfo=cet)
        assert format_flux_time(value) == "2024-01-15T00:00:00Z"

    @pytest.mark.unit
    def test_naive_datetime_taken_as_utc(self):
        """Test naive datetimes are taken as UTC."""
        assert format_flux_time(datetime(2024, 1, 15, 6, 0)) == "2024-01-15T06:00:00Z"

    @pytest.mark.unit
    def test_start_after_end_rejected(self):
        """Test a start after the end is rejected."""
        start = datetime(2024, 1, 16, tzinfo=timezone.utc)
        end = datetime(2024, 1, 15, tzinfo=timezone.utc)
        with pytest.raises(InvalidArgument):
            query_from("costs").time_range(start, end)

    @pytest.mark.unit
    @pytest.mark.parametrize("duration", ["7d", "-7d", timedelta(days=7)])
    def test_relative_range(self, duration):
        """Test relative ranges."""
        query = query_from("costs").relative_range(duration).build()
        if isinstance(duration, timedelta):
            assert "|> range(start: -604800s, stop: now())" in query
        else:
            assert "|> range(start: -7d, stop: now())" in query

    @pytest.mark.unit
    @pytest.mark.parametrize("duration", ["seven days", "7x", "", timedelta(0)])
    def test_invalid_relative_range(self, duration):
        """Test invalid relative ranges are rejected."""
        with pytest.raises(InvalidArgument):
            query_from("costs").relative_range(duration)


class TestFilters:
    """Tests for filter() composition."""

    @pytest.mark.unit
    def test_single_measurement(self):
        """Test a single measurement filter."""
        query = query_from("sensor_data").measurement("%").build()
        assert '|> filter(fn: (r) => r._measurement == "%")' in query

    @pytest.mark.unit
    def test_measurements_are_or_grouped_and_anded_with_other_kinds(self):
        """Test clause grouping across filter kinds."""
        query = (
            query_from("system_metrics")
            .measurement("cpu")
            .measurement("mem")
            .field("usage_idle")
            .tag("host", "home-server")
            .build()
        )
        assert (
            '|> filter(fn: (r) => (r._measurement == "cpu" or r._measurement == "mem")'
            ' and r._field == "usage_idle" and r.host == "home-server")'
        ) in query
        assert query.count("filter(") == 1

    @pytest.mark.unit
    def test_fields_are_or_grouped(self):
        """Test fields are OR grouped."""
        query = query_from("sensor_data").fields("temperature", "current_temperature").build()
        assert '(r._field == "temperature" or r._field == "current_temperature")' in query

    @pytest.mark.unit
    def test_tag_regex(self):
        """Test tag regex filters."""
        query = query_from("sensor_data").tag_regex("device_class", "(power|energy)").build()
        assert "r.device_class =~ /(power|energy)/" in query

    @pytest.mark.unit
    def test_regex_slash_escaped(self):
        """Test slashes in a regex are escaped."""
        query = query_from("sensor_data").tag_regex("path", "/var/log").build()
        assert r"r.path =~ /\/var\/log/" in query

    @pytest.mark.unit
    def test_string_literal_escaped(self):
        """Test string literals are escaped."""
        query = query_from("sensor_data").tag("friendly_name", 'Living "room"').build()
        assert r'r.friendly_name == "Living \"room\""' in query

    @pytest.mark.unit
    @pytest.mark.parametrize("key", ["device-class", "unit of measurement", "1st"])
    def test_non_identifier_tag_key_uses_brackets(self, key):
        """Test non-identifier tag keys use bracket access."""
        query = query_from("sensor_data").tag(key, "x").tag_regex(key, "y").build()
        assert f'r["{key}"] == "x"' in query
        assert f'r["{key}"] =~ /y/' in query
        assert f"r.{key}" not in query

    @pytest.mark.unit
    def test_tag_key_quotes_escaped(self):
        """Test quotes in a tag key are escaped."""
        query = query_from("sensor_data").tag('a"b', "x").build()
        assert r'r["a\"b"] == "x"' in query

    @pytest.mark.unit
    def test_value_range(self):
        """Test value range filters."""
        query = query_from("sensor_data").measurement("%").value_range(0, 100).build()
        assert 'r._measurement == "%" and r._value >= 0 and r._value <= 100' in query

    @pytest.mark.unit
    def test_value_range_requires_a_bound(self):
        """Test a value range needs a bound."""
        with pytest.raises(InvalidArgument):
            query_from("sensor_data").value_range()

    @pytest.mark.unit
    def test_no_filter_without_clauses(self):
        """Test no filter stage without clauses."""
        assert "filter(" not in query_from("sensor_data").build()


class TestTransforms:
    """Tests for aggregateWindow, map, sort, limit and keep."""

    @pytest.mark.unit
    def test_time_window(self):
        """Test time window aggregation."""
        query = query_from("sensor_data").time_window("30m", "mean").build()
        assert "|> aggregateWindow(every: 30m, fn: mean, createEmpty: false)" in query

    @pytest.mark.unit
    def test_time_window_create_empty(self):
        """Test createEmpty is rendered."""
        query = query_from("sensor_data").aggregate_window("1h", "max", create_empty=True).build()
        assert "|> aggregateWindow(every: 1h, fn: max, createEmpty: true)" in query

    @pytest.mark.unit
    @pytest.mark.parametrize("every", ["30", "thirty", "", "-5m"])
    def test_invalid_window_duration(self, every):
        """Test invalid window durations are rejected."""
        with pytest.raises(InvalidArgument):
            query_from("sensor_data").time_window(every, "mean")

    @pytest.mark.unit
    def test_invalid_window_function(self):
        """Test invalid window functions are rejected."""
        with pytest.raises(InvalidArgument):
            query_from("sensor_data").time_window("30m", "mean) |> drop(")

    @pytest.mark.unit
    def test_map(self):
        """Test map stages."""
        query = query_from("sensor_data").map('(r) => ({r with unit: "W"})').build()
        assert '|> map(fn: (r) => ({r with unit: "W"}))' in query

    @pytest.mark.unit
    @pytest.mark.parametrize("direction,desc", [("desc", "true"), ("asc", "false"), ("DESC", "true")])
    def test_sort(self, direction, desc):
        """Test sort direction."""
        query = query_from("costs").sort(direction).build()
        assert f'|> sort(columns: ["_time"], desc: {desc})' in query

    @pytest.mark.unit
    def test_invalid_sort_fails_at_call_time(self):
        """Test an invalid sort fails when called."""
        builder = query_from("costs")
        with pytest.raises(InvalidArgument):
            builder.sort("newest")

    @pytest.mark.unit
    def test_limit_offset(self):
        """Test limit and offset."""
        query = query_from("costs").limit(100, 20).build()
        assert "|> limit(n: 100, offset: 20)" in query

    @pytest.mark.unit
    @pytest.mark.parametrize("n,offset", [(0, 0), (-1, 0), (10, -1)])
    def test_invalid_limit(self, n, offset):
        """Test invalid limits are rejected."""
        with pytest.raises(InvalidArgument):
            query_from("costs").limit(n, offset)

    @pytest.mark.unit
    def test_keep_columns_off_by_default(self):
        """Test keep columns is off by default."""
        assert "keep(" not in query_from("costs").build()

    @pytest.mark.unit
    def test_keep_columns(self):
        """Test keep columns with the default set."""
        query = query_from("costs").keep_columns().build()
        assert '|> keep(columns: ["_measurement", "_field", "_value", "_time"])' in query

    @pytest.mark.unit
    def test_keep_columns_custom_and_disable(self):
        """Test custom keep columns and disabling them."""
        builder = query_from("costs").keep_columns(columns=["_time", "_value"])
        assert '|> keep(columns: ["_time", "_value"])' in builder.build()
        assert "keep(" not in builder.keep_columns(False).build()


class TestBuild:
    """Tests for render order and idempotence."""

    @pytest.mark.unit
    def test_render_order(self):
        """Test stages render in a fixed order."""
        start = datetime(2024, 1, 15, tzinfo=timezone.utc)
        end = datetime(2024, 1, 16, tzinfo=timezone.utc)
        query = (
            query_from("sensor_data")
            .keep_columns()
            .limit(10)
            .sort("asc")
            .map("(r) => r")
            .time_window("30m")
            .measurement("%")
            .time_range(start, end)
            .build()
        )
        positions = [
            query.index(stage)
            for stage in ("from(", "range(", "filter(", "aggregateWindow(", "map(", "sort(", "limit(", "keep(")
        ]
        assert positions == sorted(positions)

    @pytest.mark.unit
    def test_stages_on_own_lines(self):
        """Test each stage is on its own line."""
        query = query_from("costs").measurement("costs").sort().build()
        assert query.split("\n") == [
            'from(bucket: "costs")',
            "  |> range(start: -24h)",
            '  |> filter(fn: (r) => r._measurement == "costs")',
            '  |> sort(columns: ["_time"], desc: true)',
        ]

    @pytest.mark.unit
    def test_build_is_idempotent(self):
        """Test build can be called repeatedly."""
        builder = query_from("costs").measurement("costs").tag("currency", "EUR").sort("desc")
        assert builder.build() == builder.build()
        assert str(builder) == builder.build()


class TestValidateDuration:
    """Tests for Flux duration validation."""

    @pytest.mark.unit
    @pytest.mark.parametrize("value", ["30m", "1h", "7d", "1mo", "500ms"])
    def test_valid(self, value):
        """Test valid durations."""
        assert validate_duration(value) == value

    @pytest.mark.unit
    @pytest.mark.parametrize("value", ["", "m30", "1 h", "-1h"])
    def test_invalid(self, value):
        """Test invalid durations."""
        with pytest.raises(InvalidArgument):
            validate_duration(value)
