"""
Unit tests for the per-bucket export strategies and their query variants.
"""

from datetime import date, datetime, timezone
from unittest.mock import MagicMock

import pytest

from tsbridge.core.errors import ErrorCode, InvalidArgument
from tsbridge.domain.buckets import Bucket
from tsbridge.domain.decoder import RawRow
from tsbridge.domain.export import aggregated, costs, sensors, system_metrics
from tsbridge.domain.export.template import BucketExporter, export_bucket

START = datetime(2024, 1, 15, 0, 0, tzinfo=timezone.utc)
END = datetime(2024, 1, 16, 0, 0, tzinfo=timezone.utc)


class TestBucketEnum:
    """Tests for bucket lookup."""

    @pytest.mark.unit
    def test_from_name(self):
        """Test buckets resolve by name."""
        assert Bucket.from_name("sensor_data_30m") is Bucket.SENSOR_DATA_AGGREGATED

    @pytest.mark.unit
    def test_unknown_bucket(self):
        """Test an unknown bucket name is rejected."""
        with pytest.raises(InvalidArgument) as exc_info:
            Bucket.from_name("nope")
        assert exc_info.value.code == ErrorCode.INVALID_BUCKET


class TestSensorQueries:
    """Tests for raw sensor queries."""

    @pytest.mark.unit
    def test_humidity_query(self):
        """Test the humidity query."""
        query = sensors.build_humidity_query(START, END)
        assert query.startswith('from(bucket: "sensor_data")')
        assert 'r._measurement == "%"' in query
        assert 'r._field == "value"' in query
        assert 'if r.entity_id == "lumi_lumi_weather_humidity" then "Bathroom"' in query
        assert 'else "Unknown"' in query
        assert "desc: true" in query

    @pytest.mark.unit
    def test_temperature_query(self):
        """Test the temperature query."""
        query = sensors.build_temperature_query(START, END)
        assert 'r._measurement == "°C"' in query
        assert 'r.device_class == "temperature"' in query

    @pytest.mark.unit
    def test_power_query_relabels_devices(self):
        """Test the power query relabels devices."""
        query = sensors.build_power_query(START, END)
        assert 'r._measurement == "W"' in query
        assert '"tasmota_energy_power_2" then "Server"' in query

    @pytest.mark.unit
    def test_relabel_map_default(self):
        """Test the default relabel map."""
        assert sensors.relabel_map({}) == '(r) => ({r with friendly_name: "Unknown"})'

    @pytest.mark.unit
    def test_entity_query(self):
        """Test the entity query."""
        query = sensors.build_entity_query("sensor.kitchen", START, END)
        assert 'r.entity_id == "sensor.kitchen"' in query

    @pytest.mark.unit
    def test_energy_monitoring_uses_regex(self):
        """Test energy monitoring uses a regex."""
        query = sensors.build_energy_monitoring_query(START, END)
        assert "r.device_class =~ /(power|energy|current|voltage)/" in query

    @pytest.mark.unit
    def test_humidity_strategy_accepts_only_humidity(self, export_settings):
        """Test the humidity strategy accepts only humidity."""
        client = MagicMock()
        client.query.return_value = [
            RawRow(measurement="%", timestamp=START, field_name="value", field_value=50.0),
            RawRow(measurement="W", timestamp=START, field_name="value", field_value=120.0),
        ]
        records = export_bucket(sensors.HUMIDITY, client, export_settings, START, END)
        assert [record.measurement for record in records] == ["%"]


class TestAggregatedQueries:
    """Tests for downsampled sensor queries."""

    @pytest.mark.unit
    def test_strategy_reads_aggregated_bucket(self):
        """Test aggregated strategies read the aggregated bucket."""
        query = aggregated.build_humidity_aggregated_query(START, END)
        assert query.startswith('from(bucket: "sensor_data_30m")')
        assert 'r._measurement == "%"' in query

    @pytest.mark.unit
    def test_window_query_any_measurement(self):
        """Test the window query spans every aggregated measurement."""
        query = aggregated.build_window_query("1h", START, END)
        assert 'r.window == "1h"' in query
        assert 'r._measurement == "sensor_stats"' in query
        assert "desc: true" in query

    @pytest.mark.unit
    def test_unsupported_window(self):
        """Test unsupported windows are rejected."""
        with pytest.raises(InvalidArgument) as exc_info:
            aggregated.build_window_query("7m", START, END)
        assert exc_info.value.code == ErrorCode.INVALID_DURATION

    @pytest.mark.unit
    def test_statistical_fields(self):
        """Test statistical queries read sensor_stats fields."""
        query = aggregated.build_statistical_query(START, END)
        assert 'r._field == "mean" or r._field == "min"' in query
        assert 'r._measurement == "sensor_stats"' in query
        assert 'r.window == "30m"' in query

    @pytest.mark.unit
    def test_humidity_stats_scoped(self):
        """Test humidity stats are scoped to humidity."""
        query = aggregated.build_humidity_stats_query(START, END)
        assert '(r._measurement == "sensor_aggregated" or r._measurement == "sensor_mean")' in query
        assert 'r._field == "humidity_mean"' in query
        assert 'r.device_class == "humidity"' in query
        assert 'r.window == "30m"' in query

    @pytest.mark.unit
    def test_temperature_stats_matches_thermal(self):
        """Test temperature stats also match thermal devices."""
        query = aggregated.build_temperature_stats_query(START, END)
        assert "r.device_class =~ /(temperature|thermal)/" in query
        assert 'r._field == "temperature_max"' in query
        assert 'r.window == "30m"' in query

    @pytest.mark.unit
    def test_energy_stats_scoped(self):
        """Test energy stats are scoped to energy fields."""
        query = aggregated.build_energy_stats_query(START, END)
        assert 'r._field == "power_mean" or r._field == "energy_sum"' in query
        assert "r.device_class =~ /(power|energy|current|voltage)/" in query
        assert 'r.window == "30m"' in query

    @pytest.mark.unit
    def test_entity_query_default_window(self):
        """Test the entity query uses the default window."""
        query = aggregated.build_entity_query("sensor.kitchen", START, END)
        assert 'r.entity_id == "sensor.kitchen"' in query
        assert 'r.window == "30m"' in query

    @pytest.mark.unit
    def test_last_7_days_is_relative(self):
        """Test last_7_days uses a relative range."""
        query = aggregated.build_last_7_days_query()
        assert "range(start: -7d, stop: now())" in query

    @pytest.mark.unit
    def test_unsupported_window_fails_before_query(self, export_settings, mock_client):
        """Test an unsupported window fails before querying."""
        exporter = BucketExporter(mock_client, export_settings)
        with pytest.raises(InvalidArgument):
            aggregated.export_by_window(exporter, "2h", START, END)
        mock_client.query.assert_not_called()


class TestSystemMetricsQueries:
    """Tests for Telegraf host metric queries."""

    @pytest.mark.unit
    def test_cpu_query(self):
        """Test the cpu query."""
        query = system_metrics.build_cpu_query(START, END, host="nas")
        assert 'r._measurement == "cpu"' in query
        assert 'r._field == "usage_idle"' in query
        assert 'r.host == "nas"' in query

    @pytest.mark.unit
    def test_disk_query_covers_diskio(self):
        """Test the disk query covers diskio."""
        query = system_metrics.build_disk_query(START, END)
        assert '(r._measurement == "disk" or r._measurement == "diskio")' in query

    @pytest.mark.unit
    def test_metric_group_uses_configured_host(self, export_settings, mock_client):
        """Test metric groups use the configured host."""
        settings = export_settings.model_copy(update={"system_metrics_host": "nas"})
        exporter = BucketExporter(mock_client, settings)

        system_metrics.export_memory_metrics(exporter, START, END)

        query = mock_client.query.call_args.args[0]
        assert 'r.host == "nas"' in query
        assert mock_client.query.call_args.kwargs["query_type"] == "system_metrics_memory"

    @pytest.mark.unit
    def test_unknown_metric_group(self, export_settings, mock_client):
        """Test an unknown metric group is rejected."""
        exporter = BucketExporter(mock_client, export_settings)
        with pytest.raises(InvalidArgument) as exc_info:
            system_metrics.export_metric_group(exporter, "gpu", START, END)
        assert exc_info.value.details["group"] == "gpu"
        mock_client.query.assert_not_called()


class TestCostQueries:
    """Tests for cost queries and date helpers."""

    @pytest.mark.unit
    def test_category_query(self):
        """Test the category query."""
        query = costs.build_category_query("energy", START, END)
        assert 'r.cost_type == "energy"' in query
        assert "r.category =~ /(electricity|power|energy)/" in query

    @pytest.mark.unit
    def test_maintenance_uses_cost_type_regex(self):
        """Test maintenance uses a cost type regex."""
        query = costs.build_category_query("maintenance", START, END)
        assert "r.cost_type =~ /(maintenance|support)/" in query

    @pytest.mark.unit
    def test_unknown_category(self):
        """Test an unknown category is rejected."""
        with pytest.raises(InvalidArgument):
            costs.build_category_query("food", START, END)

    @pytest.mark.unit
    def test_currency_normalized(self):
        """Test currency codes are normalized."""
        query = costs.build_currency_query(" usd ", START, END)
        assert 'r.currency == "USD"' in query

    @pytest.mark.unit
    def test_unsupported_currency(self):
        """Test unsupported currencies are rejected."""
        with pytest.raises(InvalidArgument):
            costs.validate_currency("JPY")

    @pytest.mark.unit
    def test_day_bounds(self):
        """Test day bounds."""
        start, end = costs.day_bounds(date(2024, 1, 15))
        assert start == datetime(2024, 1, 15, tzinfo=timezone.utc)
        assert end == datetime(2024, 1, 16, tzinfo=timezone.utc)

    @pytest.mark.unit
    def test_day_bounds_reversed(self):
        """Test reversed day bounds are rejected."""
        with pytest.raises(InvalidArgument):
            costs.day_bounds(date(2024, 1, 15), date(2024, 1, 14))

    @pytest.mark.unit
    def test_date_query_range(self):
        """Test the date query range."""
        query = costs.build_date_query(date(2024, 1, 15))
        assert "range(start: 2024-01-15T00:00:00Z, stop: 2024-01-16T00:00:00Z)" in query

    @pytest.mark.unit
    def test_previous_month_bounds_across_year(self):
        """Test previous month bounds across a year boundary."""
        assert costs.previous_month_bounds(date(2024, 1, 10)) == (date(2023, 12, 1), date(2023, 12, 31))

    @pytest.mark.unit
    def test_current_month_bounds(self):
        """Test current month bounds."""
        assert costs.current_month_bounds(date(2024, 2, 20)) == (date(2024, 2, 1), date(2024, 2, 20))
