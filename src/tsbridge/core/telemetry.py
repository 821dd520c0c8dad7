"""
Prometheus metrics for export and write-back runs.
"""

from prometheus_client import Counter, Histogram


# =============================================================================
# InfluxDB Metrics
# =============================================================================

INFLUX_WRITE_LATENCY = Histogram(
    "influx_write_duration_seconds",
    "InfluxDB write latency in seconds",
    ["bucket"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

INFLUX_WRITE_COUNT = Counter(
    "influx_writes_total",
    "Total InfluxDB write operations",
    ["bucket", "status"],
)

INFLUX_QUERY_LATENCY = Histogram(
    "influx_query_duration_seconds",
    "InfluxDB query latency in seconds",
    ["query_type"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)


# =============================================================================
# Export Metrics
# =============================================================================

EXPORT_RUNS = Counter(
    "export_runs_total",
    "Total bucket export runs",
    ["bucket", "status"],
)

EXPORT_ROWS = Counter(
    "export_rows_total",
    "Rows returned by export queries, by decode outcome",
    ["bucket", "status"],
)

EXPORT_FILES_WRITTEN = Counter(
    "export_files_written_total",
    "Export files written to disk",
    ["target"],
)
