"""tsbridge: export and write-back boundary for an InfluxDB time-series store."""

__version__ = "0.1.0"
