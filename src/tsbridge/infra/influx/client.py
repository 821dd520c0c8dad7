"""
Synchronous InfluxDB client wrapper.
Runs Flux queries and hands out the blocking write API.
"""

import time

from influxdb_client import InfluxDBClient
from influxdb_client.client.write_api import SYNCHRONOUS, WriteApi

from tsbridge.core.config import Settings, get_settings
from tsbridge.core.errors import ErrorCode, InfluxError
from tsbridge.core.logging import get_logger
from tsbridge.core.telemetry import INFLUX_QUERY_LATENCY
from tsbridge.domain.decoder import RawRow

logger = get_logger(__name__)


class InfluxClient:
    """Blocking InfluxDB client wrapper."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings
        self._client: InfluxDBClient | None = None
        self._write_api: WriteApi | None = None

    @property
    def settings(self) -> Settings:
        return self._settings or get_settings()

    @property
    def connected(self) -> bool:
        return self._client is not None

    def connect(self) -> None:
        """Initialize the InfluxDB client connection."""
        settings = self.settings

        if not settings.influx_token:
            logger.warning("INFLUX_TOKEN not set, InfluxDB operations will fail")

        self._client = InfluxDBClient(
            url=settings.influx_url,
            token=settings.influx_token,
            org=settings.influx_org,
            timeout=settings.influx_timeout_ms,
        )
        logger.info("InfluxDB client connected", extra={"url": settings.influx_url})

    def close(self) -> None:
        """Close the InfluxDB client connection."""
        if self._client:
            if self._write_api:
                self._write_api.close()
            self._client.close()
            self._client = None
            self._write_api = None
            logger.info("InfluxDB client closed")

    def ping(self) -> bool:
        """Check if InfluxDB is reachable."""
        if not self._client:
            return False
        try:
            return self._client.ping()
        except Exception as e:
            logger.error("InfluxDB ping failed", extra={"error": str(e)})
            return False

    def write_api(self) -> WriteApi:
        """Blocking write API bound to this client."""
        if not self._client:
            raise InfluxError(
                code=ErrorCode.INFLUX_CONNECTION_ERROR,
                message="InfluxDB client not connected",
            )
        if self._write_api is None:
            self._write_api = self._client.write_api(write_options=SYNCHRONOUS)
        return self._write_api

    def query(self, flux: str, query_type: str = "export") -> list[RawRow]:
        """
        Run a Flux query.

        Returns:
            One RawRow per result record, across all result tables

        Raises:
            InfluxError: If the client is not connected or the query fails
        """
        start_time = time.time()

        try:
            if not self._client:
                raise InfluxError(
                    code=ErrorCode.INFLUX_CONNECTION_ERROR,
                    message="InfluxDB client not connected",
                )

            tables = self._client.query_api().query(flux, org=self.settings.influx_org)

            rows = [
                RawRow.from_values(record.values)
                for table in tables
                for record in table.records
            ]
            logger.debug("Query completed", extra={"query_type": query_type, "count": len(rows)})
            return rows

        except InfluxError:
            raise
        except Exception as e:
            logger.error("Query failed", extra={"query_type": query_type, "error": str(e)})
            raise InfluxError(
                code=ErrorCode.INFLUX_QUERY_ERROR,
                message=f"Failed to run {query_type} query: {e}",
            ) from e
        finally:
            duration = time.time() - start_time
            INFLUX_QUERY_LATENCY.labels(query_type=query_type).observe(duration)


# Global client instance
_influx_client: InfluxClient | None = None


def get_influx_client() -> InfluxClient:
    """Get the global InfluxDB client instance."""
    global _influx_client
    if _influx_client is None:
        _influx_client = InfluxClient()
    return _influx_client


def init_influx_client() -> InfluxClient:
    """Initialize the global InfluxDB client."""
    client = get_influx_client()
    client.connect()
    return client


def close_influx_client() -> None:
    """Close the global InfluxDB client."""
    global _influx_client
    if _influx_client:
        _influx_client.close()
        _influx_client = None
