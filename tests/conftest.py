"""
Pytest configuration.
Adds src/ to sys.path so 'tsbridge' imports without an editable install.
"""
import sys
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock

import pytest

src_dir = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))


@pytest.fixture
def export_settings():
    """Settings that pass export configuration checks."""
    from tsbridge.core.config import Settings

    return Settings(
        _env_file=None,
        influx_url="http://localhost:8086",
        influx_token="test-token",
        influx_org="test-org",
        influx_export_enabled=True,
        export_folder="exports",
    )


@pytest.fixture
def window():
    """A fixed one-day export window."""
    return (
        datetime(2024, 1, 15, 0, 0, tzinfo=timezone.utc),
        datetime(2024, 1, 16, 0, 0, tzinfo=timezone.utc),
    )


@pytest.fixture
def mock_client():
    """Store client whose query() returns no rows."""
    client = MagicMock()
    client.query.return_value = []
    return client
