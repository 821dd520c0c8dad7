"""
Newline-delimited JSON export files.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Mapping

from pydantic import BaseModel

from tsbridge.core.errors import ErrorCode, FileWriteError
from tsbridge.core.logging import get_logger

logger = get_logger(__name__)

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
DEFAULT_EXTENSION = ".json"
PARTIAL_SUFFIX = ".tmp"


def create_file_path(
    folder: str | Path,
    prefix: str,
    timestamp: datetime,
    extension: str = DEFAULT_EXTENSION,
) -> Path:
    """<folder>/<prefix>_<yyyyMMdd_HHmmss><extension>"""
    return Path(folder) / f"{prefix}_{timestamp.strftime(TIMESTAMP_FORMAT)}{extension}"


def to_json_line(record: Any) -> str:
    """Serialize one record as a single JSON line (no trailing newline)."""
    if isinstance(record, BaseModel):
        return record.model_dump_json()
    if isinstance(record, Mapping):
        return json.dumps(record, default=str, ensure_ascii=False)
    raise TypeError(f"Cannot serialize {type(record).__name__} to JSON")


class ExportFileWriter:
    """Writes records to NDJSON files, one record per line."""

    def write_file(self, path: str | Path, records: Iterable[Any]) -> int:
        """
        Write records to `path`, creating parent folders.

        Lines go to a sibling temporary file that replaces `path` only once
        every record is written; on failure nothing is left behind.

        Returns:
            Number of lines written

        Raises:
            FileWriteError: If a record cannot be serialized or the file cannot be written
        """
        path = Path(path)
        partial = path.with_name(path.name + PARTIAL_SUFFIX)
        count = 0
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with partial.open("w", encoding="utf-8") as handle:
                for record in records:
                    handle.write(to_json_line(record))
                    handle.write("\n")
                    count += 1
            partial.replace(path)
        except (TypeError, ValueError) as e:
            partial.unlink(missing_ok=True)
            raise FileWriteError(
                code=ErrorCode.JSON_SERIALIZATION_FAILED,
                message=f"Failed to serialize record {count} for {path.name}: {e}",
                details={"path": str(path), "line": count},
            ) from e
        except OSError as e:
            partial.unlink(missing_ok=True)
            raise FileWriteError(
                code=ErrorCode.FILE_WRITE_FAILED,
                message=f"Failed to write export file {path}: {e}",
                details={"path": str(path)},
            ) from e

        logger.info("Export file written", extra={"path": str(path), "count": count})
        return count

    def read_file(self, path: str | Path, model: type[BaseModel]) -> list[BaseModel]:
        """Parse an NDJSON export file back into models, skipping blank lines."""
        with Path(path).open("r", encoding="utf-8") as handle:
            return [model.model_validate_json(line) for line in handle if line.strip()]
