from __future__ import annotations

import csv
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from .audit import JsonAuditLogger

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


class ReportWriteError(OSError):
    """Raised when a report cannot be written to its destination."""


def default_report_path(
    prefix: str,
    now: Optional[datetime] = None,
    directory: Union[str, Path] = ".",
) -> Path:
    stamp = (now or datetime.now()).strftime(TIMESTAMP_FORMAT)
    return Path(directory) / f"{prefix}_{stamp}.csv"


def read_rows(path: Union[str, Path]) -> List[Dict[str, Any]]:
    """Read a CSV with a header row; a leading byte-order mark is ignored."""
    with Path(path).open("r", newline="", encoding="utf-8-sig") as handle:
        return list(csv.DictReader(handle))


def write_report(
    path: Union[str, Path],
    rows: Sequence[Mapping[str, Any]],
    fieldnames: Sequence[str],
    bom: bool = False,
    audit_logger: Optional[JsonAuditLogger] = None,
) -> Path:
    """Write ``rows`` to ``path`` as CSV.

    The file is written to a temporary sibling first and moved into place, so a
    failed write never leaves a partial report behind. The temporary file is
    removed on every path.
    """
    destination = Path(path)
    encoding = "utf-8-sig" if bom else "utf-8"
    temp_path: Optional[str] = None
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(
            prefix=f".{destination.stem}.", suffix=".tmp", dir=destination.parent
        )
        with os.fdopen(fd, "w", newline="", encoding=encoding) as handle:
            writer = csv.DictWriter(handle, fieldnames=list(fieldnames), extrasaction="ignore")
            writer.writeheader()
            writer.writerows(rows)
        os.replace(temp_path, destination)
        temp_path = None
    except OSError as exc:
        if audit_logger:
            audit_logger.error("report_write_failed", path=str(destination), error=str(exc))
        raise ReportWriteError(f"Failed to write report {destination}: {exc}") from exc
    finally:
        if temp_path is not None and os.path.exists(temp_path):
            os.remove(temp_path)

    if audit_logger:
        audit_logger.info("report_written", path=str(destination), rows=len(rows), bom=bom)
    return destination
