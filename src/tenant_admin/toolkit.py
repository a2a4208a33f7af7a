from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, Union

from .audit import JsonAuditLogger
from .config import Credential, ToolkitSettings
from .operations import DirectoryOperations
from .reporting import default_report_path, read_rows, write_report
from .session import DirectorySession, connect
from .tasks import TASKS, Report, Row, TaskContext

Connector = Callable[[Credential, ToolkitSettings, JsonAuditLogger], DirectorySession]


class InputFileNotFoundError(FileNotFoundError):
    """Raised when a batch command's input CSV is missing."""


class InputFileError(ValueError):
    """Raised when a batch command's input CSV cannot be decoded."""


@dataclass
class RunSummary:
    command: str
    run_id: str
    report_path: Path
    report: Report

    def as_dict(self) -> dict:
        return {
            "command": self.command,
            "run_id": self.run_id,
            "report": str(self.report_path),
            "rows": len(self.report.rows),
            "failed": self.report.failed,
        }


class AdminToolkit:
    """Runs one administration command end to end.

    A run reads its input, opens a directory session, executes the command,
    writes the report and always closes the session, in that order.
    """

    def __init__(
        self,
        settings: ToolkitSettings,
        credential: Credential,
        audit_logger: Optional[JsonAuditLogger] = None,
        connector: Connector = connect,
    ):
        self.settings = settings
        self.credential = credential
        self.audit = audit_logger or JsonAuditLogger()
        self.connector = connector

    def load_input(self, input_file: Union[str, Path]) -> List[Row]:
        path = Path(input_file)
        if not path.exists():
            raise InputFileNotFoundError(f"Input file {path} does not exist.")
        try:
            return read_rows(path)
        except UnicodeDecodeError as exc:
            raise InputFileError(f"Input file {path} is not UTF-8 encoded: {exc}") from exc

    def run(
        self,
        command: str,
        input_file: Optional[Union[str, Path]] = None,
        output_file: Optional[Union[str, Path]] = None,
        run_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> RunSummary:
        task = TASKS.get(command)
        if task is None:
            raise KeyError(f"Unsupported command: {command}")

        rows: List[Row] = []
        if task.requires_input:
            if input_file is None:
                raise ValueError(f"{command} requires an input file")
            rows = self.load_input(input_file)

        run_id = run_id or str(uuid.uuid4())
        audit = self.audit.bind(command=command, run_id=run_id, tenant_id=self.credential.tenant_id)
        audit.info("command_started", input_rows=len(rows))

        with self.connector(self.credential, self.settings, audit) as session:
            operations = DirectoryOperations(session, page_size=self.settings.page_size)
            report = task.run(TaskContext(operations, self.settings, audit), rows)
            path = Path(output_file) if output_file else default_report_path(task.prefix, now)
            write_report(
                path,
                report.rows,
                report.fieldnames,
                bom=self.settings.reports.bom_for(command),
                audit_logger=audit,
            )

        audit.info("command_completed", report=str(path), rows=len(report.rows), failed=report.failed)
        return RunSummary(command, run_id, path, report)
