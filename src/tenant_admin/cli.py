from __future__ import annotations

import argparse
import json
import logging
from typing import List, Optional

import httpx
import yaml
from pydantic import ValidationError

from .audit import JsonAuditLogger
from .auth import AuthenticationError
from .config import DEFAULT_CREDENTIAL_FILE, ToolkitSettings, load_credential
from .environment import RuntimeVersionError, ensure_supported_runtime
from .graph_client import GraphAPIError
from .reporting import ReportWriteError
from .session import connect
from .tasks import TASKS
from .toolkit import AdminToolkit, Connector, InputFileError, InputFileNotFoundError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tenant-admin",
        description="Microsoft 365 tenant administration via Microsoft Graph",
    )
    parser.add_argument(
        "--credentials",
        default=DEFAULT_CREDENTIAL_FILE,
        help="Path to the JSON credential file (tenantId, clientId, clientSecret)",
    )
    parser.add_argument("--settings", help="Optional YAML settings file")
    parser.add_argument("--verbose", action="store_true", help="Log every Graph request")

    subparsers = parser.add_subparsers(dest="command", required=True)
    for task in TASKS.values():
        sub = subparsers.add_parser(task.name, help=task.help, description=task.help)
        if task.requires_input:
            sub.add_argument("--input-file", required=True, help="Input CSV with a header row")
        sub.add_argument(
            "--output-file",
            help=f"Report path (default: {task.prefix}_<yyyyMMdd_HHmmss>.csv)",
        )
    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def main(argv: Optional[List[str]] = None, connector: Connector = connect) -> int:
    try:
        ensure_supported_runtime()
    except RuntimeVersionError as exc:
        raise SystemExit(str(exc)) from exc

    args = parse_args(argv)
    audit_logger = JsonAuditLogger(level=logging.DEBUG if args.verbose else logging.INFO)

    try:
        settings = ToolkitSettings.load(args.settings)
    except (FileNotFoundError, yaml.YAMLError, ValidationError) as exc:
        raise SystemExit(f"Invalid settings: {exc}") from exc

    try:
        credential = load_credential(args.credentials)
    except FileNotFoundError as exc:
        raise SystemExit(str(exc)) from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise SystemExit(f"Credential file {args.credentials} could not be read: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise SystemExit(f"Credential file {args.credentials} is not valid JSON: {exc}") from exc
    except ValidationError as exc:
        raise SystemExit(f"Credential file {args.credentials} is incomplete: {exc}") from exc

    toolkit = AdminToolkit(settings, credential, audit_logger=audit_logger, connector=connector)
    try:
        summary = toolkit.run(
            args.command,
            input_file=getattr(args, "input_file", None),
            output_file=args.output_file,
        )
    except (InputFileNotFoundError, InputFileError) as exc:
        raise SystemExit(str(exc)) from exc
    except AuthenticationError as exc:
        raise SystemExit(f"Authentication failed: {exc}") from exc
    except (GraphAPIError, httpx.HTTPError) as exc:
        raise SystemExit(f"Directory request failed: {exc}") from exc
    except ReportWriteError as exc:
        raise SystemExit(str(exc)) from exc

    print(json.dumps(summary.as_dict(), indent=2))
    return 0
