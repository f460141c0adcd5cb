"""Command line entry point for the iNews FTP client.

Wires up logging, saved settings and keyring credentials, then runs
one read operation and prints the result.
"""

import argparse
import json
import logging
import sys
from dataclasses import asdict, is_dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional

from inews.client import INewsClient
from inews.config.credentials import CredentialManager
from inews.config.paths import get_log_file_path
from inews.config.settings import ClientConfig, SettingsManager
from inews.ftp.connection import StatusEvent
from inews.ftp.exceptions import INewsError
from inews.utils.logging import get_logger, setup_logging
from inews.utils.validators import validate_queue_path


def to_jsonable(value: Any) -> Any:
    """Convert entries and stories to JSON-friendly structures."""
    if is_dataclass(value) and not isinstance(value, type):
        data = asdict(value)
        filetype = getattr(value, "filetype", None)
        if filetype is not None:
            data["filetype"] = filetype
        return to_jsonable(data)
    if isinstance(value, dict):
        return {key: to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="inews-ftp", description="Read queues and stories from an iNews FTP server.")
    parser.add_argument("--host", action="append", dest="hosts", help="iNews server (repeat for fallbacks)")
    parser.add_argument("--user", help="iNews username")
    parser.add_argument("--password", help="iNews password (default: saved in keyring)")
    parser.add_argument("--save", action="store_true", help="remember hosts and user, and the password in the keyring")
    parser.add_argument("--settings", type=Path, help="settings file to use instead of the default")
    parser.add_argument("--log-file", type=Path, help="also log to this file")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")

    commands = parser.add_subparsers(dest="command", required=True)

    list_parser = commands.add_parser("list", help="list a queue")
    list_parser.add_argument("queue")

    story_parser = commands.add_parser("story", help="fetch a story as JSON")
    story_parser.add_argument("queue")
    story_parser.add_argument("file")

    nsml_parser = commands.add_parser("nsml", help="fetch a story's raw NSML")
    nsml_parser.add_argument("queue")
    nsml_parser.add_argument("file")

    return parser


class Application:
    """Resolves configuration and runs one command."""

    def __init__(self, args: argparse.Namespace):
        self._args = args
        setup_logging(
            level=logging.DEBUG if args.verbose else logging.WARNING,
            log_file=args.log_file,
        )
        self._logger = get_logger("inews.main")
        self._settings_manager = SettingsManager(args.settings)
        self._credential_manager = CredentialManager()

    def _resolve_config(self) -> ClientConfig:
        """Merge command line options over saved settings and keyring credentials."""
        args = self._args
        saved = self._settings_manager.load()
        data = saved.to_dict() if saved else {}

        if args.hosts:
            data["hosts"] = args.hosts
            data["host"] = None
        if args.user:
            data["user"] = args.user

        hosts: List[str] = data.get("hosts") or ([data["host"]] if data.get("host") else [])
        password: Optional[str] = args.password
        if password is None and hosts:
            password = self._credential_manager.find_password(hosts, data.get("user", ""))
        data["password"] = password or ""

        config = ClientConfig.from_dict(data)

        if args.save:
            self._settings_manager.save(config)
            if args.password:
                for host in config.hosts:
                    self._credential_manager.save_password(host, config.user, args.password)

        return config

    def _on_status(self, event: StatusEvent) -> None:
        self._logger.info(f"Status: {event.name} ({event.host})")

    def run(self) -> int:
        args = self._args
        is_valid, error = validate_queue_path(args.queue)
        if not is_valid:
            print(error, file=sys.stderr)
            return 2

        try:
            config = self._resolve_config()
        except ValueError as e:
            print(f"Invalid configuration: {e}", file=sys.stderr)
            return 2

        with INewsClient(config) as client:
            client.subscribe(self._on_status)
            try:
                if args.command == "list":
                    output = json.dumps(to_jsonable(client.list_queue(args.queue)), indent=2)
                elif args.command == "story":
                    output = json.dumps(to_jsonable(client.story(args.queue, args.file)), indent=2, ensure_ascii=False)
                else:
                    output = client.story_nsml(args.queue, args.file)
            except INewsError as e:
                self._logger.error(f"{args.command} failed: {e}")
                print(f"Error: {e}", file=sys.stderr)
                return 1

        print(output)
        return 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Command line entry point.

    Returns:
        Exit code (0 for success)
    """
    args = build_parser().parse_args(argv)
    if args.log_file is None and args.save:
        args.log_file = get_log_file_path()

    try:
        return Application(args).run()
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
