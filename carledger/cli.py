#!/usr/bin/env python3
"""
carledger CLI

Command-line access to a file-backed car ledger. Every invocation runs one
ledger operation as the caller given by ``--identity``/``--cert`` and
``--org`` (or ``CARLEDGER_IDENTITY`` / ``CARLEDGER_ORG``).

Usage:
    carledger [--ledger PATH] [--identity ID | --cert PEM] [--org MSP] <command> ...

Commands:
    init            Seed CAR0..CAR9 with sample cars
    create          Create a car
    get             Show one car
    exists          Check whether a car exists
    query           List cars (optionally by owner / creator)
    mine            List cars held by the caller
    change-owner    Hand a car to a new owner name
    respray         Change a car's color
    delete          Delete a car
    confirm         Take custody of a car handed to you
    provenance      Show a car's previous owners
    config          Show effective configuration

Copyright (c) 2026 carledger contributors. All rights reserved.
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional

from carledger import __version__
from carledger.config import (
    ConfigError,
    LedgerConfig,
    get_config,
    get_config_manager,
    load_config,
)
from carledger.contract import CarContract, QueryOptions
from carledger.errors import LedgerError
from carledger.identity import Caller, identity_from_certificate
from carledger.observability import LedgerLayer, configure_logging, get_logger
from carledger.store import JsonFileLedger, StoreError

log = get_logger("cli", LedgerLayer.CLI)

DEFAULT_LEDGER = "carledger.json"


class OutputFormat(Enum):
    """Output format options."""
    JSON = "json"
    YAML = "yaml"
    TABLE = "table"
    TEXT = "text"


class CLIError(Exception):
    """CLI error with exit code."""
    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.exit_code = exit_code


def format_output(data: Any, fmt: OutputFormat = OutputFormat.JSON) -> str:
    """Format data for output."""
    if fmt == OutputFormat.JSON:
        return json.dumps(data, indent=2, default=str)
    elif fmt == OutputFormat.YAML:
        import yaml
        return yaml.safe_dump(data, default_flow_style=False, sort_keys=False)
    elif fmt == OutputFormat.TABLE:
        return _format_table(data)
    else:
        return str(data)


def _format_table(data: Any) -> str:
    """Format data as ASCII table."""
    if isinstance(data, list) and data and isinstance(data[0], dict):
        headers = list(data[0].keys())
        rows = [[str(row.get(h, ""))[:40] for h in headers] for row in data]
        widths = [max(len(h), max(len(r[i]) for r in rows)) for i, h in enumerate(headers)]

        lines = []
        lines.append(" | ".join(h.ljust(widths[i]) for i, h in enumerate(headers)))
        lines.append("-+-".join("-" * w for w in widths))
        for row in rows:
            lines.append(" | ".join(c.ljust(widths[i]) for i, c in enumerate(row)))
        return "\n".join(lines)
    elif isinstance(data, dict):
        return "\n".join(f"{k}: {v}" for k, v in data.items())
    return str(data)


def _flatten_results(results: List[Any]) -> List[dict]:
    return [{"key": r.key, **r.car.to_dict()} for r in results]


class LedgerCLI:
    """Main CLI application."""

    def __init__(self):
        self.parser = argparse.ArgumentParser(
            prog="carledger",
            description="Car ownership ledger",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        self.parser.add_argument("--version", "-V", action="version", version=f"carledger {__version__}")
        self.parser.add_argument(
            "--format", "-f",
            choices=[f.value for f in OutputFormat],
            default="json",
            help="Output format (default: json)",
        )
        self.parser.add_argument("--quiet", "-q", action="store_true", help="Suppress error output")
        self.parser.add_argument(
            "--ledger", "-l",
            default=os.environ.get("CARLEDGER_LEDGER", DEFAULT_LEDGER),
            help=f"Ledger file (default: {DEFAULT_LEDGER})",
        )
        self.parser.add_argument("--config", "-c", help="YAML configuration file")
        ident = self.parser.add_mutually_exclusive_group()
        ident.add_argument("--identity", "-i", default=os.environ.get("CARLEDGER_IDENTITY"), help="Caller identity string")
        ident.add_argument("--cert", help="PEM certificate to derive the caller identity from")
        self.parser.add_argument("--org", "-o", default=os.environ.get("CARLEDGER_ORG", ""), help="Caller organisation (MSP ID)")

        self.subparsers = self.parser.add_subparsers(dest="command", help="Commands")
        self._register_commands()

    def _register_commands(self) -> None:
        sub = self.subparsers

        sub.add_parser("init", help="Seed CAR0..CAR9 with sample cars")

        create = sub.add_parser("create", help="Create a car")
        create.add_argument("key")
        create.add_argument("make")
        create.add_argument("model")
        create.add_argument("color")
        create.add_argument("owner")

        get = sub.add_parser("get", help="Show one car")
        get.add_argument("key")
        get.add_argument("--all-fields", "-a", action="store_true", help="Include certOwner")

        exists = sub.add_parser("exists", help="Check whether a car exists")
        exists.add_argument("key")

        query = sub.add_parser("query", help="List cars")
        query.add_argument("--owner", help="Only cars with this owner name")
        query.add_argument("--creator", help="'true', an identity string, or a display name")
        query.add_argument("--all-fields", "-a", action="store_true", help="Include certOwner")

        mine = sub.add_parser("mine", help="List cars held by the caller")
        mine.add_argument("--all-fields", "-a", action="store_true", help="Include certOwner")

        change = sub.add_parser("change-owner", help="Hand a car to a new owner name")
        change.add_argument("key")
        change.add_argument("new_owner")

        respray = sub.add_parser("respray", help="Change a car's color")
        respray.add_argument("key")
        respray.add_argument("new_color")

        delete = sub.add_parser("delete", help="Delete a car")
        delete.add_argument("key")

        confirm = sub.add_parser("confirm", help="Take custody of a car handed to you")
        confirm.add_argument("key")

        provenance = sub.add_parser("provenance", help="Show a car's previous owners")
        provenance.add_argument("key")

        config = sub.add_parser("config", help="Configuration")
        config_sub = config.add_subparsers(dest="subcommand")
        config_sub.add_parser("show", help="Show effective configuration")

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run the CLI."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 0

        try:
            if parsed.config:
                config = load_config(parsed.config)
            else:
                get_config_manager().load_defaults()
                config = get_config()
            configure_logging(config.observability.log_level.get(), config.observability.log_format.get())
            fmt = OutputFormat(parsed.format)
            result = self._dispatch(parsed, config)

            if result is not None:
                print(format_output(result, fmt))

            return 0

        except CLIError as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return e.exit_code

        except LedgerError as e:
            if not parsed.quiet:
                print(f"Error [{e.code}]: {e}", file=sys.stderr)
            return 1

        except (ConfigError, StoreError, OSError, ValueError) as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return 1

    def _dispatch(self, args: argparse.Namespace, config: LedgerConfig) -> Any:
        cmd = args.command.replace("-", "_")
        subcmd = getattr(args, "subcommand", None)

        handler_name = f"_handle_{cmd}_{subcmd}" if subcmd else f"_handle_{cmd}"
        handler = getattr(self, handler_name, None)

        if handler is None:
            raise CLIError(f"Unknown command: {args.command} {subcmd or ''}".strip())

        log.debug("Dispatching command", command=args.command, ledger=args.ledger)
        return handler(args, config)

    def _caller(self, args: argparse.Namespace) -> Caller:
        if args.cert:
            identity = identity_from_certificate(Path(args.cert).read_bytes())
        else:
            identity = args.identity
        if not identity:
            raise CLIError("No caller identity: pass --identity or --cert, or set CARLEDGER_IDENTITY", exit_code=2)
        return Caller(identity=identity, org=args.org)

    def _contract(self, args: argparse.Namespace, config: LedgerConfig) -> CarContract:
        return CarContract(JsonFileLedger(args.ledger), config=config)

    # Ledger handlers
    def _handle_init(self, args: argparse.Namespace, config: LedgerConfig) -> Any:
        keys = self._contract(args, config).init_ledger(self._caller(args))
        return {"created": keys}

    def _handle_create(self, args: argparse.Namespace, config: LedgerConfig) -> Any:
        car = self._contract(args, config).create(
            args.key, args.make, args.model, args.color, args.owner, self._caller(args)
        )
        return {"key": args.key, **car.without_cert_owner().to_dict()}

    def _handle_get(self, args: argparse.Namespace, config: LedgerConfig) -> Any:
        car = self._contract(args, config).get(args.key, include_cert_owner=args.all_fields)
        return {"key": args.key, **car.to_dict()}

    def _handle_exists(self, args: argparse.Namespace, config: LedgerConfig) -> Any:
        return {"key": args.key, "exists": self._contract(args, config).exists(args.key)}

    def _handle_query(self, args: argparse.Namespace, config: LedgerConfig) -> Any:
        contract = self._contract(args, config)
        if args.creator is None:
            if args.owner:
                return _flatten_results(contract.query_by_owner(args.owner, output_all=args.all_fields))
            caller = Caller(identity=args.identity or "", org=args.org)
        else:
            caller = self._caller(args)
        options = QueryOptions(output_all=args.all_fields, by_owner=args.owner, by_creator=args.creator)
        return _flatten_results(contract.query_all(caller, options))

    def _handle_mine(self, args: argparse.Namespace, config: LedgerConfig) -> Any:
        return _flatten_results(self._contract(args, config).find_mine(self._caller(args), output_all=args.all_fields))

    def _handle_change_owner(self, args: argparse.Namespace, config: LedgerConfig) -> Any:
        car = self._contract(args, config).change_owner(args.key, args.new_owner, self._caller(args))
        return {"key": args.key, **car.without_cert_owner().to_dict()}

    def _handle_respray(self, args: argparse.Namespace, config: LedgerConfig) -> Any:
        car = self._contract(args, config).respray(args.key, args.new_color, self._caller(args))
        return {"key": args.key, **car.without_cert_owner().to_dict()}

    def _handle_delete(self, args: argparse.Namespace, config: LedgerConfig) -> Any:
        self._contract(args, config).delete(args.key, self._caller(args))
        return {"key": args.key, "deleted": True}

    def _handle_confirm(self, args: argparse.Namespace, config: LedgerConfig) -> Any:
        transferred = self._contract(args, config).confirm_transfer(args.key, self._caller(args))
        return {"key": args.key, "transferred": transferred}

    def _handle_provenance(self, args: argparse.Namespace, config: LedgerConfig) -> Any:
        return self._contract(args, config).get_provenance(args.key).to_dict()

    # Config handlers
    def _handle_config_show(self, args: argparse.Namespace, config: LedgerConfig) -> Any:
        return config.to_dict()

    def _handle_config(self, args: argparse.Namespace, config: LedgerConfig) -> Any:
        return config.to_dict()


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    return LedgerCLI().run(argv)


if __name__ == "__main__":
    sys.exit(main())
