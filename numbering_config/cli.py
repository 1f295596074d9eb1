"""
Operator CLI for the numbering engine.

Usage:
    numbering-engine init-db
    numbering-engine register-client --project E --platform W --date 2025-09-10
    numbering-engine allocate '{"entityType": "INVOICE", "clientId": "...", ...}'
    numbering-engine parse IN1-FY26-000123-V2
    numbering-engine counters [--owner CLIENT_ID]

Global options pick the configuration set (``--config-dir``, ``--config``)
and may override its database URL (``--database-url``).  Every command
prints one JSON document on stdout.  Errors print a JSON document with the
kernel error ``code`` on stderr and exit non-zero (2 for validation errors,
1 otherwise).
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys
from collections.abc import Sequence
from datetime import date
from pathlib import Path
from typing import Any

from numbering_config import get_active_config
from numbering_config.bridges import (
    build_coordinator,
    init_engine_from_config,
    layout_from_config,
)
from numbering_config.schema import NumberingConfig
from numbering_config.validator import ConfigValidationError
from numbering_kernel.db.engine import create_tables, get_engine, reset_engine, session_scope
from numbering_kernel.db.triggers import get_installed_triggers
from numbering_kernel.domain.formatter import IdentifierFormatter
from numbering_kernel.exceptions import NumberingKernelError, ValidationError
from numbering_kernel.logging_config import configure_logging
from numbering_kernel.services.client_code_registry import ClientCodeRegistry
from numbering_kernel.services.counter_store import CounterStore

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INVALID = 2


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="numbering-engine",
        description="Allocate and inspect sequential client, quotation and invoice identifiers.",
    )
    p.add_argument("--config-dir", type=Path, default=None, help="Directory of YAML config sets")
    p.add_argument("--config", default="default", help="Config set name (default: %(default)s)")
    p.add_argument("--database-url", default=None, help="Override the configured database URL")
    p.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Structured log level on stderr (default: %(default)s)",
    )

    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create tables, triggers and global counters")

    reg = sub.add_parser("register-client", help="Mint and freeze a client code")
    reg.add_argument("--project", required=True, help="Project code (E, S, M, P)")
    reg.add_argument("--platform", required=True, help="Platform code (A, W, B, H)")
    reg.add_argument("--country", default="IND", help="Country code (default: %(default)s)")
    reg.add_argument("--date", type=date.fromisoformat, default=None, help="Onboarding date")
    reg.add_argument("--client-id", default=None)
    reg.add_argument("--idempotency-key", default=None)
    reg.add_argument("--actor-id", default=None)

    alloc = sub.add_parser("allocate", help="Allocate from a JSON request payload")
    alloc.add_argument("payload", help="JSON object, or '-' to read it from stdin")

    parse = sub.add_parser("parse", help="Split a human id into its components")
    parse.add_argument("human_id")

    counters = sub.add_parser("counters", help="Show counter high-water marks")
    counters.add_argument("--owner", default=None, help="Only scoped counters of this owner")

    return p


def _load_config(args: argparse.Namespace) -> NumberingConfig:
    config = get_active_config(config_dir=args.config_dir, name=args.config)
    if args.database_url:
        config = dataclasses.replace(
            config, database=dataclasses.replace(config.database, url=args.database_url)
        )
    return config


def _emit(document: Any, stream=None) -> None:
    print(json.dumps(document, indent=2, default=str), file=stream or sys.stdout)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _cmd_init_db(config: NumberingConfig, args: argparse.Namespace) -> dict:
    init_engine_from_config(config)
    create_tables()
    with session_scope() as session:
        global_counters = CounterStore(session).global_values()
    return {
        "status": "ok",
        "triggers": get_installed_triggers(get_engine()),
        "globalCounters": global_counters,
    }


def _cmd_register_client(config: NumberingConfig, args: argparse.Namespace) -> dict:
    init_engine_from_config(config)
    registry = ClientCodeRegistry(build_coordinator(config))
    record = registry.register(
        args.project.upper(),
        args.platform.upper(),
        args.country.upper(),
        args.date,
        client_id=args.client_id,
        idempotency_key=args.idempotency_key,
        actor_id=args.actor_id,
    )
    return {
        "clientId": record.client_id,
        "humanCode": record.human_code,
        "periodCode": record.period_code,
        "scopedSequence": record.scoped_seq,
        "globalSequence": record.global_sequence,
    }


def _cmd_allocate(config: NumberingConfig, args: argparse.Namespace) -> dict:
    raw = sys.stdin.read() if args.payload == "-" else args.payload
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise CommandInputError(f"payload is not valid JSON: {exc}") from exc
    init_engine_from_config(config)
    record = build_coordinator(config).allocate_payload(payload)
    return record.to_response()


def _cmd_parse(config: NumberingConfig, args: argparse.Namespace) -> dict:
    parts = IdentifierFormatter(layout_from_config(config)).parse(args.human_id)
    return {"humanId": args.human_id, **dataclasses.asdict(parts)}


def _cmd_counters(config: NumberingConfig, args: argparse.Namespace) -> dict:
    init_engine_from_config(config)
    with session_scope() as session:
        store = CounterStore(session)
        return {
            "global": store.global_values(),
            "scoped": [
                {"owner": owner, "type": kind, "period": period, "value": value}
                for owner, kind, period, value in store.scoped_values(args.owner)
            ],
        }


_COMMANDS = {
    "init-db": _cmd_init_db,
    "register-client": _cmd_register_client,
    "allocate": _cmd_allocate,
    "parse": _cmd_parse,
    "counters": _cmd_counters,
}


class CommandInputError(ValueError):
    """Malformed command-line input that never reached the kernel."""

    code = "INVALID_INPUT"


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    configure_logging(level=getattr(logging, args.log_level))

    try:
        config = _load_config(args)
        result = _COMMANDS[args.command](config, args)
    except (ValidationError, CommandInputError, ConfigValidationError) as exc:
        _emit(_error_document(exc), sys.stderr)
        return EXIT_INVALID
    except (NumberingKernelError, FileNotFoundError) as exc:
        _emit(_error_document(exc), sys.stderr)
        return EXIT_ERROR
    finally:
        reset_engine()

    _emit(result)
    return EXIT_OK


def _error_document(exc: Exception) -> dict:
    document = {
        "error": getattr(exc, "code", type(exc).__name__),
        "message": str(exc),
    }
    field_errors = getattr(exc, "field_errors", None)
    if field_errors:
        document["fieldErrors"] = field_errors
    return document


if __name__ == "__main__":
    sys.exit(main())
