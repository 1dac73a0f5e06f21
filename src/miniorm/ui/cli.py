# ruff: noqa: T201

from __future__ import annotations

import argparse
import importlib
import logging
import sys
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from miniorm.adapters.pydantic import PydanticEntityValidator
from miniorm.app import open_context
from miniorm.config import ConfigurationError, configure_logging
from miniorm.domain.context import DbContext
from miniorm.domain.errors import MiniOrmError

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from miniorm.domain.db_set import DbSet

log = logging.getLogger(__name__)


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Inspect miniorm database contexts")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--echo-sql", action="store_true", help="Log every SQL statement")
    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("describe", "Print the table mapping and row count of every entity set"),
        ("validate", "Report entities that would fail validation on save"),
    ):
        command = subparsers.add_parser(name, help=help_text)
        command.add_argument(
            "context",
            help="Context class to load, as 'package.module:ClassName'",
        )
        command.add_argument(
            "--database-uri",
            type=str,
            default=None,
            help="SQLAlchemy database URI (defaults to DATABASE_URI or the local data dir)",
        )
    return parser.parse_args(list(argv))


def load_context_class(reference: str) -> type[DbContext]:
    module_name, _, class_name = reference.partition(":")
    if not module_name or not class_name:
        raise ValueError(f"Expected 'module:ClassName', got {reference!r}")
    context_class = getattr(importlib.import_module(module_name), class_name, None)
    if not isinstance(context_class, type) or not issubclass(context_class, DbContext):
        raise ValueError(f"{reference!r} is not a DbContext subclass")
    return context_class


def describe(context: DbContext) -> None:
    for set_name, db_set in context.sets.items():
        schema = db_set.schema
        print(f"{set_name} -> {schema.table_name} ({len(db_set)} rows)")
        print(f"  columns: {', '.join(schema.columns)}")
        print(f"  keys: {', '.join(schema.key_fields) or '-'}")
        for foreign_key in schema.foreign_keys:
            print(
                f"  foreign key: {foreign_key.field} -> "
                f"{foreign_key.navigation} ({foreign_key.target.__name__})"
            )
        for navigation in schema.navigation_collections:
            element = navigation.element_type.__name__
            through = f" through {navigation.through.__name__}" if navigation.through else ""
            print(f"  collection: {navigation.field} [{element}]{through}")


def validate(context: DbContext) -> int:
    validator = PydanticEntityValidator()
    invalid = 0
    for set_name, db_set in context.sets.items():
        invalid += _report_invalid(set_name, db_set, validator)
    print(f"{invalid} invalid entities")
    return invalid


def _report_invalid(
    set_name: str, db_set: DbSet[object], validator: PydanticEntityValidator
) -> int:
    count = 0
    for entity in db_set:
        errors = validator.errors(entity)
        if errors:
            count += 1
            print(f"{set_name}: {db_set.schema.key_of(entity)}: {'; '.join(errors)}")
    return count


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args = _parse_args(args_list)
    configure_logging(
        level=logging.DEBUG if parsed_args.verbose else logging.WARNING,
        echo_sql=parsed_args.echo_sql,
    )

    try:
        context_class = load_context_class(parsed_args.context)
        context = open_context(context_class, parsed_args.database_uri)
    except (ValueError, ImportError, ConfigurationError, MiniOrmError):
        log.exception("Could not load %s", parsed_args.context)
        sys.exit(1)

    if parsed_args.command == "describe":
        describe(context)
    elif parsed_args.command == "validate" and validate(context):
        sys.exit(1)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
