"""
Declara CLI Main Module
=======================

Main CLI entry point with all commands.
"""

from __future__ import annotations

import argparse
import importlib
import sys
from typing import Any, List, Optional

import orjson

from declara import __version__
from declara.engine.annotation_parser import (
    AnnotationSyntaxError,
    parse_field,
    parse_struct_options,
)
from declara.utils.logger import configure_logging


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        prog="declara",
        description="Declara validation CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  declara parse "RangeValidation::<_>(min=0, max=150)"   Show the parsed field annotation
  declara parse "newtype, try_new" --struct             Show parsed structure options
  declara codegen myapp.models:Order                    Print generated validation code
  declara validators                                    List registered validators
        """,
    )

    parser.add_argument(
        "-v", "--version",
        action="version",
        version=f"Declara {__version__}",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Log level (DEBUG, INFO, WARNING, ERROR)",
    )
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        default="text",
        help="Log output format",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Parse command
    parse_parser = subparsers.add_parser(
        "parse",
        help="Parse an annotation and print it as JSON",
    )
    parse_parser.add_argument(
        "annotation",
        help="Annotation text",
    )
    parse_parser.add_argument(
        "--struct",
        action="store_true",
        help="Parse structure options instead of a field annotation",
    )
    parse_parser.add_argument(
        "--name",
        default="field",
        help="Field name used in the output",
    )
    parse_parser.add_argument(
        "--type",
        dest="declared_type",
        default="Any",
        help="Declared field type, as text",
    )

    # Codegen command
    codegen_parser = subparsers.add_parser(
        "codegen",
        help="Print the generated validation source of a structure",
    )
    codegen_parser.add_argument(
        "target",
        help="Structure as module:Class",
    )

    # Validators command
    subparsers.add_parser(
        "validators",
        help="List registered validators",
    )

    return parser


def cli(args: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Args:
        args: Command line arguments (uses sys.argv if None)

    Returns:
        Exit code
    """
    parser = create_parser()
    parsed = parser.parse_args(args)

    if not parsed.command:
        parser.print_help()
        return 0

    # Route to command handler
    handlers = {
        "parse": handle_parse,
        "codegen": handle_codegen,
        "validators": handle_validators,
    }

    handler = handlers[parsed.command]
    try:
        configure_logging(level=parsed.log_level, format=parsed.log_format)
        return handler(parsed)
    except AnnotationSyntaxError as e:
        print(f"Error: {e}", file=sys.stderr)
        print(e.pointer(), file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        print("\nAborted.")
        return 130
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def _print_json(data: Any) -> None:
    print(orjson.dumps(data, option=orjson.OPT_INDENT_2).decode())


def handle_parse(args: argparse.Namespace) -> int:
    """Handle parse command."""
    if args.struct:
        options = parse_struct_options(args.annotation, origin="<cli>")
        _print_json(options.to_dict())
        return 0

    descriptor = parse_field(args.name, args.declared_type, args.annotation, origin="<cli>")
    _print_json(descriptor.to_dict() if descriptor is not None else None)
    return 0


def load_target(target: str) -> Any:
    """
    Import ``module:Class`` (``module.Class`` also accepted).

    Raises:
        ValueError: If the target cannot be found
    """
    if ":" in target:
        module_name, _, attr = target.partition(":")
    else:
        module_name, _, attr = target.rpartition(".")
    if not module_name or not attr:
        raise ValueError(f"expected module:Class, got {target!r}")

    module = importlib.import_module(module_name)
    obj: Any = module
    for part in attr.split("."):
        if not hasattr(obj, part):
            raise ValueError(f"{module_name} has no attribute {attr!r}")
        obj = getattr(obj, part)
    return obj


def handle_codegen(args: argparse.Namespace) -> int:
    """Handle codegen command."""
    from declara.core.struct import compile_struct

    compiled = compile_struct(load_target(args.target))
    sys.stdout.write(compiled.source)
    return 0


def handle_validators(args: argparse.Namespace) -> int:
    """Handle validators command."""
    from declara.validation.validator import registry

    for name in registry.names():
        cls = registry.get(name)
        print(f"{name:<28} {cls.__module__}")
    return 0


def main() -> None:
    """Main entry point."""
    sys.exit(cli())


if __name__ == "__main__":
    main()
