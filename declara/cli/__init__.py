"""
Declara CLI
===========

Command-line interface for inspecting annotations and generated code.

Commands:
- parse: Show the parsed form of an annotation
- codegen: Print the generated validation source of a structure
- validators: List registered validators
"""

from declara.cli.main import main, cli

__all__ = ["main", "cli"]
