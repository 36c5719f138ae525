# src/cel_validator/cli.py
from __future__ import annotations
import argparse

# commands live in cli_commands; re-exported so `cel_validator.cli` stays the entry module
from .cli_commands import (
    OK_MESSAGE,
    OK_WITH_WARNINGS_MESSAGE,
    SEPARATOR,
    _emit,
    cmd_generate,
    cmd_validate,
)
from .config import OUTPUT_FORMATS

__all__ = [
    "OK_MESSAGE",
    "OK_WITH_WARNINGS_MESSAGE",
    "SEPARATOR",
    "_emit",
    "cmd_generate",
    "cmd_validate",
    "main",
    "main_entry",
]


def main_entry() -> None:
    raise SystemExit(main())


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(
        prog="cv", description="Validate values files using CEL expressions"
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    v = sub.add_parser("validate", help="Validate values against .cel.yaml rules")
    v.add_argument("chart", help="Chart (or any) directory holding the files")
    v.add_argument(
        "-v",
        "--values-file",
        action="append",
        default=None,
        help="Values file(s), comma-separated or repeated (default: values.yaml)",
    )
    v.add_argument(
        "-r",
        "--rules-file",
        action="append",
        default=None,
        help="Rules file(s), comma-separated or repeated (default: values.cel.yaml)",
    )
    v.add_argument("-o", "--output", choices=OUTPUT_FORMATS, default=None)
    v.add_argument("--out", default=None, help="Also write the report to this file")
    v.add_argument("--verbose", action="store_true")

    g = sub.add_parser("generate", help="Generate values.cel.yaml from a values file")
    g.add_argument("chart")
    g.add_argument("-v", "--values-file", default=None)
    g.add_argument("-o", "--output-file", default=None)
    g.add_argument("-f", "--force", action="store_true")

    args = p.parse_args(argv)

    if args.cmd == "validate":
        return cmd_validate(
            args.chart,
            args.values_file,
            args.rules_file,
            args.output,
            args.out,
            args.verbose,
        )
    if args.cmd == "generate":
        return cmd_generate(args.chart, args.values_file, args.output_file, args.force)
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
