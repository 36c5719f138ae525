from __future__ import annotations

import sys
from pathlib import Path
from typing import List

from loguru import logger

from .config import resolve_settings
from .errors import CelValidatorError
from .generator import generate_rules, write_rules
from .loader import load_rules, load_values, resolve_paths
from .report import RENDERERS, render_text
from .validator import validate

SEPARATOR = "-" * 49
OK_MESSAGE = "✅ Values validation successful!"
OK_WITH_WARNINGS_MESSAGE = "⚠️✅ Values validation successful with warnings!"


def _setup_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level, format="{time:HH:mm:ss} | {level: <7} | {message}")


def _emit(text: str, out_path: str | None, stream=None) -> None:
    print(text, file=stream or sys.stdout)

    if out_path:
        p = Path(out_path)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(text, encoding="utf-8")


def _fail(message: str) -> int:
    print(f"Error: {message}", file=sys.stderr)
    return 1


def cmd_validate(
    chart_path: str,
    values_files: List[str] | None = None,
    rules_files: List[str] | None = None,
    output: str | None = None,
    out_path: str | None = None,
    verbose: bool = False,
) -> int:
    try:
        settings = resolve_settings(
            {
                "values_files": values_files,
                "rules_files": rules_files,
                "output": output,
                "log_level": "DEBUG" if verbose else None,
            }
        )
    except CelValidatorError as e:
        return _fail(str(e))
    _setup_logging(settings["log_level"])

    chart = Path(chart_path).resolve()
    try:
        document = load_values(resolve_paths(chart, settings["values_files"]))
        ruleset = load_rules(resolve_paths(chart, settings["rules_files"]))
        outcome = validate(document, ruleset)
    except CelValidatorError as e:
        return _fail(str(e))

    fmt = settings["output"]
    if fmt != "text":
        _emit(RENDERERS[fmt](outcome), out_path)
        return 1 if outcome.has_errors else 0

    if outcome.has_errors:
        _emit(render_text(outcome), out_path, stream=sys.stderr)
        return 1

    if outcome.has_warnings:
        text = render_text(outcome)
        _emit(text, out_path)
        print(SEPARATOR)
        print(OK_WITH_WARNINGS_MESSAGE)
    else:
        print(OK_MESSAGE)
    return 0


def cmd_generate(
    chart_path: str,
    values_file: str | None = None,
    output_file: str | None = None,
    force: bool = False,
) -> int:
    try:
        settings = resolve_settings(
            {"generate_values_file": values_file, "generate_output_file": output_file}
        )
    except CelValidatorError as e:
        return _fail(str(e))
    _setup_logging(settings["log_level"])

    chart = Path(chart_path).resolve()
    values_path = chart / settings["generate_values_file"]
    cel_path = chart / settings["generate_output_file"]

    if not values_path.exists():
        return _fail(f"values file not found: {values_path}")
    if cel_path.exists() and not force:
        return _fail(f"output file already exists: {cel_path} (use --force to overwrite)")

    try:
        document = load_values([str(values_path)])
    except CelValidatorError as e:
        return _fail(f"failed to generate rules: {e}")

    ruleset = generate_rules(document)
    try:
        write_rules(cel_path, ruleset)
    except OSError as e:
        return _fail(f"failed to write rules: {e}")

    logger.info("Generated {} rule(s)", len(ruleset.rules))
    print(f"✅ Successfully generated {cel_path}")
    return 0
