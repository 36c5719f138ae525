"""Text, JSON and YAML renderings of a ValidationOutcome.

The text form is consumed by existing tooling and must not drift:

    Found 1 error(s):

    ❌ port must be valid
       Rule: values.service.port <= 65535
       Path: service.port
       Current value: 70000
"""

from __future__ import annotations

import json
import math
from decimal import Decimal
from typing import List

import yaml

from .models import Finding, ValidationOutcome, Value, ValueKind, kind_of

ERROR_SYMBOL = "❌"
WARNING_SYMBOL = "⚠️"
NIL = "<nil>"


def _format_float(number: float) -> str:
    if math.isnan(number):
        return "NaN"
    if math.isinf(number):
        return "+Inf" if number > 0 else "-Inf"
    if number == 0:
        return "0"

    d = Decimal(repr(number)).normalize()
    sign, digits, exp = d.as_tuple()
    exponent = len(digits) + exp - 1  # type: ignore[operator]
    if -4 <= exponent < 6:
        return format(d, "f")
    mantissa = "".join(str(x) for x in digits)
    if len(mantissa) > 1:
        mantissa = mantissa[0] + "." + mantissa[1:]
    return f"{'-' if sign else ''}{mantissa}e{'-' if exponent < 0 else '+'}{abs(exponent):02d}"


def format_value(value: Value) -> str:
    """Render a document value the way the report has always shown it."""
    kind = kind_of(value)
    if kind is ValueKind.NULL:
        return NIL
    if kind is ValueKind.BOOL:
        return "true" if value else "false"
    if kind is ValueKind.NUMBER:
        if isinstance(value, float):
            return _format_float(value)
        return str(value)
    if kind is ValueKind.STRING:
        return value  # type: ignore[return-value]
    if kind is ValueKind.SEQUENCE:
        return "[" + " ".join(format_value(v) for v in value) + "]"  # type: ignore[union-attr]
    items = sorted(value.items(), key=lambda kv: str(kv[0]))  # type: ignore[union-attr]
    return "map[" + " ".join(f"{k}:{format_value(v)}" for k, v in items) + "]"


def format_finding(finding: Finding, symbol: str) -> str:
    lines = [
        f"{symbol} {finding.description}",
        f"   Rule: {finding.expression}",
    ]
    if finding.path:
        lines.append(f"   Path: {finding.path}")
    lines.append(f"   Current value: {format_value(finding.value)}")
    return "\n".join(lines)


def render_text(outcome: ValidationOutcome) -> str:
    blocks: List[str] = []
    if outcome.errors:
        body = "\n\n".join(format_finding(f, ERROR_SYMBOL) for f in outcome.errors)
        blocks.append(f"Found {len(outcome.errors)} error(s):\n\n{body}")
    if outcome.warnings:
        body = "\n\n".join(format_finding(f, WARNING_SYMBOL) for f in outcome.warnings)
        blocks.append(f"Found {len(outcome.warnings)} warning(s):\n\n{body}")
    return "\n\n".join(blocks)


def render_json(outcome: ValidationOutcome) -> str:
    return json.dumps(outcome.to_dict(), ensure_ascii=False, indent=2)


def render_yaml(outcome: ValidationOutcome) -> str:
    return yaml.safe_dump(outcome.to_dict(), sort_keys=False, allow_unicode=True)


RENDERERS = {
    "text": render_text,
    "json": render_json,
    "yaml": render_yaml,
}
