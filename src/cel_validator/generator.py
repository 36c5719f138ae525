from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List

import yaml

from .models import Rule, RuleSet, Value, ValueKind, kind_of

ROOT = "values"
RESOURCE_PATTERN = "^[0-9]+(.[0-9]+)?(m|Mi|Gi|Ti|Pi|Ei|n|u|m|k|M|G|T|P|E)?$"


def _is_port(key: str, value: int) -> bool:
    return 1 <= value <= 65535 and "port" in key.lower()


def _is_resource(key: str) -> bool:
    k = key.lower()
    return k in ("cpu", "memory") or k.endswith(".cpu") or k.endswith(".memory")


def _rules_for_scalar(path: str, value: Value, key: str, out: List[Rule]) -> None:
    kind = kind_of(value)
    if kind is ValueKind.STRING:
        out.append(Rule(f"type({path}) == string", f"{key} must be a string"))
        if _is_resource(key):
            out.append(
                Rule(
                    f"{path}.matches('{RESOURCE_PATTERN}')",
                    f"{key} must be a valid resource quantity",
                )
            )
    elif kind is ValueKind.BOOL:
        out.append(Rule(f"type({path}) == bool", f"{key} must be a boolean"))
    elif kind is ValueKind.NUMBER and isinstance(value, int):
        out.append(Rule(f"type({path}) == int", f"{key} must be an integer"))
        if _is_port(key, value):
            out.append(
                Rule(
                    f"{path} >= 1 && {path} <= 65535",
                    f"{key} must be a valid port number (1-65535)",
                )
            )
    elif kind is ValueKind.NUMBER:
        out.append(
            Rule(f"type({path}) == int || type({path}) == double", f"{key} must be a number")
        )
    # null and nested values produce nothing here


def _walk(prefix: str, mapping: Dict[str, Value], out: List[Rule]) -> None:
    for k, v in mapping.items():
        path = f"{prefix}.{k}"
        kind = kind_of(v)
        if kind is ValueKind.MAPPING:
            out.append(Rule(f"has({path})", f"{k} must be defined"))
            _walk(path, v, out)  # type: ignore[arg-type]
        elif kind is ValueKind.SEQUENCE:
            out.append(Rule(f"size({path}) >= 0", f"{k} must be an array"))
            if v:
                first = v[0]  # type: ignore[index]
                if kind_of(first) is ValueKind.MAPPING:
                    for fk, fv in first.items():
                        _rules_for_scalar(f"{path}[0].{fk}", fv, fk, out)
                else:
                    _rules_for_scalar(f"{path}[0]", first, k, out)
        else:
            _rules_for_scalar(path, v, k, out)


def generate_rules(values: Dict[str, Value]) -> RuleSet:
    """Infer a baseline rule set from the shape of a values document."""
    out: List[Rule] = []
    _walk(ROOT, values, out)
    return RuleSet(rules=tuple(out), macros={})


def write_rules(path: str | Path, ruleset: RuleSet) -> None:
    data: Dict[str, Any] = ruleset.to_dict()
    Path(path).write_text(
        yaml.safe_dump(data, sort_keys=False, allow_unicode=True), encoding="utf-8"
    )
