from __future__ import annotations

import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List

import yaml
from loguru import logger

from .errors import DuplicateMacroError, InvalidRuleError, RulesLoadError, ValuesLoadError
from .models import Rule, RuleSet, Value, ValueKind, kind_of


def resolve_paths(base_dir: str | Path, files: Iterable[str]) -> List[str]:
    base = Path(base_dir)
    return [str(base / f) for f in files]


def _read(path: str) -> str:
    return Path(path).read_text(encoding="utf-8")


def _to_value(obj: Any) -> Value:
    # YAML timestamps are kept as their ISO text so the document stays JSON-shaped
    if isinstance(obj, (datetime.date, datetime.datetime)):
        return obj.isoformat()
    kind = kind_of(obj)
    if kind is ValueKind.MAPPING:
        return {str(k): _to_value(v) for k, v in obj.items()}
    if kind is ValueKind.SEQUENCE:
        return [_to_value(v) for v in obj]
    return obj


def deep_merge(base: Dict[str, Value], overlay: Dict[str, Value]) -> Dict[str, Value]:
    """Merge overlay onto base. Mappings merge key-wise; anything else is replaced.

    Neither input is modified.
    """
    out: Dict[str, Value] = dict(base)
    for k, v in overlay.items():
        cur = out.get(k)
        if isinstance(cur, dict) and isinstance(v, dict):
            out[k] = deep_merge(cur, v)
        else:
            out[k] = v
    return out


def load_values_file(path: str) -> Dict[str, Value]:
    try:
        content = _read(path)
    except OSError as e:
        raise ValuesLoadError(path, f"failed to read values file: {e}") from e

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ValuesLoadError(path, f"failed to parse values file: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValuesLoadError(
            path,
            f"failed to parse values file: expected a mapping at the top level, "
            f"got {type(data).__name__}",
        )
    try:
        return _to_value(data)  # type: ignore[return-value]
    except TypeError as e:
        raise ValuesLoadError(path, f"failed to parse values file: {e}") from e


def load_values(paths: Iterable[str]) -> Dict[str, Value]:
    merged: Dict[str, Value] = {}
    for path in paths:
        merged = deep_merge(merged, load_values_file(path))
        logger.debug("Loaded values from {}", path)
    return merged


def load_rules_file(path: str) -> RuleSet:
    try:
        content = _read(path)
    except OSError as e:
        raise RulesLoadError(path, f"failed to read rules file: {e}") from e

    try:
        raw = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise RulesLoadError(path, f"failed to parse rules file: {e}") from e

    raw = raw or {}
    if not isinstance(raw, dict):
        raise RulesLoadError(path, "failed to parse rules file: expected a mapping")

    rules_raw = raw.get("rules") or []
    macros_raw = raw.get("expressions") or {}
    if not isinstance(rules_raw, list):
        raise RulesLoadError(path, "failed to parse rules file: 'rules' must be a list")
    if not isinstance(macros_raw, dict):
        raise RulesLoadError(
            path, "failed to parse rules file: 'expressions' must be a mapping"
        )

    try:
        rules = tuple(Rule.from_dict(r) for r in rules_raw)
    except InvalidRuleError as e:
        raise RulesLoadError(path, f"failed to parse rules file: {e}") from e

    return RuleSet(rules=rules, macros={str(k): str(v) for k, v in macros_raw.items()})


def load_rules(paths: Iterable[str]) -> RuleSet:
    """Concatenate rules in file order; a macro name may be defined only once."""
    rules: List[Rule] = []
    macros: Dict[str, str] = {}
    for path in paths:
        rs = load_rules_file(path)
        rules.extend(rs.rules)
        for name, body in rs.macros.items():
            if name in macros:
                raise DuplicateMacroError(name, path, macros[name])
            macros[name] = body
        logger.debug(
            "Loaded {} rule(s) and {} expression(s) from {}",
            len(rs.rules),
            len(rs.macros),
            path,
        )
    return RuleSet(rules=tuple(rules), macros=macros)
