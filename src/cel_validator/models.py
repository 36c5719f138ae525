from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from .errors import InvalidRuleError

# A document value: the shape YAML decodes into.
Value = Union[None, bool, int, float, str, List["Value"], Dict[str, "Value"]]


class ValueKind(str, Enum):
    NULL = "null"
    BOOL = "bool"
    NUMBER = "number"
    STRING = "string"
    SEQUENCE = "sequence"
    MAPPING = "mapping"


def kind_of(value: Any) -> ValueKind:
    if value is None:
        return ValueKind.NULL
    # bool before number: bool is an int subclass
    if isinstance(value, bool):
        return ValueKind.BOOL
    if isinstance(value, (int, float)):
        return ValueKind.NUMBER
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, (list, tuple)):
        return ValueKind.SEQUENCE
    if isinstance(value, dict):
        return ValueKind.MAPPING
    raise TypeError(f"unsupported document value: {type(value).__name__}")


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"

    @classmethod
    def parse(cls, text: Optional[str]) -> "Severity":
        if text is None or str(text).strip() == "":
            return cls.ERROR
        try:
            return cls(str(text).strip().lower())
        except ValueError:
            raise InvalidRuleError(
                f"unknown severity '{text}' (expected 'error' or 'warning')"
            ) from None


@dataclass(frozen=True)
class Rule:
    expression: str
    description: str
    severity: Severity = Severity.ERROR

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Rule":
        if not isinstance(raw, dict):
            raise InvalidRuleError(f"rule must be a mapping, got: {raw!r}")
        return cls(
            expression=str(raw.get("expr") or ""),
            description=str(raw.get("desc") or ""),
            severity=Severity.parse(raw.get("severity")),
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"expr": self.expression, "desc": self.description}
        if self.severity is not Severity.ERROR:
            d["severity"] = self.severity.value
        return d


@dataclass(frozen=True)
class RuleSet:
    rules: Tuple[Rule, ...] = ()
    macros: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"rules": [r.to_dict() for r in self.rules]}
        if self.macros:
            d["expressions"] = dict(self.macros)
        return d


@dataclass(frozen=True)
class Finding:
    description: str
    expression: str
    path: Optional[str] = None
    value: Value = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "description": self.description,
            "expression": self.expression,
            "value": self.value,
        }
        if self.path:
            d["path"] = self.path
        return d


@dataclass(frozen=True)
class ValidationOutcome:
    errors: Tuple[Finding, ...] = ()
    warnings: Tuple[Finding, ...] = ()

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0

    @property
    def has_warnings(self) -> bool:
        return len(self.warnings) > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "has_errors": self.has_errors,
            "has_warnings": self.has_warnings,
            "result": {
                "errors": [f.to_dict() for f in self.errors],
                "warnings": [f.to_dict() for f in self.warnings],
            },
        }
