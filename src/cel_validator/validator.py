from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import celpy
from celpy import celtypes
from celpy.evaluation import CELEvalError, CELUnsupportedError
from loguru import logger

from .expander import expand_rules
from .models import (
    Finding,
    Rule,
    RuleSet,
    Severity,
    ValidationOutcome,
    Value,
    ValueKind,
    kind_of,
)

VALUES_VARIABLE = "values"

# Fixed order: the first marker found in a runtime error message wins.
ERROR_PATH_MARKERS = ("no such key: ", "undefined field '", "missing key ")

# celpy only resolves names while evaluating; these messages mean the rule never compiled.
UNDECLARED_PREFIX = "undeclared reference to "
MISSING_MEMBER_PREFIX = "no such member in mapping: "


class Bucket(str, Enum):
    ERRORS = "errors"
    WARNINGS = "warnings"


@dataclass(frozen=True)
class ValidationContext:
    """Compiled-expression environment shared by every rule of one run."""

    env: celpy.Environment = field(repr=False)

    @classmethod
    def create(cls) -> "ValidationContext":
        return cls(env=celpy.Environment(annotations={VALUES_VARIABLE: celtypes.MapType}))

    def activation(self, document: Dict[str, Value]) -> Dict[str, Any]:
        return {VALUES_VARIABLE: celpy.json_to_cel(document)}


def _bucket_for(rule: Rule) -> Bucket:
    return Bucket.WARNINGS if rule.severity is Severity.WARNING else Bucket.ERRORS


def _is_true(result: Any) -> bool:
    if isinstance(result, celtypes.BoolType):
        return bool(result)
    return result is True


def extract_path_from_error(message: str) -> Optional[str]:
    for marker in ERROR_PATH_MARKERS:
        idx = message.find(marker)
        if idx < 0:
            continue
        rest = message[idx + len(marker) :].lstrip("'\"")
        end = len(rest)
        for i, ch in enumerate(rest):
            if ch in " '\"":
                end = i
                break
        return rest[:end] or None
    return None


def _eval_error_message(err: CELEvalError) -> str:
    """The readable part of a celpy evaluation error.

    celpy packs (message, exception class, exception args) into the error. A
    missing mapping key is reworded as "no such key: <key>" so the path
    markers above can find it.
    """
    if not err.args:
        return str(err)
    message = str(err.args[0])
    cause = err.args[1] if len(err.args) > 1 else None
    if cause is KeyError:
        if message.startswith(MISSING_MEMBER_PREFIX):
            return "no such key: " + message[len(MISSING_MEMBER_PREFIX) :].strip("'\"")
        key_args = err.args[2] if len(err.args) > 2 else None
        if message == "no such key" and key_args:
            return f"no such key: {key_args[0]}"
    return message


def extract_path_and_value(document: Dict[str, Value], expression: str) -> Tuple[Value, str]:
    """Guess which document field a falsy rule is about.

    Only the first `values.` in the expression is looked at; the text after it,
    up to the next space, is read as a dotted path. The walk stops at the first
    segment that is not itself a mapping and reports that value with the path
    consumed so far.
    """
    marker = VALUES_VARIABLE + "."
    idx = expression.find(marker)
    if idx < 0:
        return None, ""

    candidate = expression[idx + len(marker) :].split(" ", 1)[0]
    candidate = candidate.lstrip("(")
    # a closing paren ends the operand: "service)&&has(..." -> "service"
    candidate = candidate.split(")", 1)[0]
    if not candidate:
        return None, ""

    parts = candidate.split(".")
    current: Dict[str, Value] = document
    for i, part in enumerate(parts[:-1]):
        nxt = current.get(part)
        if nxt is None or kind_of(nxt) is not ValueKind.MAPPING:
            return nxt, ".".join(parts[: i + 1])
        current = nxt
    return current.get(parts[-1]), candidate


def _invalid_syntax(rule: Rule, reason: Any) -> Tuple[Finding, Bucket]:
    logger.debug("Rule '{}' does not compile: {}", rule.description, reason)
    return (
        Finding(
            description=f"Invalid rule syntax in '{rule.description}': {reason}",
            expression=rule.expression,
        ),
        Bucket.ERRORS,
    )


def evaluate_rule(
    ctx: ValidationContext,
    rule: Rule,
    document: Dict[str, Value],
    activation: Optional[Dict[str, Any]] = None,
) -> Tuple[Optional[Finding], Bucket]:
    """Evaluate one expanded rule. Returns (finding or None, bucket it belongs to).

    Anything that keeps the rule from being compiled or run, including names
    other than `values` and malformed macro calls, lands in errors whatever
    the declared severity. Only genuine evaluation errors follow the severity.
    """
    try:
        ast = ctx.env.compile(rule.expression)
        program = ctx.env.program(ast)
    except CELUnsupportedError as e:
        return (
            Finding(
                description=f"Failed to process rule '{rule.description}': {e}",
                expression=rule.expression,
            ),
            Bucket.ERRORS,
        )
    except Exception as e:
        return _invalid_syntax(rule, e)

    if activation is None:
        activation = ctx.activation(document)

    bucket = _bucket_for(rule)
    try:
        result = program.evaluate(activation)
        if isinstance(result, CELEvalError):
            raise result
    except CELEvalError as e:
        message = _eval_error_message(e)
        if message.startswith(UNDECLARED_PREFIX):
            return _invalid_syntax(rule, message)
        logger.debug("Rule '{}' failed to evaluate: {}", rule.description, message)
        return (
            Finding(
                description=rule.description,
                expression=rule.expression,
                path=extract_path_from_error(message),
            ),
            bucket,
        )
    except Exception as e:
        # celpy builds macro bodies lazily, so a malformed map()/all() only fails here
        return _invalid_syntax(rule, e)

    if _is_true(result):
        return None, bucket

    value, path = extract_path_and_value(document, rule.expression)
    return (
        Finding(
            description=rule.description,
            expression=rule.expression,
            path=path or None,
            value=value,
        ),
        bucket,
    )


def validate(
    document: Dict[str, Value],
    ruleset: RuleSet,
    ctx: Optional[ValidationContext] = None,
) -> ValidationOutcome:
    """Expand and evaluate every rule in declaration order.

    Expansion failures propagate as RuleExpansionError; nothing is evaluated
    in that case.
    """
    if not ruleset.rules:
        return ValidationOutcome()

    expanded = expand_rules(ruleset)
    if ctx is None:
        ctx = ValidationContext.create()

    activation = ctx.activation(document)
    errors: List[Finding] = []
    warnings: List[Finding] = []
    for rule in expanded.rules:
        finding, bucket = evaluate_rule(ctx, rule, document, activation)
        if finding is None:
            continue
        (warnings if bucket is Bucket.WARNINGS else errors).append(finding)

    logger.info(
        "Validated {} rule(s): {} error(s), {} warning(s)",
        len(expanded.rules),
        len(errors),
        len(warnings),
    )
    return ValidationOutcome(errors=tuple(errors), warnings=tuple(warnings))


def validate_report(document: Dict[str, Value], ruleset: RuleSet) -> Dict[str, Any]:
    return validate(document, ruleset).to_dict()


# check() is for callers that prefer an exception over inspecting the outcome
class ValidationFailed(Exception):
    def __init__(self, outcome: ValidationOutcome):
        super().__init__("Values validation failed")
        self.outcome = outcome


def check(document: Dict[str, Value], ruleset: RuleSet) -> ValidationOutcome:
    outcome = validate(document, ruleset)
    if outcome.has_errors:
        raise ValidationFailed(outcome)
    return outcome
