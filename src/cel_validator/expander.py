"""Inline `${name}` / `${name(arg, ...)}` macro references into rule expressions.

Expansion works in passes: every pass rewrites each complete reference it
finds with its macro body wrapped in parentheses, and the loop stops once no
`${` remains. Macro bodies may contain references of their own, which the
next pass picks up. A run is allowed `len(macros) + 1` passes; anything still
unexpanded after that is a cycle.
"""

from __future__ import annotations

import re
import string
from dataclasses import dataclass, replace
from typing import Dict, List, Optional

from loguru import logger

from .errors import (
    CircularReferenceError,
    ExpansionError,
    ParameterArityError,
    RuleExpansionError,
    UndefinedReferenceError,
)
from .models import RuleSet

REFERENCE_OPEN = "${"

_NAME_CHARS = frozenset(string.ascii_letters + string.digits + "_")
_OPENERS = {"(": ")", "[": "]"}
_QUOTES = ("'", '"')
_PLACEHOLDER = re.compile(r"\$(\d+)")


@dataclass(frozen=True)
class Reference:
    text: str  # the whole occurrence, e.g. "${inRange(values.port, 1, 65535)}"
    name: str
    start: int
    end: int
    args: Optional[str] = None  # "(a, b)" including the parentheses

    def arguments(self) -> Optional[List[str]]:
        if self.args is None:
            return None
        return split_arguments(self.args)


def _match_group(expr: str, start: int) -> Optional[int]:
    """Index just past the bracket closing expr[start], or None if unbalanced."""
    stack: List[str] = []
    quote = None
    i = start
    while i < len(expr):
        ch = expr[i]
        if ch == "\\":
            i += 2
            continue
        if quote is not None:
            if ch == quote:
                quote = None
        elif ch in _QUOTES:
            quote = ch
        elif ch in _OPENERS:
            stack.append(_OPENERS[ch])
        elif ch in ")]":
            if not stack or stack.pop() != ch:
                return None
            if not stack:
                return i + 1
        i += 1
    return None


def find_references(expr: str) -> List[Reference]:
    """Return every complete reference in expr, left to right.

    A `${` that is not followed by a name, an optional balanced argument list
    and a closing `}` is skipped here and stays in the text.
    """
    refs: List[Reference] = []
    i = 0
    while True:
        start = expr.find(REFERENCE_OPEN, i)
        if start < 0:
            break

        j = start + len(REFERENCE_OPEN)
        while j < len(expr) and expr[j] in _NAME_CHARS:
            j += 1
        name = expr[start + len(REFERENCE_OPEN) : j]

        args = None
        if j < len(expr) and expr[j] == "(":
            close = _match_group(expr, j)
            if close is None:
                logger.debug("Unbalanced arguments in reference at {}: {!r}", start, expr)
                i = start + len(REFERENCE_OPEN)
                continue
            args = expr[j:close]
            j = close

        if j < len(expr) and expr[j] == "}":
            j += 1
            refs.append(
                Reference(text=expr[start:j], name=name, start=start, end=j, args=args)
            )
            i = j
        else:
            logger.debug("Unclosed reference at {}: {!r}", start, expr)
            i = start + len(REFERENCE_OPEN)

    return refs


def split_arguments(args_with_parens: str) -> List[str]:
    """Split "(a, f(b, c), [d, e], 'x,y')" on its top-level commas."""
    inner = args_with_parens
    if inner.startswith("("):
        inner = inner[1:]
    if inner.endswith(")"):
        inner = inner[:-1]
    inner = inner.strip()
    if not inner:
        return []

    args: List[str] = []
    current: List[str] = []
    depth = 0
    quote = None
    i = 0
    while i < len(inner):
        ch = inner[i]
        if ch == "\\":
            # escaped char is copied as-is
            current.append(inner[i : i + 2])
            i += 2
            continue
        if quote is not None:
            if ch == quote:
                quote = None
        elif ch in _QUOTES:
            quote = ch
        elif ch in "([":
            depth += 1
        elif ch in ")]":
            depth -= 1
        elif ch == "," and depth == 0:
            args.append("".join(current).strip())
            current = []
            i += 1
            continue
        current.append(ch)
        i += 1

    if current:
        args.append("".join(current).strip())
    return args


def substitute_parameters(name: str, body: str, args: Optional[List[str]]) -> str:
    """Replace $0, $1, ... in body with the literal argument texts."""
    if args is None:
        return body
    if not args and _PLACEHOLDER.search(body):
        raise ParameterArityError(name, ParameterArityError.NO_ARGUMENTS)

    missing: List[int] = []

    def _arg(m: "re.Match[str]") -> str:
        idx = int(m.group(1))
        if idx < len(args):
            return args[idx]
        missing.append(idx)
        return m.group(0)

    result = _PLACEHOLDER.sub(_arg, body)
    if missing:
        raise ParameterArityError(name, ParameterArityError.TOO_FEW)
    return result


def expand_expression(expression: str, macros: Optional[Dict[str, str]]) -> str:
    macros = macros or {}
    result = expression
    budget = len(macros) + 1
    passes = 0

    while REFERENCE_OPEN in result and passes < budget:
        passes += 1
        refs = find_references(result)
        if not refs:
            # only malformed references left
            raise UndefinedReferenceError(expression)

        pieces: List[str] = []
        cursor = 0
        for ref in refs:
            body = macros.get(ref.name)
            if body is None:
                raise UndefinedReferenceError(ref.text)
            pieces.append(result[cursor : ref.start])
            pieces.append("(" + substitute_parameters(ref.name, body, ref.arguments()) + ")")
            cursor = ref.end
        pieces.append(result[cursor:])

        expanded = "".join(pieces)
        if expanded == result:
            raise CircularReferenceError(expression)
        result = expanded

    if REFERENCE_OPEN in result:
        raise CircularReferenceError(expression)
    return result


def expand_rules(ruleset: RuleSet) -> RuleSet:
    """Return a copy of ruleset with every rule expression fully expanded."""
    expanded = []
    for rule in ruleset.rules:
        try:
            text = expand_expression(rule.expression, ruleset.macros)
        except ExpansionError as e:
            raise RuleExpansionError(rule.description, e) from e
        if text != rule.expression:
            logger.debug("Expanded rule '{}': {}", rule.description, text)
        expanded.append(replace(rule, expression=text))
    return RuleSet(rules=tuple(expanded), macros=dict(ruleset.macros))
