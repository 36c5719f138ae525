from __future__ import annotations


class CelValidatorError(Exception):
    """Base class for every failure raised by cel_validator."""


# --- rule authoring (run-fatal)


class ExpansionError(CelValidatorError):
    pass


class UndefinedReferenceError(ExpansionError):
    def __init__(self, occurrence: str):
        super().__init__(f"undefined reference in expression: {occurrence}")
        self.occurrence = occurrence


class CircularReferenceError(ExpansionError):
    def __init__(self, expression: str):
        super().__init__(f"circular reference detected in expression: {expression}")
        self.expression = expression


class ParameterArityError(ExpansionError):
    NO_ARGUMENTS = "expression requires parameters but none were provided"
    TOO_FEW = "not enough arguments provided for parameters"

    def __init__(self, name: str, reason: str):
        super().__init__(f"failed to replace parameters in {name}: {reason}")
        self.name = name
        self.reason = reason


class RuleExpansionError(CelValidatorError):
    """An expansion failure tied to the rule that triggered it."""

    def __init__(self, description: str, cause: ExpansionError):
        super().__init__(f"failed to expand rule '{description}': {cause}")
        self.description = description
        self.cause = cause


class InvalidRuleError(CelValidatorError):
    pass


# --- collaborators (files)


class LoadError(CelValidatorError):
    def __init__(self, kind: str, path: str, reason: str):
        super().__init__(f"failed to load {kind} from {path}: {reason}")
        self.kind = kind
        self.path = path
        self.reason = reason


class ValuesLoadError(LoadError):
    def __init__(self, path: str, reason: str):
        super().__init__("values", path, reason)


class RulesLoadError(LoadError):
    def __init__(self, path: str, reason: str):
        super().__init__("rules", path, reason)


class DuplicateMacroError(CelValidatorError):
    def __init__(self, name: str, path: str, existing: str):
        super().__init__(
            f"duplicate named expression '{name}' found in {path} "
            f"(already defined as '{existing}')"
        )
        self.name = name
        self.path = path


class ConfigError(CelValidatorError):
    pass
