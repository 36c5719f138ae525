from __future__ import annotations

import os
from typing import Any, Dict, List

from loguru import logger

from .errors import ConfigError

LOG_LEVEL_ENV = "CEL_VALIDATOR_LOG_LEVEL"
OUTPUT_FORMATS = ("text", "json", "yaml")

DEFAULT_SETTINGS: Dict[str, Any] = {
    "values_files": ["values.yaml"],
    "rules_files": ["values.cel.yaml"],
    "output": "text",
    "generate_values_file": "values.yaml",
    "generate_output_file": "values.cel.yaml",
    "log_level": "WARNING",
}


def _split_files(raw: Any) -> List[str]:
    # -v a.yaml,b.yaml -v c.yaml -> [a.yaml, b.yaml, c.yaml]
    if isinstance(raw, str):
        raw = [raw]
    out: List[str] = []
    for item in raw:
        out.extend(p.strip() for p in str(item).split(",") if p.strip())
    return out


def resolve_settings(overrides: Dict[str, Any] | None = None) -> Dict[str, Any]:
    """Defaults, then the environment, then explicit overrides (None = not given)."""
    s = {k: (list(v) if isinstance(v, list) else v) for k, v in DEFAULT_SETTINGS.items()}

    env_level = os.environ.get(LOG_LEVEL_ENV)
    if env_level:
        s["log_level"] = env_level.upper()

    if overrides:
        s.update({k: v for k, v in overrides.items() if v is not None})

    for key in ("values_files", "rules_files"):
        s[key] = _split_files(s[key])
        if not s[key]:
            raise ConfigError(f"{key.replace('_', ' ')} must not be empty")

    if s["output"] not in OUTPUT_FORMATS:
        raise ConfigError(
            f"unknown output format '{s['output']}' (expected one of: {', '.join(OUTPUT_FORMATS)})"
        )

    try:
        logger.level(s["log_level"])
    except (TypeError, ValueError):
        raise ConfigError(f"unknown log level '{s['log_level']}'") from None
    return s
