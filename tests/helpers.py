from pathlib import Path


def write_chart(base_dir: Path, values: str, rules: str) -> Path:
    """Write values.yaml and values.cel.yaml into base_dir and return it."""
    (base_dir / "values.yaml").write_text(values, encoding="utf-8")
    (base_dir / "values.cel.yaml").write_text(rules, encoding="utf-8")
    return base_dir


SERVICE_VALUES = """\
service:
  type: ClusterIP
  port: 80
replicaCount: 1
"""

SERVICE_RULES = """\
rules:
  - expr: "has(values.service) && has(values.service.port)"
    desc: "service port is required"
  - expr: "values.service.port >= 1 && values.service.port <= 65535"
    desc: "service port must be between 1 and 65535"
"""
