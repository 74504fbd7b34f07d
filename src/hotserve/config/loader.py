import os
import re
import yaml
from pathlib import Path
from typing import Any, Dict

from hotserve.utils.diagnostics import ConfigurationError

ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::([^}]+))?\}")

def interpolate_env_vars(content: str, variables: Dict[str, str] | None = None) -> str:
    """Replace ${VAR} or ${VAR:default} with explicit variables, then environment variables."""
    def replace_match(match: re.Match) -> str:
        var_name = match.group(1)
        default_value = match.group(2) if match.group(2) is not None else ""
        if variables and var_name in variables:
            return str(variables[var_name])
        return os.environ.get(var_name, default_value)

    return ENV_VAR_PATTERN.sub(replace_match, content)

def load_yaml_document(path: Path) -> Dict[str, Any]:
    """
    Load a YAML mapping with environment variable interpolation.

    Unlike server-side templates, configuration documents are strict: a file
    that cannot be read or is not a mapping raises ConfigurationError.
    """
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"Unable to read configuration: {exc}", path=str(path)) from exc

    try:
        document = yaml.safe_load(interpolate_env_vars(content))
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML: {exc}", path=str(path)) from exc

    if document is None:
        return {}
    if not isinstance(document, dict):
        raise ConfigurationError("Configuration root must be a mapping.", path=str(path))

    return document
