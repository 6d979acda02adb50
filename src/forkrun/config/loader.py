import os
import re
import yaml
from pathlib import Path
from typing import Any, Dict

ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::([^}]+))?\}")

CONFIG_FILE_NAME = "forkrun.yaml"

def interpolate_env_vars(content: str) -> str:
    """Replace ${VAR} or ${VAR:default} with environment variables."""
    def replace_match(match: re.Match) -> str:
        var_name = match.group(1)
        default_value = match.group(2) if match.group(2) is not None else ""
        return os.environ.get(var_name, default_value)

    return ENV_VAR_PATTERN.sub(replace_match, content)

def load_config(path: Path) -> Dict[str, Any]:
    """
    Load forkrun.yaml with environment variable interpolation.

    Keeps only the known sections: forkrun, webapp, fork, artifacts.
    """
    if not path.exists():
        return {}

    try:
        content = path.read_text(encoding="utf-8")
        interpolated_content = interpolate_env_vars(content)
        full_config = yaml.safe_load(interpolated_content) or {}
    except (OSError, UnicodeDecodeError, yaml.YAMLError):
        # unreadable behaves like absent
        return {}

    if not isinstance(full_config, dict):
        return {}

    allowed_keys = {"forkrun", "webapp", "fork", "artifacts"}
    filtered_config = {k: v for k, v in full_config.items() if k in allowed_keys}

    return filtered_config

def find_config_file(root_dir: Path) -> Path:
    """Return the project config path, falling back to the working directory."""
    config_path = root_dir / CONFIG_FILE_NAME
    if not config_path.exists():
        config_path = Path.cwd() / CONFIG_FILE_NAME
    return config_path
